"""
Terminal reporting for CLI commands.

Modules
-------
formatters : format_action() + format_ranked_candidates() + format_unavailable()
             (plain strings for ``typer.echo()``).
"""
