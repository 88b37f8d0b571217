"""
Optional generative enrichment of the daily action.

Modules
-------
parsing  : build_context_summary() + parse_enriched_action(): defensive,
           no I/O.
attempt  : EnrichmentState / EnrichmentOutcome + attempt_enrichment(): one
           bounded attempt, always returns a result value.
gemini   : GeminiEnrichmentClient: httpx-based collaborator.
"""
