"""
ASCII terminal formatters for CLI output.

All formatters accept typed results and return plain multi-line strings
suitable for ``typer.echo()``.  No third-party dependencies.

Urgency tags
------------
Every action starts with a one-word tag so the most pressing work stands out:

  [IMMEDIATE]  act today, before the problem spreads
  [TODAY]      worth doing today
  [THIS WEEK]  schedule within the week
"""

from __future__ import annotations

from organic_advisor.models.action import ActionInstance, CandidateEffectiveness
from organic_advisor.recommendations.ranker import ScoredCandidate
from organic_advisor.taxonomy.crop_taxonomy import ActionSource, Urgency

_URGENCY_TAGS: dict[Urgency, str] = {
    Urgency.IMMEDIATE: "[IMMEDIATE]",
    Urgency.TODAY:     "[TODAY]",
    Urgency.THIS_WEEK: "[THIS WEEK]",
}


def format_action(action: ActionInstance) -> str:
    """Format a daily action as a readable card.

    Example::

        [IMMEDIATE] Today's Organic Action: Garlic-chili maize spray
          Repels and kills armyworm larvae ...
          Why:        Perfect for maize; Targets armyworm; Rated 4.5/5; 100% organic
          Savings:    22.00 vs. commercial   Results in: 24-48 hours
          Difficulty: medium                 Yield:      +15-25%
          Ingredients:
            - garlic: 10 cloves  (you have this)
          Steps:
            1. Crush the garlic and chili together
    """
    lines: list[str] = []
    lines.append("")
    lines.append(f"{_URGENCY_TAGS[action.urgency]} {action.title}")
    lines.append(f"  {action.description}")
    if action.relevance_reason:
        lines.append(f"  Why:        {action.relevance_reason}")
    lines.append(
        f"  Savings:    {action.estimated_cost_savings:.2f} vs. commercial"
        f"   Results in: {action.estimated_time_to_result}"
    )
    yield_str = f"+{action.expected_yield_increase}" if action.expected_yield_increase else "n/a"
    lines.append(f"  Difficulty: {action.difficulty_level.value:<22} Yield:      {yield_str}")

    if action.ingredients:
        lines.append("  Ingredients:")
        for ing in action.ingredients:
            have = "  (you have this)" if ing.from_available_materials else ""
            lines.append(f"    - {ing.name}: {ing.quantity}{have}")

    lines.append("  Steps:")
    for i, step in enumerate(action.steps, start=1):
        lines.append(f"    {i}. {step}")

    source = "AI-generated" if action.source == ActionSource.ENRICHMENT else (
        f"catalog:{action.source_candidate_id}"
    )
    lines.append(f"  Source: {source}   Action id: {action.action_id}")
    return "\n".join(lines)


def format_ranked_candidates(ranked: list[ScoredCandidate]) -> str:
    """Format search results as an ASCII table in rank order."""
    lines: list[str] = [""]
    if not ranked:
        lines.append("  (no matching verified remedies; try 'import-catalog' or a broader query)")
        return "\n".join(lines)

    header = (
        f"  {'Rank':>4}  {'Candidate':<34}  {'Category':<16}  "
        f"{'Score':>6}  {'Rating':>6}  {'Cost':>6}"
    )
    lines.append(header)
    lines.append("  " + "-" * (len(header) - 2))
    for rank, sc in enumerate(ranked, start=1):
        c = sc.candidate
        lines.append(
            f"  {rank:>4}  {_truncate(c.name, 34):<34}  {c.category.value:<16}  "
            f"{sc.match_score:>6.2f}  {c.effectiveness_rating:>6.1f}  {c.cost_per_unit:>6.2f}"
        )
        lines.append(f"        {sc.reason}")
    return "\n".join(lines)


def format_unavailable(reason: str, message: str) -> str:
    return f"\n[UNAVAILABLE] {message}\n  Reason: {reason}"


def format_effectiveness(eff: CandidateEffectiveness) -> str:
    """Format a candidate's usage and feedback summary.

    Example::

        Garlic-chili maize spray  (pesticide)
          Effectiveness: 4.5/5
          Usage:         3 recommended, 2 completed (66.7% success)
          Feedback:      2 rating(s), average 4.50/5, 100.0% would recommend
    """
    lines: list[str] = ["", f"{eff.name}  ({eff.category.value})"]
    lines.append(f"  Effectiveness: {eff.effectiveness_rating:.1f}/5")

    success = "n/a" if eff.success_rate is None else f"{eff.success_rate:.1f}%"
    lines.append(
        f"  Usage:         {eff.total_usages} recommended, "
        f"{eff.completed_usages} completed ({success} success)"
    )
    if eff.feedback_count == 0:
        lines.append("  Feedback:      none yet")
    else:
        lines.append(
            f"  Feedback:      {eff.feedback_count} rating(s), "
            f"average {eff.average_rating:.2f}/5, {eff.recommend_rate:.1f}% would recommend"
        )
    return "\n".join(lines)


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."
