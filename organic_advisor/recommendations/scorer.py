"""
Relevance scoring: converts a Candidate + UserContext into a ScoreBreakdown.

Score formula (additive, capped weights, range 0–100)
------------------------------------------------------
    match_score = (
        crop_match              # 0 / 20 / 40
        + issue_match           # 0–40
        + effectiveness         # 0–10
        + organic_compliance    # 0–10
        - recency_penalty       # 0 or 2
    )                           # floored at 0, capped at 100

Component explanations
----------------------
crop_match (0–40):
    40 when the candidate lists any of the user's crops or a universal
    wildcard ("all", "all crops", "*").  20 when a listed crop shares a family
    with a user crop (static CROP_FAMILIES table; "other" never matches).
    0 otherwise.

issue_match (0–40):
    For each user issue tag, case-insensitive substring containment against
    the candidate's issues in either direction.
    Formula: 40 * matched / total_user_issues; 0 when the user has no issues.

effectiveness (0–10):
    2 * effectiveness_rating (rating clamped to 0–5).

organic_compliance (0–10):
    organic_compliance / 10 (compliance clamped to 0–100).

recency_penalty (0 or 2):
    Applied once when the candidate is in the user's recent-history window.
    Large enough to rotate between equally relevant candidates, small
    enough never to bury a clearly better one.

A strong crop+issue match alone (80) outranks any candidate that matches
neither, whatever its quality signals (max 20).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from organic_advisor.models.candidate import Candidate
from organic_advisor.models.context import UserContext
from organic_advisor.taxonomy.crop_taxonomy import (
    CROP_WILDCARDS,
    UNKNOWN_FAMILY,
    crop_family,
)

CROP_FULL_MATCH   = 40.0
CROP_FAMILY_MATCH = 20.0
ISSUE_WEIGHT      = 40.0
RECENCY_PENALTY   = 2.0
MAX_SCORE         = 100.0


@dataclass(frozen=True)
class ScoreBreakdown:
    """All components of a candidate's relevance score.

    Attributes:
        crop_match:         0, 20, or 40.
        issue_match:        0–40, proportional to matched user issues.
        effectiveness:      0–10, twice the 0–5 rating.
        organic_compliance: 0–10, a tenth of the 0–100 compliance.
        recency_penalty:    0 or 2.
        matched_issues:     User issue tags that matched (for reasoning).
        family_match:       Crop family that produced a partial match, if any.
    """

    crop_match:         float
    issue_match:        float
    effectiveness:      float
    organic_compliance: float
    recency_penalty:    float
    matched_issues:     tuple[str, ...] = ()
    family_match:       str | None = None

    @property
    def match_score(self) -> float:
        """Aggregate score, always finite and within [0, 100]."""
        total = (
            self.crop_match
            + self.issue_match
            + self.effectiveness
            + self.organic_compliance
            - self.recency_penalty
        )
        if not math.isfinite(total):
            return 0.0
        return round(_clamp(total, 0.0, MAX_SCORE), 2)


def compute_score(candidate: Candidate, context: UserContext) -> ScoreBreakdown:
    """Compute the relevance breakdown of one candidate for one context.

    Args:
        candidate: Catalog candidate (assumed to have passed hard filters).
        context:   The requesting user's context.

    Returns:
        ScoreBreakdown with all components populated.
    """
    # ── Crop match ────────────────────────────────────────────────────────────
    target_crops = {c.strip().lower() for c in candidate.target_crops}
    user_crops   = [c.strip().lower() for c in context.crops]
    family_match: str | None = None

    if target_crops & CROP_WILDCARDS or any(c in target_crops for c in user_crops):
        crop_match = CROP_FULL_MATCH
    else:
        target_families = {crop_family(c) for c in target_crops} - {UNKNOWN_FAMILY}
        family_match = next(
            (crop_family(c) for c in user_crops if crop_family(c) in target_families),
            None,
        )
        crop_match = CROP_FAMILY_MATCH if family_match else 0.0

    # ── Issue match ───────────────────────────────────────────────────────────
    matched = tuple(
        issue for issue in context.issues
        if _issue_matches(issue, candidate.target_issues)
    )
    if context.issues:
        issue_match = ISSUE_WEIGHT * len(matched) / len(context.issues)
    else:
        issue_match = 0.0

    # ── Quality signals ───────────────────────────────────────────────────────
    effectiveness      = 2.0 * _clamp(_finite(candidate.effectiveness_rating), 0.0, 5.0)
    organic_compliance = _clamp(_finite(candidate.organic_compliance), 0.0, 100.0) / 10.0

    # ── Recency penalty ───────────────────────────────────────────────────────
    recency_penalty = (
        RECENCY_PENALTY if candidate.candidate_id in context.recent_candidate_ids else 0.0
    )

    return ScoreBreakdown(
        crop_match=crop_match,
        issue_match=round(issue_match, 4),
        effectiveness=round(effectiveness, 4),
        organic_compliance=round(organic_compliance, 4),
        recency_penalty=recency_penalty,
        matched_issues=matched,
        family_match=family_match,
    )


def build_relevance_reason(
    candidate: Candidate,
    context:   UserContext,
    breakdown: ScoreBreakdown,
) -> str:
    """Assemble a human-readable explanation from a score breakdown.

    Returns a semicolon-separated list such as:
        "Perfect for maize; Targets armyworm; Rated 4.5/5; 100% organic"

    Returns:
        Non-empty reasoning string.
    """
    reasons: list[str] = []

    if breakdown.crop_match >= CROP_FULL_MATCH:
        reasons.append(f"Perfect for {', '.join(context.crops)}")
    elif breakdown.family_match:
        reasons.append(f"Good for the {breakdown.family_match} family")

    if breakdown.matched_issues:
        reasons.append(f"Targets {', '.join(breakdown.matched_issues)}")

    if candidate.effectiveness_rating >= 4.0:
        reasons.append(f"Rated {candidate.effectiveness_rating:g}/5")

    if candidate.organic_compliance >= 100.0:
        reasons.append("100% organic")

    if breakdown.recency_penalty:
        reasons.append("Recently recommended")

    return "; ".join(reasons) or "General organic practice"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _issue_matches(issue: str, target_issues: list[str]) -> bool:
    needle = issue.strip().lower()
    if not needle:
        return False
    for target in target_issues:
        hay = target.strip().lower()
        if hay and (needle in hay or hay in needle):
            return True
    return False


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
