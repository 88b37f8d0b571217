"""
Candidate ranker: scores a candidate pool against a context and orders it.

Usage flow
----------
1. score_candidates(candidates, context)
   -> list[ScoredCandidate]  (one per candidate that passes hard filters)

2. rank_candidates(scored)
   -> list[ScoredCandidate]  (total order, index 0 is the recommendation)

3. top_n(ranked, n)
   -> list[ScoredCandidate]  (browsing / search slice)

Ordering (total, deterministic)
-------------------------------
    1. match_score           descending
    2. effectiveness_rating  descending
    3. organic_compliance    descending
    4. candidate_id          ascending

The last key is unique within a catalog, so there are no unresolved ties and
re-sorting a ranked list never changes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from organic_advisor.models.candidate import Candidate, CandidateFilter
from organic_advisor.models.context import UserContext
from organic_advisor.recommendations.scorer import (
    ScoreBreakdown,
    build_relevance_reason,
    compute_score,
)
from organic_advisor.taxonomy.crop_taxonomy import CROP_WILDCARDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate coupled with its score breakdown and explanation.

    Attributes:
        candidate:  The catalog candidate.
        breakdown:  Per-component score.
        reason:     Human-readable relevance explanation.
    """

    candidate: Candidate
    breakdown: ScoreBreakdown
    reason:    str

    @property
    def match_score(self) -> float:
        return self.breakdown.match_score

    def sort_key(self) -> tuple[float, float, float, str]:
        return (
            -self.match_score,
            -self.candidate.effectiveness_rating,
            -self.candidate.organic_compliance,
            self.candidate.candidate_id,
        )


def passes_hard_filters(candidate: Candidate, flt: CandidateFilter | None = None) -> bool:
    """Return ``True`` if ``candidate`` may enter scoring under ``flt``.

    Verification is always required.  Crop / season / category constraints
    are checked only when the filter sets them, mirroring what the store
    was asked for so a misbehaving store cannot leak candidates through.
    """
    if not candidate.verified:
        return False
    if flt is None:
        return True
    if flt.category is not None and candidate.category != flt.category:
        return False
    if flt.season is not None and candidate.seasonality and flt.season not in candidate.seasonality:
        return False
    if flt.crop is not None:
        crops = {c.strip().lower() for c in candidate.target_crops}
        if flt.crop not in crops and not crops & CROP_WILDCARDS:
            return False
    return True


def score_candidates(
    candidates: Iterable[Candidate],
    context:    UserContext,
    flt:        CandidateFilter | None = None,
) -> list[ScoredCandidate]:
    """Score every candidate that passes the hard filters.

    Args:
        candidates: Candidate pool from the store.
        context:    The requesting user's context.
        flt:        The filter the pool was retrieved with, if any.

    Returns:
        Unordered list of ScoredCandidate.
    """
    scored: list[ScoredCandidate] = []
    dropped = 0
    for candidate in candidates:
        if not passes_hard_filters(candidate, flt):
            dropped += 1
            continue
        breakdown = compute_score(candidate, context)
        scored.append(
            ScoredCandidate(
                candidate=candidate,
                breakdown=breakdown,
                reason=build_relevance_reason(candidate, context, breakdown),
            )
        )
    if dropped:
        logger.debug("Dropped %d candidate(s) failing hard filters", dropped)
    return scored


def rank_candidates(scored: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Return ``scored`` in recommendation order (see module docstring)."""
    return sorted(scored, key=ScoredCandidate.sort_key)


def top_n(ranked: list[ScoredCandidate], n: int | None) -> list[ScoredCandidate]:
    """Return the first ``n`` ranked candidates; ``None`` returns all."""
    if n is None:
        return list(ranked)
    return ranked[:max(n, 0)]
