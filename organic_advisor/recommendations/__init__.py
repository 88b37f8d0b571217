"""
Recommendation engine: turns a pool of catalog candidates into one ranked,
justified, materialized organic action.

Modules
-------
scorer       : ScoreBreakdown dataclass + compute_score() + build_relevance_reason()
               (pure functions, no DB or I/O).
ranker       : ScoredCandidate dataclass + score_candidates() + rank_candidates()
               + top_n().
materializer : materialize_action() + determine_urgency()
               + estimate_cost_savings(): pure, idempotent apart from the
               generation timestamp.
"""
