"""
Recommendation service: the caller-facing API.

Daily action flow
-----------------
    get_daily_action(user_id)
      └─ ActionCache.compute_and_store(CacheKey(user, today))     (coalesced)
           1. reuse today's open action from the store, if any
           2. build UserContext          (profile / fields / history)
           3. relaxed retrieval           crop+season → season → verified-only
           4. score + rank                (hard filters re-checked)
           5. enrichment attempt          (top candidate's category as hint)
              └─ fallback: materialize the top-ranked candidate
           6. persist                     (best-effort, failure only logged)
      NoCandidatesAvailable → DailyActionResult.unavailable("empty_catalog")

Store calls are synchronous and run through ``asyncio.to_thread`` under the
configured retrieval timeout.  A timed-out retrieval counts as an empty tier.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar

from organic_advisor.cache.result_cache import ActionCache, CacheKey
from organic_advisor.config import AppConfig
from organic_advisor.context.builder import build_user_context
from organic_advisor.enrichment.attempt import EnrichmentCollaborator, attempt_enrichment
from organic_advisor.errors import CandidateNotFound, NoCandidatesAvailable, RepositoryWriteFailure
from organic_advisor.interfaces import CandidateQuery, CandidateStore, UserRecordSource
from organic_advisor.models.action import (
    ActionFeedback,
    ActionInstance,
    CandidateEffectiveness,
    CandidateRating,
    DailyActionResult,
)
from organic_advisor.models.candidate import Candidate, CandidateFilter
from organic_advisor.models.context import UserContext
from organic_advisor.recommendations import ranker
from organic_advisor.recommendations.materializer import materialize_action
from organic_advisor.recommendations.ranker import ScoredCandidate, rank_candidates, score_candidates
from organic_advisor.taxonomy.crop_taxonomy import MIXED_CROPS
from organic_advisor.utils.time_utils import season_for_date, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEARCH_USER_ID = "catalog-search"


class RecommendationService:
    """Produces one organic action per user per day, plus catalog search.

    Args:
        store:      Catalog and action persistence.
        users:      Profile / field / history records (often the same object).
        config:     Application config; defaults are used when omitted.
        cache:      Result cache; built from ``config.cache`` when omitted.
        enrichment: Optional enrichment collaborator.
        clock:      Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store:      CandidateStore,
        users:      UserRecordSource,
        config:     Optional[AppConfig] = None,
        cache:      Optional[ActionCache] = None,
        enrichment: Optional[EnrichmentCollaborator] = None,
        clock:      Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.users = users
        self.config = config or AppConfig()
        self.clock = clock or utcnow
        self.cache = cache or ActionCache(self.config.cache.ttl_seconds, clock=self.clock)
        self.enrichment = enrichment

    @classmethod
    def from_config(cls, config: AppConfig) -> "RecommendationService":
        """Wire the SQLite store and (if enabled and keyed) the Gemini client."""
        from organic_advisor.db.store import SqliteRecordStore
        from organic_advisor.enrichment.gemini import GeminiEnrichmentClient

        store = SqliteRecordStore.from_config(config.database)
        return cls(
            store=store,
            users=store,
            config=config,
            enrichment=GeminiEnrichmentClient.from_config(config.enrichment),
        )

    # ── Public API ─────────────────────────────────────────────────────────────

    async def get_daily_action(self, user_id: str) -> DailyActionResult:
        """Return today's action for ``user_id``.

        Concurrent calls for the same user and day share one computation.
        An empty catalog yields an "unavailable" result, which is not cached.
        """
        today = self.clock().date()
        key = CacheKey(user_id=user_id, context_day=today)
        try:
            action = await self.cache.compute_and_store(
                key, lambda: self._compute_daily_action(user_id, today)
            )
        except NoCandidatesAvailable as exc:
            logger.info("No action for user=%s: %s", user_id, exc)
            return DailyActionResult.unavailable(
                exc.reason,
                "No verified organic remedies are available yet. Please check back later.",
            )
        return DailyActionResult.ok(action)

    async def search_candidates(
        self,
        query: CandidateQuery,
        top_n: Optional[int] = None,
    ) -> list[ScoredCandidate]:
        """Rank catalog candidates for an explicit crop / issue / category query."""
        today = self.clock().date()
        context = UserContext(
            user_id=SEARCH_USER_ID,
            crops=[query.crop] if query.crop else [MIXED_CROPS],
            issues=list(query.issues),
            season=season_for_date(today, self.config.recommendation.hemisphere),
            as_of=today,
        )
        flt = CandidateFilter(crop=query.crop, category=query.category)
        candidates = await self._fetch(flt)
        ranked = rank_candidates(score_candidates(candidates, context, flt))
        n = top_n if top_n is not None else self.config.recommendation.search_top_n
        return ranker.top_n(ranked, n)

    async def rate_candidate(self, candidate_id: str, user_id: str, rating: CandidateRating) -> float:
        """Record a user's rating; returns the candidate's new effectiveness rating.

        Raises:
            CandidateNotFound: If the candidate does not exist.
        """
        return await asyncio.to_thread(self.store.rate_candidate, candidate_id, user_id, rating)

    async def candidate_effectiveness(self, candidate_id: str) -> CandidateEffectiveness:
        """Summarize how a candidate has performed in use and in user feedback.

        Raises:
            CandidateNotFound: If the candidate does not exist.
        """
        candidate = await asyncio.to_thread(self.store.get_candidate, candidate_id)
        if candidate is None:
            raise CandidateNotFound(candidate_id)
        usage = await asyncio.to_thread(self.store.candidate_usage, candidate_id)
        return CandidateEffectiveness(
            candidate_id=candidate.candidate_id,
            name=candidate.name,
            category=candidate.category,
            effectiveness_rating=candidate.effectiveness_rating,
            **usage,
        )

    async def mark_completed(self, user_id: str, action_id: str, feedback: ActionFeedback) -> bool:
        """Record completion and drop the user's cached action.

        Returns:
            ``False`` if the store does not know ``action_id``.
        """
        found = await asyncio.to_thread(self.store.mark_completed, action_id, feedback)
        dropped = self.cache.invalidate_user(user_id)
        logger.info(
            "Action %s completed by user=%s (found=%s, cache entries dropped=%d)",
            action_id, user_id, found, dropped,
        )
        return found

    # ── Pipeline ───────────────────────────────────────────────────────────────

    async def _compute_daily_action(self, user_id: str, today: date) -> ActionInstance:
        existing = await self._read_or_none(self.store.get_open_action, user_id, today)
        if existing is not None:
            logger.info("Reusing open action %s for user=%s", existing.action_id, user_id)
            return existing

        context = await self.build_context(user_id, today)
        ranked = await self._retrieve_ranked(context)
        top = ranked[0]
        now = self.clock()

        outcome = await attempt_enrichment(
            self.enrichment,
            context,
            self.config.policy,
            timeout_s=self.config.enrichment.timeout_s,
            category_hint=top.candidate.category,
            generated_at=now,
        )
        if outcome.succeeded:
            action = outcome.action
        else:
            logger.debug("Enrichment %s (%s); materializing top candidate", outcome.state, outcome.detail)
            action = materialize_action(top.candidate, context, self.config.policy, top, generated_at=now)

        await self._persist(user_id, action)
        logger.info(
            "Daily action for user=%s: %s (source=%s, score=%s)",
            user_id, action.title, action.source, action.match_score,
        )
        return action

    async def build_context(self, user_id: str, today: date) -> UserContext:
        """Load the user's records and build their context for ``today``."""
        rec = self.config.recommendation
        profile, fields, history = await asyncio.gather(
            self._read_or_none(self.users.load_profile, user_id),
            self._read_or_none(self.users.load_fields, user_id),
            self._read_or_none(self.users.load_recent_actions, user_id, rec.recency_window),
        )
        return build_user_context(
            user_id, profile, fields, history,
            as_of=today,
            recency_window=rec.recency_window,
            hemisphere=rec.hemisphere,
        )

    async def _retrieve_ranked(self, context: UserContext) -> list[ScoredCandidate]:
        tiers = [
            CandidateFilter(crop=context.primary_crop, season=context.season),
            CandidateFilter(season=context.season),
            CandidateFilter(),
        ]
        for attempt, flt in enumerate(tiers, start=1):
            candidates = await self._fetch(flt)
            scored = score_candidates(candidates, context, flt)
            if scored:
                if attempt > 1:
                    logger.info(
                        "Retrieval relaxed to %s for user=%s (attempt %d)",
                        flt.describe(), context.user_id, attempt,
                    )
                return rank_candidates(scored)
            logger.debug("No candidates for %s (user=%s)", flt.describe(), context.user_id)
        raise NoCandidatesAvailable(context.user_id, attempts=len(tiers))

    async def _fetch(self, flt: CandidateFilter) -> list[Candidate]:
        timeout = self.config.recommendation.retrieval_timeout_s
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.store.fetch_candidates, flt), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Candidate retrieval (%s) timed out after %.1fs", flt.describe(), timeout)
            return []

    async def _read_or_none(self, fn: Callable[..., T], *args: Any) -> Optional[T]:
        timeout = self.config.recommendation.retrieval_timeout_s
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs; using defaults", fn.__name__, timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s failed (%s: %s); using defaults", fn.__name__, type(exc).__name__, exc)
        return None

    async def _persist(self, user_id: str, action: ActionInstance) -> None:
        timeout = self.config.recommendation.retrieval_timeout_s
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.store.save_action_instance, user_id, action),
                timeout=timeout,
            )
        except Exception as exc:  # noqa: BLE001
            failure = RepositoryWriteFailure(action.action_id, exc)
            logger.warning("%s; returning the action unsaved", failure)
