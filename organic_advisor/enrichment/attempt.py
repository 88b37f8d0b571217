"""
Single bounded enrichment attempt, folded into a result value.

State machine
-------------
    ATTEMPT ──► SUCCESS                              (action set)
            ├─► TIMEOUT   ─┐
            ├─► FAILURE   ─┼─► caller falls back to the deterministic
            └─► MALFORMED ─┘   materializer (FALLBACK)

``attempt_enrichment`` never raises: every collaborator error, timeout, or
malformed response ends in a non-SUCCESS ``EnrichmentOutcome``.  There is one
attempt and no retry.  ``asyncio.CancelledError`` is not an enrichment
failure and propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional, Protocol

from organic_advisor.config import PolicyConfig
from organic_advisor.errors import EnrichmentFailure
from organic_advisor.enrichment.parsing import build_context_summary, parse_enriched_action
from organic_advisor.models.action import ActionInstance
from organic_advisor.models.context import UserContext
from organic_advisor.taxonomy.crop_taxonomy import CandidateCategory

logger = logging.getLogger(__name__)


class EnrichmentCollaborator(Protocol):
    """Anything that can generate an action payload from a context summary."""

    async def generate(self, context_summary: dict[str, Any]) -> Any: ...


class EnrichmentState(StrEnum):
    ATTEMPT   = "attempt"
    SUCCESS   = "success"
    TIMEOUT   = "timeout"
    FAILURE   = "failure"
    MALFORMED = "malformed"
    FALLBACK  = "fallback"


@dataclass(frozen=True)
class EnrichmentOutcome:
    """Terminal state of one enrichment attempt.

    Attributes:
        state:  SUCCESS, TIMEOUT, FAILURE, MALFORMED, or FALLBACK (skipped).
        action: The enriched action when ``state`` is SUCCESS.
        detail: Why the attempt did not succeed.
    """

    state:  EnrichmentState
    action: Optional[ActionInstance] = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state == EnrichmentState.SUCCESS and self.action is not None

    @classmethod
    def skipped(cls, detail: str) -> "EnrichmentOutcome":
        return cls(state=EnrichmentState.FALLBACK, detail=detail)


async def attempt_enrichment(
    collaborator:  Optional[EnrichmentCollaborator],
    context:       UserContext,
    policy:        PolicyConfig,
    timeout_s:     float,
    category_hint: Optional[CandidateCategory] = None,
    generated_at:  Optional[datetime] = None,
) -> EnrichmentOutcome:
    """Run one enrichment attempt under ``timeout_s``.

    Args:
        collaborator:  Enrichment client, or ``None`` when not configured.
        context:       The requesting user's context.
        policy:        Policy tables used to fill gaps in the response.
        timeout_s:     Upper bound on the collaborator call.
        category_hint: Category of the top-ranked candidate.
        generated_at:  Timestamp for the resulting action.

    Returns:
        EnrichmentOutcome; SUCCESS carries the action.
    """
    if collaborator is None:
        return EnrichmentOutcome.skipped("enrichment not configured")

    summary = build_context_summary(context, category_hint)
    logger.debug("Enrichment %s for user=%s", EnrichmentState.ATTEMPT, context.user_id)

    try:
        raw = await asyncio.wait_for(collaborator.generate(summary), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning(
            "Enrichment timed out after %.1fs for user=%s; using catalog action",
            timeout_s, context.user_id,
        )
        return EnrichmentOutcome(EnrichmentState.TIMEOUT, detail=f"timed out after {timeout_s}s")
    except Exception as exc:  # noqa: BLE001
        failure = exc if isinstance(exc, EnrichmentFailure) else EnrichmentFailure(str(exc))
        logger.warning(
            "Enrichment failed for user=%s (%s: %s); using catalog action",
            context.user_id, type(exc).__name__, failure,
        )
        return EnrichmentOutcome(EnrichmentState.FAILURE, detail=str(failure))

    try:
        action = parse_enriched_action(
            raw, context, policy,
            category_hint=category_hint,
            generated_at=generated_at,
        )
    except Exception as exc:  # noqa: BLE001
        failure = exc if isinstance(exc, EnrichmentFailure) else EnrichmentFailure(
            f"{type(exc).__name__}: {exc}"
        )
        logger.warning(
            "Malformed enrichment response for user=%s: %s; using catalog action",
            context.user_id, failure,
        )
        return EnrichmentOutcome(EnrichmentState.MALFORMED, detail=str(failure))

    logger.info("Enrichment succeeded for user=%s: %s", context.user_id, action.title)
    return EnrichmentOutcome(EnrichmentState.SUCCESS, action=action)
