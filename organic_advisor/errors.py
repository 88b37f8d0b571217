"""
Error kinds raised inside the recommendation pipeline.

Only ``NoCandidatesAvailable`` ever changes what the caller sees, and even then
the service converts it into an explicit "unavailable" result rather than
letting it escape.  The others are recovered where they are raised:

  ``RepositoryWriteFailure`` → logged; the recommendation is still returned.
  ``EnrichmentFailure``      → folded into an ``EnrichmentOutcome``; fallback.
  ``InvalidContextData``     → logged by the context builder; default used.
"""

from __future__ import annotations

from typing import Optional

# Machine-readable reason attached to "no recommendation available" results.
REASON_EMPTY_CATALOG = "empty_catalog"


class NoCandidatesAvailable(RuntimeError):
    """Raised when every relaxed retrieval attempt returned no candidates.

    Attributes:
        user_id:  The user the recommendation was for.
        attempts: Number of retrieval attempts made (always 3 in practice).
        reason:   Machine-readable reason, ``"empty_catalog"``.
    """

    def __init__(self, user_id: str, attempts: int) -> None:
        self.user_id  = user_id
        self.attempts = attempts
        self.reason   = REASON_EMPTY_CATALOG
        super().__init__(
            f"No verified candidates available for user '{user_id}' "
            f"after {attempts} retrieval attempts (catalog is empty)."
        )


class RepositoryWriteFailure(RuntimeError):
    """Raised when persisting a materialized action fails.

    Attributes:
        action_id: The action that could not be saved.
    """

    def __init__(self, action_id: str, cause: Optional[BaseException] = None) -> None:
        self.action_id = action_id
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to persist action '{action_id}'{detail}")


class EnrichmentFailure(RuntimeError):
    """Raised for a failed or malformed enrichment collaborator response."""


class InvalidContextData(ValueError):
    """Raised for a malformed upstream profile, field, or history value.

    Attributes:
        field_name: Which context input was malformed.
    """

    def __init__(self, field_name: str, detail: str) -> None:
        self.field_name = field_name
        super().__init__(f"Invalid context data for '{field_name}': {detail}")


class CandidateNotFound(LookupError):
    """Raised when an operation names a candidate id the catalog does not have."""

    def __init__(self, candidate_id: str) -> None:
        self.candidate_id = candidate_id
        super().__init__(f"Unknown candidate '{candidate_id}'.")
