"""
Study error taxonomy.

Hard failures (not-found, authorization, conflict, invalid state, expiry,
exhaustion) carry the HTTP status the API layer answers with. Upstream
failures are raised by adapters and always degraded by the caller.
"""

from __future__ import annotations


class StudyError(Exception):
    """Base class for study-session errors surfaced to the caller."""

    status_code: int = 400
    code: str = "study_error"

    def __init__(self, message: str, **details: object):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, object]:
        """Error payload for API responses."""
        payload: dict[str, object] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(StudyError):
    """Session, goal, deck or node does not exist (or is not visible to the caller)."""

    status_code = 404
    code = "not_found"


class AuthorizationError(StudyError):
    """Resource exists but belongs to another user."""

    status_code = 403
    code = "forbidden"


class ConflictError(StudyError):
    """Stale or out-of-order write (duplicate rating, lost race)."""

    status_code = 400
    code = "conflict"


class InvalidStateError(StudyError):
    """Operation not allowed in the session's current status."""

    status_code = 400
    code = "invalid_state"


class SessionExpiredError(StudyError):
    """Session is past its absolute expiry."""

    status_code = 400
    code = "expired"


class NoCardsAvailableError(StudyError):
    """Scope holds zero eligible cards."""

    status_code = 400
    code = "no_cards_available"


class UpstreamUnavailableError(StudyError):
    """Distractor store or job queue failure. Callers degrade instead of surfacing it."""

    status_code = 503
    code = "upstream_unavailable"
