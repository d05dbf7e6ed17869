"""
Core Module - Shared domain models and interfaces.

Components:
- modes: study modes, card/session/job enumerations
- models: domain records exchanged between engine, storage and API
- interfaces: collaborator protocols (card store, sessions, jobs, scheduling)
- mastery: tier-weighted mastery calculation
- errors: study error taxonomy

All domain modules (skillpath/study/, skillpath/db/, skillpath/api/)
import shared concepts from here.
"""

from skillpath.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NoCardsAvailableError,
    NotFoundError,
    SessionExpiredError,
    StudyError,
    UpstreamUnavailableError,
)
from skillpath.core.modes import (
    CardState,
    CardType,
    JobStatus,
    JobType,
    Rating,
    ScopeKind,
    SessionStatus,
    StudyMode,
)

__all__ = [
    # Errors
    "StudyError",
    "NotFoundError",
    "AuthorizationError",
    "ConflictError",
    "InvalidStateError",
    "SessionExpiredError",
    "NoCardsAvailableError",
    "UpstreamUnavailableError",
    # Modes
    "StudyMode",
    "CardType",
    "CardState",
    "Rating",
    "ScopeKind",
    "SessionStatus",
    "JobType",
    "JobStatus",
]
