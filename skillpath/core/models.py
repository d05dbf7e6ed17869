"""
Domain records shared by the study engine, the storage adapters and the API.

Records are plain dataclasses. Storage adapters convert ORM rows into them;
the engine never touches ORM objects directly.

Design:
- SchedulingState: authoritative scheduling snapshot of one card
- CardRecord / SkillNodeRecord / GoalRecord / DeckRecord: read models from the card store
- StudySessionRecord: the persisted session (manifest, cursor, responses)
- BackgroundJob: async generation job as seen by pollers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .modes import CardState, CardType, JobStatus, ScopeKind, SessionStatus, StudyMode


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, (int, float)):
        # epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    return ensure_aware(datetime.fromisoformat(str(value)))


# ============================================================================
# Scheduling
# ============================================================================


@dataclass
class SchedulingState:
    """Scheduling snapshot of a card (stored as JSON on the card row)."""

    state: CardState = CardState.NEW
    due: datetime = field(default_factory=utcnow)
    stability: float = 0.0
    difficulty: float = 0.0
    reps: int = 0
    lapses: int = 0
    elapsed_days: float = 0.0
    scheduled_days: float = 0.0
    last_review: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return ensure_aware(self.due) <= ensure_aware(now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": int(self.state),
            "due": ensure_aware(self.due).isoformat(),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "reps": self.reps,
            "lapses": self.lapses,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "last_review": ensure_aware(self.last_review).isoformat() if self.last_review else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SchedulingState:
        if not data:
            return cls()
        return cls(
            state=CardState(int(data.get("state") or 0)),
            due=_parse_datetime(data.get("due")) or utcnow(),
            stability=float(data.get("stability") or 0.0),
            difficulty=float(data.get("difficulty") or 0.0),
            reps=int(data.get("reps") or 0),
            lapses=int(data.get("lapses") or 0),
            elapsed_days=float(data.get("elapsed_days") or 0.0),
            scheduled_days=float(data.get("scheduled_days") or 0.0),
            last_review=_parse_datetime(data.get("last_review")),
        )


# ============================================================================
# Card store read models
# ============================================================================


@dataclass
class CardRecord:
    """An active card with its owning node and scheduling state."""

    id: str
    user_id: str
    question: str
    answer: str
    card_type: CardType = CardType.FLASHCARD
    scheduling: SchedulingState = field(default_factory=SchedulingState)
    node_id: str | None = None
    node_title: str = ""
    node_path: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = "active"
    version: int = 0

    @property
    def metadata_distractors(self) -> list[str]:
        """Legacy distractor list embedded in card metadata."""
        raw = self.metadata.get("distractors") if self.metadata else None
        if not isinstance(raw, list):
            return []
        return [str(item) for item in raw if item]


@dataclass
class SkillNodeRecord:
    """Topic node in a goal's skill tree."""

    id: str
    tree_id: str
    title: str
    path: str
    depth: int = 0
    parent_id: str | None = None
    description: str | None = None
    is_enabled: bool = True
    card_count: int = 0
    mastery_percentage: int = 0


@dataclass
class GoalRecord:
    """Learning goal owning one skill tree."""

    id: str
    user_id: str
    title: str
    tree_id: str | None = None
    mastery_percentage: int = 0
    total_time_seconds: int = 0


@dataclass
class DeckRecord:
    """User-editable card collection with optional per-deck limits."""

    id: str
    user_id: str
    name: str
    new_cards_per_day_override: int | None = None
    cards_per_session_override: int | None = None


@dataclass
class ReviewLogEntry:
    """One applied rating."""

    card_id: str
    user_id: str
    rating: int
    state: CardState
    due: datetime
    stability: float
    difficulty: float
    elapsed_days: float
    scheduled_days: float
    reviewed_at: datetime
    session_id: str | None = None


# ============================================================================
# Sessions
# ============================================================================


@dataclass
class SessionResponse:
    """A recorded rating inside a session."""

    card_id: str
    rating: int
    response_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_id": self.card_id,
            "rating": self.rating,
            "response_time_ms": self.response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionResponse:
        return cls(
            card_id=str(data["card_id"]),
            rating=int(data["rating"]),
            response_time_ms=int(data.get("response_time_ms") or 0),
        )


@dataclass
class StudySessionRecord:
    """
    Persisted study session.

    card_ids is the manifest fixed at creation (live deck sync may append or
    drop unrated entries after the cursor). responses is append-only.
    revision increments on every persisted mutation.
    """

    id: str
    user_id: str
    scope_kind: ScopeKind
    scope_id: str
    mode: StudyMode
    expires_at: datetime
    card_ids: list[str] = field(default_factory=list)
    current_index: int = 0
    responses: list[SessionResponse] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    presentation_types: dict[str, str] = field(default_factory=dict)
    member_snapshot: list[str] = field(default_factory=list)
    is_guided: bool = False
    current_node_id: str | None = None
    timed_settings: dict[str, int] | None = None
    time_remaining_ms: int | None = None
    score: int | None = None
    summary: dict[str, Any] | None = None
    started_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    revision: int = 0

    @property
    def rated_card_ids(self) -> set[str]:
        return {r.card_id for r in self.responses}

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return ensure_aware(now) > ensure_aware(self.expires_at)

    @property
    def percent_complete(self) -> int:
        if not self.card_ids:
            return 0
        return round(len(self.responses) / len(self.card_ids) * 100)


# ============================================================================
# Background jobs
# ============================================================================


@dataclass
class BackgroundJob:
    """Queued generation job."""

    id: str
    type: str
    user_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    priority: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
