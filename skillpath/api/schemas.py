"""
Request/response models for the study API.

Study cards are a discriminated union on card_type so clients handle the
flashcard and multiple-choice shapes exhaustively.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from skillpath.core.models import StudySessionRecord
from skillpath.core.modes import StudyMode


# ========================================
# Study cards
# ========================================


class SchedulingSnapshot(BaseModel):
    state: str
    due: datetime
    stability: float
    difficulty: float
    reps: int = 0


class FlashcardOut(BaseModel):
    card_type: Literal["flashcard"]
    id: str
    question: str
    answer: str
    node_id: str | None = None
    node_title: str = ""
    scheduling: SchedulingSnapshot


class MultipleChoiceOut(BaseModel):
    card_type: Literal["multiple_choice"]
    id: str
    question: str
    answer: str
    node_id: str | None = None
    node_title: str = ""
    scheduling: SchedulingSnapshot
    distractors: list[str] | None = None
    distractors_job_id: str | None = None


StudyCardOut = Annotated[Union[FlashcardOut, MultipleChoiceOut], Field(discriminator="card_type")]


# ========================================
# Sessions
# ========================================


class SessionOut(BaseModel):
    id: str
    scope_kind: str
    scope_id: str
    mode: str
    status: str
    card_ids: list[str]
    current_index: int
    rated_count: int
    percent_complete: int
    is_guided: bool
    current_node_id: str | None = None
    timed_settings: dict[str, int] | None = None
    time_remaining_ms: int | None = None
    score: int | None = None
    started_at: datetime
    expires_at: datetime

    @classmethod
    def from_record(cls, record: StudySessionRecord) -> SessionOut:
        return cls(
            id=record.id,
            scope_kind=record.scope_kind.value,
            scope_id=record.scope_id,
            mode=record.mode.value,
            status=record.status.value,
            card_ids=list(record.card_ids),
            current_index=record.current_index,
            rated_count=len(record.responses),
            percent_complete=record.percent_complete,
            is_guided=record.is_guided,
            current_node_id=record.current_node_id,
            timed_settings=record.timed_settings,
            time_remaining_ms=record.time_remaining_ms,
            score=record.score,
            started_at=record.started_at,
            expires_at=record.expires_at,
        )


class NodeOut(BaseModel):
    id: str
    title: str
    path: str
    depth: int
    description: str | None = None
    total_cards: int
    completed_cards: int
    is_complete: bool


class TreeSummaryOut(BaseModel):
    total_nodes: int
    completed_nodes: int
    total_cards: int
    completed_cards: int
    percent_complete: int


class GuidedInfo(BaseModel):
    outcome: str | None = None
    message: str | None = None
    is_tree_complete: bool = False
    current_node: NodeOut | None = None
    completed_in_node: int | None = None
    total_in_node: int | None = None


class StartSessionRequest(BaseModel):
    goal_id: str
    mode: StudyMode = StudyMode.FLASHCARD
    is_guided: bool = False
    node_id: str | None = None
    include_children: bool = True
    limit: int | None = Field(default=None, ge=1, le=100)


class StartSessionResponse(BaseModel):
    session: SessionOut | None = None
    cards: list[StudyCardOut] = Field(default_factory=list)
    is_practice: bool = False
    due_count: int = 0
    guided: GuidedInfo | None = None


class SessionIdRequest(BaseModel):
    session_id: str


class ResumeSessionResponse(BaseModel):
    session: SessionOut
    cards: list[StudyCardOut]


class RateRequest(BaseModel):
    session_id: str
    card_id: str
    rating: int = Field(ge=1, le=4)
    response_time_ms: int | None = Field(default=None, ge=0)
    time_remaining_ms: int | None = Field(default=None, ge=0)
    score: int | None = Field(default=None, ge=0)


class RateResponse(BaseModel):
    session_id: str
    card_id: str
    rating: int
    submitted_rating: int
    adjusted: bool
    state: str
    due: datetime
    stability: float
    difficulty: float
    current_index: int
    remaining: int


class RatingItem(BaseModel):
    card_id: str
    rating: int = Field(ge=1, le=4)
    response_time_ms: int = Field(default=0, ge=0)


class TimedScoreIn(BaseModel):
    correct: int = Field(ge=0)
    total: int = Field(ge=0)
    bonus_points: int = Field(default=0, ge=0)


class CompleteRequest(BaseModel):
    session_id: str
    duration_seconds: int = Field(ge=0)
    ratings: list[RatingItem] = Field(default_factory=list)
    timed_score: TimedScoreIn | None = None


class CompleteResponse(BaseModel):
    session_id: str
    summary: dict[str, Any]
    mastery_updates: list[dict[str, Any]]
    goal_progress: dict[str, Any] | None = None
    timed_score: dict[str, int] | None = None


class ActiveSessionResponse(BaseModel):
    session: SessionOut | None = None
    progress_percent: int = 0


class NextNodeResponse(BaseModel):
    node: NodeOut | None = None
    outcome: str | None = None
    message: str | None = None
    summary: TreeSummaryOut


# ========================================
# Deck sessions
# ========================================


class DeckSessionRequest(BaseModel):
    deck_id: str
    new_cards_per_day: int | None = Field(default=None, ge=0)
    cards_per_session: int | None = Field(default=None, ge=1)


class DeckSettingsOut(BaseModel):
    new_cards_per_day: int
    cards_per_session: int
    source: dict[str, str]


class DeckSessionResponse(BaseModel):
    session: SessionOut
    cards: list[StudyCardOut]
    is_practice: bool = False
    due_count: int = 0
    settings: DeckSettingsOut
    sync_interval_seconds: int


class DeckChangesRequest(BaseModel):
    deck_id: str
    original_card_ids: list[str] = Field(default_factory=list)


class DeckChangesResponse(BaseModel):
    added_cards: list[StudyCardOut]
    removed_card_ids: list[str]
    has_changes: bool


# ========================================
# Jobs
# ========================================


class JobOut(BaseModel):
    id: str
    type: str
    status: str
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error: str | None = None
    priority: int
    attempts: int
    max_attempts: int
    created_at: datetime
    completed_at: datetime | None = None
