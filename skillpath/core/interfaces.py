"""
Collaborator interfaces for the study engine.

The engine only talks to these protocols. SQL adapters live in
skillpath.db.stores; tests plug in in-memory implementations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from .models import (
    BackgroundJob,
    CardRecord,
    DeckRecord,
    GoalRecord,
    ReviewLogEntry,
    SchedulingState,
    SkillNodeRecord,
    StudySessionRecord,
)
from .modes import Rating


class CardStore(Protocol):
    """Read access to cards/nodes/goals/decks, write access to scheduling state."""

    async def get_goal(self, goal_id: str) -> GoalRecord | None: ...

    async def get_tree_nodes(self, tree_id: str) -> list[SkillNodeRecord]: ...

    async def get_node(self, node_id: str) -> SkillNodeRecord | None: ...

    async def list_tree_cards(self, tree_id: str, user_id: str | None = None) -> list[CardRecord]:
        """Active cards under a tree (optionally one owner's), in insertion order."""
        ...

    async def get_cards(self, card_ids: list[str]) -> list[CardRecord]:
        """Active cards among card_ids (missing or deleted ids are omitted)."""
        ...

    async def get_card(self, card_id: str) -> CardRecord | None: ...

    async def update_scheduling_state(
        self, card_id: str, expected_version: int, state: SchedulingState
    ) -> bool:
        """Conditional write keyed by (card_id, version). False when the version moved."""
        ...

    async def record_review(self, entry: ReviewLogEntry) -> None: ...

    async def update_node_mastery(self, node_id: str, mastery: int, card_count: int) -> None: ...

    async def update_goal_progress(
        self, goal_id: str, mastery: int | None = None, add_time_seconds: int = 0
    ) -> None:
        """Set goal mastery (None keeps it) and add study time."""
        ...

    async def get_deck(self, deck_id: str) -> DeckRecord | None: ...

    async def list_deck_cards(self, deck_id: str, user_id: str) -> list[CardRecord]:
        """Current active members of a deck, in insertion order."""
        ...


class DistractorStore(Protocol):
    """Synchronous side of the distractor provider."""

    async def get_distractors(self, card_id: str) -> list[str]:
        """Persisted distractors ordered by position."""
        ...


class JobQueue(Protocol):
    """Background job queue (creation and polling)."""

    async def create(
        self, job_type: str, payload: dict[str, Any], user_id: str, priority: int = 0
    ) -> BackgroundJob: ...

    async def get(self, job_id: str) -> BackgroundJob | None: ...


class SessionRepository(Protocol):
    """Persistence for study sessions. All mutations are conditional single-row writes."""

    async def create(self, record: StudySessionRecord) -> StudySessionRecord: ...

    async def get(self, session_id: str) -> StudySessionRecord | None: ...

    async def find_active(
        self, user_id: str, scope_id: str | None = None
    ) -> StudySessionRecord | None:
        """Most recently active session for the user (optionally one scope)."""
        ...

    async def abandon_superseded(self, record: StudySessionRecord) -> int:
        """
        Abandon every other active session of record's (user, scope) that started
        before it (ties broken by id). Returns the number abandoned.
        """
        ...

    async def newest_active(self, user_id: str, scope_id: str) -> StudySessionRecord | None:
        """Active session of (user, scope) with the greatest (started_at, id)."""
        ...

    async def save(self, record: StudySessionRecord, expected_revision: int) -> bool:
        """Persist record if its stored revision still equals expected_revision."""
        ...

    async def abandon_expired(self, now: datetime) -> int: ...


class SchedulingAlgorithm(Protocol):
    """Pure scheduling function: (state, rating, now) -> next state."""

    def compute_next(
        self, state: SchedulingState, rating: Rating, now: datetime
    ) -> SchedulingState: ...
