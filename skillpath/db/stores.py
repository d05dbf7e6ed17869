"""
SQL storage adapters.

Implement the study engine's collaborator protocols on an AsyncSession.
Scheduling-state and session writes are single-row conditional updates
(keyed by version / revision); the caller checks rowcount and retries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import and_, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from skillpath.core.models import (
    BackgroundJob,
    CardRecord,
    DeckRecord,
    GoalRecord,
    ReviewLogEntry,
    SchedulingState,
    SessionResponse,
    SkillNodeRecord,
    StudySessionRecord,
    ensure_aware,
)
from skillpath.core.modes import CardType, JobStatus, ScopeKind, SessionStatus, StudyMode
from skillpath.db.models import (
    BackgroundJobRow,
    Deck,
    DeckCard,
    Distractor,
    Flashcard,
    Goal,
    ReviewLog,
    SkillNode,
    SkillTree,
    StudySession,
)


def _card_from_row(card: Flashcard, node: SkillNode | None) -> CardRecord:
    return CardRecord(
        id=str(card.id),
        user_id=card.user_id,
        question=card.question,
        answer=card.answer,
        card_type=CardType(card.card_type or CardType.FLASHCARD.value),
        scheduling=SchedulingState.from_dict(card.fsrs_state),
        node_id=str(node.id) if node else None,
        node_title=node.title if node else "",
        node_path=node.path if node else "",
        metadata=dict(card.card_metadata or {}),
        status=card.status,
        version=card.version,
    )


def _node_from_row(node: SkillNode) -> SkillNodeRecord:
    return SkillNodeRecord(
        id=str(node.id),
        tree_id=str(node.tree_id),
        title=node.title,
        path=node.path,
        depth=node.depth,
        parent_id=str(node.parent_id) if node.parent_id else None,
        description=node.description,
        is_enabled=node.is_enabled,
        card_count=node.card_count or 0,
        mastery_percentage=node.mastery_percentage or 0,
    )


# =============================================================================
# Card store
# =============================================================================


class SqlCardStore:
    """Cards, skill trees, goals and decks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _cards_query(self):
        # populate_existing: conditional Core updates bypass the identity map
        return (
            select(Flashcard, SkillNode)
            .outerjoin(SkillNode, Flashcard.skill_node_id == SkillNode.id)
            .execution_options(populate_existing=True)
        )

    async def get_goal(self, goal_id: str) -> GoalRecord | None:
        result = await self.session.execute(
            select(Goal, SkillTree.id)
            .outerjoin(SkillTree, SkillTree.goal_id == Goal.id)
            .where(Goal.id == goal_id)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            return None
        goal, tree_id = row
        return GoalRecord(
            id=str(goal.id),
            user_id=goal.user_id,
            title=goal.title,
            tree_id=str(tree_id) if tree_id else None,
            mastery_percentage=goal.mastery_percentage or 0,
            total_time_seconds=goal.total_time_seconds or 0,
        )

    async def get_tree_nodes(self, tree_id: str) -> list[SkillNodeRecord]:
        result = await self.session.execute(
            select(SkillNode)
            .where(SkillNode.tree_id == tree_id)
            .order_by(SkillNode.path)
            .execution_options(populate_existing=True)
        )
        return [_node_from_row(node) for node in result.scalars().all()]

    async def get_node(self, node_id: str) -> SkillNodeRecord | None:
        node = await self.session.get(SkillNode, node_id, populate_existing=True)
        return _node_from_row(node) if node else None

    async def list_tree_cards(self, tree_id: str, user_id: str | None = None) -> list[CardRecord]:
        query = (
            self._cards_query()
            .where(SkillNode.tree_id == tree_id, Flashcard.status == "active")
            .order_by(Flashcard.created_at, Flashcard.id)
        )
        if user_id is not None:
            query = query.where(Flashcard.user_id == user_id)
        result = await self.session.execute(query)
        return [_card_from_row(card, node) for card, node in result.all()]

    async def get_cards(self, card_ids: list[str]) -> list[CardRecord]:
        if not card_ids:
            return []
        result = await self.session.execute(
            self._cards_query().where(Flashcard.id.in_(card_ids), Flashcard.status == "active")
        )
        return [_card_from_row(card, node) for card, node in result.all()]

    async def get_card(self, card_id: str) -> CardRecord | None:
        cards = await self.get_cards([card_id])
        return cards[0] if cards else None

    async def update_scheduling_state(
        self, card_id: str, expected_version: int, state: SchedulingState
    ) -> bool:
        result = await self.session.execute(
            update(Flashcard)
            .where(Flashcard.id == card_id, Flashcard.version == expected_version)
            .values(fsrs_state=state.to_dict(), version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_review(self, entry: ReviewLogEntry) -> None:
        self.session.add(
            ReviewLog(
                flashcard_id=entry.card_id,
                user_id=entry.user_id,
                session_id=entry.session_id,
                rating=entry.rating,
                state=int(entry.state),
                due=entry.due,
                stability=entry.stability,
                difficulty=entry.difficulty,
                elapsed_days=entry.elapsed_days,
                scheduled_days=entry.scheduled_days,
                review_date=entry.reviewed_at,
            )
        )
        await self.session.flush()

    async def update_node_mastery(self, node_id: str, mastery: int, card_count: int) -> None:
        # Savepoint: a failed aggregate write must not poison the request transaction
        async with self.session.begin_nested():
            await self.session.execute(
                update(SkillNode)
                .where(SkillNode.id == node_id)
                .values(mastery_percentage=mastery, card_count=card_count)
                .execution_options(synchronize_session=False)
            )

    async def update_goal_progress(
        self, goal_id: str, mastery: int | None = None, add_time_seconds: int = 0
    ) -> None:
        values: dict[str, Any] = {}
        if mastery is not None:
            values["mastery_percentage"] = mastery
        if add_time_seconds:
            values["total_time_seconds"] = Goal.total_time_seconds + add_time_seconds
        if not values:
            return
        async with self.session.begin_nested():
            await self.session.execute(
                update(Goal)
                .where(Goal.id == goal_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    async def get_deck(self, deck_id: str) -> DeckRecord | None:
        deck = await self.session.get(Deck, deck_id, populate_existing=True)
        if deck is None:
            return None
        return DeckRecord(
            id=str(deck.id),
            user_id=deck.user_id,
            name=deck.name,
            new_cards_per_day_override=deck.new_cards_per_day_override,
            cards_per_session_override=deck.cards_per_session_override,
        )

    async def list_deck_cards(self, deck_id: str, user_id: str) -> list[CardRecord]:
        result = await self.session.execute(
            self._cards_query()
            .join(DeckCard, DeckCard.flashcard_id == Flashcard.id)
            .where(
                DeckCard.deck_id == deck_id,
                Flashcard.user_id == user_id,
                Flashcard.status == "active",
            )
            .order_by(DeckCard.added_at, Flashcard.id)
        )
        return [_card_from_row(card, node) for card, node in result.all()]


# =============================================================================
# Distractors and jobs
# =============================================================================


class SqlDistractorStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_distractors(self, card_id: str) -> list[str]:
        result = await self.session.execute(
            select(Distractor.content)
            .where(Distractor.flashcard_id == card_id)
            .order_by(Distractor.position)
        )
        return list(result.scalars().all())


def _job_from_row(row: BackgroundJobRow) -> BackgroundJob:
    return BackgroundJob(
        id=str(row.id),
        type=row.type,
        user_id=row.user_id,
        payload=dict(row.payload or {}),
        status=JobStatus(row.status),
        priority=row.priority or 0,
        result=dict(row.result) if row.result is not None else None,
        error=row.error,
        attempts=row.attempts or 0,
        max_attempts=row.max_attempts or 3,
        created_at=ensure_aware(row.created_at),
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


class SqlJobQueue:
    """Background job creation and polling."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, job_type: str, payload: dict[str, Any], user_id: str, priority: int = 0
    ) -> BackgroundJob:
        # Savepoint: a failed insert degrades one card, not the whole session start
        async with self.session.begin_nested():
            row = BackgroundJobRow(
                type=job_type,
                payload=dict(payload),
                user_id=user_id,
                priority=priority,
                status=JobStatus.PENDING.value,
            )
            self.session.add(row)
            await self.session.flush()
            await self.session.refresh(row)
        logger.info("Created {} job {} for user {}", job_type, row.id, user_id)
        return _job_from_row(row)

    async def get(self, job_id: str) -> BackgroundJob | None:
        row = await self.session.get(BackgroundJobRow, job_id, populate_existing=True)
        return _job_from_row(row) if row else None


# =============================================================================
# Sessions
# =============================================================================


def _session_from_row(row: StudySession) -> StudySessionRecord:
    return StudySessionRecord(
        id=str(row.id),
        user_id=row.user_id,
        scope_kind=ScopeKind(row.scope_kind),
        scope_id=str(row.scope_id),
        mode=StudyMode(row.mode),
        expires_at=ensure_aware(row.expires_at),
        card_ids=list(row.card_ids or []),
        current_index=row.current_index or 0,
        responses=[SessionResponse.from_dict(r) for r in row.responses or []],
        status=SessionStatus(row.status),
        presentation_types=dict(row.presentation_types or {}),
        member_snapshot=list(row.member_snapshot or []),
        is_guided=bool(row.is_guided),
        current_node_id=str(row.current_node_id) if row.current_node_id else None,
        timed_settings=dict(row.timed_settings) if row.timed_settings else None,
        time_remaining_ms=row.time_remaining_ms,
        score=row.score,
        summary=dict(row.summary) if row.summary else None,
        started_at=ensure_aware(row.started_at),
        last_activity_at=ensure_aware(row.last_activity_at),
        completed_at=ensure_aware(row.completed_at) if row.completed_at else None,
        revision=row.revision or 0,
    )


def _mutable_columns(record: StudySessionRecord) -> dict[str, Any]:
    return {
        "status": record.status.value,
        "card_ids": list(record.card_ids),
        "current_index": record.current_index,
        "responses": [r.to_dict() for r in record.responses],
        "presentation_types": dict(record.presentation_types),
        "member_snapshot": list(record.member_snapshot),
        "current_node_id": record.current_node_id,
        "time_remaining_ms": record.time_remaining_ms,
        "score": record.score,
        "summary": record.summary,
        "last_activity_at": record.last_activity_at,
        "completed_at": record.completed_at,
    }


class SqlSessionRepository:
    """Study session persistence with revision-checked updates."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _lock_scope(self, record: StudySessionRecord) -> None:
        # Row lock on the goal/deck serializes concurrent starts for one scope until commit
        model = Deck if record.scope_kind is ScopeKind.DECK else Goal
        await self.session.execute(select(model.id).where(model.id == record.scope_id).with_for_update())

    async def create(self, record: StudySessionRecord) -> StudySessionRecord:
        await self._lock_scope(record)
        row = StudySession(
            id=record.id,
            user_id=record.user_id,
            scope_kind=record.scope_kind.value,
            scope_id=record.scope_id,
            mode=record.mode.value,
            is_guided=record.is_guided,
            timed_settings=record.timed_settings,
            started_at=record.started_at,
            expires_at=record.expires_at,
            revision=0,
            **_mutable_columns(record),
        )
        self.session.add(row)
        await self.session.flush()
        record.revision = 0
        return record

    async def get(self, session_id: str) -> StudySessionRecord | None:
        result = await self.session.execute(
            select(StudySession)
            .where(StudySession.id == session_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def find_active(self, user_id: str, scope_id: str | None = None) -> StudySessionRecord | None:
        query = (
            select(StudySession)
            .where(StudySession.user_id == user_id, StudySession.status == SessionStatus.ACTIVE.value)
            .order_by(StudySession.last_activity_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if scope_id is not None:
            query = query.where(StudySession.scope_id == scope_id)
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def abandon_superseded(self, record: StudySessionRecord) -> int:
        result = await self.session.execute(
            update(StudySession)
            .where(
                StudySession.user_id == record.user_id,
                StudySession.scope_id == record.scope_id,
                StudySession.status == SessionStatus.ACTIVE.value,
                StudySession.id != record.id,
                or_(
                    StudySession.started_at < record.started_at,
                    and_(StudySession.started_at == record.started_at, StudySession.id < record.id),
                ),
            )
            .values(
                status=SessionStatus.ABANDONED.value,
                revision=StudySession.revision + 1,
                last_activity_at=record.started_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def newest_active(self, user_id: str, scope_id: str) -> StudySessionRecord | None:
        result = await self.session.execute(
            select(StudySession)
            .where(
                StudySession.user_id == user_id,
                StudySession.scope_id == scope_id,
                StudySession.status == SessionStatus.ACTIVE.value,
            )
            .order_by(StudySession.started_at.desc(), StudySession.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def save(self, record: StudySessionRecord, expected_revision: int) -> bool:
        result = await self.session.execute(
            update(StudySession)
            .where(StudySession.id == record.id, StudySession.revision == expected_revision)
            .values(revision=expected_revision + 1, **_mutable_columns(record))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        record.revision = expected_revision + 1
        return True

    async def abandon_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            text(
                """
                UPDATE study_sessions
                SET status = 'abandoned', revision = revision + 1, last_activity_at = :now
                WHERE status = 'active' AND expires_at < :now
                """
            ),
            {"now": ensure_aware(now)},
        )
        return result.rowcount or 0
