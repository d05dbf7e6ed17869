"""
Study Models.

SQLAlchemy models for goal skill trees, flashcards, decks and study sessions:
- Goals own one skill tree of dotted-path topic nodes
- Flashcards carry their scheduling state as JSONB and a version counter
- Study sessions persist the manifest, cursor and responses with a revision counter
- Background jobs back asynchronous distractor generation
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Goal(Base):
    """A learning goal; its skill tree organizes the cards to study."""

    __tablename__ = "goals"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="active")  # 'active', 'paused', 'completed', 'archived'
    mastery_percentage: Mapped[int] = mapped_column(Integer, default=0)
    total_time_seconds: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    tree: Mapped[SkillTree | None] = relationship(back_populates="goal", uselist=False)

    def __repr__(self) -> str:
        return f"<Goal {self.id} '{self.title}' mastery={self.mastery_percentage}>"


class SkillTree(Base):
    __tablename__ = "skill_trees"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    goal_id: Mapped[str] = mapped_column(
        ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    goal: Mapped[Goal] = relationship(back_populates="tree")
    nodes: Mapped[list[SkillNode]] = relationship(back_populates="tree", cascade="all, delete-orphan")


class SkillNode(Base):
    """
    Topic node in a skill tree.

    path is the materialized dotted path ("1", "1.2", "1.2.3"); sorting by
    path yields depth-first, left-to-right order.
    """

    __tablename__ = "skill_nodes"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    tree_id: Mapped[str] = mapped_column(
        ForeignKey("skill_trees.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[str | None] = mapped_column(ForeignKey("skill_nodes.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    depth: Mapped[int] = mapped_column(Integer, default=0)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Cached aggregates, refreshed at session completion
    card_count: Mapped[int] = mapped_column(Integer, default=0)
    mastery_percentage: Mapped[int] = mapped_column(Integer, default=0)

    tree: Mapped[SkillTree] = relationship(back_populates="nodes")

    __table_args__ = (
        Index("idx_skill_nodes_tree_path", "tree_id", "path"),
        Index("idx_skill_nodes_parent", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<SkillNode {self.path} '{self.title}'>"


class Flashcard(Base):
    """
    A question/answer card.

    fsrs_state holds the serialized scheduling state; version increments on
    every scheduling write so concurrent writers can detect each other.
    """

    __tablename__ = "flashcards"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    skill_node_id: Mapped[str | None] = mapped_column(ForeignKey("skill_nodes.id", ondelete="SET NULL"))
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    card_type: Mapped[str] = mapped_column(Text, default="flashcard")  # 'flashcard', 'multiple_choice'
    fsrs_state: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    card_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB)
    status: Mapped[str] = mapped_column(Text, default="active")  # 'active', 'draft', 'deleted'
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_flashcards_node_status", "skill_node_id", "status"),
        CheckConstraint("card_type IN ('flashcard', 'multiple_choice')", name="ck_flashcards_card_type"),
    )

    def __repr__(self) -> str:
        return f"<Flashcard {self.id} v{self.version}>"


class Distractor(Base):
    """One wrong answer for a multiple-choice card (three per card)."""

    __tablename__ = "distractors"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    flashcard_id: Mapped[str] = mapped_column(
        ForeignKey("flashcards.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (
        UniqueConstraint("flashcard_id", "position", name="uq_distractor_card_position"),
        CheckConstraint("position BETWEEN 0 AND 2", name="ck_distractor_position"),
    )


class Deck(Base):
    """User-editable card collection with optional per-deck limits."""

    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    new_cards_per_day_override: Mapped[int | None] = mapped_column(Integer)
    cards_per_session_override: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())


class DeckCard(Base):
    __tablename__ = "deck_cards"

    deck_id: Mapped[str] = mapped_column(
        ForeignKey("decks.id", ondelete="CASCADE"), primary_key=True
    )
    flashcard_id: Mapped[str] = mapped_column(
        ForeignKey("flashcards.id", ondelete="CASCADE"), primary_key=True
    )
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())


class StudySession(Base):
    """
    Persisted study session.

    card_ids is the manifest in presentation order; responses is append-only.
    Every update is conditional on revision.
    """

    __tablename__ = "study_sessions"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    scope_kind: Mapped[str] = mapped_column(Text, default="goal")  # 'goal', 'deck'
    scope_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), nullable=False)
    mode: Mapped[str] = mapped_column(Text, default="flashcard")
    status: Mapped[str] = mapped_column(Text, default="active")  # 'active', 'completed', 'abandoned'

    # Manifest and progress
    card_ids: Mapped[list[str]] = mapped_column(JSONB, default=list)
    current_index: Mapped[int] = mapped_column(Integer, default=0)
    responses: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list)
    presentation_types: Mapped[dict[str, str]] = mapped_column(JSONB, default=dict)
    member_snapshot: Mapped[list[str]] = mapped_column(JSONB, default=list)

    # Guided / timed metadata
    is_guided: Mapped[bool] = mapped_column(Boolean, default=False)
    current_node_id: Mapped[str | None] = mapped_column(PG_UUID(as_uuid=False))
    timed_settings: Mapped[dict[str, int] | None] = mapped_column(JSONB)
    time_remaining_ms: Mapped[int | None] = mapped_column(Integer)
    score: Mapped[int | None] = mapped_column(Integer)

    summary: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_study_sessions_user_scope_status", "user_id", "scope_id", "status"),
        Index("idx_study_sessions_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<StudySession {self.id} {self.status} {self.current_index}/{len(self.card_ids or [])}>"


class BackgroundJobRow(Base):
    __tablename__ = "background_jobs"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="pending")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    error: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_background_jobs_status_priority", "status", "priority", "created_at"),
        Index("idx_background_jobs_user", "user_id"),
    )


class ReviewLog(Base):
    """One applied rating and the scheduling state it produced."""

    __tablename__ = "review_logs"

    id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), primary_key=True, default=_uuid)
    flashcard_id: Mapped[str] = mapped_column(
        ForeignKey("flashcards.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    session_id: Mapped[str | None] = mapped_column(PG_UUID(as_uuid=False))
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[int] = mapped_column(Integer, nullable=False)
    due: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stability: Mapped[float] = mapped_column(Float, default=0.0)
    difficulty: Mapped[float] = mapped_column(Float, default=0.0)
    elapsed_days: Mapped[float] = mapped_column(Float, default=0.0)
    scheduled_days: Mapped[float] = mapped_column(Float, default=0.0)
    review_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (Index("idx_review_logs_card_date", "flashcard_id", "review_date"),)
