"""
Study modes and the enumerations shared by the session engine.

StudyMode decides presentation (flashcard vs multiple choice) and whether
distractors are provisioned. CardState mirrors the four scheduling tiers
(New, Learning, Review, Relearning); Rating is the four-point answer scale.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class StudyMode(str, Enum):
    """Session mode requested by the client."""

    FLASHCARD = "flashcard"
    MULTIPLE_CHOICE = "multiple_choice"
    TIMED = "timed"
    MIXED = "mixed"
    NODE = "node"
    ALL = "all"

    @property
    def needs_distractors(self) -> bool:
        """Modes in which multiple-choice cards need three distractors."""
        return self in (StudyMode.MULTIPLE_CHOICE, StudyMode.MIXED, StudyMode.TIMED)

    @property
    def is_timed(self) -> bool:
        return self is StudyMode.TIMED


class CardType(str, Enum):
    """Presentation type of a study card."""

    FLASHCARD = "flashcard"
    MULTIPLE_CHOICE = "multiple_choice"


class SessionStatus(str, Enum):
    """Study session lifecycle: active -> completed | abandoned."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class ScopeKind(str, Enum):
    """What a session draws cards from."""

    GOAL = "goal"  # skill tree of a learning goal (whole tree, node or subtree)
    DECK = "deck"  # user-editable collection


class CardState(IntEnum):
    """Scheduling tier of a card."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3

    @property
    def display_name(self) -> str:
        return self.name.title()

    @property
    def is_mastered(self) -> bool:
        """Review tier or above counts toward node completion."""
        return self >= CardState.REVIEW


class Rating(IntEnum):
    """Four-point answer scale."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def is_remembered(self) -> bool:
        """The two highest tiers count toward retention rate."""
        return self >= Rating.GOOD


class JobType(str, Enum):
    """Background job kinds."""

    FLASHCARD_GENERATION = "flashcard_generation"
    DISTRACTOR_GENERATION = "distractor_generation"
    SKILL_TREE_GENERATION = "skill_tree_generation"


class JobStatus(str, Enum):
    """Background job status as polled by clients."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_finished(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)
