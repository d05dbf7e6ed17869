# SQLAlchemy models
from .base import Base
from .study import (
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

__all__ = [
    # Base
    "Base",
    # Goals and skill trees
    "Goal",
    "SkillTree",
    "SkillNode",
    # Cards
    "Flashcard",
    "Distractor",
    "Deck",
    "DeckCard",
    "ReviewLog",
    # Sessions and jobs
    "StudySession",
    "BackgroundJobRow",
]
