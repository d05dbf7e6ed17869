"""
Study cards handed to clients.

A StudyCard is one of two concrete shapes discriminated by ``card_type``:
FlashcardStudyCard (question/answer) or MultipleChoiceStudyCard, which
either carries exactly three distractors or the id of the job that is
generating them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from skillpath.core.models import CardRecord, ensure_aware

DISTRACTORS_PER_CARD = 3


@dataclass
class CardSchedulingView:
    """Scheduling fields exposed alongside a study card."""

    state: str
    due: datetime
    stability: float
    difficulty: float
    reps: int

    @classmethod
    def from_card(cls, card: CardRecord) -> CardSchedulingView:
        s = card.scheduling
        return cls(
            state=s.state.display_name,
            due=ensure_aware(s.due),
            stability=s.stability,
            difficulty=s.difficulty,
            reps=s.reps,
        )


@dataclass
class FlashcardStudyCard:
    id: str
    question: str
    answer: str
    node_id: str | None
    node_title: str
    scheduling: CardSchedulingView
    card_type: Literal["flashcard"] = field(default="flashcard", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "card_type": self.card_type,
            "question": self.question,
            "answer": self.answer,
            "node_id": self.node_id,
            "node_title": self.node_title,
            "scheduling": {
                "state": self.scheduling.state,
                "due": self.scheduling.due.isoformat(),
                "stability": self.scheduling.stability,
                "difficulty": self.scheduling.difficulty,
                "reps": self.scheduling.reps,
            },
        }


@dataclass
class MultipleChoiceStudyCard(FlashcardStudyCard):
    """
    Multiple-choice presentation of a card.

    Exactly one of distractors (three entries) or distractors_job_id is set.
    """

    distractors: list[str] = field(default_factory=list)
    distractors_job_id: str | None = None
    card_type: Literal["multiple_choice"] = field(default="multiple_choice", init=False)

    def __post_init__(self) -> None:
        if self.distractors and len(self.distractors) != DISTRACTORS_PER_CARD:
            raise ValueError(f"multiple choice card needs {DISTRACTORS_PER_CARD} distractors")
        if not self.distractors and not self.distractors_job_id:
            raise ValueError("multiple choice card needs distractors or a generation job")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["distractors"] = list(self.distractors) or None
        data["distractors_job_id"] = self.distractors_job_id
        return data


StudyCard = Union[FlashcardStudyCard, MultipleChoiceStudyCard]


def flashcard_from(card: CardRecord) -> FlashcardStudyCard:
    """Present a card as a plain flashcard."""
    return FlashcardStudyCard(
        id=card.id,
        question=card.question,
        answer=card.answer,
        node_id=card.node_id,
        node_title=card.node_title,
        scheduling=CardSchedulingView.from_card(card),
    )


def multiple_choice_from(
    card: CardRecord,
    distractors: list[str] | None = None,
    job_id: str | None = None,
) -> MultipleChoiceStudyCard:
    """Present a card as multiple choice with ready distractors or a pending job."""
    return MultipleChoiceStudyCard(
        id=card.id,
        question=card.question,
        answer=card.answer,
        node_id=card.node_id,
        node_title=card.node_title,
        scheduling=CardSchedulingView.from_card(card),
        distractors=list(distractors or []),
        distractors_job_id=job_id,
    )
