"""
Core Mastery Module.

Mastery is derived from the durable scheduling tier of a node's cards,
never from one session's ratings.

Design:
- MasteryLevel: Enum for categorizing mastery percentages
- calculate_mastery_from_cards: weighted tier average for one node
- rollup_mastery: rounded mean used for parent nodes and goals
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from .models import SchedulingState
from .modes import CardState


class MasteryLevel(str, Enum):
    """Mastery level categorization of a 0-100 percentage."""

    NOT_STARTED = "not_started"  # 0%
    NOVICE = "novice"  # 1-39%
    DEVELOPING = "developing"  # 40-69%
    PROFICIENT = "proficient"  # 70-89%
    MASTERED = "mastered"  # 90-100%

    @classmethod
    def from_percentage(cls, percentage: float) -> MasteryLevel:
        """
        Convert a 0-100 mastery percentage to a level.

        Args:
            percentage: Mastery between 0 and 100

        Returns:
            Corresponding MasteryLevel
        """
        if percentage <= 0:
            return cls.NOT_STARTED
        elif percentage < 40:
            return cls.NOVICE
        elif percentage < 70:
            return cls.DEVELOPING
        elif percentage < 90:
            return cls.PROFICIENT
        else:
            return cls.MASTERED


# Weight per scheduling tier; Review cards earn up to STABILITY_BONUS_CAP extra.
TIER_WEIGHTS: dict[CardState, float] = {
    CardState.NEW: 0.0,
    CardState.LEARNING: 0.25,
    CardState.RELEARNING: 0.25,
    CardState.REVIEW: 1.0,
}
STABILITY_BONUS_DAYS = 30.0
STABILITY_BONUS_CAP = 0.5
MAX_WEIGHT_PER_CARD = 1.0 + STABILITY_BONUS_CAP


def calculate_mastery_from_cards(states: Iterable[SchedulingState]) -> int:
    """
    Calculate a node's mastery percentage from its cards' scheduling states.

    Each card contributes its tier weight; Review cards add a stability bonus
    of stability/30 capped at 0.5. The total is normalised against 1.5 per card.

    Args:
        states: Current scheduling states of the node's cards

    Returns:
        Mastery percentage (0-100), 0 for a node without cards
    """
    states = list(states)
    if not states:
        return 0

    total = 0.0
    for state in states:
        total += TIER_WEIGHTS.get(state.state, 0.0)
        if state.state is CardState.REVIEW:
            total += min(state.stability / STABILITY_BONUS_DAYS, STABILITY_BONUS_CAP)

    return round(total / (len(states) * MAX_WEIGHT_PER_CARD) * 100)


def rollup_mastery(values: Iterable[int]) -> int:
    """Rounded arithmetic mean of mastery percentages (0 when empty)."""
    values = list(values)
    if not values:
        return 0
    return round(sum(values) / len(values))


def count_completed(states: Iterable[SchedulingState]) -> int:
    """Cards at Review tier or above."""
    return sum(1 for s in states if s.state.is_mastered)
