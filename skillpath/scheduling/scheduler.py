"""
Tiered Spaced Repetition Scheduler.

Default implementation of the SchedulingAlgorithm protocol. It moves cards
through the four scheduling tiers and grows review intervals with an
easiness factor in the spirit of SM-2:

    New ──Good/Easy──▶ Review ──Again──▶ Relearning ──Good/Easy──▶ Review
     │                   ▲
     └──Again/Hard──▶ Learning ──Good/Easy──┘

Rating Scale:
1 - Again: forgot
2 - Hard: recalled with serious difficulty
3 - Good: recalled
4 - Easy: recalled effortlessly

The function is pure: identical (state, rating, now) always yields the
same result.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from skillpath.core.models import SchedulingState, ensure_aware
from skillpath.core.modes import CardState, Rating

MINUTES_PER_DAY = 1440.0


@dataclass
class TieredConfig:
    """Configuration for the tiered scheduler."""

    initial_difficulty: float = 5.0  # 1 (easy) .. 10 (hard)
    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    again_step_minutes: int = 1
    hard_step_minutes: int = 5
    relearning_step_minutes: int = 10
    first_interval: float = 1.0  # days after graduating with Good
    easy_interval: float = 4.0  # days after graduating with Easy
    hard_multiplier: float = 1.2
    easy_bonus: float = 1.3
    lapse_stability_factor: float = 0.5
    minimum_stability: float = 0.5
    desired_retention: float = 0.9


# Difficulty drift per rating
DIFFICULTY_STEP: dict[Rating, float] = {
    Rating.AGAIN: 1.0,
    Rating.HARD: 0.5,
    Rating.GOOD: 0.0,
    Rating.EASY: -0.5,
}


class TieredScheduler:
    """
    Four-tier scheduler with easiness-scaled review intervals.

    Each card tracks:
    - Stability: current review interval in days
    - Difficulty: 1-10, drifts up on Again/Hard and down on Easy
    - Reps / Lapses: review count and Review->Relearning transitions
    """

    def __init__(self, config: TieredConfig | None = None):
        """
        Initialize the scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or TieredConfig()

    def compute_next(
        self,
        state: SchedulingState,
        rating: Rating,
        now: datetime,
    ) -> SchedulingState:
        """
        Calculate the next scheduling state for a rating.

        Args:
            state: Current scheduling state of the card
            rating: User rating (1-4)
            now: Review timestamp

        Returns:
            New SchedulingState (the input is not modified)
        """
        rating = Rating(rating)
        now = ensure_aware(now)
        cfg = self.config

        elapsed_days = 0.0
        if state.last_review is not None:
            elapsed_days = max(0.0, (now - ensure_aware(state.last_review)).total_seconds() / 86400)

        difficulty = state.difficulty or cfg.initial_difficulty
        difficulty = min(10.0, max(1.0, difficulty + DIFFICULTY_STEP[rating]))
        easiness = max(cfg.minimum_easiness, cfg.initial_easiness - (difficulty - 5.0) * 0.15)

        lapses = state.lapses
        stability = state.stability

        if state.state is CardState.REVIEW:
            if rating is Rating.AGAIN:
                next_state = CardState.RELEARNING
                lapses += 1
                stability = max(cfg.minimum_stability, stability * cfg.lapse_stability_factor)
                interval_days = cfg.relearning_step_minutes / MINUTES_PER_DAY
            else:
                next_state = CardState.REVIEW
                base = max(stability, cfg.first_interval)
                if rating is Rating.HARD:
                    interval_days = base * cfg.hard_multiplier
                elif rating is Rating.GOOD:
                    interval_days = max(base + 1, base * easiness)
                else:
                    interval_days = max(base + 1, base * easiness * cfg.easy_bonus)
                interval_days = self._apply_retention(interval_days)
                stability = interval_days
        else:
            if rating is Rating.AGAIN:
                next_state = (
                    CardState.RELEARNING if state.state is CardState.RELEARNING else CardState.LEARNING
                )
                interval_days = cfg.again_step_minutes / MINUTES_PER_DAY
            elif rating is Rating.HARD:
                next_state = (
                    CardState.RELEARNING if state.state is CardState.RELEARNING else CardState.LEARNING
                )
                interval_days = cfg.hard_step_minutes / MINUTES_PER_DAY
            else:
                next_state = CardState.REVIEW
                if rating is Rating.EASY:
                    interval_days = max(cfg.easy_interval, stability * easiness)
                else:
                    interval_days = max(cfg.first_interval, stability)
                interval_days = self._apply_retention(interval_days)
                stability = interval_days

        return SchedulingState(
            state=next_state,
            due=now + timedelta(days=interval_days),
            stability=round(stability, 4),
            difficulty=round(difficulty, 4),
            reps=state.reps + 1,
            lapses=lapses,
            elapsed_days=round(elapsed_days, 4),
            scheduled_days=round(interval_days, 4),
            last_review=now,
        )

    def _apply_retention(self, interval_days: float) -> float:
        """Scale a review interval for the configured target retention (0.9 is neutral)."""
        retention = min(0.99, max(0.5, self.config.desired_retention))
        return interval_days * math.log(retention) / math.log(0.9)
