"""
Session completion summary.

The summary is computed once, during the active -> completed transition,
and stored on the session so repeated complete calls return it verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from skillpath.core.modes import Rating
from skillpath.study.rating import MasteryChange


@dataclass
class RatingInput:
    """One rating reported by the client at completion."""

    card_id: str
    rating: int
    response_time_ms: int = 0


@dataclass
class TimedScore:
    correct: int
    total: int
    bonus_points: int = 0

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.correct / self.total * 100)

    def to_dict(self) -> dict[str, int]:
        return {
            "correct": self.correct,
            "total": self.total,
            "bonus_points": self.bonus_points,
            "percent": self.percent,
        }


@dataclass
class SessionSummary:
    cards_studied: int
    average_rating: float
    time_spent_seconds: int
    retention_rate: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cards_studied": self.cards_studied,
            "average_rating": self.average_rating,
            "time_spent_seconds": self.time_spent_seconds,
            "retention_rate": self.retention_rate,
        }


def build_summary(ratings: list[RatingInput], duration_seconds: int) -> SessionSummary:
    """
    Summary statistics for a completed session.

    retention_rate is the percentage of ratings at Good or Easy.
    """
    count = len(ratings)
    if count == 0:
        return SessionSummary(0, 0.0, duration_seconds, 0)
    average = round(sum(r.rating for r in ratings) / count, 2)
    remembered = sum(1 for r in ratings if Rating(r.rating).is_remembered)
    return SessionSummary(
        cards_studied=count,
        average_rating=average,
        time_spent_seconds=duration_seconds,
        retention_rate=round(remembered / count * 100),
    )


@dataclass
class CompletionResult:
    session_id: str
    summary: SessionSummary
    mastery_updates: list[MasteryChange] = field(default_factory=list)
    goal_mastery_before: int | None = None
    goal_mastery_after: int | None = None
    timed_score: TimedScore | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "summary": self.summary.to_dict(),
            "mastery_updates": [m.to_dict() for m in self.mastery_updates],
            "goal_progress": (
                None
                if self.goal_mastery_after is None
                else {"before": self.goal_mastery_before, "after": self.goal_mastery_after}
            ),
            "timed_score": self.timed_score.to_dict() if self.timed_score else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompletionResult:
        summary = data.get("summary") or {}
        goal = data.get("goal_progress") or {}
        timed = data.get("timed_score")
        return cls(
            session_id=data["session_id"],
            summary=SessionSummary(
                cards_studied=int(summary.get("cards_studied", 0)),
                average_rating=float(summary.get("average_rating", 0.0)),
                time_spent_seconds=int(summary.get("time_spent_seconds", 0)),
                retention_rate=int(summary.get("retention_rate", 0)),
            ),
            mastery_updates=[
                MasteryChange(m["node_id"], m.get("title", ""), int(m["before"]), int(m["after"]))
                for m in data.get("mastery_updates") or []
            ],
            goal_mastery_before=goal.get("before"),
            goal_mastery_after=goal.get("after"),
            timed_score=(
                TimedScore(int(timed["correct"]), int(timed["total"]), int(timed.get("bonus_points", 0)))
                if timed
                else None
            ),
        )
