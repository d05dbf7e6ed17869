"""
Rating Ingestor.

Applies a rating to a card's authoritative scheduling state through the
pluggable scheduling algorithm, appends the review log, and recalculates
node/goal mastery when a session completes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from skillpath.core.errors import AuthorizationError, ConflictError, NotFoundError
from skillpath.core.interfaces import CardStore, SchedulingAlgorithm
from skillpath.core.mastery import MasteryLevel, calculate_mastery_from_cards, rollup_mastery
from skillpath.core.models import GoalRecord, ReviewLogEntry, SchedulingState, SkillNodeRecord
from skillpath.core.modes import Rating


def adjust_rating_for_response_time(rating: int, response_time_ms: int | None, fast_threshold_ms: int) -> Rating:
    """
    Normalise a multiple-choice answer by speed.

    A correct answer (rating above Again) becomes Good when given within the
    threshold and Hard otherwise; Again stays Again.
    """
    rating = Rating(rating)
    if response_time_ms is None or rating is Rating.AGAIN:
        return rating
    return Rating.GOOD if response_time_ms <= fast_threshold_ms else Rating.HARD


@dataclass
class AppliedRating:
    card_id: str
    rating: Rating
    previous: SchedulingState
    state: SchedulingState


class RatingIngestor:
    """Conditional scheduling-state writes keyed by (card id, version)."""

    def __init__(self, card_store: CardStore, algorithm: SchedulingAlgorithm, max_attempts: int = 3):
        self.card_store = card_store
        self.algorithm = algorithm
        self.max_attempts = max_attempts

    async def apply_rating(
        self,
        card_id: str,
        user_id: str,
        rating: Rating,
        now: datetime,
        session_id: str | None = None,
    ) -> AppliedRating:
        """
        Compute and persist the next scheduling state for a card.

        A lost version race recomputes from the fresh state.

        Raises:
            NotFoundError: card missing or deleted
            AuthorizationError: card belongs to another user
            ConflictError: the card kept changing under us
        """
        for attempt in range(1, self.max_attempts + 1):
            card = await self.card_store.get_card(card_id)
            if card is None:
                raise NotFoundError("Card not found", card_id=card_id)
            if card.user_id != user_id:
                raise AuthorizationError("Card belongs to another user", card_id=card_id)

            new_state = self.algorithm.compute_next(card.scheduling, rating, now)
            if await self.card_store.update_scheduling_state(card.id, card.version, new_state):
                await self.card_store.record_review(
                    ReviewLogEntry(
                        card_id=card.id,
                        user_id=user_id,
                        rating=int(rating),
                        state=new_state.state,
                        due=new_state.due,
                        stability=new_state.stability,
                        difficulty=new_state.difficulty,
                        elapsed_days=new_state.elapsed_days,
                        scheduled_days=new_state.scheduled_days,
                        reviewed_at=now,
                        session_id=session_id,
                    )
                )
                logger.debug(
                    f"Card {card.id} rated {rating.name}: "
                    f"{card.scheduling.state.display_name} -> {new_state.state.display_name}"
                )
                return AppliedRating(card.id, rating, card.scheduling, new_state)

            logger.debug(f"Scheduling write for card {card.id} lost version race (attempt {attempt})")

        raise ConflictError("Card was modified concurrently", card_id=card_id)


@dataclass
class MasteryChange:
    node_id: str
    title: str
    before: int
    after: int

    @property
    def level(self) -> MasteryLevel:
        return MasteryLevel.from_percentage(self.after)

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "title": self.title,
            "before": self.before,
            "after": self.after,
            "level": self.level.value,
        }


@dataclass
class MasteryReport:
    node_changes: list[MasteryChange] = field(default_factory=list)
    goal_before: int = 0
    goal_after: int = 0


class MasteryRecalculator:
    """
    Recomputes mastery from durable card state.

    Touched nodes are recalculated from their cards' tiers, then their
    ancestors from enabled children (deepest first), then the goal from
    every node in the tree.
    """

    def __init__(self, card_store: CardStore):
        self.card_store = card_store

    async def recalculate(self, goal: GoalRecord, card_ids: list[str]) -> MasteryReport:
        report = MasteryReport(goal_before=goal.mastery_percentage, goal_after=goal.mastery_percentage)
        if not goal.tree_id:
            return report

        rated_cards = await self.card_store.get_cards(card_ids)
        touched: list[str] = []
        for card in rated_cards:
            if card.node_id and card.node_id not in touched:
                touched.append(card.node_id)

        nodes = await self.card_store.get_tree_nodes(goal.tree_id)
        by_id: dict[str, SkillNodeRecord] = {n.id: n for n in nodes}
        tree_cards = await self.card_store.list_tree_cards(goal.tree_id)
        mastery: dict[str, int] = {n.id: n.mastery_percentage for n in nodes}

        for node_id in touched:
            node = by_id.get(node_id)
            if node is None:
                continue
            states = [c.scheduling for c in tree_cards if c.node_id == node_id]
            after = calculate_mastery_from_cards(states)
            mastery[node_id] = after
            await self.card_store.update_node_mastery(node_id, after, len(states))
            report.node_changes.append(MasteryChange(node_id, node.title, node.mastery_percentage, after))

        ancestors: set[str] = set()
        for node_id in touched:
            parent_id = by_id[node_id].parent_id if node_id in by_id else None
            while parent_id and parent_id in by_id:
                ancestors.add(parent_id)
                parent_id = by_id[parent_id].parent_id

        for parent_id in sorted(ancestors, key=lambda i: by_id[i].depth, reverse=True):
            children = [n for n in nodes if n.parent_id == parent_id and n.is_enabled]
            if not children:
                continue
            value = rollup_mastery(mastery[c.id] for c in children)
            mastery[parent_id] = value
            await self.card_store.update_node_mastery(parent_id, value, by_id[parent_id].card_count)

        report.goal_after = rollup_mastery(mastery.values())
        await self.card_store.update_goal_progress(goal.id, report.goal_after)
        logger.info(
            f"Mastery recalculated for goal {goal.id}: {report.goal_before}% -> {report.goal_after}% "
            f"({len(report.node_changes)} nodes touched)"
        )
        return report
