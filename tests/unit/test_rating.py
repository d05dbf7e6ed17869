"""
Unit tests for rating ingestion and mastery recalculation.
"""

from types import SimpleNamespace

import pytest

from skillpath.core.errors import AuthorizationError, ConflictError, NotFoundError
from skillpath.core.modes import CardState, Rating
from skillpath.scheduling import TieredScheduler
from skillpath.study.rating import (
    MasteryRecalculator,
    RatingIngestor,
    adjust_rating_for_response_time,
)
from tests.fakes import NOW, due_state, future_state


class TestResponseTimeAdjustment:
    @pytest.mark.parametrize(
        "rating,elapsed,expected",
        [
            (Rating.EASY, 4_000, Rating.GOOD),
            (Rating.GOOD, 10_000, Rating.GOOD),
            (Rating.GOOD, 10_001, Rating.HARD),
            (Rating.HARD, 2_000, Rating.GOOD),
            (Rating.AGAIN, 1_000, Rating.AGAIN),
            (Rating.AGAIN, 60_000, Rating.AGAIN),
        ],
    )
    def test_adjustment(self, rating, elapsed, expected):
        assert adjust_rating_for_response_time(rating, elapsed, 10_000) is expected

    def test_missing_time_keeps_rating(self):
        assert adjust_rating_for_response_time(4, None, 10_000) is Rating.EASY


class TestRatingIngestor:
    @pytest.mark.asyncio
    async def test_apply_rating_updates_state_and_logs_review(self, card_store):
        card_store.add_card("c1", None, due_state(state=CardState.NEW, stability=0.0))
        ingestor = RatingIngestor(card_store, TieredScheduler())

        applied = await ingestor.apply_rating("c1", "user-1", Rating.GOOD, NOW, session_id="s1")

        assert applied.previous.state is CardState.NEW
        assert applied.state.state is CardState.REVIEW
        assert card_store.cards["c1"].scheduling == applied.state
        assert card_store.cards["c1"].version == 1
        assert len(card_store.reviews) == 1
        assert card_store.reviews[0].session_id == "s1"
        assert card_store.reviews[0].rating == 3

    @pytest.mark.asyncio
    async def test_lost_version_race_recomputes_and_retries(self, card_store):
        card_store.add_card("c1", None)
        card_store.version_conflicts = 2
        ingestor = RatingIngestor(card_store, TieredScheduler(), max_attempts=3)

        applied = await ingestor.apply_rating("c1", "user-1", Rating.GOOD, NOW)

        assert applied.card_id == "c1"
        assert card_store.cards["c1"].version == 3
        assert len(card_store.reviews) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_conflict(self, card_store):
        card_store.add_card("c1", None)
        card_store.version_conflicts = 5
        ingestor = RatingIngestor(card_store, TieredScheduler(), max_attempts=3)

        with pytest.raises(ConflictError):
            await ingestor.apply_rating("c1", "user-1", Rating.GOOD, NOW)
        assert card_store.reviews == []

    @pytest.mark.asyncio
    async def test_missing_card_is_not_found(self, card_store):
        ingestor = RatingIngestor(card_store, TieredScheduler())

        with pytest.raises(NotFoundError):
            await ingestor.apply_rating("nope", "user-1", Rating.GOOD, NOW)

    @pytest.mark.asyncio
    async def test_card_of_another_user_is_forbidden(self, card_store):
        card_store.add_card("c1", None, user_id="someone-else")
        ingestor = RatingIngestor(card_store, TieredScheduler())

        with pytest.raises(AuthorizationError):
            await ingestor.apply_rating("c1", "user-1", Rating.GOOD, NOW)

    @pytest.mark.asyncio
    async def test_algorithm_is_pluggable(self, card_store):
        card_store.add_card("c1", None)
        algorithm = SimpleNamespace(compute_next=lambda state, rating, now: future_state(days_ahead=9))
        ingestor = RatingIngestor(card_store, algorithm)

        applied = await ingestor.apply_rating("c1", "user-1", Rating.EASY, NOW)

        assert applied.state.due == future_state(days_ahead=9).due


class TestMasteryRecalculator:
    @pytest.mark.asyncio
    async def test_touched_nodes_ancestors_and_goal_are_recalculated(self, card_store):
        goal = card_store.add_goal()
        card_store.add_node("root", "1")
        card_store.add_node("left", "1.1", parent_id="root")
        card_store.add_node("right", "1.2", parent_id="root")
        card_store.add_card("a", "left", future_state(stability=30.0))
        card_store.add_card("b", "right", due_state(state=CardState.NEW))

        report = await MasteryRecalculator(card_store).recalculate(goal, ["a"])

        assert [(c.node_id, c.before, c.after) for c in report.node_changes] == [("left", 0, 100)]
        assert report.node_changes[0].to_dict()["level"] == "mastered"
        assert card_store.nodes["left"].mastery_percentage == 100
        assert card_store.nodes["left"].card_count == 1
        # root rolls up its enabled children: (100 + 0) / 2
        assert card_store.nodes["root"].mastery_percentage == 50
        # goal rolls up every node: (50 + 100 + 0) / 3
        assert report.goal_before == 0
        assert report.goal_after == 50
        assert card_store.goals["goal-1"].mastery_percentage == 50

    @pytest.mark.asyncio
    async def test_goal_without_tree_is_unchanged(self, card_store):
        goal = card_store.add_goal(tree_id=None)

        report = await MasteryRecalculator(card_store).recalculate(goal, ["a"])

        assert report.node_changes == []
        assert report.goal_after == report.goal_before
