"""
Unit tests for live deck sync: membership diffs and in-session reconciliation.
"""

from datetime import timedelta

import pytest

from skillpath.core.errors import AuthorizationError, InvalidStateError, NotFoundError, SessionExpiredError
from skillpath.core.models import StudySessionRecord
from skillpath.core.modes import Rating, ScopeKind, StudyMode
from skillpath.study.deck_sync import DeckChanges, apply_changes, diff_membership
from tests.fakes import NOW, due_state, future_state


@pytest.fixture
def deck(card_store):
    card_store.add_deck()
    for i, days in enumerate((4, 3, 2), start=1):
        card_store.add_card(f"d{i}", None, due_state(days_ago=days))
    card_store.deck_members["deck-1"] = ["d1", "d2", "d3"]
    return card_store


async def start_deck(manager, now):
    started = await manager.start_deck_session("user-1", "deck-1", now=now)
    return started.session


class TestDiffMembership:
    def test_only_due_additions_are_reported(self, card_store):
        due = card_store.add_card("due", None, due_state())
        later = card_store.add_card("later", None, future_state())
        kept = card_store.add_card("kept", None)

        changes = diff_membership([due, later, kept], ["kept", "gone"], NOW)

        assert [c.id for c in changes.added_cards] == ["due"]
        assert changes.removed_card_ids == ["gone"]
        assert changes.has_changes

    def test_identical_membership_has_no_changes(self, card_store):
        card = card_store.add_card("same", None)

        assert not diff_membership([card], ["same"], NOW).has_changes


class TestApplyChanges:
    @pytest.mark.asyncio
    async def test_removal_keeps_rated_and_passed_cards(self, manager, deck, now):
        session = await start_deck(manager, now)
        ids = list(session.card_ids)
        await manager.rate(session.id, "user-1", ids[0], Rating.GOOD, now=now)
        record = await manager.sessions.get(session.id)

        apply_changes(record, DeckChanges(removed_card_ids=[ids[0], ids[2]]))

        assert record.card_ids == ids[:2]
        assert ids[0] not in record.member_snapshot
        assert ids[2] not in record.member_snapshot

    def test_additions_are_appended_as_flashcards(self, deck):
        record = StudySessionRecord(
            id="s",
            user_id="user-1",
            scope_kind=ScopeKind.DECK,
            scope_id="deck-1",
            mode=StudyMode.FLASHCARD,
            expires_at=NOW + timedelta(hours=1),
            card_ids=["d1"],
            member_snapshot=["d1"],
        )
        new_card = deck.add_card("fresh", None)

        apply_changes(record, DeckChanges(added_cards=[new_card]))
        apply_changes(record, DeckChanges(added_cards=[new_card]))

        assert record.card_ids == ["d1", "fresh"]
        assert record.member_snapshot == ["d1", "fresh"]
        assert record.presentation_types["fresh"] == "flashcard"


class TestDetectChanges:
    @pytest.mark.asyncio
    async def test_detect_against_client_list(self, services, deck, now):
        deck.add_card("new-due", None, due_state())
        deck.deck_members["deck-1"] = ["d1", "d3", "new-due"]

        changes = await services.deck_sync.detect_changes("deck-1", "user-1", ["d1", "d2", "d3"], now)

        assert [c.id for c in changes.added_cards] == ["new-due"]
        assert changes.removed_card_ids == ["d2"]

    @pytest.mark.asyncio
    async def test_deleted_card_counts_as_removed(self, services, deck, now):
        deck.delete_card("d2")

        changes = await services.deck_sync.detect_changes("deck-1", "user-1", ["d1", "d2", "d3"], now)

        assert changes.removed_card_ids == ["d2"]

    @pytest.mark.asyncio
    async def test_foreign_deck_is_forbidden(self, services, card_store, now):
        card_store.add_deck(user_id="someone-else")

        with pytest.raises(AuthorizationError):
            await services.deck_sync.detect_changes("deck-1", "user-1", [], now)

    @pytest.mark.asyncio
    async def test_missing_deck_is_not_found(self, services, now):
        with pytest.raises(NotFoundError):
            await services.deck_sync.detect_changes("nope", "user-1", [], now)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_no_drift_leaves_session_untouched(self, services, manager, deck, session_repo, now):
        session = await start_deck(manager, now)

        changes = await services.deck_sync.reconcile(session.id, "user-1", now)

        assert not changes.has_changes
        assert session_repo.records[session.id].revision == 0

    @pytest.mark.asyncio
    async def test_drift_is_applied_and_idempotent(self, services, manager, deck, session_repo, now):
        session = await start_deck(manager, now)
        ids = list(session.card_ids)
        deck.add_card("added", None, due_state())
        deck.add_card("not-due", None, future_state())
        deck.deck_members["deck-1"] = ["d1", "d2", "d3", "added", "not-due"]
        deck.deck_members["deck-1"].remove(ids[1])

        changes = await services.deck_sync.reconcile(session.id, "user-1", now)
        again = await services.deck_sync.reconcile(session.id, "user-1", now)

        stored = session_repo.records[session.id]
        assert [c.id for c in changes.added_cards] == ["added"]
        assert changes.removed_card_ids == [ids[1]]
        assert stored.card_ids == [ids[0], ids[2], "added"]
        assert "not-due" not in stored.member_snapshot
        assert not again.has_changes
        assert stored.revision == 1

    @pytest.mark.asyncio
    async def test_removed_card_in_flight_keeps_its_rating(self, services, manager, deck, session_repo, now):
        session = await start_deck(manager, now)
        first = session.card_ids[0]
        await manager.rate(session.id, "user-1", first, Rating.GOOD, now=now)
        deck.deck_members["deck-1"].remove(first)

        await services.deck_sync.reconcile(session.id, "user-1", now)

        stored = session_repo.records[session.id]
        assert first in stored.card_ids
        assert [r.card_id for r in stored.responses] == [first]

    @pytest.mark.asyncio
    async def test_added_card_can_be_rated_in_order(self, services, manager, deck, now):
        session = await start_deck(manager, now)
        deck.add_card("added", None, due_state())
        deck.deck_members["deck-1"].append("added")
        await services.deck_sync.reconcile(session.id, "user-1", now)

        for card_id in session.card_ids + ["added"]:
            await manager.rate(session.id, "user-1", card_id, Rating.GOOD, now=now)

        stored = await manager.sessions.get(session.id)
        assert stored.current_index == 4

    @pytest.mark.asyncio
    async def test_lost_race_is_retried(self, services, manager, deck, session_repo, now):
        session = await start_deck(manager, now)
        deck.deck_members["deck-1"].remove(session.card_ids[2])
        session_repo.lost_races = 1

        changes = await services.deck_sync.reconcile(session.id, "user-1", now)

        assert changes.removed_card_ids == [session.card_ids[2]]
        assert session.card_ids[2] not in session_repo.records[session.id].card_ids

    @pytest.mark.asyncio
    async def test_goal_session_cannot_be_synced(self, services, manager, goal_tree, now):
        started = await manager.start("user-1", "goal-1", now=now)

        with pytest.raises(InvalidStateError):
            await services.deck_sync.reconcile(started.session.id, "user-1", now)

    @pytest.mark.asyncio
    async def test_terminal_or_expired_sessions_are_rejected(self, services, manager, deck, now):
        session = await start_deck(manager, now)

        with pytest.raises(SessionExpiredError):
            await services.deck_sync.reconcile(session.id, "user-1", now + timedelta(days=2))

        await manager.abandon(session.id, "user-1", now=now)
        with pytest.raises(InvalidStateError):
            await services.deck_sync.reconcile(session.id, "user-1", now)

    @pytest.mark.asyncio
    async def test_other_users_session_is_forbidden(self, services, manager, deck, now):
        session = await start_deck(manager, now)

        with pytest.raises(AuthorizationError):
            await services.deck_sync.reconcile(session.id, "intruder", now)
