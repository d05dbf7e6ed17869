"""
Live Deck Sync.

Reconciles an in-progress deck session against the deck's current
membership. Clients poll on a fixed interval; every call is idempotent.

Rules:
- Added members enter the session only when due now; they are appended
  to the manifest and the membership snapshot.
- Removed members leave the snapshot. They leave the manifest only when
  unrated and not yet passed by the cursor, so an in-flight rating is
  never lost.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from skillpath.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SessionExpiredError,
)
from skillpath.core.interfaces import CardStore, SessionRepository
from skillpath.core.models import CardRecord, StudySessionRecord
from skillpath.core.modes import CardType, ScopeKind


@dataclass
class DeckChanges:
    added_cards: list[CardRecord] = field(default_factory=list)
    removed_card_ids: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added_cards or self.removed_card_ids)


def diff_membership(current: list[CardRecord], snapshot_ids: list[str], now: datetime) -> DeckChanges:
    """Compare current deck members to a snapshot. Only due additions are reported."""
    snapshot = set(snapshot_ids)
    current_ids = {c.id for c in current}
    added = [c for c in current if c.id not in snapshot and c.scheduling.is_due(now)]
    removed = [cid for cid in snapshot_ids if cid not in current_ids]
    return DeckChanges(added_cards=added, removed_card_ids=removed)


def apply_changes(record: StudySessionRecord, changes: DeckChanges) -> None:
    """Mutate a session record in place with a membership delta."""
    removed = set(changes.removed_card_ids)
    rated = record.rated_card_ids

    record.member_snapshot = [cid for cid in record.member_snapshot if cid not in removed]
    record.card_ids = [
        cid
        for position, cid in enumerate(record.card_ids)
        if cid not in removed or cid in rated or position < record.current_index
    ]
    for card in changes.added_cards:
        if card.id not in record.member_snapshot:
            record.member_snapshot.append(card.id)
        if card.id not in record.card_ids:
            record.card_ids.append(card.id)
            record.presentation_types[card.id] = CardType.FLASHCARD.value


class LiveDeckSync:
    """Detects and applies deck membership drift for deck-scoped sessions."""

    def __init__(self, card_store: CardStore, sessions: SessionRepository, max_attempts: int = 3):
        self.card_store = card_store
        self.sessions = sessions
        self.max_attempts = max_attempts

    async def detect_changes(
        self, deck_id: str, user_id: str, original_card_ids: list[str], now: datetime
    ) -> DeckChanges:
        """Stateless comparison of a client-held id list against the deck."""
        deck = await self.card_store.get_deck(deck_id)
        if deck is None:
            raise NotFoundError("Deck not found", deck_id=deck_id)
        if deck.user_id != user_id:
            raise AuthorizationError("Deck belongs to another user", deck_id=deck_id)
        current = await self.card_store.list_deck_cards(deck_id, user_id)
        return diff_membership(current, original_card_ids, now)

    async def reconcile(self, session_id: str, user_id: str, now: datetime) -> DeckChanges:
        """
        Apply membership drift to a persisted deck session.

        Returns the delta that was applied (empty when nothing changed).
        """
        for attempt in range(1, self.max_attempts + 1):
            record = await self.sessions.get(session_id)
            if record is None:
                raise NotFoundError("Session not found", session_id=session_id)
            if record.user_id != user_id:
                raise AuthorizationError("Session belongs to another user", session_id=session_id)
            if record.scope_kind is not ScopeKind.DECK:
                raise InvalidStateError("Session is not deck-scoped", session_id=session_id)
            if not record.is_active:
                raise InvalidStateError("Session is no longer active", session_id=session_id)
            if record.is_expired(now):
                raise SessionExpiredError("Session has expired", session_id=session_id)

            current = await self.card_store.list_deck_cards(record.scope_id, user_id)
            changes = diff_membership(current, record.member_snapshot, now)
            if not changes.has_changes:
                return changes

            expected = record.revision
            apply_changes(record, changes)
            record.last_activity_at = now
            if await self.sessions.save(record, expected_revision=expected):
                logger.info(
                    f"Deck session {session_id} synced: +{len(changes.added_cards)} "
                    f"-{len(changes.removed_card_ids)} cards"
                )
                return changes

            logger.debug(f"Deck sync of session {session_id} lost revision race (attempt {attempt})")

        raise ConflictError("Session was modified concurrently", session_id=session_id)
