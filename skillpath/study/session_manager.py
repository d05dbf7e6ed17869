"""
Session Manager.

Owns the study session lifecycle:

    none -> active -> completed
                   -> abandoned

No transition leaves a terminal state. Every mutation of a persisted
session is a conditional write on its revision; a lost race reloads,
revalidates and retries. Starting a session abandons every earlier active
session of the same user and scope, so one session per scope survives.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from config import Settings, get_settings
from skillpath.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SessionExpiredError,
)
from skillpath.core.interfaces import CardStore, SessionRepository
from skillpath.core.models import (
    DeckRecord,
    SessionResponse,
    StudySessionRecord,
    utcnow,
)
from skillpath.core.modes import CardType, Rating, ScopeKind, SessionStatus, StudyMode
from skillpath.study.card_selection import CardSelectionEngine, SelectionResult, SelectionScope
from skillpath.study.cards import StudyCard, flashcard_from
from skillpath.study.distractors import DistractorProvisioner
from skillpath.study.guided_flow import GuidedOutcome, GuidedTraversalController, NodeProgress, TreeSummary
from skillpath.study.rating import (
    AppliedRating,
    MasteryRecalculator,
    MasteryReport,
    RatingIngestor,
    adjust_rating_for_response_time,
)
from skillpath.study.summary import CompletionResult, RatingInput, TimedScore, build_summary


# =============================================================================
# Results
# =============================================================================


@dataclass
class DeckSettings:
    """Effective deck-session limits and where each value came from."""

    new_cards_per_day: int
    cards_per_session: int
    new_cards_per_day_source: str
    cards_per_session_source: str

    def to_dict(self) -> dict:
        return {
            "new_cards_per_day": self.new_cards_per_day,
            "cards_per_session": self.cards_per_session,
            "source": {
                "new_cards_per_day": self.new_cards_per_day_source,
                "cards_per_session": self.cards_per_session_source,
            },
        }


def resolve_deck_settings(
    deck: DeckRecord,
    settings: Settings,
    new_cards_per_day: int | None = None,
    cards_per_session: int | None = None,
) -> DeckSettings:
    """Precedence: session request > deck override > global default."""

    def pick(requested: int | None, override: int | None, default: int) -> tuple[int, str]:
        if requested is not None:
            return requested, "session"
        if override is not None:
            return override, "deck"
        return default, "global"

    new_value, new_source = pick(
        new_cards_per_day, deck.new_cards_per_day_override, settings.deck_new_cards_per_day
    )
    per_session, per_session_source = pick(
        cards_per_session, deck.cards_per_session_override, settings.deck_cards_per_session
    )
    return DeckSettings(new_value, per_session, new_source, per_session_source)


@dataclass
class StartedSession:
    """
    Outcome of start.

    session is None only for guided starts that found no node to study;
    guided_outcome then says whether the tree is complete or awaiting content.
    """

    session: StudySessionRecord | None
    cards: list[StudyCard] = field(default_factory=list)
    is_practice: bool = False
    due_count: int = 0
    guided_outcome: GuidedOutcome | None = None
    current_node: NodeProgress | None = None
    deck_settings: DeckSettings | None = None


@dataclass
class NextNodeResult:
    node: NodeProgress | None
    summary: TreeSummary
    outcome: GuidedOutcome | None = None


@dataclass
class ResumedSession:
    session: StudySessionRecord
    cards: list[StudyCard]


@dataclass
class RateResult:
    session: StudySessionRecord
    applied: AppliedRating
    submitted_rating: Rating

    @property
    def was_adjusted(self) -> bool:
        return self.applied.rating != self.submitted_rating


# =============================================================================
# Session Manager
# =============================================================================


class SessionManager:
    """Start, resume, rate, complete and abandon study sessions."""

    def __init__(
        self,
        sessions: SessionRepository,
        card_store: CardStore,
        selection: CardSelectionEngine,
        guided: GuidedTraversalController,
        ingestor: RatingIngestor,
        mastery: MasteryRecalculator,
        provisioner: DistractorProvisioner,
        settings: Settings | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.sessions = sessions
        self.card_store = card_store
        self.selection = selection
        self.guided = guided
        self.ingestor = ingestor
        self.mastery = mastery
        self.provisioner = provisioner
        self.settings = settings or get_settings()
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    async def start(
        self,
        user_id: str,
        goal_id: str,
        mode: StudyMode = StudyMode.FLASHCARD,
        is_guided: bool = False,
        node_id: str | None = None,
        include_children: bool = True,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> StartedSession:
        """
        Start a goal-scoped session.

        Guided starts pick the node themselves and may legitimately return no
        session (tree complete or awaiting content).

        Raises:
            NotFoundError: goal or node missing
            NoCardsAvailableError: scope has zero active cards
        """
        now = now or utcnow()
        mode = StudyMode(mode)
        limit = self._clamp_limit(limit)

        current_node: NodeProgress | None = None
        if is_guided:
            goal = await self.card_store.get_goal(goal_id)
            if goal is None or goal.user_id != user_id:
                raise NotFoundError("Goal not found", goal_id=goal_id)
            if not goal.tree_id:
                raise NotFoundError("Goal has no skill tree", goal_id=goal_id)

            current_node = await self.guided.next_incomplete_node(goal.tree_id)
            if current_node is None:
                outcome = await self.guided.terminal_outcome(goal.tree_id)
                logger.info(f"Guided start for goal {goal_id} created no session: {outcome.value}")
                return StartedSession(session=None, guided_outcome=outcome)
            node_id = current_node.id
            logger.info(f"Guided mode selected node {current_node.id} ({current_node.path})")

        scope = SelectionScope(ScopeKind.GOAL, goal_id, node_id, include_children)
        result = await self.selection.select_cards(user_id, scope, mode, limit, now)

        record = self._new_record(user_id, ScopeKind.GOAL, goal_id, mode, result, now)
        record.is_guided = is_guided
        record.current_node_id = node_id if is_guided else None
        record = await self._persist_new(record)

        return StartedSession(
            session=record,
            cards=result.cards,
            is_practice=result.is_practice,
            due_count=result.due_count,
            current_node=current_node,
        )

    async def start_deck_session(
        self,
        user_id: str,
        deck_id: str,
        new_cards_per_day: int | None = None,
        cards_per_session: int | None = None,
        now: datetime | None = None,
    ) -> StartedSession:
        """
        Start a deck-scoped flashcard session with the full membership snapshot.

        Raises:
            NotFoundError: deck missing
            AuthorizationError: deck belongs to another user
            NoCardsAvailableError: deck holds zero active cards
        """
        now = now or utcnow()
        deck = await self.card_store.get_deck(deck_id)
        if deck is None:
            raise NotFoundError("Deck not found", deck_id=deck_id)
        if deck.user_id != user_id:
            raise AuthorizationError("Deck belongs to another user", deck_id=deck_id)

        effective = resolve_deck_settings(deck, self.settings, new_cards_per_day, cards_per_session)
        scope = SelectionScope(ScopeKind.DECK, deck_id)
        result = await self.selection.select_cards(
            user_id,
            scope,
            StudyMode.FLASHCARD,
            effective.cards_per_session,
            now,
            new_card_cap=effective.new_cards_per_day,
        )

        record = self._new_record(user_id, ScopeKind.DECK, deck_id, StudyMode.FLASHCARD, result, now)
        record.member_snapshot = list(result.member_ids)
        record = await self._persist_new(record)

        return StartedSession(
            session=record,
            cards=result.cards,
            is_practice=result.is_practice,
            due_count=result.due_count,
            deck_settings=effective,
        )

    async def next_node(self, user_id: str, goal_id: str) -> NextNodeResult:
        """Next incomplete node of a goal's tree, or the terminal outcome when none is left."""
        goal = await self.card_store.get_goal(goal_id)
        if goal is None or goal.user_id != user_id:
            raise NotFoundError("Goal not found", goal_id=goal_id)
        if not goal.tree_id:
            raise NotFoundError("Goal has no skill tree", goal_id=goal_id)

        progress = await self.guided.tree_progress(goal.tree_id)
        node = progress.first_incomplete()
        return NextNodeResult(
            node=node,
            summary=progress.summary,
            outcome=progress.outcome if node is None else None,
        )

    # ------------------------------------------------------------------
    # resume / active lookup
    # ------------------------------------------------------------------

    async def resume(self, session_id: str, user_id: str, now: datetime | None = None) -> ResumedSession:
        """
        Re-materialize an active session's cards from the card store.

        Cards deleted since start are dropped from the view (the manifest keeps them).

        Raises:
            NotFoundError / AuthorizationError / InvalidStateError / SessionExpiredError
        """
        now = now or utcnow()
        record = await self._load_owned(session_id, user_id)
        self._ensure_live(record, now)

        found = {c.id: c for c in await self.card_store.get_cards(record.card_ids)}
        cards: list[StudyCard] = []
        for card_id in record.card_ids:
            card = found.get(card_id)
            if card is None:
                continue
            presented = record.presentation_types.get(card_id, card.card_type.value)
            if presented == CardType.MULTIPLE_CHOICE.value:
                cards.append(await self.provisioner.resolve_existing(card))
            else:
                cards.append(flashcard_from(card))

        dropped = len(record.card_ids) - len(cards)
        logger.info(
            f"Resumed session {session_id} at {record.current_index}/{len(record.card_ids)}"
            + (f" ({dropped} deleted cards dropped)" if dropped else "")
        )
        return ResumedSession(session=record, cards=cards)

    async def get_active(
        self, user_id: str, scope_id: str | None = None, now: datetime | None = None
    ) -> StudySessionRecord | None:
        """Resumable session for the user, abandoning it instead when it has expired."""
        now = now or utcnow()
        record = await self.sessions.find_active(user_id, scope_id)
        if record is None:
            return None
        if record.is_expired(now):
            expected = record.revision
            record.status = SessionStatus.ABANDONED
            record.last_activity_at = now
            await self.sessions.save(record, expected_revision=expected)
            logger.info(f"Session {record.id} expired at {record.expires_at.isoformat()}; abandoned")
            return None
        return record

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        """Abandon every expired active session."""
        count = await self.sessions.abandon_expired(now or utcnow())
        if count:
            logger.info(f"Abandoned {count} expired sessions")
        return count

    # ------------------------------------------------------------------
    # rate
    # ------------------------------------------------------------------

    async def rate(
        self,
        session_id: str,
        user_id: str,
        card_id: str,
        rating: int,
        response_time_ms: int | None = None,
        time_remaining_ms: int | None = None,
        score: int | None = None,
        now: datetime | None = None,
    ) -> RateResult:
        """
        Record a rating in manifest order, then apply it to the card's schedule.

        The cursor may skip manifest entries only when those cards no longer
        exist. The session write happens first so a replayed request is
        rejected before the card is touched.

        Raises:
            ConflictError: card not in manifest, already rated, or out of order
        """
        now = now or utcnow()
        submitted = Rating(rating)

        for attempt in range(1, self.settings.optimistic_write_attempts + 1):
            record = await self._load_owned(session_id, user_id)
            self._ensure_live(record, now)

            if card_id not in record.card_ids:
                raise ConflictError("Card is not part of this session", card_id=card_id)
            if card_id in record.rated_card_ids:
                raise ConflictError("Card has already been rated in this session", card_id=card_id)

            position = record.card_ids.index(card_id)
            if position < record.current_index:
                raise ConflictError("Card was skipped earlier in this session", card_id=card_id)
            if position > record.current_index:
                await self._ensure_skippable(record, position, card_id)

            if await self.card_store.get_card(card_id) is None:
                raise NotFoundError("Card not found", card_id=card_id)

            effective = submitted
            if record.presentation_types.get(card_id) == CardType.MULTIPLE_CHOICE.value:
                effective = adjust_rating_for_response_time(
                    submitted, response_time_ms, self.settings.mc_fast_answer_threshold_ms
                )

            expected = record.revision
            record.responses.append(SessionResponse(card_id, int(effective), response_time_ms or 0))
            record.current_index = position + 1
            record.last_activity_at = now
            if record.mode.is_timed:
                if time_remaining_ms is not None:
                    record.time_remaining_ms = max(0, time_remaining_ms)
                if score is not None:
                    record.score = score

            if await self.sessions.save(record, expected_revision=expected):
                break
            logger.debug(f"Rating in session {session_id} lost revision race (attempt {attempt})")
        else:
            raise ConflictError("Session was modified concurrently", session_id=session_id)

        applied = await self.ingestor.apply_rating(card_id, user_id, effective, now, session_id=session_id)
        logger.info(
            f"Session {session_id} rated card {card_id} {effective.name}"
            + (f" (submitted {submitted.name})" if effective != submitted else "")
            + f" [{record.current_index}/{len(record.card_ids)}]"
        )
        return RateResult(session=record, applied=applied, submitted_rating=submitted)

    async def _ensure_skippable(self, record: StudySessionRecord, position: int, card_id: str) -> None:
        """Entries between the cursor and position may be passed only if their cards are gone."""
        rated = record.rated_card_ids
        pending = [cid for cid in record.card_ids[record.current_index:position] if cid not in rated]
        existing = {c.id for c in await self.card_store.get_cards(pending)}
        blocking = [cid for cid in pending if cid in existing]
        if blocking:
            raise ConflictError(
                "Ratings must follow session order",
                card_id=card_id,
                expected_card_id=blocking[0],
            )

    # ------------------------------------------------------------------
    # complete / abandon
    # ------------------------------------------------------------------

    async def complete(
        self,
        session_id: str,
        user_id: str,
        duration_seconds: int,
        ratings: list[RatingInput],
        timed_score: TimedScore | None = None,
        now: datetime | None = None,
    ) -> CompletionResult:
        """
        Complete a session and return its summary.

        Idempotent: a completed session returns the stored summary, and goal
        study time is added only by the call that performs the transition.
        Mastery recalculation failures are logged and never block completion.

        Raises:
            InvalidStateError: session was abandoned
        """
        now = now or utcnow()
        record = await self._load_owned(session_id, user_id)
        if record.status is SessionStatus.COMPLETED and record.summary:
            logger.info(f"Session {session_id} already completed; returning stored summary")
            return CompletionResult.from_dict(record.summary)
        if record.status is SessionStatus.ABANDONED:
            raise InvalidStateError("Session is no longer active", session_id=session_id)

        manifest = set(record.card_ids)
        accepted = [r for r in ratings if r.card_id in manifest]
        if len(accepted) != len(ratings):
            logger.warning(
                f"Session {session_id}: ignoring {len(ratings) - len(accepted)} ratings for cards outside the manifest"
            )

        report, goal_id = await self._recalculate_mastery(record, accepted)
        result = CompletionResult(
            session_id=session_id,
            summary=build_summary(accepted, duration_seconds),
            mastery_updates=report.node_changes if report else [],
            goal_mastery_before=report.goal_before if report else None,
            goal_mastery_after=report.goal_after if report else None,
            timed_score=timed_score,
        )

        for attempt in range(1, self.settings.optimistic_write_attempts + 1):
            expected = record.revision
            record.status = SessionStatus.COMPLETED
            record.completed_at = now
            record.last_activity_at = now
            record.summary = result.to_dict()
            if timed_score is not None:
                record.score = timed_score.correct * (record.timed_settings or {}).get(
                    "points_per_card", self.settings.timed_points_per_card
                ) + timed_score.bonus_points

            if await self.sessions.save(record, expected_revision=expected):
                break

            record = await self._load_owned(session_id, user_id)
            if record.status is SessionStatus.COMPLETED and record.summary:
                logger.info(f"Session {session_id} completed concurrently; returning stored summary")
                return CompletionResult.from_dict(record.summary)
            if record.status is SessionStatus.ABANDONED:
                raise InvalidStateError("Session is no longer active", session_id=session_id)
            logger.debug(f"Completion of session {session_id} lost revision race (attempt {attempt})")
        else:
            raise ConflictError("Session was modified concurrently", session_id=session_id)

        if goal_id and duration_seconds > 0:
            try:
                await self.card_store.update_goal_progress(goal_id, add_time_seconds=duration_seconds)
            except Exception as exc:
                logger.error(f"Failed to add study time to goal {goal_id}: {exc}")

        logger.info(
            f"Completed session {session_id}: {result.summary.cards_studied} cards, "
            f"avg {result.summary.average_rating}, retention {result.summary.retention_rate}%"
        )
        return result

    async def _recalculate_mastery(
        self, record: StudySessionRecord, ratings: list[RatingInput]
    ) -> tuple[MasteryReport | None, str | None]:
        if record.scope_kind is not ScopeKind.GOAL:
            return None, None
        try:
            goal = await self.card_store.get_goal(record.scope_id)
            if goal is None:
                return None, None
            card_ids = list(dict.fromkeys(r.card_id for r in ratings))
            return await self.mastery.recalculate(goal, card_ids), goal.id
        except Exception:
            logger.exception(f"Mastery recalculation failed for session {record.id}")
            return None, record.scope_id

    async def abandon(self, session_id: str, user_id: str, now: datetime | None = None) -> StudySessionRecord:
        """Mark an active session abandoned. Terminal sessions are returned unchanged."""
        now = now or utcnow()
        for attempt in range(1, self.settings.optimistic_write_attempts + 1):
            record = await self._load_owned(session_id, user_id)
            if record.status.is_terminal:
                return record
            expected = record.revision
            record.status = SessionStatus.ABANDONED
            record.last_activity_at = now
            if await self.sessions.save(record, expected_revision=expected):
                logger.info(f"Abandoned session {session_id}")
                return record
            logger.debug(f"Abandon of session {session_id} lost revision race (attempt {attempt})")
        raise ConflictError("Session was modified concurrently", session_id=session_id)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.settings.default_card_limit
        return max(1, min(limit, self.settings.max_card_limit))

    def _new_record(
        self,
        user_id: str,
        scope_kind: ScopeKind,
        scope_id: str,
        mode: StudyMode,
        result: SelectionResult,
        now: datetime,
    ) -> StudySessionRecord:
        record = StudySessionRecord(
            id=self.id_factory(),
            user_id=user_id,
            scope_kind=scope_kind,
            scope_id=scope_id,
            mode=mode,
            expires_at=now + timedelta(seconds=self.settings.session_ttl_seconds(mode)),
            card_ids=[c.id for c in result.cards],
            presentation_types={c.id: c.card_type for c in result.cards},
            started_at=now,
            last_activity_at=now,
        )
        if mode.is_timed:
            record.timed_settings = self.settings.get_timed_settings()
            record.time_remaining_ms = record.timed_settings["duration_seconds"] * 1000
            record.score = 0
        return record

    async def _persist_new(self, record: StudySessionRecord) -> StudySessionRecord:
        created = await self.sessions.create(record)
        abandoned = await self.sessions.abandon_superseded(created)

        # A concurrent start that sorts later wins; this one steps aside
        newest = await self.sessions.newest_active(created.user_id, created.scope_id)
        if newest is not None and newest.id != created.id:
            created.status = SessionStatus.ABANDONED
            await self.sessions.save(created, expected_revision=created.revision)
            logger.warning(
                f"Session {created.id} for {created.scope_kind.value} {created.scope_id} "
                f"superseded by concurrent session {newest.id}; abandoned"
            )
            raise ConflictError(
                "A newer session was started for this scope",
                session_id=created.id,
                active_session_id=newest.id,
            )

        logger.info(
            f"Started {created.mode.value} session {created.id} for {created.scope_kind.value} "
            f"{created.scope_id} with {len(created.card_ids)} cards"
            + (f"; abandoned {abandoned} earlier sessions" if abandoned else "")
        )
        return created

    async def _load_owned(self, session_id: str, user_id: str) -> StudySessionRecord:
        record = await self.sessions.get(session_id)
        if record is None:
            raise NotFoundError("Session not found", session_id=session_id)
        if record.user_id != user_id:
            raise AuthorizationError("Session belongs to another user", session_id=session_id)
        return record

    def _ensure_live(self, record: StudySessionRecord, now: datetime) -> None:
        if not record.is_active:
            raise InvalidStateError(f"Session is {record.status.value}", session_id=record.id)
        if record.is_expired(now):
            raise SessionExpiredError("Session has expired", session_id=record.id)
