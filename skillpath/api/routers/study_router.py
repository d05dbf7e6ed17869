"""
Study session router.

Endpoints for the study session lifecycle:
- Start goal sessions (whole tree, node, subtree, guided)
- Resume, rate, complete and abandon sessions
- Active session lookup and guided next-node
- Deck sessions with live membership sync
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from skillpath.api.dependencies import StudyServices, get_current_user, get_study_services
from skillpath.api.schemas import (
    ActiveSessionResponse,
    CompleteRequest,
    CompleteResponse,
    DeckChangesRequest,
    DeckChangesResponse,
    DeckSessionRequest,
    DeckSessionResponse,
    DeckSettingsOut,
    GuidedInfo,
    NextNodeResponse,
    NodeOut,
    RateRequest,
    RateResponse,
    ResumeSessionResponse,
    SessionIdRequest,
    SessionOut,
    StartSessionRequest,
    StartSessionResponse,
    TreeSummaryOut,
)
from skillpath.core.errors import StudyError
from skillpath.core.models import utcnow
from skillpath.study.cards import flashcard_from
from skillpath.study.guided_flow import GuidedOutcome
from skillpath.study.summary import RatingInput, TimedScore

router = APIRouter()


def _study_error(exc: StudyError) -> HTTPException:
    logger.warning(f"{exc.code}: {exc.message} {exc.details or ''}")
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


# ========================================
# Session Lifecycle Endpoints
# ========================================


@router.post("/session", response_model=StartSessionResponse, summary="Start study session")
async def start_session(
    request: StartSessionRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> StartSessionResponse:
    """
    Start a study session for a goal.

    Modes: flashcard, multiple_choice, timed, mixed, node, all.
    Guided starts pick the next incomplete node and may return no session
    (tree complete or awaiting content).
    """
    logger.info(f"Starting {request.mode.value} session for goal {request.goal_id} (guided={request.is_guided})")
    try:
        started = await services.session_manager.start(
            user_id,
            request.goal_id,
            mode=request.mode,
            is_guided=request.is_guided,
            node_id=request.node_id,
            include_children=request.include_children,
            limit=request.limit,
        )

        guided = None
        if started.guided_outcome is not None:
            guided = GuidedInfo(
                outcome=started.guided_outcome.value,
                message=started.guided_outcome.message,
                is_tree_complete=started.guided_outcome is GuidedOutcome.TREE_COMPLETE,
            )
        elif started.current_node is not None:
            node = started.current_node
            guided = GuidedInfo(
                current_node=NodeOut(**node.to_dict()),
                completed_in_node=node.completed_cards,
                total_in_node=node.total_cards,
            )

        return StartSessionResponse(
            session=SessionOut.from_record(started.session) if started.session else None,
            cards=[c.to_dict() for c in started.cards],
            is_practice=started.is_practice,
            due_count=started.due_count,
            guided=guided,
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception("Failed to start study session")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/resume", response_model=ResumeSessionResponse, summary="Resume study session")
async def resume_session(
    request: SessionIdRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> ResumeSessionResponse:
    """Resume an active session with cards re-read from the card store."""
    try:
        resumed = await services.session_manager.resume(request.session_id, user_id)
        return ResumeSessionResponse(
            session=SessionOut.from_record(resumed.session),
            cards=[c.to_dict() for c in resumed.cards],
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to resume session {request.session_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/rate", response_model=RateResponse, summary="Rate a card")
async def rate_card(
    request: RateRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> RateResponse:
    """Record a rating (1-4) for the next card of the session."""
    try:
        result = await services.session_manager.rate(
            request.session_id,
            user_id,
            request.card_id,
            request.rating,
            response_time_ms=request.response_time_ms,
            time_remaining_ms=request.time_remaining_ms,
            score=request.score,
        )
        state = result.applied.state
        return RateResponse(
            session_id=result.session.id,
            card_id=request.card_id,
            rating=int(result.applied.rating),
            submitted_rating=int(result.submitted_rating),
            adjusted=result.was_adjusted,
            state=state.state.display_name,
            due=state.due,
            stability=state.stability,
            difficulty=state.difficulty,
            current_index=result.session.current_index,
            remaining=max(0, len(result.session.card_ids) - result.session.current_index),
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to rate card {request.card_id} in session {request.session_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/complete", response_model=CompleteResponse, summary="Complete study session")
async def complete_session(
    request: CompleteRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> CompleteResponse:
    """
    Complete a session and return its summary.

    Safe to retry: a completed session returns the stored summary.
    """
    try:
        result = await services.session_manager.complete(
            request.session_id,
            user_id,
            request.duration_seconds,
            [RatingInput(r.card_id, r.rating, r.response_time_ms) for r in request.ratings],
            timed_score=(
                TimedScore(request.timed_score.correct, request.timed_score.total, request.timed_score.bonus_points)
                if request.timed_score
                else None
            ),
        )
        return CompleteResponse(**result.to_dict())

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to complete session {request.session_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/abandon", response_model=SessionOut, summary="Abandon study session")
async def abandon_session(
    request: SessionIdRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> SessionOut:
    try:
        record = await services.session_manager.abandon(request.session_id, user_id)
        return SessionOut.from_record(record)

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to abandon session {request.session_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/session/active", response_model=ActiveSessionResponse, summary="Get active session")
async def get_active_session(
    goal_id: str | None = Query(None, description="Restrict to one goal or deck"),
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> ActiveSessionResponse:
    """Resumable session for the user, if any. Expired sessions are abandoned on lookup."""
    try:
        record = await services.session_manager.get_active(user_id, goal_id)
        if record is None:
            return ActiveSessionResponse()
        return ActiveSessionResponse(
            session=SessionOut.from_record(record),
            progress_percent=record.percent_complete,
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception("Failed to look up active session")
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/next-node", response_model=NextNodeResponse, summary="Next incomplete node")
async def get_next_node(
    goal_id: str = Query(..., description="Goal whose skill tree to traverse"),
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> NextNodeResponse:
    try:
        result = await services.session_manager.next_node(user_id, goal_id)
        return NextNodeResponse(
            node=NodeOut(**result.node.to_dict()) if result.node else None,
            outcome=result.outcome.value if result.outcome else None,
            message=result.outcome.message if result.outcome else None,
            summary=TreeSummaryOut(**result.summary.to_dict()),
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to get next node for goal {goal_id}")
        raise HTTPException(status_code=500, detail=str(exc))


# ========================================
# Deck Session Endpoints
# ========================================


@router.post("/deck-session", response_model=DeckSessionResponse, summary="Start deck session")
async def start_deck_session(
    request: DeckSessionRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> DeckSessionResponse:
    """
    Start a flashcard session over a deck.

    Limits follow precedence session > deck > global; the response reports
    each value's source.
    """
    try:
        started = await services.session_manager.start_deck_session(
            user_id,
            request.deck_id,
            new_cards_per_day=request.new_cards_per_day,
            cards_per_session=request.cards_per_session,
        )
        return DeckSessionResponse(
            session=SessionOut.from_record(started.session),
            cards=[c.to_dict() for c in started.cards],
            is_practice=started.is_practice,
            due_count=started.due_count,
            settings=DeckSettingsOut(**started.deck_settings.to_dict()),
            sync_interval_seconds=services.settings.deck_sync_interval_seconds,
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to start deck session for deck {request.deck_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/deck-session/changes", response_model=DeckChangesResponse, summary="Detect deck changes")
async def detect_deck_changes(
    request: DeckChangesRequest,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> DeckChangesResponse:
    """Compare a client-held card id list against the deck's current membership."""
    try:
        changes = await services.deck_sync.detect_changes(
            request.deck_id, user_id, request.original_card_ids, utcnow()
        )
        return DeckChangesResponse(
            added_cards=[flashcard_from(c).to_dict() for c in changes.added_cards],
            removed_card_ids=changes.removed_card_ids,
            has_changes=changes.has_changes,
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to detect changes for deck {request.deck_id}")
        raise HTTPException(status_code=500, detail=str(exc))


@router.post(
    "/deck-session/{session_id}/sync",
    response_model=DeckChangesResponse,
    summary="Sync deck session",
)
async def sync_deck_session(
    session_id: str,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> DeckChangesResponse:
    """Apply deck membership drift to a persisted deck session."""
    try:
        changes = await services.deck_sync.reconcile(session_id, user_id, utcnow())
        return DeckChangesResponse(
            added_cards=[flashcard_from(c).to_dict() for c in changes.added_cards],
            removed_card_ids=changes.removed_card_ids,
            has_changes=changes.has_changes,
        )

    except StudyError as exc:
        raise _study_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Failed to sync deck session {session_id}")
        raise HTTPException(status_code=500, detail=str(exc))
