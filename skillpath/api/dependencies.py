"""
FastAPI dependencies.

Authentication is delegated to the upstream gateway, which sets the
X-User-Id header. Study services are wired per request on the request's
AsyncSession; tests override get_study_services with in-memory adapters.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from skillpath.core.interfaces import (
    CardStore,
    DistractorStore,
    JobQueue,
    SchedulingAlgorithm,
    SessionRepository,
)
from skillpath.db.database import get_async_session
from skillpath.db.stores import SqlCardStore, SqlDistractorStore, SqlJobQueue, SqlSessionRepository
from skillpath.scheduling import TieredConfig, TieredScheduler
from skillpath.study.card_selection import CardSelectionEngine
from skillpath.study.deck_sync import LiveDeckSync
from skillpath.study.distractors import DistractorProvisioner
from skillpath.study.guided_flow import GuidedTraversalController
from skillpath.study.rating import MasteryRecalculator, RatingIngestor
from skillpath.study.session_manager import SessionManager


@dataclass
class StudyServices:
    """Per-request bundle of study components."""

    session_manager: SessionManager
    deck_sync: LiveDeckSync
    job_queue: JobQueue
    settings: Settings


def build_services(
    card_store: CardStore,
    distractor_store: DistractorStore,
    job_queue: JobQueue,
    sessions: SessionRepository,
    settings: Settings | None = None,
    algorithm: SchedulingAlgorithm | None = None,
    rng: random.Random | None = None,
) -> StudyServices:
    """Wire the study engine on a set of storage adapters."""
    settings = settings or get_settings()
    rng = rng or random.Random()
    algorithm = algorithm or TieredScheduler(
        TieredConfig(desired_retention=settings.scheduler_desired_retention)
    )

    provisioner = DistractorProvisioner(
        distractor_store,
        job_queue,
        use_metadata_fallback=settings.legacy_metadata_distractors,
        job_priority=settings.distractor_job_priority,
        rng=rng,
    )
    manager = SessionManager(
        sessions=sessions,
        card_store=card_store,
        selection=CardSelectionEngine(card_store, provisioner, rng=rng),
        guided=GuidedTraversalController(card_store),
        ingestor=RatingIngestor(card_store, algorithm, max_attempts=settings.optimistic_write_attempts),
        mastery=MasteryRecalculator(card_store),
        provisioner=provisioner,
        settings=settings,
    )
    return StudyServices(
        session_manager=manager,
        deck_sync=LiveDeckSync(card_store, sessions, max_attempts=settings.optimistic_write_attempts),
        job_queue=job_queue,
        settings=settings,
    )


async def get_study_services(db: AsyncSession = Depends(get_async_session)) -> StudyServices:
    """FastAPI dependency: study services bound to the request's database session."""
    return build_services(
        card_store=SqlCardStore(db),
        distractor_store=SqlDistractorStore(db),
        job_queue=SqlJobQueue(db),
        sessions=SqlSessionRepository(db),
    )


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Authenticated user id from the gateway header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id
