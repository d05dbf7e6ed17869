"""
FastAPI application for the skillpath study service.

Provides REST API for:
- Study sessions over goal skill trees (start, resume, rate, complete)
- Guided depth-first traversal of a skill tree
- Deck sessions with live membership sync
- Background job polling (distractor generation)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import get_settings
from skillpath import __version__
from skillpath.db.database import check_database, dispose_engine
from skillpath.logging_setup import configure_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging()
    logger.info("Starting skillpath study service...")
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down skillpath study service...")
    await dispose_engine()


app = FastAPI(
    title="Skillpath Study Service",
    description="""
    Study session orchestration for spaced-repetition learning.

    ## Features

    - **Sessions**: due-card selection with practice fallback, resume, ordered rating, idempotent completion
    - **Guided mode**: depth-first walk to the next incomplete skill node
    - **Multiple choice**: distractors from storage, legacy metadata, or background generation
    - **Deck sessions**: live reconciliation against deck edits

    Requests are authenticated upstream; the gateway passes the user id in `X-User-Id`.
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "skillpath",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = await check_database()
    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "components": {"database": db_status},
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive)."""
    return {
        "database_url": settings.database_url.split("@")[-1]
        if "@" in settings.database_url
        else "configured",
        "sessions": {
            "ttl_hours": settings.session_ttl_hours,
            "timed_ttl_minutes": settings.timed_session_ttl_minutes,
            "default_card_limit": settings.default_card_limit,
            "max_card_limit": settings.max_card_limit,
        },
        "timed": settings.get_timed_settings(),
        "decks": {
            "new_cards_per_day": settings.deck_new_cards_per_day,
            "cards_per_session": settings.deck_cards_per_session,
            "sync_interval_seconds": settings.deck_sync_interval_seconds,
        },
        "distractors": {
            "legacy_metadata": settings.legacy_metadata_distractors,
            "job_priority": settings.distractor_job_priority,
        },
    }


# ========================================
# Import and mount routers
# ========================================

from skillpath.api.routers import jobs_router, study_router  # noqa: E402

app.include_router(study_router.router, prefix="/api/study", tags=["Study"])
app.include_router(jobs_router.router, prefix="/api/jobs", tags=["Jobs"])
