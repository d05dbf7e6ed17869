"""API routers."""

from . import jobs_router, study_router

__all__ = ["jobs_router", "study_router"]
