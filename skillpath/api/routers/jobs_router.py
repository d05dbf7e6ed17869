"""
Background job router.

Clients poll distractor generation jobs here; 202 while the job is still
pending or processing.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from loguru import logger

from skillpath.api.dependencies import StudyServices, get_current_user, get_study_services
from skillpath.api.schemas import JobOut

router = APIRouter()


@router.get("/{job_id}", response_model=JobOut, summary="Get job status")
async def get_job(
    job_id: str,
    response: Response,
    user_id: str = Depends(get_current_user),
    services: StudyServices = Depends(get_study_services),
) -> JobOut:
    try:
        job = await services.job_queue.get(job_id)
        if job is None or job.user_id != user_id:
            raise HTTPException(status_code=404, detail="Job not found")

        if not job.status.is_finished:
            response.status_code = 202

        return JobOut(
            id=job.id,
            type=job.type,
            status=job.status.value,
            payload=job.payload,
            result=job.result,
            error=job.error,
            priority=job.priority,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )

    except HTTPException:
        raise
    except Exception as exc:
        logger.exception(f"Failed to get job {job_id}")
        raise HTTPException(status_code=500, detail=str(exc))
