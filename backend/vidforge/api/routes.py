"""
HTTP API routes for the video processing pipeline.

Provides endpoints for:
- Synchronous processing (POST /api/process)
- Background processing with job tracking (POST /api/jobs)
- Querying jobs and live sessions
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from vidforge.api.dependencies import get_caller_id, get_services
from vidforge.errors import VidforgeError
from vidforge.logging_config import correlation_context
from vidforge.models.schemas import (
    PipelineResult,
    ProcessingJob,
    ProcessRequest,
    SessionInfo,
)
from vidforge.services.broadcaster import SessionNotFoundError
from vidforge.services.container import ServiceContainer
from vidforge.services.processing import AcceptedRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pipeline"])


async def run_job(
    services: ServiceContainer,
    job_id: str,
    accepted: AcceptedRequest,
    session_id: str | None,
) -> None:
    """
    Background task to run an accepted request.

    Args:
        services: Application services
        job_id: Job identifier for status updates
        accepted: Validated and authorized request
        session_id: Live session created for the job, if realtime
    """
    job_manager = services.job_manager
    job_manager.start_job(job_id)

    try:
        result = await services.processing.run(accepted, session_id)
        job_manager.complete_job(job_id, result)

    except VidforgeError as e:
        job_manager.fail_job(job_id, e.category)
    except Exception:
        with correlation_context(accepted.correlation_id):
            logger.exception(f"Pipeline error for job {job_id}")
        job_manager.fail_job(job_id, "internal_error")


@router.post("/process", response_model=PipelineResult)
async def process_video(
    request: ProcessRequest,
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services),
) -> PipelineResult:
    """
    Run the pipeline and wait for the result.

    With realtime set, the returned sessionId names a session that has
    already ended: viewers cannot join a synchronous run. Use POST
    /api/jobs to watch progress live.

    Args:
        request: Source reference and feature options

    Returns:
        PipelineResult with durable URLs, features used and warnings

    Raises:
        400: Invalid request
        401/403: Missing identity or insufficient tier
        502: A stage or the primary upload failed
    """
    return await services.processing.process(request, caller_id)


@router.post("/jobs", response_model=ProcessingJob)
async def start_job(
    request: ProcessRequest,
    background_tasks: BackgroundTasks,
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services),
) -> ProcessingJob:
    """
    Start processing in the background.

    The request is validated and authorized before the job exists. For
    realtime requests the session is created here with the run already
    reserved, so viewers can join over /ws before the first stage
    completes. A viewer joining after the run started is sent its
    "session-start" on join.

    Returns:
        ProcessingJob with job_id and session_id for tracking
    """
    accepted = await services.processing.accept(request, caller_id)
    session_id = services.processing.open_session(accepted)

    job = services.job_manager.create_job(
        caller_id,
        request.source_ref,
        session_id=session_id,
        correlation_id=accepted.correlation_id,
    )
    background_tasks.add_task(run_job, services, job.job_id, accepted, session_id)

    with correlation_context(accepted.correlation_id):
        logger.info(f"Started job {job.job_id}: {request.source_ref}")
    return job


@router.get("/jobs/{job_id}", response_model=ProcessingJob)
async def get_job_status(
    job_id: str,
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services),
) -> ProcessingJob:
    """
    Get processing job status.

    Raises:
        401: Missing identity
        404: Job not found or owned by someone else
    """
    job = services.job_manager.get_job(job_id)

    if not job or job.owner_id != caller_id:
        raise HTTPException(
            status_code=404,
            detail=f"Job not found: {job_id}",
        )

    return job


@router.get("/jobs", response_model=list[ProcessingJob])
async def list_jobs(
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services),
) -> list[ProcessingJob]:
    """List the caller's processing jobs."""
    return services.job_manager.list_jobs(owner_id=caller_id)


@router.get("/sessions/{session_id}", response_model=SessionInfo)
async def get_session(
    session_id: str,
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services),
) -> SessionInfo:
    """
    Get live session info (owner, subscriber count, active runs).

    Raises:
        401: Missing identity
        404: Session not found, already closed or owned by someone else
    """
    try:
        session = services.broadcaster.get_session(session_id)
    except SessionNotFoundError:
        session = None

    if session is None or session.owner_id != caller_id:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")

    return session.info()
