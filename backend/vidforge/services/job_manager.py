"""
Job manager for background processing.

Tracks the lifecycle of jobs started through POST /api/jobs. Live
progress goes through the ProgressBroadcaster session attached to the
job; this manager only keeps status and results.
"""

import logging
import uuid
from datetime import datetime

from vidforge.models.schemas import PipelineResult, ProcessingJob, ProcessingStatus

logger = logging.getLogger(__name__)


class JobManager:
    """
    In-memory store of background processing jobs.

    Example:
        manager = JobManager()
        job = manager.create_job("user-1", "clip.mp4", session_id="a1b2c3")
        manager.start_job(job.job_id)
        manager.complete_job(job.job_id, result)
    """

    def __init__(self):
        """Initialize job manager with an empty store."""
        self._jobs: dict[str, ProcessingJob] = {}

    def create_job(
        self,
        owner_id: str,
        source_ref: str,
        session_id: str | None = None,
        correlation_id: str | None = None,
    ) -> ProcessingJob:
        """
        Create a new pending job.

        Args:
            owner_id: Caller identity
            source_ref: Source reference from the request
            session_id: Live session attached to the job, if realtime
            correlation_id: Request correlation id

        Returns:
            Created ProcessingJob with unique ID
        """
        job_id = str(uuid.uuid4())[:8]

        job = ProcessingJob(
            job_id=job_id,
            owner_id=owner_id,
            source_ref=source_ref,
            session_id=session_id,
            correlation_id=correlation_id,
        )
        self._jobs[job_id] = job

        logger.info(f"Created job {job_id} for {source_ref}")
        return job

    def get_job(self, job_id: str) -> ProcessingJob | None:
        """Get job by ID (None if unknown)."""
        return self._jobs.get(job_id)

    def list_jobs(self, owner_id: str | None = None) -> list[ProcessingJob]:
        """List jobs, optionally only those of one owner."""
        return [
            job for job in self._jobs.values()
            if owner_id is None or job.owner_id == owner_id
        ]

    def start_job(self, job_id: str) -> None:
        """Mark job as processing."""
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for start")
            return
        job.status = ProcessingStatus.PROCESSING

    def complete_job(self, job_id: str, result: PipelineResult) -> None:
        """Mark job as completed with result."""
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for completion")
            return

        job.status = ProcessingStatus.COMPLETED
        job.completed_at = datetime.now()
        job.result = result
        logger.info(f"Job {job_id} completed: {result.video_url}")

    def fail_job(self, job_id: str, error: str) -> None:
        """
        Mark job as failed.

        Args:
            job_id: Job identifier
            error: Caller-safe error category
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for failure")
            return

        job.status = ProcessingStatus.FAILED
        job.error = error
        job.completed_at = datetime.now()
        logger.error(f"Job {job_id} failed: {error}")
