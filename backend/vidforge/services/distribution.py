"""
Distribution enqueuer: hand finished videos to the social scheduler.
"""

import logging
from datetime import datetime
from typing import Iterable, Protocol

import httpx

from vidforge.config import Settings
from vidforge.models.schemas import ArtifactRef, DistributionRecord
from vidforge.services.ai_clients.base import RETRY_DECORATOR

logger = logging.getLogger(__name__)


class DistributionQueue(Protocol):
    """Distribution-queue collaborator."""

    async def enqueue(self, record: DistributionRecord) -> None:
        ...


class HttpDistributionQueue:
    """
    Scheduler reachable over HTTP.

    POST {base_url}/v1/queue with the DistributionRecord JSON body.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpDistributionQueue":
        return cls(settings.distribution_url, timeout=settings.http_timeout)

    async def close(self) -> None:
        await self.http_client.aclose()

    @RETRY_DECORATOR
    async def enqueue(self, record: DistributionRecord) -> None:
        response = await self.http_client.post(
            f"{self.base_url}/v1/queue",
            json=record.model_dump(mode="json", by_alias=True),
        )
        response.raise_for_status()


class DistributionEnqueuer:
    """
    Fire-and-observe hand-off to the distribution queue.

    Example:
        enqueuer = DistributionEnqueuer(HttpDistributionQueue.from_settings(settings))
        warning = await enqueuer.enqueue(video, "user-1", {"tiktok"}, None)
    """

    def __init__(self, queue: DistributionQueue):
        self.queue = queue

    async def enqueue(
        self,
        video: ArtifactRef,
        owner_id: str,
        platforms: Iterable[str],
        scheduled_at: datetime | None = None,
        correlation_id: str | None = None,
    ) -> str | None:
        """
        Queue a durable video for distribution.

        Failures are logged and reported back as a warning string; they
        never raise.

        Args:
            video: Durable video reference
            owner_id: Owner of the video
            platforms: Target platform names
            scheduled_at: Publication time (now if None)
            correlation_id: Request correlation id for log lookup

        Returns:
            None on success, warning text on failure
        """
        record = DistributionRecord(
            video_url=video.locator,
            owner_id=owner_id,
            platforms=sorted(platforms),
            scheduled_at=scheduled_at or datetime.now(),
            correlation_id=correlation_id,
        )
        try:
            await self.queue.enqueue(record)
        except Exception as e:
            logger.error(
                f"Distribution enqueue failed [{correlation_id}]: {type(e).__name__}: {e}"
            )
            return "distribution enqueue failed"

        logger.info(f"Queued {video.locator} for {record.platforms} at {record.scheduled_at}")
        return None
