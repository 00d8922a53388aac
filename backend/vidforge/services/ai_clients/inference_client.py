"""
Object/face detection inference client.

Talks to an external detection service that accepts an image and
returns bounding boxes. The privacy blur stage sends it a keyframe and
blurs the returned regions.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import RETRY_DECORATOR, translate_http_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """One detected region in pixel coordinates."""

    label: str
    score: float
    x: int
    y: int
    width: int
    height: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        """(x, y, width, height) tuple for the media engine."""
        return self.x, self.y, self.width, self.height


class InferenceClient:
    """
    Async HTTP client for the detection service.

    Example:
        async with InferenceClient.from_settings(settings) as client:
            detections = await client.detect(frame_path, labels=["face"])
    """

    def __init__(self, base_url: str, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InferenceClient":
        """Create InferenceClient from application settings."""
        return cls(settings.inference_url, timeout=settings.http_timeout)

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """True if the detection service answers its health check."""
        try:
            response = await self.http_client.get(f"{self.base_url}/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Inference service not available: {e}")
        return False

    @RETRY_DECORATOR
    async def _post_detect(self, image_bytes: bytes, filename: str) -> httpx.Response:
        return await self.http_client.post(
            f"{self.base_url}/v1/detect",
            files={"image": (filename, image_bytes, "image/jpeg")},
        )

    async def detect(
        self,
        image_path: Path,
        labels: list[str] | None = None,
        min_score: float = 0.5,
    ) -> list[Detection]:
        """
        Detect objects in an image.

        Args:
            image_path: JPEG frame to analyze
            labels: Keep only these labels (all if None)
            min_score: Minimum confidence

        Returns:
            Detections above the threshold

        Raises:
            AIClientError: If the service call fails
        """
        image_path = Path(image_path)
        try:
            response = await self._post_detect(image_path.read_bytes(), image_path.name)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Detection failed for {image_path.name}: {e}")
            raise translate_http_error(e, "inference", "Detection") from e

        detections = [
            Detection(
                label=item["label"],
                score=float(item.get("score", 1.0)),
                x=int(item["x"]),
                y=int(item["y"]),
                width=int(item["width"]),
                height=int(item["height"]),
            )
            for item in payload.get("detections", [])
        ]
        kept = [
            d for d in detections
            if d.score >= min_score and (labels is None or d.label in labels)
        ]
        logger.info(f"Detection: {len(kept)}/{len(detections)} regions kept")
        return kept
