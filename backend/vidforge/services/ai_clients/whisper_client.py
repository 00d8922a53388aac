"""
Whisper transcription client implementation.

Provides async HTTP client for a Whisper ASR API (OpenAI-compatible
/v1/audio/transcriptions) used to caption videos.
"""

import asyncio
import logging
import time
from pathlib import Path

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import RETRY_DECORATOR, translate_http_error

logger = logging.getLogger(__name__)


class WhisperClient:
    """
    Async HTTP client for Whisper transcription API.

    Uses a thread pool for file uploads to avoid blocking the event loop.

    Example:
        async with WhisperClient.from_settings(settings) as client:
            result = await client.transcribe(audio_path)
            segments = result["segments"]
    """

    def __init__(
        self,
        whisper_url: str,
        default_language: str = "en",
    ):
        """
        Initialize Whisper client.

        Args:
            whisper_url: URL for Whisper API
            default_language: Default language for transcription
        """
        self.whisper_url = whisper_url.rstrip("/")
        self.default_language = default_language
        self.http_client = httpx.AsyncClient(timeout=None)

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhisperClient":
        """Create WhisperClient from application settings."""
        return cls(
            whisper_url=settings.whisper_url,
            default_language=settings.whisper_language,
        )

    async def __aenter__(self) -> "WhisperClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """
        Check availability of Whisper service.

        Returns:
            True if Whisper is available, False otherwise
        """
        try:
            response = await self.http_client.get(
                f"{self.whisper_url}/health",
                timeout=5.0,
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Whisper not available: {e}")
        return False

    def _sync_transcribe(
        self,
        file_path: Path,
        language: str,
    ) -> httpx.Response:
        """
        Synchronous file upload to Whisper API.

        Runs in a thread pool to avoid blocking the event loop.
        """
        with httpx.Client(timeout=3600.0) as sync_client:
            with open(file_path, "rb") as f:
                files = {"file": (file_path.name, f, "application/octet-stream")}
                data = {
                    "language": language,
                    "response_format": "verbose_json",
                }
                return sync_client.post(
                    f"{self.whisper_url}/v1/audio/transcriptions",
                    files=files,
                    data=data,
                )

    @RETRY_DECORATOR
    async def _post_transcription(self, file_path: Path, language: str) -> httpx.Response:
        """Upload with retry on connection errors and timeouts."""
        return await asyncio.to_thread(self._sync_transcribe, file_path, language)

    async def transcribe(
        self,
        file_path: Path,
        language: str | None = None,
    ) -> dict:
        """
        Transcribe audio/video file using Whisper API.

        Args:
            file_path: Path to audio/video file
            language: Language code (default: from settings)

        Returns:
            Dict with transcription result including segments

        Raises:
            FileNotFoundError: If file doesn't exist
            AIClientError: If transcription fails
        """
        if language is None:
            language = self.default_language

        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        file_size_mb = file_path.stat().st_size / 1024 / 1024
        logger.info(f"Transcribing: {file_path.name} ({file_size_mb:.1f} MB)")

        start_time = time.time()

        try:
            response = await self._post_transcription(file_path, language)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            elapsed = time.time() - start_time
            logger.error(f"Transcription failed after {elapsed:.1f}s: {type(e).__name__}: {e}")
            raise translate_http_error(e, "whisper", "Transcription") from e

        elapsed = time.time() - start_time
        logger.info(
            f"Transcription complete: {len(result.get('segments', []))} segments, "
            f"elapsed: {elapsed:.1f}s"
        )
        return result
