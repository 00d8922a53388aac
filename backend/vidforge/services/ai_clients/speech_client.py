"""
Text-to-speech client.

Calls an OpenAI-compatible /v1/audio/speech endpoint and stores the
returned audio next to the stage output.
"""

import logging
from pathlib import Path

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import RETRY_DECORATOR, translate_http_error

logger = logging.getLogger(__name__)


class SpeechClient:
    """
    Async HTTP client for speech synthesis.

    Example:
        async with SpeechClient.from_settings(settings) as client:
            await client.synthesize("Hello there", Path("narration.mp3"))
    """

    def __init__(self, base_url: str, default_voice: str = "alloy", timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.default_voice = default_voice
        self.http_client = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpeechClient":
        """Create SpeechClient from application settings."""
        return cls(settings.speech_url, timeout=max(settings.http_timeout, 120.0))

    async def __aenter__(self) -> "SpeechClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    @RETRY_DECORATOR
    async def _post_speech(self, text: str, voice: str) -> httpx.Response:
        return await self.http_client.post(
            f"{self.base_url}/v1/audio/speech",
            json={"input": text, "voice": voice, "response_format": "mp3"},
        )

    async def synthesize(
        self,
        text: str,
        output_path: Path,
        voice: str | None = None,
    ) -> Path:
        """
        Synthesize speech and write it to output_path.

        Raises:
            AIClientError: If the service call fails
        """
        voice = voice or self.default_voice
        try:
            response = await self._post_speech(text, voice)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Speech synthesis failed: {e}")
            raise translate_http_error(e, "speech", "Speech synthesis") from e

        output_path = Path(output_path)
        output_path.write_bytes(response.content)
        logger.info(
            f"Speech synthesized: {len(text)} chars -> {output_path.name} "
            f"({len(response.content) / 1024:.0f} KB)"
        )
        return output_path
