"""
AI service clients.

- ClaudeClient: narration script generation (Anthropic API)
- WhisperClient: speech-to-text for captions
- InferenceClient: object/face detection for privacy blur
- SpeechClient: text-to-speech for script-to-video

Usage:
    from vidforge.services.ai_clients import WhisperClient

    async with WhisperClient.from_settings(settings) as client:
        result = await client.transcribe(audio_path)
"""

from vidforge.services.ai_clients.base import (
    AIClientConnectionError,
    AIClientError,
    AIClientResponseError,
    AIClientTimeoutError,
    ScriptWriter,
)
from vidforge.services.ai_clients.claude_client import ClaudeClient
from vidforge.services.ai_clients.inference_client import Detection, InferenceClient
from vidforge.services.ai_clients.speech_client import SpeechClient
from vidforge.services.ai_clients.whisper_client import WhisperClient

__all__ = [
    # Protocols
    "ScriptWriter",
    # Errors
    "AIClientError",
    "AIClientTimeoutError",
    "AIClientConnectionError",
    "AIClientResponseError",
    # Implementations
    "ClaudeClient",
    "Detection",
    "InferenceClient",
    "SpeechClient",
    "WhisperClient",
]
