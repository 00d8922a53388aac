"""
Caption burn-in stage.

Extracts the audio track, transcribes it with Whisper, renders SRT and
burns the subtitles into the frames.
"""

import logging
from pathlib import Path
from typing import Any

from vidforge.models.schemas import ArtifactRef
from vidforge.services.ai_clients.base import AIClientError
from vidforge.services.ai_clients.whisper_client import WhisperClient
from vidforge.services.media_engine import MediaEngine, MediaEngineError
from vidforge.services.stages.base import BaseStage, StageError, StageKind
from vidforge.utils.subtitles import write_srt

logger = logging.getLogger(__name__)


class CaptionBurnStage(BaseStage):
    """Transcribe speech and burn captions into the video.

    Params:
        language: Transcription language (default from settings)
        style: ASS force_style string, e.g. "FontSize=24,Outline=2"
    """

    kind = StageKind.CAPTION_BURN

    def __init__(self, whisper: WhisperClient, media: MediaEngine):
        self.whisper = whisper
        self.media = media

    async def transform(
        self,
        input_ref: ArtifactRef,
        output_ref: ArtifactRef,
        params: dict[str, Any],
    ) -> ArtifactRef:
        source = self.input_path(input_ref)
        audio = self.scratch_path(output_ref, "audio.mp3")
        subtitles = self.scratch_path(output_ref, "captions.srt")

        try:
            await self.media.extract_audio(source, audio)
            result = await self.whisper.transcribe(audio, language=params.get("language"))
            segments = result.get("segments", [])
            if not segments:
                logger.warning(f"No speech detected in {source.name}, burning empty captions")
            write_srt(segments, subtitles)
            await self.media.burn_subtitles(
                source, Path(output_ref.locator), subtitles, style=params.get("style")
            )
        except AIClientError as e:
            raise StageError(self.name, f"Transcription failed: {e}", e)
        except MediaEngineError as e:
            raise StageError(self.name, f"Caption burn failed: {e}", e)
        finally:
            audio.unlink(missing_ok=True)
            subtitles.unlink(missing_ok=True)

        return output_ref
