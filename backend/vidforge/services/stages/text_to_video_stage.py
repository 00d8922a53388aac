"""
Script-to-video stage.

Turns a short brief into a narration script (LLM), synthesizes speech
(TTS) and lays the narration over the current chain output, which
serves as the visual background.
"""

import logging
from pathlib import Path
from typing import Any

from vidforge.models.schemas import ArtifactRef
from vidforge.services.ai_clients.base import AIClientError, ScriptWriter
from vidforge.services.ai_clients.speech_client import SpeechClient
from vidforge.services.media_engine import MediaEngine, MediaEngineError
from vidforge.services.stages.base import BaseStage, StageError, StageKind

logger = logging.getLogger(__name__)


class TextToVideoStage(BaseStage):
    """Generate a narrated video from a text brief.

    Params:
        text: Brief or script source (required)
        voice: TTS voice name (optional)
        max_words: Script word budget (optional, writer default otherwise)
    """

    kind = StageKind.TEXT_TO_VIDEO

    def __init__(
        self,
        script_writer: ScriptWriter,
        speech: SpeechClient,
        media: MediaEngine,
    ):
        self.script_writer = script_writer
        self.speech = speech
        self.media = media

    async def transform(
        self,
        input_ref: ArtifactRef,
        output_ref: ArtifactRef,
        params: dict[str, Any],
    ) -> ArtifactRef:
        text = str(params.get("text", "")).strip()
        if not text:
            raise StageError(self.name, "No text provided")

        background = self.input_path(input_ref)
        narration = self.scratch_path(output_ref, "narration.mp3")

        try:
            script = await self.script_writer.write_script(text, params.get("max_words"))
            if not script:
                raise StageError(self.name, "Script generation returned empty text")
            logger.info(f"Script generated: {len(script.split())} words")

            await self.speech.synthesize(script, narration, voice=params.get("voice"))
            await self.media.compose_narration(background, narration, Path(output_ref.locator))
        except AIClientError as e:
            raise StageError(self.name, f"AI service failed: {e}", e)
        except MediaEngineError as e:
            raise StageError(self.name, f"Compositing failed: {e}", e)
        finally:
            narration.unlink(missing_ok=True)

        return output_ref
