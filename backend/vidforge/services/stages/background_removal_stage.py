"""
Background removal stage (chroma key).
"""

from pathlib import Path
from typing import Any

from vidforge.models.schemas import ArtifactRef
from vidforge.services.media_engine import MediaEngine, MediaEngineError
from vidforge.services.stages.base import BaseStage, StageError, StageKind


class BackgroundRemovalStage(BaseStage):
    """Key out a solid background color and replace it.

    Params:
        key_color: Color to remove (ffmpeg color syntax)
        similarity: chromakey similarity (0.01-1.0)
        blend: chromakey blend (0.0-1.0)
        background: Replacement color
    """

    kind = StageKind.BACKGROUND_REMOVAL

    def __init__(self, media: MediaEngine):
        self.media = media

    async def transform(
        self,
        input_ref: ArtifactRef,
        output_ref: ArtifactRef,
        params: dict[str, Any],
    ) -> ArtifactRef:
        source = self.input_path(input_ref)
        try:
            await self.media.chroma_key(
                source,
                Path(output_ref.locator),
                key_color=params.get("key_color", "0x00FF00"),
                similarity=float(params.get("similarity", 0.3)),
                blend=float(params.get("blend", 0.1)),
                background=params.get("background", "black"),
            )
        except MediaEngineError as e:
            raise StageError(self.name, f"Chroma key failed: {e}", e)
        return output_ref
