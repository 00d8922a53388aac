"""
Auto-crop stage: reframe a video to a target aspect ratio.
"""

import logging
from pathlib import Path
from typing import Any

from vidforge.models.schemas import ArtifactRef
from vidforge.services.media_engine import MediaEngine, MediaEngineError
from vidforge.services.stages.base import BaseStage, StageError, StageKind
from vidforge.utils.media_utils import centered_crop_box, parse_aspect_ratio

logger = logging.getLogger(__name__)


class AutoCropStage(BaseStage):
    """Center-crop to an aspect ratio (vertical 9:16 by default).

    Params:
        aspect_ratio: "W:H" target ratio
    """

    kind = StageKind.AUTO_CROP

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
            ratio = parse_aspect_ratio(params.get("aspect_ratio", "9:16"))
        except ValueError as e:
            raise StageError(self.name, str(e), e)

        try:
            width, height = await self.media.frame_size(source)
            crop_w, crop_h, x, y = centered_crop_box(width, height, ratio)
            logger.info(f"Auto-crop {width}x{height} -> {crop_w}x{crop_h} at ({x},{y})")
            await self.media.crop(source, Path(output_ref.locator), crop_w, crop_h, x, y)
        except MediaEngineError as e:
            raise StageError(self.name, f"Crop failed: {e}", e)

        return output_ref
