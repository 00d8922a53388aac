"""
Privacy blur stage: blur faces and other sensitive regions.
"""

import logging
from pathlib import Path
from typing import Any

from vidforge.models.schemas import ArtifactRef
from vidforge.services.ai_clients.base import AIClientError
from vidforge.services.ai_clients.inference_client import InferenceClient
from vidforge.services.media_engine import MediaEngine, MediaEngineError
from vidforge.services.stages.base import BaseStage, StageError, StageKind

logger = logging.getLogger(__name__)

DEFAULT_TARGETS = ["face", "license_plate"]


class PrivacyBlurStage(BaseStage):
    """Detect sensitive regions on a keyframe and blur them.

    Params:
        targets: Detection labels to blur
        min_score: Detection confidence threshold
        keyframe_at: Keyframe position in seconds
        strength: Blur radius
    """

    kind = StageKind.PRIVACY_BLUR

    def __init__(self, inference: InferenceClient, media: MediaEngine):
        self.inference = inference
        self.media = media

    async def transform(
        self,
        input_ref: ArtifactRef,
        output_ref: ArtifactRef,
        params: dict[str, Any],
    ) -> ArtifactRef:
        source = self.input_path(input_ref)
        keyframe = self.scratch_path(output_ref, "keyframe.jpg")

        try:
            await self.media.extract_thumbnail(
                source, keyframe, at_seconds=float(params.get("keyframe_at", 1.0))
            )
            detections = await self.inference.detect(
                keyframe,
                labels=params.get("targets", DEFAULT_TARGETS),
                min_score=float(params.get("min_score", 0.5)),
            )
            regions = [d.box for d in detections]
            logger.info(f"Privacy blur: {len(regions)} regions")
            await self.media.blur_regions(
                source,
                Path(output_ref.locator),
                regions,
                strength=int(params.get("strength", 20)),
            )
        except AIClientError as e:
            raise StageError(self.name, f"Detection failed: {e}", e)
        except MediaEngineError as e:
            raise StageError(self.name, f"Blur failed: {e}", e)
        finally:
            keyframe.unlink(missing_ok=True)

        return output_ref
