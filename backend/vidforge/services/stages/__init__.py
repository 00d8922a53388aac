"""
Transform stages for the processing chain.

Usage:
    from vidforge.services.stages import build_stage_plan, create_default_stages

    registry = create_default_stages(media, whisper, inference, speech, script_writer)
    plan = build_stage_plan(request.options)

Adding new stages:
    1. Add a StageKind member and place it in STAGE_ORDER
    2. Add a selector to STAGE_SELECTORS mapping options to params
    3. Implement a BaseStage subclass and register it in create_default_stages()
"""

import logging

from vidforge.services.ai_clients import (
    InferenceClient,
    ScriptWriter,
    SpeechClient,
    WhisperClient,
)
from vidforge.services.media_engine import MediaEngine
from vidforge.services.stages.autocrop_stage import AutoCropStage
from vidforge.services.stages.background_removal_stage import BackgroundRemovalStage
from vidforge.services.stages.base import (
    STAGE_ORDER,
    BaseStage,
    StageError,
    StageKind,
    StageRegistry,
    StageSpec,
    build_stage_plan,
)
from vidforge.services.stages.caption_stage import CaptionBurnStage
from vidforge.services.stages.privacy_blur_stage import PrivacyBlurStage
from vidforge.services.stages.text_to_video_stage import TextToVideoStage

logger = logging.getLogger(__name__)

__all__ = [
    # Base classes
    "BaseStage",
    "StageError",
    "StageKind",
    "StageRegistry",
    "StageSpec",
    "STAGE_ORDER",
    "build_stage_plan",
    # Stage implementations
    "AutoCropStage",
    "TextToVideoStage",
    "PrivacyBlurStage",
    "BackgroundRemovalStage",
    "CaptionBurnStage",
    # Factory function
    "create_default_stages",
]


def create_default_stages(
    media: MediaEngine,
    whisper: WhisperClient,
    inference: InferenceClient,
    speech: SpeechClient,
    script_writer: ScriptWriter | None = None,
    registry: StageRegistry | None = None,
) -> StageRegistry:
    """Create and register all stage adapters.

    TextToVideoStage needs a script writer; without one the variant stays
    unregistered and requests asking for it are rejected.

    Returns:
        Registry with all available stages registered
    """
    if registry is None:
        registry = StageRegistry()

    registry.register(AutoCropStage(media))
    if script_writer is not None:
        registry.register(TextToVideoStage(script_writer, speech, media))
    else:
        logger.warning("No LLM client configured, generateFromText disabled")
    registry.register(PrivacyBlurStage(inference, media))
    registry.register(BackgroundRemovalStage(media))
    registry.register(CaptionBurnStage(whisper, media))

    return registry
