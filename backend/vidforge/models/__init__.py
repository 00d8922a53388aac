"""
Pydantic models for the video processing pipeline.
"""

from vidforge.models.schemas import (
    ArtifactKind,
    ArtifactRef,
    DistributionRecord,
    ErrorResponse,
    PipelineResult,
    ProcessingJob,
    ProcessingOptions,
    ProcessingStatus,
    ProcessRequest,
    ProgressEvent,
    Provenance,
    SessionInfo,
    TextToVideoOptions,
)

__all__ = [
    "ArtifactKind",
    "ArtifactRef",
    "DistributionRecord",
    "ErrorResponse",
    "PipelineResult",
    "ProcessingJob",
    "ProcessingOptions",
    "ProcessingStatus",
    "ProcessRequest",
    "ProgressEvent",
    "Provenance",
    "SessionInfo",
    "TextToVideoOptions",
]
