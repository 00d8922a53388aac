"""
Pydantic models for the video processing pipeline.

External JSON uses camelCase (sourceRef, featuresUsed, ...); Python code
uses snake_case attribute names. Both spellings are accepted on input.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases for the public API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArtifactKind(str, Enum):
    """Kind of media artifact."""
    VIDEO = "video"
    GIF = "gif"
    IMAGE = "image"
    AUDIO = "audio"


class Provenance(str, Enum):
    """Where an artifact lives.

    - ephemeral: local file owned by the pipeline, subject to cleanup
    - durable: persisted to external storage, referenced by URI
    """
    EPHEMERAL = "ephemeral"
    DURABLE = "durable"


class ArtifactRef(BaseModel):
    """Immutable reference to a produced artifact."""

    model_config = ConfigDict(frozen=True)

    locator: str
    kind: ArtifactKind = ArtifactKind.VIDEO
    provenance: Provenance = Provenance.EPHEMERAL

    @property
    def is_durable(self) -> bool:
        """True if the artifact is persisted to external storage."""
        return self.provenance == Provenance.DURABLE

    def promoted(self, uri: str) -> "ArtifactRef":
        """Return the durable counterpart of this artifact."""
        return ArtifactRef(locator=uri, kind=self.kind, provenance=Provenance.DURABLE)


class TextToVideoOptions(CamelModel):
    """Parameters for script-to-video synthesis."""

    text: str = Field(min_length=1)
    voice: str | None = None


class ProcessingOptions(CamelModel):
    """Feature flags recognized by the processing endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    auto_crop: bool = False
    generate_from_text: TextToVideoOptions | None = None
    privacy_blur: bool = False
    remove_background: bool = False
    generate_captions: bool = False
    realtime: bool = False
    create_gif: bool = False
    generate_thumbnail: bool = False
    share_to_social: bool = False
    platforms: frozenset[str] = frozenset()
    scheduled_at: datetime | None = None


class ProcessRequest(CamelModel):
    """Single processing request. Immutable once accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    source_ref: str | None = None
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)

    @property
    def realtime(self) -> bool:
        """True if live progress streaming was requested."""
        return self.options.realtime


class ProgressEvent(BaseModel):
    """Per-stage progress event published to a live session."""

    session_id: str
    stage: str
    timestamp: datetime = Field(default_factory=datetime.now)
    preview: ArtifactRef | None = None

    def to_message(self) -> dict:
        """Render as an outbound WebSocket message."""
        return {
            "event": "progress",
            "data": {
                "feature": self.stage,
                "previewUrl": self.preview.locator if self.preview else None,
                "timestamp": self.timestamp.isoformat(),
            },
        }


class PipelineResult(CamelModel):
    """Successful processing response."""

    video_url: str
    gif_url: str | None = None
    thumbnail_url: str | None = None
    session_id: str | None = None
    features_used: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ErrorResponse(CamelModel):
    """Caller-facing error body. Carries no internal detail."""

    error: str
    correlation_id: str


class ProcessingStatus(str, Enum):
    """Status of a background processing job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingJob(CamelModel):
    """Background processing job tracked in memory."""

    job_id: str
    owner_id: str
    source_ref: str
    status: ProcessingStatus = ProcessingStatus.PENDING
    session_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    result: PipelineResult | None = None
    error: str | None = None
    correlation_id: str | None = None


class SessionInfo(CamelModel):
    """Public view of a live session."""

    session_id: str
    owner_id: str
    created_at: datetime
    subscribers: int
    active_runs: int


class DistributionRecord(CamelModel):
    """Record handed to the distribution-queue collaborator."""

    video_url: str
    owner_id: str
    platforms: list[str]
    scheduled_at: datetime
    correlation_id: str | None = None
