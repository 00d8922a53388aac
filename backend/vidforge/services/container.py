"""
Shared service wiring.

The container is built once per application (FastAPI lifespan) and holds
every long-lived collaborator. Tests pass fakes through the keyword
overrides instead of patching modules.
"""

import logging

from vidforge.config import Settings, load_stage_defaults
from vidforge.services.ai_clients import (
    ClaudeClient,
    InferenceClient,
    ScriptWriter,
    SpeechClient,
    WhisperClient,
)
from vidforge.services.authorization import (
    Authorizer,
    EntitlementProvider,
    HttpEntitlementProvider,
    StaticEntitlementProvider,
)
from vidforge.services.broadcaster import ProgressBroadcaster
from vidforge.services.cleanup import CleanupManager
from vidforge.services.distribution import (
    DistributionEnqueuer,
    DistributionQueue,
    HttpDistributionQueue,
)
from vidforge.services.executor import PipelineExecutor
from vidforge.services.fanout import ArtifactFanOut
from vidforge.services.job_manager import JobManager
from vidforge.services.media_engine import MediaEngine
from vidforge.services.processing import ProcessingService
from vidforge.services.stages import StageRegistry, create_default_stages
from vidforge.services.storage import StorageBackend, create_storage

logger = logging.getLogger(__name__)


def _create_llm_client(settings: Settings) -> ScriptWriter | None:
    try:
        return ClaudeClient.from_settings(settings)
    except ValueError as e:
        logger.warning(f"LLM client unavailable: {e}")
        return None


def _create_entitlements(settings: Settings) -> EntitlementProvider:
    if settings.entitlements_backend == "http":
        return HttpEntitlementProvider.from_settings(settings)
    if settings.entitlements_backend == "static":
        return StaticEntitlementProvider.from_settings(settings)
    raise ValueError(f"Unknown entitlements backend: {settings.entitlements_backend}")


class ServiceContainer:
    """
    Long-lived services for one application instance.

    Example:
        services = ServiceContainer(settings)
        result = await services.processing.process(request, "user-1")
        await services.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        storage: StorageBackend | None = None,
        media: MediaEngine | None = None,
        registry: StageRegistry | None = None,
        entitlements: EntitlementProvider | None = None,
        distribution_queue: DistributionQueue | None = None,
        whisper: WhisperClient | None = None,
        inference: InferenceClient | None = None,
        speech: SpeechClient | None = None,
        llm: ScriptWriter | None = None,
        stage_defaults: dict | None = None,
    ):
        """
        Build services from settings; keyword arguments replace defaults.

        Args:
            settings: Application settings
            storage: Durable storage backend
            media: ffmpeg wrapper
            registry: Pre-built stage registry (skips adapter construction)
            entitlements: Tier lookup collaborator
            distribution_queue: Distribution-queue collaborator
            whisper: Speech-to-text client
            inference: Detection client
            speech: Text-to-speech client
            llm: Script-writing LLM client
            stage_defaults: Default stage parameters (else config/stages.yaml)
        """
        self.settings = settings

        self.media = media or MediaEngine.from_settings(settings)
        self.storage = storage or create_storage(settings)
        self.whisper = whisper or WhisperClient.from_settings(settings)
        self.inference = inference or InferenceClient.from_settings(settings)
        self.speech = speech or SpeechClient.from_settings(settings)
        self.llm = llm if llm is not None else _create_llm_client(settings)

        if registry is None:
            registry = create_default_stages(
                self.media, self.whisper, self.inference, self.speech, self.llm
            )
        self.registry = registry

        self.entitlements = entitlements or _create_entitlements(settings)
        self.distribution_queue = distribution_queue or HttpDistributionQueue.from_settings(settings)

        self.broadcaster = ProgressBroadcaster(
            subscriber_queue_size=settings.subscriber_queue_size,
            session_ttl_seconds=settings.session_ttl_seconds,
        )
        self.job_manager = JobManager()

        if stage_defaults is None:
            stage_defaults = load_stage_defaults(settings)
        thumbnail_defaults = stage_defaults.get("generateThumbnail") or {}

        self.processing = ProcessingService(
            settings=settings,
            authorizer=Authorizer(self.entitlements, settings.elevated_tiers),
            registry=self.registry,
            executor=PipelineExecutor(
                self.registry,
                broadcaster=self.broadcaster,
                storage=self.storage,
                preview_folder=settings.preview_folder,
            ),
            fanout=ArtifactFanOut(
                self.storage,
                self.media,
                output_folder=settings.output_folder,
                gif_params=stage_defaults.get("createGif"),
                thumbnail_at=float(thumbnail_defaults.get("at_seconds", 1.0)),
            ),
            cleanup_manager=CleanupManager(enabled=settings.cleanup_artifacts),
            broadcaster=self.broadcaster,
            distribution=DistributionEnqueuer(self.distribution_queue),
            stage_defaults=stage_defaults,
        )

        logger.info(f"Services ready: stages={len(self.registry)}, storage={type(self.storage).__name__}")

    async def check_services(self) -> dict:
        """Health of the HTTP collaborators used by stages."""
        return {
            "whisper": await self.whisper.check_health(),
            "inference": await self.inference.check_health(),
            "llm": self.llm is not None,
        }

    async def aclose(self) -> None:
        """Close every collaborator that holds a connection pool."""
        for resource in (
            self.storage,
            self.whisper,
            self.inference,
            self.speech,
            self.llm,
            self.entitlements,
            self.distribution_queue,
        ):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
