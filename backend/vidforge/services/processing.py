"""
Processing service: the single entry point for a request.

Order of work for one request:
1. validate and authorize (no side effects on rejection)
2. open a live session if realtime was requested
3. execute the stage chain
4. fan out (primary upload + derivatives)
5. sweep ephemeral artifacts
6. enqueue for distribution if requested
"""

import logging
from dataclasses import dataclass

from vidforge.config import Settings
from vidforge.errors import (
    InvalidRequestError,
    PrimaryUploadError,
    ProcessingFailedError,
    new_correlation_id,
)
from vidforge.logging_config import correlation_context
from vidforge.models.schemas import (
    ArtifactKind,
    ArtifactRef,
    PipelineResult,
    ProcessRequest,
    Provenance,
)
from vidforge.services.artifacts import ArtifactWorkspace, CleanupSet
from vidforge.services.authorization import Authorizer
from vidforge.services.broadcaster import ProgressBroadcaster
from vidforge.services.cleanup import CleanupManager
from vidforge.services.distribution import DistributionEnqueuer
from vidforge.services.executor import PipelineExecutor
from vidforge.services.fanout import ArtifactFanOut, FanOutResult
from vidforge.services.stages.base import StageError, StageRegistry, StageSpec, build_stage_plan
from vidforge.utils.media_utils import is_video_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcceptedRequest:
    """A request that passed validation and authorization."""

    request: ProcessRequest
    owner_id: str
    source: ArtifactRef
    plan: list[StageSpec]
    correlation_id: str


class ProcessingService:
    """
    Coordinates executor, fan-out, cleanup and distribution.

    Example:
        service = ProcessingService(settings, authorizer, registry, executor,
                                    fanout, cleanup_manager, broadcaster, enqueuer)
        result = await service.process(request, owner_id="user-1")
    """

    def __init__(
        self,
        settings: Settings,
        authorizer: Authorizer,
        registry: StageRegistry,
        executor: PipelineExecutor,
        fanout: ArtifactFanOut,
        cleanup_manager: CleanupManager,
        broadcaster: ProgressBroadcaster,
        distribution: DistributionEnqueuer | None = None,
        stage_defaults: dict[str, dict] | None = None,
    ):
        self.settings = settings
        self.authorizer = authorizer
        self.registry = registry
        self.executor = executor
        self.fanout = fanout
        self.cleanup_manager = cleanup_manager
        self.broadcaster = broadcaster
        self.distribution = distribution
        self.stage_defaults = stage_defaults or {}

    # ═══════════════════════════════════════════════════════════════════════════
    # Admission
    # ═══════════════════════════════════════════════════════════════════════════

    def resolve_source(self, source_ref: str, correlation_id: str) -> ArtifactRef:
        """
        Map a source reference onto a file in the uploads directory.

        Raises:
            InvalidRequestError: Unknown file, path escape or non-video file
        """
        uploads = self.settings.uploads_dir.resolve()
        path = (uploads / source_ref).resolve()

        if not path.is_relative_to(uploads):
            raise InvalidRequestError("sourceRef outside uploads", correlation_id)
        if not path.is_file():
            raise InvalidRequestError("sourceRef not found", correlation_id)
        if not is_video_file(path):
            raise InvalidRequestError("sourceRef is not a video", correlation_id)

        return ArtifactRef(
            locator=str(path),
            kind=ArtifactKind.VIDEO,
            provenance=Provenance.EPHEMERAL,
        )

    async def accept(
        self,
        request: ProcessRequest,
        owner_id: str | None,
        correlation_id: str | None = None,
    ) -> AcceptedRequest:
        """
        Validate and authorize a request without starting any work.

        Raises:
            InvalidRequestError: Missing or malformed request
            AuthorizationError: Caller not allowed to process
        """
        cid = correlation_id or new_correlation_id()
        with correlation_context(cid):
            return await self._accept(request, owner_id, cid)

    async def _accept(
        self,
        request: ProcessRequest,
        owner_id: str | None,
        cid: str,
    ) -> AcceptedRequest:
        options = request.options

        if not request.source_ref:
            raise InvalidRequestError("sourceRef is required", cid)
        if options.share_to_social and not options.platforms:
            raise InvalidRequestError("shareToSocial requires platforms", cid)

        await self.authorizer.authorize(owner_id, cid)

        source = self.resolve_source(request.source_ref, cid)
        plan = build_stage_plan(options, self.stage_defaults)

        missing = self.registry.missing(plan)
        if missing:
            raise InvalidRequestError(f"Unavailable features: {missing}", cid)

        logger.info(
            f"Accepted {request.source_ref} for {owner_id}: "
            f"{[spec.name for spec in plan] or 'no stages'}"
        )
        return AcceptedRequest(
            request=request,
            owner_id=owner_id,
            source=source,
            plan=plan,
            correlation_id=cid,
        )

    def open_session(self, accepted: AcceptedRequest) -> str | None:
        """
        Create a live session if the request asked for realtime progress.

        The session is created with the run already reserved, so viewers
        that join and leave before run() starts do not close it. The
        caller must hand the id to run().
        """
        if not accepted.request.realtime:
            return None
        return self.broadcaster.create_session(accepted.owner_id, reserve_run=True)

    # ═══════════════════════════════════════════════════════════════════════════
    # Processing
    # ═══════════════════════════════════════════════════════════════════════════

    async def process(
        self,
        request: ProcessRequest,
        owner_id: str | None,
        correlation_id: str | None = None,
    ) -> PipelineResult:
        """
        Run a request end to end.

        Raises:
            InvalidRequestError: Rejected before processing
            AuthorizationError: Rejected before processing
            ProcessingFailedError: A stage or the primary upload failed
        """
        accepted = await self.accept(request, owner_id, correlation_id)
        session_id = self.open_session(accepted)
        return await self.run(accepted, session_id)

    async def run(self, accepted: AcceptedRequest, session_id: str | None = None) -> PipelineResult:
        """
        Execute, fan out, clean up and distribute an accepted request.

        A session_id must come from open_session() for this request.

        Raises:
            ProcessingFailedError: A stage or the primary upload failed
        """
        with correlation_context(accepted.correlation_id):
            return await self._run(accepted, session_id)

    async def _run(self, accepted: AcceptedRequest, session_id: str | None) -> PipelineResult:
        cid = accepted.correlation_id
        options = accepted.request.options
        workspace = ArtifactWorkspace(self.settings.work_dir, cid)
        cleanup = CleanupSet()
        fanout_result: FanOutResult | None = None
        status = "failed"

        if session_id is not None:
            self.broadcaster.attach_run(session_id, reserved=True)

        try:
            try:
                execution = await self.executor.execute(
                    accepted.source,
                    accepted.plan,
                    workspace=workspace,
                    cleanup=cleanup,
                    session_id=session_id,
                )
            except StageError as e:
                logger.error(f"Stage {e.stage_name} failed: {e.message}", exc_info=e.cause)
                raise ProcessingFailedError(f"Stage {e.stage_name} failed", e, cid) from e

            try:
                fanout_result = await self.fanout.finalize(
                    execution.final_ref, options, workspace, cleanup
                )
            except PrimaryUploadError as e:
                logger.error(str(e), exc_info=e.cause)
                raise ProcessingFailedError("Primary upload failed", e, cid) from e

            status = "completed"
        finally:
            durable = fanout_result.durable_refs if fanout_result else []
            local_copies = fanout_result.local_copies if fanout_result else []
            await self.cleanup_manager.sweep(
                cleanup, accepted.source, durable, workspace, local_copies
            )
            if session_id is not None:
                self.broadcaster.release_run(session_id, status)

        warnings = list(fanout_result.warnings)
        if options.share_to_social:
            warning = await self._distribute(accepted, fanout_result.video)
            if warning:
                warnings.append(warning)

        logger.info(f"Done: {execution.executed}, warnings={warnings}")
        return PipelineResult(
            video_url=fanout_result.video.locator,
            gif_url=fanout_result.gif.locator if fanout_result.gif else None,
            thumbnail_url=fanout_result.thumbnail.locator if fanout_result.thumbnail else None,
            session_id=session_id,
            features_used=execution.executed,
            warnings=warnings,
        )

    async def _distribute(self, accepted: AcceptedRequest, video: ArtifactRef) -> str | None:
        if self.distribution is None:
            logger.warning("Distribution not configured")
            return "distribution not configured"
        options = accepted.request.options
        return await self.distribution.enqueue(
            video,
            accepted.owner_id,
            options.platforms,
            options.scheduled_at,
            correlation_id=accepted.correlation_id,
        )
