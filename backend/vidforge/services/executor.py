"""
Pipeline executor: runs the stage chain.

Stages run strictly one after another; each receives the previous
stage's output (the source for the first). Every produced artifact is
registered in the request's CleanupSet. When a session id is given, each
completed stage uploads a preview and publishes a progress event before
the next stage starts.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from vidforge.models.schemas import ArtifactRef, ProgressEvent
from vidforge.services.artifacts import ArtifactWorkspace, CleanupSet
from vidforge.services.broadcaster import ProgressBroadcaster
from vidforge.services.stages.base import StageError, StageRegistry, StageSpec
from vidforge.services.storage import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of a completed chain.

    Attributes:
        final_ref: Last chain output (the source if no stages ran)
        executed: Names of the stages that ran, in order
    """

    final_ref: ArtifactRef
    executed: list[str] = field(default_factory=list)


class PipelineExecutor:
    """
    Sequential stage runner with output chaining.

    Example:
        executor = PipelineExecutor(registry, broadcaster, storage)
        result = await executor.execute(
            source, plan, workspace=workspace, cleanup=cleanup, session_id=sid
        )
        result.final_ref, result.executed
    """

    def __init__(
        self,
        registry: StageRegistry,
        broadcaster: ProgressBroadcaster | None = None,
        storage: StorageBackend | None = None,
        preview_folder: str = "previews",
    ):
        """
        Initialize executor.

        Args:
            registry: Stage adapters by variant
            broadcaster: Progress broadcaster (None disables progress)
            storage: Storage used for preview uploads (None disables previews)
            preview_folder: Storage folder for intermediate previews
        """
        self.registry = registry
        self.broadcaster = broadcaster
        self.storage = storage
        self.preview_folder = preview_folder

    async def execute(
        self,
        source: ArtifactRef,
        stages: list[StageSpec],
        workspace: ArtifactWorkspace,
        cleanup: CleanupSet,
        session_id: str | None = None,
    ) -> ExecutionResult:
        """
        Run stages in order, chaining outputs.

        Args:
            source: Input artifact for the first stage
            stages: Ordered stage plan (may be empty)
            workspace: Request workspace for output allocation
            cleanup: Request cleanup set; receives every produced artifact
            session_id: Live session to report progress to

        Returns:
            ExecutionResult with the final artifact and executed stage names

        Raises:
            StageError: On the first failing stage; later stages never run
        """
        current = source
        executed: list[str] = []

        if not stages:
            logger.info("Empty stage plan, passing source through")
            return ExecutionResult(final_ref=current, executed=executed)

        logger.info(f"Executing {len(stages)} stages: {[s.name for s in stages]}")

        for spec in stages:
            output = workspace.allocate(spec.name, current.kind)
            started = time.time()

            try:
                stage = self.registry.get(spec.kind)
                produced = await stage.transform(current, output, spec.params)
            except StageError:
                self._track_partial(output, cleanup)
                logger.error(f"Stage {spec.name} failed after {time.time() - started:.1f}s")
                raise
            except Exception as e:
                self._track_partial(output, cleanup)
                logger.error(f"Stage {spec.name} crashed: {type(e).__name__}: {e}")
                raise StageError(spec.name, f"{type(e).__name__}: {e}", e) from e

            cleanup.add(produced)
            current = produced
            executed.append(spec.name)
            logger.info(f"Stage {spec.name} done in {time.time() - started:.1f}s")

            if session_id is not None:
                await self._report_progress(session_id, spec.name, current)

        return ExecutionResult(final_ref=current, executed=executed)

    async def _report_progress(self, session_id: str, stage_name: str, current: ArtifactRef) -> None:
        """Upload a preview of the intermediate and publish a progress event."""
        if self.broadcaster is None:
            return

        preview = None
        if self.storage is not None:
            try:
                uri = await self.storage.put(Path(current.locator), self.preview_folder)
                preview = current.promoted(uri)
            except Exception as e:
                logger.warning(f"Preview upload for {stage_name} failed: {e}")

        self.broadcaster.publish(
            session_id,
            ProgressEvent(session_id=session_id, stage=stage_name, preview=preview),
        )

    @staticmethod
    def _track_partial(output: ArtifactRef, cleanup: CleanupSet) -> None:
        """Register a half-written output so cleanup can remove it."""
        if Path(output.locator).exists():
            cleanup.add(output)
