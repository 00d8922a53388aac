"""
Cleanup of ephemeral artifacts after fan-out.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from vidforge.models.schemas import ArtifactRef
from vidforge.services.artifacts import ArtifactWorkspace, CleanupSet

logger = logging.getLogger(__name__)


class CleanupManager:
    """
    Best-effort deletion of intermediate artifacts.

    Example:
        manager = CleanupManager(enabled=settings.cleanup_artifacts)
        deleted = await manager.sweep(
            cleanup, source, fanout.durable_refs, workspace, fanout.local_copies
        )
    """

    def __init__(self, enabled: bool = True):
        """
        Args:
            enabled: Deployment switch; when off, sweep() keeps everything
        """
        self.enabled = enabled

    async def sweep(
        self,
        cleanup: CleanupSet,
        source: ArtifactRef,
        durable_refs: Iterable[ArtifactRef] = (),
        workspace: ArtifactWorkspace | None = None,
        local_copies: Iterable[ArtifactRef] = (),
    ) -> list[str]:
        """
        Delete every tracked artifact that is neither the source nor durable.

        Each swept locator leaves the set whether or not deletion
        succeeded, so no artifact is ever deleted twice. Local copies of
        uploaded artifacts are deleted afterwards: they left the set when
        they were promoted, and their content now lives in storage.
        Failures are logged and never raised.

        Args:
            cleanup: Request cleanup set
            source: Original input, never deleted
            durable_refs: References returned by fan-out, never deleted
            workspace: Request workspace, removed if left empty
            local_copies: Local files already uploaded by fan-out

        Returns:
            Locators that were deleted
        """
        if not self.enabled:
            logger.debug(f"Cleanup disabled, keeping {len(cleanup)} artifacts")
            return []

        protected = {source.locator} | {ref.locator for ref in durable_refs}
        deleted: list[str] = []

        for ref in cleanup.pending():
            cleanup.discard(ref.locator)
            if ref.locator not in protected and await self._unlink(ref):
                deleted.append(ref.locator)

        for ref in local_copies:
            if ref.is_durable or ref.locator in protected or ref.locator in deleted:
                continue
            if await self._unlink(ref):
                deleted.append(ref.locator)

        if workspace is not None:
            workspace.remove_if_empty()

        logger.info(f"Cleanup: {len(deleted)} artifacts removed")
        return deleted

    async def _unlink(self, ref: ArtifactRef) -> bool:
        try:
            await asyncio.to_thread(Path(ref.locator).unlink, missing_ok=True)
            return True
        except OSError as e:
            logger.warning(f"Cleanup failed for {ref.locator}: {e}")
            return False
