"""
Ephemeral artifact tracking for a single request.

A request owns one ArtifactWorkspace (a scratch directory) and one
CleanupSet. The executor allocates stage outputs from the workspace and
registers them; fan-out promotes uploaded artifacts out of the set;
the cleanup manager deletes whatever is still tracked.
"""

import itertools
import logging
import uuid
from pathlib import Path

from vidforge.models.schemas import ArtifactKind, ArtifactRef, Provenance

logger = logging.getLogger(__name__)

KIND_SUFFIXES = {
    ArtifactKind.VIDEO: ".mp4",
    ArtifactKind.GIF: ".gif",
    ArtifactKind.IMAGE: ".jpg",
    ArtifactKind.AUDIO: ".mp3",
}


class CleanupSet:
    """
    Ordered set of ephemeral artifacts pending deletion.

    Handed sequentially between phases of one request:
    executor adds, fan-out promotes, cleanup drains.

    Example:
        cleanup = CleanupSet()
        cleanup.add(ArtifactRef(locator="/work/ab12/01_autoCrop.mp4"))
        durable = cleanup.promote(ref, "https://cdn/outputs/x.mp4")
        assert ref.locator not in cleanup
    """

    def __init__(self) -> None:
        self._items: dict[str, ArtifactRef] = {}

    def add(self, ref: ArtifactRef) -> None:
        """Track an ephemeral artifact. Durable references are ignored."""
        if ref.provenance != Provenance.EPHEMERAL:
            logger.debug(f"Not tracking durable artifact: {ref.locator}")
            return
        self._items[ref.locator] = ref

    def promote(self, ref: ArtifactRef, uri: str) -> ArtifactRef:
        """
        Mark an artifact as persisted and stop tracking its local copy.

        Args:
            ref: Local artifact that was uploaded
            uri: Durable URI returned by storage

        Returns:
            Durable ArtifactRef for the uploaded artifact
        """
        self._items.pop(ref.locator, None)
        return ref.promoted(uri)

    def discard(self, locator: str) -> None:
        """Stop tracking a locator (no-op if absent)."""
        self._items.pop(locator, None)

    def pending(self) -> list[ArtifactRef]:
        """Artifacts still awaiting cleanup, in registration order."""
        return list(self._items.values())

    def __contains__(self, locator: object) -> bool:
        return locator in self._items

    def __len__(self) -> int:
        return len(self._items)


class ArtifactWorkspace:
    """
    Per-request scratch directory for stage outputs.

    Example:
        workspace = ArtifactWorkspace(settings.work_dir)
        out = workspace.allocate("autoCrop")
        # -> /data/work/3f9c0a1b/01_autoCrop.mp4
    """

    def __init__(self, root: Path, request_id: str | None = None):
        """
        Initialize workspace.

        Args:
            root: Parent directory for all request workspaces
            request_id: Directory name (random if None)
        """
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.path = Path(root) / self.request_id
        self._counter = itertools.count(1)

    def allocate(
        self,
        label: str,
        kind: ArtifactKind = ArtifactKind.VIDEO,
    ) -> ArtifactRef:
        """
        Allocate a fresh ephemeral output locator.

        The file is not created; the directory is.

        Args:
            label: Stage or task name used in the filename
            kind: Artifact kind, selects the file extension

        Returns:
            Ephemeral ArtifactRef pointing into the workspace
        """
        self.path.mkdir(parents=True, exist_ok=True)
        name = f"{next(self._counter):02d}_{label}{KIND_SUFFIXES[kind]}"
        return ArtifactRef(
            locator=str(self.path / name),
            kind=kind,
            provenance=Provenance.EPHEMERAL,
        )

    def remove_if_empty(self) -> bool:
        """Remove the workspace directory if nothing is left in it."""
        try:
            self.path.rmdir()
            return True
        except FileNotFoundError:
            return False
        except OSError:
            logger.debug(f"Workspace not empty, keeping: {self.path}")
            return False
