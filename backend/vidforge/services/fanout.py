"""
Artifact fan-out after the transform chain.

Runs the primary upload and the requested derivatives (GIF, thumbnail)
concurrently. Derivative failures degrade gracefully to a warning; a
failed primary upload fails the request.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from vidforge.errors import PrimaryUploadError
from vidforge.models.schemas import ArtifactKind, ArtifactRef, ProcessingOptions
from vidforge.services.artifacts import ArtifactWorkspace, CleanupSet
from vidforge.services.media_engine import MediaEngine
from vidforge.services.storage import StorageBackend

logger = logging.getLogger(__name__)

# (input_path, output_path) -> output_path
Deriver = Callable[[Path, Path], Awaitable[Path]]


@dataclass(frozen=True)
class Upload:
    """Local artifact and the durable copy made of it."""

    local: ArtifactRef
    durable: ArtifactRef


@dataclass
class FanOutResult:
    """Settled fan-out outcome.

    Attributes:
        video: Durable primary video
        gif: Durable GIF, None if not requested or failed
        thumbnail: Durable thumbnail, None if not requested or failed
        warnings: One entry per failed derivative
        local_copies: Local files whose content is now durable
    """

    video: ArtifactRef
    gif: ArtifactRef | None = None
    thumbnail: ArtifactRef | None = None
    warnings: list[str] = field(default_factory=list)
    local_copies: list[ArtifactRef] = field(default_factory=list)

    @property
    def durable_refs(self) -> list[ArtifactRef]:
        return [ref for ref in (self.video, self.gif, self.thumbnail) if ref is not None]


class ArtifactFanOut:
    """
    Concurrent primary upload plus derivative generation.

    Example:
        fanout = ArtifactFanOut(storage, media)
        result = await fanout.finalize(final_ref, options, workspace, cleanup)
        result.video.locator  # durable URI
    """

    def __init__(
        self,
        storage: StorageBackend,
        media: MediaEngine,
        output_folder: str = "outputs",
        gif_params: dict | None = None,
        thumbnail_at: float = 1.0,
    ):
        self.storage = storage
        self.media = media
        self.output_folder = output_folder
        self.gif_params = gif_params or {}
        self.thumbnail_at = thumbnail_at

    async def finalize(
        self,
        final_ref: ArtifactRef,
        options: ProcessingOptions,
        workspace: ArtifactWorkspace,
        cleanup: CleanupSet,
    ) -> FanOutResult:
        """
        Upload the final video and produce requested derivatives.

        All tasks start together and are awaited until every one settles;
        no failure cancels another task.

        Raises:
            PrimaryUploadError: If the final video could not be persisted
        """
        tasks: dict[str, Awaitable[Upload]] = {
            "video": self._upload(final_ref, cleanup),
        }
        if options.create_gif:
            tasks["gif"] = self._derive(
                "gif", ArtifactKind.GIF, self._make_gif, final_ref, workspace, cleanup
            )
        if options.generate_thumbnail:
            tasks["thumbnail"] = self._derive(
                "thumbnail", ArtifactKind.IMAGE, self._make_thumbnail, final_ref, workspace, cleanup
            )

        logger.info(f"Fan-out: {list(tasks)}")
        results = await asyncio.gather(*tasks.values(), return_exceptions=True)
        outcome = dict(zip(tasks, results))

        for value in outcome.values():
            if isinstance(value, BaseException) and not isinstance(value, Exception):
                raise value

        uploads = [value for value in outcome.values() if isinstance(value, Upload)]
        video = outcome["video"]
        if isinstance(video, Exception):
            logger.error(f"Primary upload failed: {type(video).__name__}: {video}")
            await self._discard_orphans(uploads, cleanup)
            raise PrimaryUploadError(final_ref.locator, video) from video

        result = FanOutResult(
            video=video.durable,
            local_copies=[upload.local for upload in uploads],
        )
        for name in ("gif", "thumbnail"):
            if name not in outcome:
                continue
            value = outcome[name]
            if isinstance(value, Exception):
                logger.warning(f"Derivative {name} failed: {type(value).__name__}: {value}")
                result.warnings.append(f"{name} generation failed")
            else:
                setattr(result, name, value.durable)

        return result

    async def _upload(self, ref: ArtifactRef, cleanup: CleanupSet) -> Upload:
        """Persist a local artifact and promote it out of the cleanup set."""
        uri = await self.storage.put(Path(ref.locator), self.output_folder)
        return Upload(local=ref, durable=cleanup.promote(ref, uri))

    async def _derive(
        self,
        label: str,
        kind: ArtifactKind,
        deriver: Deriver,
        source: ArtifactRef,
        workspace: ArtifactWorkspace,
        cleanup: CleanupSet,
    ) -> Upload:
        """Derive a secondary artifact from the final video and upload it."""
        output = workspace.allocate(label, kind)
        try:
            await deriver(Path(source.locator), Path(output.locator))
        finally:
            if Path(output.locator).exists():
                cleanup.add(output)
        return await self._upload(output, cleanup)

    async def _discard_orphans(self, uploads: list[Upload], cleanup: CleanupSet) -> None:
        """Undo derivative uploads of a failed request; local copies go back to cleanup."""
        for upload in uploads:
            cleanup.add(upload.local)
            try:
                await self.storage.delete(upload.durable.locator)
            except Exception as e:
                logger.warning(
                    f"Could not delete orphaned {upload.durable.kind.value} {upload.durable.locator}: {e}"
                )

    async def _make_gif(self, input_path: Path, output_path: Path) -> Path:
        return await self.media.make_gif(input_path, output_path, **self.gif_params)

    async def _make_thumbnail(self, input_path: Path, output_path: Path) -> Path:
        return await self.media.extract_thumbnail(input_path, output_path, self.thumbnail_at)
