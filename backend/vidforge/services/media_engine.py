"""
Media engine backed by ffmpeg.

All codec and filter work (crop, chroma-key, region blur, subtitle
burn-in, narration compositing, GIF and thumbnail derivation) is
delegated to the ffmpeg binary. Commands run in a thread pool so the
event loop stays responsive while ffmpeg works.
"""

import asyncio
import logging
import subprocess
from pathlib import Path

from vidforge.config import Settings
from vidforge.utils.media_utils import get_frame_size, get_media_duration

logger = logging.getLogger(__name__)


class MediaEngineError(Exception):
    """ffmpeg failed or produced no output.

    Attributes:
        operation: Engine operation that failed
        returncode: ffmpeg exit code (None if it never ran)
        stderr: Tail of ffmpeg stderr
    """

    def __init__(
        self,
        operation: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{operation}: {message}")


def _escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


class MediaEngine:
    """
    ffmpeg wrapper used by stage adapters and fan-out derivatives.

    Example:
        engine = MediaEngine.from_settings(settings)
        await engine.crop(src, dst, width=608, height=1080, x=656, y=0)
        await engine.make_gif(dst, gif_path)
    """

    def __init__(self, binary: str = "ffmpeg", timeout: int = 900):
        """
        Initialize media engine.

        Args:
            binary: ffmpeg executable
            timeout: Per-command timeout in seconds
        """
        self.binary = binary
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaEngine":
        """Create MediaEngine from application settings."""
        return cls(timeout=settings.ffmpeg_timeout)

    # ═══════════════════════════════════════════════════════════════════════════
    # Probing
    # ═══════════════════════════════════════════════════════════════════════════

    async def frame_size(self, video_path: Path) -> tuple[int, int]:
        """Get (width, height) of a video.

        Raises:
            MediaEngineError: If ffprobe cannot read the file
        """
        size = await asyncio.to_thread(get_frame_size, Path(video_path))
        if size is None:
            raise MediaEngineError("probe", f"Cannot read frame size of {video_path}")
        return size

    async def duration(self, media_path: Path) -> float | None:
        """Get media duration in seconds (None if unknown)."""
        return await asyncio.to_thread(get_media_duration, Path(media_path))

    # ═══════════════════════════════════════════════════════════════════════════
    # Transform operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def crop(
        self,
        input_path: Path,
        output_path: Path,
        width: int,
        height: int,
        x: int,
        y: int,
    ) -> Path:
        """Crop every frame to the given box."""
        return await self._run(
            "crop",
            [
                "-i", str(input_path),
                "-vf", f"crop={width}:{height}:{x}:{y}",
                "-c:a", "copy",
            ],
            output_path,
        )

    async def chroma_key(
        self,
        input_path: Path,
        output_path: Path,
        key_color: str = "0x00FF00",
        similarity: float = 0.3,
        blend: float = 0.1,
        background: str = "black",
    ) -> Path:
        """Replace a keyed background color with a solid background."""
        width, height = await self.frame_size(input_path)
        graph = (
            f"[0:v]chromakey={key_color}:{similarity}:{blend}[fg];"
            f"color=c={background}:s={width}x{height}[bg];"
            f"[bg][fg]overlay=shortest=1[out]"
        )
        return await self._run(
            "chroma_key",
            [
                "-i", str(input_path),
                "-filter_complex", graph,
                "-map", "[out]",
                "-map", "0:a?",
                "-c:a", "copy",
            ],
            output_path,
        )

    async def blur_regions(
        self,
        input_path: Path,
        output_path: Path,
        regions: list[tuple[int, int, int, int]],
        strength: int = 20,
    ) -> Path:
        """
        Blur rectangular regions of every frame.

        With no regions the video is re-muxed unchanged.

        Args:
            input_path: Source video
            output_path: Destination video
            regions: (x, y, width, height) boxes
            strength: boxblur radius
        """
        if not regions:
            return await self._run(
                "blur_regions",
                ["-i", str(input_path), "-c", "copy"],
                output_path,
            )

        parts = []
        current = "0:v"
        for i, (x, y, w, h) in enumerate(regions):
            # boxblur radius may not exceed half the region size
            radius = max(1, min(strength, w // 2, h // 2))
            parts.append(
                f"[{current}]split[base{i}][src{i}];"
                f"[src{i}]crop={w}:{h}:{x}:{y},boxblur={radius}[blur{i}];"
                f"[base{i}][blur{i}]overlay={x}:{y}[v{i}]"
            )
            current = f"v{i}"

        return await self._run(
            "blur_regions",
            [
                "-i", str(input_path),
                "-filter_complex", ";".join(parts),
                "-map", f"[{current}]",
                "-map", "0:a?",
                "-c:a", "copy",
            ],
            output_path,
        )

    async def burn_subtitles(
        self,
        input_path: Path,
        output_path: Path,
        subtitles_path: Path,
        style: str | None = None,
    ) -> Path:
        """Render an SRT file onto the video frames."""
        vf = f"subtitles='{_escape_filter_path(subtitles_path)}'"
        if style:
            vf += f":force_style='{style}'"
        return await self._run(
            "burn_subtitles",
            ["-i", str(input_path), "-vf", vf, "-c:a", "copy"],
            output_path,
        )

    async def extract_audio(self, input_path: Path, output_path: Path) -> Path:
        """Extract the audio track as MP3 (speech quality)."""
        return await self._run(
            "extract_audio",
            [
                "-i", str(input_path),
                "-vn",                    # No video
                "-acodec", "libmp3lame",  # MP3 codec
                "-ab", "128k",            # Bitrate 128kbps (good for speech)
                "-ar", "44100",           # Sample rate
            ],
            output_path,
        )

    async def compose_narration(
        self,
        background_path: Path,
        audio_path: Path,
        output_path: Path,
    ) -> Path:
        """Loop a background video under a narration track."""
        return await self._run(
            "compose_narration",
            [
                "-stream_loop", "-1",
                "-i", str(background_path),
                "-i", str(audio_path),
                "-map", "0:v",
                "-map", "1:a",
                "-c:v", "libx264",
                "-c:a", "aac",
                "-shortest",
            ],
            output_path,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Derivatives
    # ═══════════════════════════════════════════════════════════════════════════

    async def make_gif(
        self,
        input_path: Path,
        output_path: Path,
        start: float = 0.0,
        duration: float = 5.0,
        fps: int = 10,
        width: int = 480,
    ) -> Path:
        """Render a short palette-optimized GIF."""
        graph = (
            f"fps={fps},scale={width}:-1:flags=lanczos,"
            f"split[a][b];[a]palettegen[p];[b][p]paletteuse"
        )
        return await self._run(
            "make_gif",
            [
                "-ss", f"{start:.2f}",
                "-t", f"{duration:.2f}",
                "-i", str(input_path),
                "-vf", graph,
                "-loop", "0",
            ],
            output_path,
        )

    async def extract_thumbnail(
        self,
        input_path: Path,
        output_path: Path,
        at_seconds: float = 1.0,
    ) -> Path:
        """Grab a single frame as a JPEG (midpoint if at_seconds is past the end)."""
        duration = await self.duration(input_path)
        if duration is not None and at_seconds >= duration:
            at_seconds = duration / 2

        return await self._run(
            "extract_thumbnail",
            [
                "-ss", f"{at_seconds:.2f}",
                "-i", str(input_path),
                "-frames:v", "1",
                "-q:v", "2",
            ],
            output_path,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    async def _run(self, operation: str, args: list[str], output_path: Path) -> Path:
        """
        Run one ffmpeg command writing to output_path.

        Raises:
            MediaEngineError: If ffmpeg fails or no output file is produced
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [self.binary, "-hide_banner", "-y", *args, str(output_path)]
        logger.debug(f"ffmpeg {operation}: {' '.join(cmd)}")

        await asyncio.to_thread(self._execute, operation, cmd)

        if not output_path.exists():
            raise MediaEngineError(operation, "output file not created")

        size_mb = output_path.stat().st_size / 1024 / 1024
        logger.info(f"ffmpeg {operation}: {output_path.name} ({size_mb:.1f} MB)")
        return output_path

    def _execute(self, operation: str, cmd: list[str]) -> None:
        """Run ffmpeg synchronously (called from a worker thread)."""
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise MediaEngineError(operation, f"{self.binary} not installed") from e
        except subprocess.TimeoutExpired as e:
            raise MediaEngineError(operation, f"timed out after {self.timeout}s") from e

        if result.returncode != 0:
            logger.error(f"ffmpeg {operation} failed: {result.stderr[-500:]}")
            raise MediaEngineError(
                operation,
                f"ffmpeg error (code {result.returncode})",
                returncode=result.returncode,
                stderr=result.stderr[-500:],
            )
