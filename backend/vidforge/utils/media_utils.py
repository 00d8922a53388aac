"""
Media utilities for video file handling.

Provides common functions for media file operations:
- Duration and frame size detection via ffprobe
- Media type detection by extension
- Aspect-ratio crop box calculation
"""

import json
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".mkv", ".avi", ".mov", ".webm"})


def is_video_file(file_path: Path) -> bool:
    """Check if file is a video file by extension.

    Args:
        file_path: Path to media file

    Returns:
        True if file has video extension
    """
    return file_path.suffix.lower() in VIDEO_EXTENSIONS


def get_media_duration(media_path: Path) -> float | None:
    """Get media duration using ffprobe.

    Args:
        media_path: Path to media file

    Returns:
        Duration in seconds, or None if ffprobe fails
    """
    try:
        result = subprocess.run(
            [
                "ffprobe",
                "-v", "quiet",
                "-show_entries", "format=duration",
                "-of", "csv=p=0",
                str(media_path),
            ],
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode == 0 and result.stdout.strip():
            return float(result.stdout.strip())
    except Exception as e:
        logger.warning(f"ffprobe failed for {media_path.name}: {e}")

    return None


def get_frame_size(media_path: Path) -> tuple[int, int] | None:
    """Get width and height of the first video stream.

    Args:
        media_path: Path to video file

    Returns:
        (width, height) or None if ffprobe fails
    """
    try:
        result = subprocess.run(
            [
                "ffprobe",
                "-v", "quiet",
                "-select_streams", "v:0",
                "-show_entries", "stream=width,height",
                "-of", "json",
                str(media_path),
            ],
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode == 0:
            streams = json.loads(result.stdout).get("streams", [])
            if streams:
                return int(streams[0]["width"]), int(streams[0]["height"])
    except Exception as e:
        logger.warning(f"ffprobe failed for {media_path.name}: {e}")

    return None


def parse_aspect_ratio(value: str) -> float:
    """Parse "W:H" into a float ratio.

    Raises:
        ValueError: If the value is not a positive W:H pair
    """
    try:
        w, h = (float(part) for part in value.split(":"))
    except ValueError as e:
        raise ValueError(f"Invalid aspect ratio: {value!r}") from e
    if w <= 0 or h <= 0:
        raise ValueError(f"Invalid aspect ratio: {value!r}")
    return w / h


def centered_crop_box(width: int, height: int, ratio: float) -> tuple[int, int, int, int]:
    """Largest centered box of the given aspect ratio inside a frame.

    Dimensions are rounded down to even numbers (required by libx264).

    Args:
        width: Frame width
        height: Frame height
        ratio: Target width / height

    Returns:
        (crop_width, crop_height, x, y)
    """
    if width / height > ratio:
        crop_h = height
        crop_w = int(height * ratio)
    else:
        crop_w = width
        crop_h = int(width / ratio)

    crop_w -= crop_w % 2
    crop_h -= crop_h % 2
    x = (width - crop_w) // 2
    y = (height - crop_h) // 2
    return crop_w, crop_h, x, y
