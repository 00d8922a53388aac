"""
Shared utilities.

Modules:
    media_utils: ffprobe helpers, media type detection, crop geometry
    subtitles: SRT rendering for caption burn-in
"""

from vidforge.utils.media_utils import (
    centered_crop_box,
    get_frame_size,
    get_media_duration,
    is_video_file,
    parse_aspect_ratio,
)
from vidforge.utils.subtitles import format_srt_time, segments_to_srt, write_srt

__all__ = [
    # media_utils
    "centered_crop_box",
    "get_frame_size",
    "get_media_duration",
    "is_video_file",
    "parse_aspect_ratio",
    # subtitles
    "format_srt_time",
    "segments_to_srt",
    "write_srt",
]
