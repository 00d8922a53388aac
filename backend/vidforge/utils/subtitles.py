"""
SubRip (SRT) generation from speech-to-text segments.
"""

from pathlib import Path


def format_srt_time(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    millis = int(round(max(seconds, 0.0) * 1000))
    h, rem = divmod(millis, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def segments_to_srt(segments: list[dict]) -> str:
    """
    Render transcription segments as SRT text.

    Segments with empty text are skipped; numbering stays contiguous.

    Args:
        segments: Dicts with "start", "end" and "text" keys

    Returns:
        SRT document
    """
    blocks = []
    for seg in segments:
        text = str(seg.get("text", "")).strip()
        if not text:
            continue
        index = len(blocks) + 1
        start = format_srt_time(float(seg["start"]))
        end = format_srt_time(float(seg["end"]))
        blocks.append(f"{index}\n{start} --> {end}\n{text}\n")
    return "\n".join(blocks)


def write_srt(segments: list[dict], path: Path) -> Path:
    """Write segments to an SRT file and return its path."""
    path.write_text(segments_to_srt(segments), encoding="utf-8")
    return path
