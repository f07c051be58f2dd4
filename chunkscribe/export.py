"""
chunkscribe.export - Write merged transcripts to subtitle and text formats.

Supports WebVTT, SRT, plain text (one segment per line) and JSON.
"""

from __future__ import annotations

import math
from pathlib import Path

from chunkscribe.io import write_json, write_text
from chunkscribe.models import TranscriptionResult, TranscriptionSegment

EXPORT_FORMATS = ("vtt", "srt", "txt", "json")


def format_timestamp(seconds: float, fmt: str = "vtt") -> str:
    """Format seconds as ``HH:MM:SS.mmm`` (vtt) or ``HH:MM:SS,mmm`` (srt).

    Negative or non-finite values are clamped to zero.
    """
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    ms = int(round((seconds % 1) * 1000))
    if ms == 1000:
        # 59.9996 rounds up into the next second
        return format_timestamp(math.floor(seconds) + 1, fmt)

    separator = "," if fmt == "srt" else "."
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{ms:03d}"


def to_vtt(segments: list[TranscriptionSegment]) -> str:
    blocks = ["WEBVTT"]
    for segment in segments:
        blocks.append(
            f"{format_timestamp(segment.start)} --> {format_timestamp(segment.end)}\n"
            f"{segment.text.strip()}"
        )
    return "\n\n".join(blocks) + "\n"


def to_srt(segments: list[TranscriptionSegment]) -> str:
    blocks = []
    for number, segment in enumerate(segments, start=1):
        blocks.append(
            f"{number}\n"
            f"{format_timestamp(segment.start, 'srt')} --> {format_timestamp(segment.end, 'srt')}\n"
            f"{segment.text.strip()}"
        )
    return "\n\n".join(blocks) + ("\n" if blocks else "")


def to_text(segments: list[TranscriptionSegment]) -> str:
    return "\n".join(segment.text for segment in segments)


def export_transcript(result: TranscriptionResult, path: Path, fmt: str | None = None) -> Path:
    """Write a transcript to ``path``.

    Args:
        result: Transcription result to export
        path: Output file
        fmt: One of vtt, srt, txt, json; inferred from the suffix if None

    Returns:
        The written path

    Raises:
        ValueError: If the format is unknown
    """
    fmt = (fmt or path.suffix.lstrip(".") or "txt").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}")

    if fmt == "json":
        write_json(path, result.model_dump())
    elif fmt == "vtt":
        write_text(path, to_vtt(result.segments))
    elif fmt == "srt":
        write_text(path, to_srt(result.segments))
    else:
        write_text(path, to_text(result.segments))
    return path
