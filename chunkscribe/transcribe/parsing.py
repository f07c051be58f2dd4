"""
chunkscribe.transcribe.parsing - Backend response parsing.

Turns a non-streamed backend response into chunk-relative segments. The
response shape is decided once by detect_response(), which returns one of
four tagged variants: cue text (WebVTT/SRT, possibly with SSE ``data:``
prefixes), JSON with a ``segments`` array, JSON with only ``text``, or
nothing usable.
"""

from __future__ import annotations

import json
import math
from typing import Any, Literal, Union

from pydantic import BaseModel

from chunkscribe.models import TranscriptionSegment

CUE_ARROW = "-->"
SSE_PREFIX = "data:"
DUPLICATE_TOLERANCE = 0.1

_HEADER_PREFIXES = ("WEBVTT", "NOTE")


class CueResponse(BaseModel):
    kind: Literal["cue"] = "cue"
    text: str


class SegmentsResponse(BaseModel):
    kind: Literal["segments"] = "segments"
    segments: list[dict[str, Any]]


class TextResponse(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class EmptyResponse(BaseModel):
    kind: Literal["empty"] = "empty"


BackendResponse = Union[CueResponse, SegmentsResponse, TextResponse, EmptyResponse]


def parse_timestamp(value: str) -> float | None:
    """Parse ``HH:MM:SS.mmm``, ``MM:SS.mmm`` or bare seconds into seconds.

    SRT-style comma decimals are accepted and trailing cue settings are
    ignored. Returns None for anything malformed or out of range.
    """
    if not value or not value.strip():
        return None
    token = value.strip().split()[0].replace(",", ".")
    parts = token.split(":")

    try:
        if len(parts) == 3:
            hours = int(parts[0])
            minutes = int(parts[1])
            seconds = float(parts[2])
        elif len(parts) == 2:
            hours = 0
            minutes = int(parts[0])
            seconds = float(parts[1])
        elif len(parts) == 1:
            hours = 0
            minutes = 0
            seconds = float(parts[0])
        else:
            return None
    except ValueError:
        return None

    if not math.isfinite(seconds) or hours < 0 or minutes < 0 or seconds < 0:
        return None
    if len(parts) > 1 and seconds >= 60:
        return None
    if len(parts) == 3 and minutes >= 60:
        return None

    return hours * 3600 + minutes * 60 + seconds


def _clean_line(line: str) -> str:
    line = line.strip()
    if line.startswith(SSE_PREFIX):
        line = line[len(SSE_PREFIX) :].strip()
    return line


def _parse_cue_range(line: str) -> tuple[float, float] | None:
    start_str, _, rest = line.partition(CUE_ARROW)
    end_str = rest.split(CUE_ARROW)[0]
    start = parse_timestamp(start_str)
    end = parse_timestamp(end_str)
    if start is None or end is None or end <= start:
        return None
    return start, end


def dedupe_segments(
    segments: list[TranscriptionSegment],
    tolerance: float = DUPLICATE_TOLERANCE,
    compare_text: bool = False,
) -> list[TranscriptionSegment]:
    """Drop segments whose start and end both fall within ``tolerance``
    of an earlier one (and, with ``compare_text``, whose trimmed text matches)."""
    unique: list[TranscriptionSegment] = []
    for segment in segments:
        duplicate = any(
            abs(kept.start - segment.start) < tolerance
            and abs(kept.end - segment.end) < tolerance
            and (not compare_text or kept.text.strip() == segment.text.strip())
            for kept in unique
        )
        if not duplicate:
            unique.append(segment)
    return unique


def parse_cue_text(text: str, compare_text: bool = False) -> list[TranscriptionSegment]:
    """Parse WebVTT/SRT cue text into segments.

    A cue is a timestamp line followed by one or more text lines; its text
    runs until the next blank line, timestamp line or end of input. A cue
    with an invalid timestamp line is discarded along with its text.

    Args:
        text: Raw cue text, SSE ``data: `` prefixes allowed
        compare_text: Also require equal text when dropping duplicates

    Returns:
        Segments with chunk-relative times, numbered in parse order
    """
    segments: list[TranscriptionSegment] = []
    lines = text.split("\n")
    cue_range: tuple[float, float] | None = None
    cue_lines: list[str] = []

    for i, raw_line in enumerate(lines):
        line = _clean_line(raw_line)

        if CUE_ARROW in line:
            cue_range = _parse_cue_range(line)
            cue_lines = []
            continue

        if not line or line.startswith(_HEADER_PREFIXES) or cue_range is None:
            continue

        cue_lines.append(line)

        next_line = _clean_line(lines[i + 1]) if i + 1 < len(lines) else None
        if next_line is None or not next_line or CUE_ARROW in next_line:
            start, end = cue_range
            segments.append(
                TranscriptionSegment(
                    id=len(segments), start=start, end=end, text="\n".join(cue_lines)
                )
            )
            cue_range = None
            cue_lines = []

    return dedupe_segments(segments, compare_text=compare_text)


def _looks_like_json(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith("{") and stripped.endswith("}")


def detect_response(result: Any, response_format: str) -> BackendResponse:
    """Classify a final backend response into one parseable variant."""
    if isinstance(result, (bytes, bytearray)):
        result = result.decode("utf-8", errors="replace")

    if isinstance(result, str):
        if response_format != "vtt" and _looks_like_json(result):
            try:
                return detect_response(json.loads(result), response_format)
            except json.JSONDecodeError:
                pass
        if response_format == "text" and CUE_ARROW not in result and result.strip():
            return TextResponse(text=result.strip())
        return CueResponse(text=result)

    if not isinstance(result, dict):
        return EmptyResponse()

    if response_format == "vtt":
        return CueResponse(text=result.get("text") or "")

    segments = result.get("segments")
    if isinstance(segments, list):
        return SegmentsResponse(segments=[s for s in segments if isinstance(s, dict)])

    if result.get("text"):
        return TextResponse(text=result["text"])

    return EmptyResponse()


def parse_fallback_response(
    result: Any, response_format: str, window: float
) -> list[TranscriptionSegment]:
    """Segments from a response that was not streamed.

    Times are relative to the chunk. A text-only response becomes one
    segment spanning the chunk's nominal ``window`` seconds.
    """
    response = detect_response(result, response_format)

    if isinstance(response, CueResponse):
        return parse_cue_text(response.text)
    if isinstance(response, SegmentsResponse):
        return [TranscriptionSegment.from_raw(raw) for raw in response.segments]
    if isinstance(response, TextResponse):
        return [TranscriptionSegment(start=0.0, end=window, text=response.text)]
    return []
