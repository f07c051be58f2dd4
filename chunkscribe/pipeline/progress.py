"""
chunkscribe.pipeline.progress - Overall progress calculation.

Preparation (validation, engine init, conversion, splitting) fills 0-40%
of the bar, with 30 points reserved for conversion. Transcription fills
40-100%: chunk i of n owns [40 + 60*i/n, 40 + 60*(i+1)/n], and progress
inside that window follows the end time of the latest merged segment
against the chunk's nominal slice of the total duration.
"""

from __future__ import annotations

import time
from typing import Callable

PREPARATION_SHARE = 40.0
TRANSCRIPTION_SHARE = 60.0

STAGE_RANGES: dict[str, tuple[float, float]] = {
    "fileValidation": (0.0, 2.0),
    "ffmpegInit": (2.0, 5.0),
    "audioConversion": (5.0, 35.0),
    "audioSplitting": (35.0, PREPARATION_SHARE),
}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def stage_progress(stage_id: str, stage_percent: float) -> float:
    """Map a preparation stage's own 0-100 progress onto the overall bar."""
    low, high = STAGE_RANGES[stage_id]
    return low + (high - low) * _clamp(stage_percent) / 100.0


def chunk_window(total_duration: float, chunk_count: int) -> float:
    """Nominal length in seconds of one chunk."""
    if chunk_count <= 0:
        return 0.0
    return total_duration / chunk_count


def chunk_local_progress(
    chunk_index: int,
    chunk_count: int,
    processed_end: float,
    total_duration: float,
) -> float:
    """Percent of chunk ``chunk_index`` covered by transcript up to ``processed_end``."""
    window = chunk_window(total_duration, chunk_count)
    if window <= 0:
        return 0.0
    chunk_start = chunk_index * window
    return _clamp((processed_end - chunk_start) / window * 100.0)


def chunk_overall_progress(chunk_index: int, chunk_count: int, local_percent: float) -> float:
    """Overall percent for a point ``local_percent`` of the way through a chunk."""
    if chunk_count <= 0:
        return PREPARATION_SHARE
    fraction = (chunk_index + _clamp(local_percent) / 100.0) / chunk_count
    return _clamp(PREPARATION_SHARE + TRANSCRIPTION_SHARE * fraction)


def chunk_completed_progress(chunk_index: int, chunk_count: int) -> float:
    return chunk_overall_progress(chunk_index, chunk_count, 100.0)


class ProgressTracker:
    """Holds the overall percentage and enforces monotonic progress.

    While ``is_processing`` is set, a smaller value never replaces a
    larger one. ``force`` bypasses the guard (run start, reset, failure).
    """

    def __init__(self, publish: Callable[[float], None]) -> None:
        self.publish = publish
        self.value = 0.0
        self.is_processing = False

    def update(self, progress: float, force: bool = False) -> float:
        progress = _clamp(progress)
        if force or not self.is_processing:
            self.value = progress
        else:
            self.value = max(self.value, progress)
        self.publish(self.value)
        return self.value

    def reset(self) -> None:
        self.update(0.0, force=True)


class ProgressThrottle:
    """Lets a rounded progress value through only when it grew and
    ``interval`` seconds passed since the last one that got through."""

    def __init__(self, interval: float = 1.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self.clock = clock
        self.last_value = 0
        self.last_time: float | None = None

    def accept(self, progress: float) -> int | None:
        rounded = round(progress)
        now = self.clock()
        if rounded <= self.last_value:
            return None
        if self.last_time is not None and now - self.last_time < self.interval:
            return None
        self.last_value = rounded
        self.last_time = now
        return rounded
