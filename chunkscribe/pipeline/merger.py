"""
chunkscribe.pipeline.merger - Stitch per-chunk segments into one transcript.

Each chunk's segments arrive with chunk-relative times. They are shifted
by the end time of the last segment merged before that chunk started,
deduplicated against everything merged so far, then the whole list is
re-sorted by start time and renumbered so ``id`` equals position.

Streamed batches and fallback batches use different duplicate tests:
streamed segments are duplicates when start and end are both within
0.5s and the trimmed text is identical; fallback segments are duplicates
when start and end are both within 0.1s, whatever the text.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from chunkscribe.logging import logger
from chunkscribe.models import TranscriptionSegment

STREAMING_TOLERANCE = 0.5
FALLBACK_TOLERANCE = 0.1


def _is_streaming_duplicate(existing: TranscriptionSegment, new: TranscriptionSegment) -> bool:
    return (
        abs(existing.start - new.start) < STREAMING_TOLERANCE
        and abs(existing.end - new.end) < STREAMING_TOLERANCE
        and existing.text.strip() == new.text.strip()
    )


def _is_fallback_duplicate(existing: TranscriptionSegment, new: TranscriptionSegment) -> bool:
    return (
        abs(existing.start - new.start) < FALLBACK_TOLERANCE
        and abs(existing.end - new.end) < FALLBACK_TOLERANCE
    )


class SegmentMerger:
    """Owns the merged transcript and the running end-time anchor for one run."""

    def __init__(
        self,
        on_segments_update: Callable[[list[TranscriptionSegment]], None] | None = None,
    ) -> None:
        self.on_segments_update = on_segments_update
        self.merged_segments: list[TranscriptionSegment] = []
        self.last_end_time = 0.0
        self.chunk_offset = 0.0
        self.streamed = False

    def begin_chunk(self) -> float:
        """Freeze the time offset for the chunk about to be dispatched."""
        self.chunk_offset = self.last_end_time
        self.streamed = False
        return self.chunk_offset

    def merge_streaming(self, batch: Iterable[dict[str, Any] | TranscriptionSegment]) -> bool:
        """Merge one streamed partial batch for the current chunk.

        Returns True when at least one new segment was added.
        """
        self.streamed = True
        added = False

        for raw in batch:
            candidate = self._to_segment(raw)
            if not candidate.text.strip():
                continue
            if any(_is_streaming_duplicate(kept, candidate) for kept in self.merged_segments):
                continue
            self.merged_segments.append(candidate)
            added = True

        self._settle()
        return added

    def merge_fallback(self, segments: Iterable[dict[str, Any] | TranscriptionSegment]) -> bool:
        """Merge the parsed final response of a chunk that never streamed.

        Returns True when at least one new segment was added.
        """
        survivors = []
        for raw in segments:
            candidate = self._to_segment(raw)
            if any(_is_fallback_duplicate(kept, candidate) for kept in self.merged_segments):
                continue
            survivors.append(candidate)

        if not survivors:
            return False

        self.merged_segments.extend(survivors)
        self._settle()
        return True

    def finish_chunk(self) -> float:
        """Move the anchor to the tail of the merged transcript."""
        if self.merged_segments:
            self.last_end_time = self.merged_segments[-1].end
        logger.debug("Chunk settled, last end time %.3f", self.last_end_time)
        return self.last_end_time

    @property
    def last_segment_end(self) -> float | None:
        if not self.merged_segments:
            return None
        return self.merged_segments[-1].end

    def snapshot(self) -> list[TranscriptionSegment]:
        return [segment.model_copy() for segment in self.merged_segments]

    def _to_segment(self, raw: dict[str, Any] | TranscriptionSegment) -> TranscriptionSegment:
        if isinstance(raw, TranscriptionSegment):
            return raw.shifted(self.chunk_offset)
        return TranscriptionSegment.from_raw(raw, offset=self.chunk_offset)

    def _settle(self) -> None:
        self.merged_segments.sort(key=lambda s: s.start)
        for index, segment in enumerate(self.merged_segments):
            segment.id = index
        if self.merged_segments:
            self.last_end_time = self.merged_segments[-1].end
        if self.on_segments_update is not None:
            self.on_segments_update(self.snapshot())
