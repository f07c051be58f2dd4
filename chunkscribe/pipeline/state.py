"""
chunkscribe.pipeline.state - Per-run state and caller callbacks.

A RunState is created fresh for every process_file() call and handed to
the components that need it; nothing about a run lives in module globals.
"""

from __future__ import annotations

from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict

from chunkscribe.models import ProcessingSteps, TranscriptionSegment
from chunkscribe.pipeline.merger import SegmentMerger
from chunkscribe.pipeline.progress import ProgressTracker
from chunkscribe.pipeline.steps import create_initial_steps

LogKind = Literal["info", "success", "error", "debug"]
StepsTransform = Callable[[ProcessingSteps], ProcessingSteps]


def _noop(*args: Any, **kwargs: Any) -> None:
    pass


class PipelineCallbacks(BaseModel):
    """Side-effecting hooks the pipeline calls on its caller.

    Any hook left unset does nothing.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    on_log: Callable[..., None] = _noop
    on_ffmpeg_log: Callable[[str], None] = _noop
    on_state_update: Callable[[dict[str, Any]], None] = _noop
    on_progress: Callable[[float], None] = _noop
    on_segments_update: Callable[[list[TranscriptionSegment]], None] = _noop
    on_steps_update: Callable[[StepsTransform], None] = _noop


class ProcessingState(BaseModel):
    """Display-oriented processing fields mirrored to the caller."""

    is_processing: bool = False
    progress: float = 0
    current_step: str = ""
    status: str = ""
    status_params: dict[str, Any] | None = None
    step_progress: float = 0
    current_chunk: int = 0
    total_chunks: int = 0
    is_ffmpeg_initializing: bool = False
    has_ffmpeg_started: bool = False


class RunState:
    """Everything one file-processing run owns.

    Publications from a run whose generation is no longer current are
    dropped, so a superseded run cannot overwrite a newer one's output.
    """

    def __init__(
        self,
        generation: int,
        callbacks: PipelineCallbacks,
        is_current: Callable[[int], bool],
    ) -> None:
        self.generation = generation
        self.callbacks = callbacks
        self._is_current = is_current

        self.steps: ProcessingSteps = create_initial_steps()
        self.processing = ProcessingState()
        self.progress = ProgressTracker(self._publish_progress)
        self.merger = SegmentMerger(self._publish_segments)
        self.total_duration = 0.0
        self.chunk_count = 0

    @property
    def is_current(self) -> bool:
        return self._is_current(self.generation)

    @property
    def overall_progress(self) -> float:
        return self.progress.value

    @property
    def last_merged_end_time(self) -> float:
        return self.merger.last_end_time

    @property
    def merged_segments(self) -> list[TranscriptionSegment]:
        return self.merger.merged_segments

    def log(self, kind: LogKind, message_key: str, **params: Any) -> None:
        if self.is_current:
            self.callbacks.on_log(kind, message_key, params or None)

    def update_steps(self, transform: StepsTransform) -> None:
        if not self.is_current:
            return
        self.steps = transform(self.steps)
        self.callbacks.on_steps_update(transform)

    def update_state(self, **changes: Any) -> None:
        if not self.is_current:
            return
        self.processing = self.processing.model_copy(update=changes)
        self.progress.is_processing = self.processing.is_processing
        self.callbacks.on_state_update(changes)

    def ffmpeg_log(self, line: str) -> None:
        if self.is_current:
            self.callbacks.on_ffmpeg_log(line)

    def set_progress(self, value: float, force: bool = False) -> None:
        if self.is_current:
            self.progress.update(value, force=force)

    def _publish_progress(self, value: float) -> None:
        self.processing = self.processing.model_copy(update={"progress": value})
        self.callbacks.on_progress(value)

    def _publish_segments(self, segments: list[TranscriptionSegment]) -> None:
        if self.is_current:
            self.callbacks.on_segments_update(segments)
