"""
chunkscribe.models - Transcript and processing-step data types.

Segments are mutable (the merger renumbers them in place); processing
steps are frozen so every step update produces a new tree.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

StepStatus = Literal["pending", "inProgress", "completed", "error", "skipped"]
StepKind = Literal["normal", "chunk"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "error", "skipped"})

FIXED_STEP_IDS = (
    "ffmpegInit",
    "fileValidation",
    "audioConversion",
    "audioSplitting",
    "finalizing",
)


class TranscriptionSegment(BaseModel):
    """One timestamped unit of transcribed text plus model metadata."""

    id: int = 0
    seek: int = 0
    start: float
    end: float
    text: str = ""
    tokens: list[int] = Field(default_factory=list)
    temperature: float = 0.0
    avg_logprob: float = 0.0
    compression_ratio: float = 0.0
    no_speech_prob: float = 0.0
    words: list[dict[str, Any]] | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any], offset: float = 0.0) -> TranscriptionSegment:
        """Build a segment from a loosely-typed backend dict.

        Missing or null fields fall back to zero values; ``start`` and
        ``end`` are shifted by ``offset``.
        """
        return cls(
            id=raw.get("id") or 0,
            seek=raw.get("seek") or 0,
            start=(raw.get("start") or 0) + offset,
            end=(raw.get("end") or 0) + offset,
            text=raw.get("text") or "",
            tokens=raw.get("tokens") or [],
            temperature=raw.get("temperature") or 0,
            avg_logprob=raw.get("avg_logprob") or 0,
            compression_ratio=raw.get("compression_ratio") or 0,
            no_speech_prob=raw.get("no_speech_prob") or 0,
            words=raw.get("words") or None,
        )

    def shifted(self, offset: float) -> TranscriptionSegment:
        return self.model_copy(update={"start": self.start + offset, "end": self.end + offset})


class ProcessingStep(BaseModel):
    """Status and progress of one pipeline stage."""

    model_config = ConfigDict(frozen=True)

    id: str
    title_key: str
    title_params: dict[str, Any] | None = None
    status: StepStatus = "pending"
    progress: float = 0
    error: str | None = None
    skip_reason: str | None = None
    kind: StepKind = "normal"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ProcessingSteps(BaseModel):
    """The five fixed stages plus one step per audio chunk."""

    model_config = ConfigDict(frozen=True)

    ffmpegInit: ProcessingStep
    fileValidation: ProcessingStep
    audioConversion: ProcessingStep
    audioSplitting: ProcessingStep
    finalizing: ProcessingStep
    chunks: tuple[ProcessingStep, ...] = ()

    def ordered(self) -> list[ProcessingStep]:
        """Steps in the order the pipeline runs them."""
        return [
            self.fileValidation,
            self.ffmpegInit,
            self.audioConversion,
            self.audioSplitting,
            *self.chunks,
            self.finalizing,
        ]


class TranscriptionResult(BaseModel):
    """Outcome of one successful file-processing run."""

    segments: list[TranscriptionSegment]
    processing_time: float
    original_file_name: str
