"""Tests for chunkscribe.pipeline.progress module."""

from __future__ import annotations

import pytest

from chunkscribe.pipeline.progress import (
    ProgressThrottle,
    ProgressTracker,
    chunk_completed_progress,
    chunk_local_progress,
    chunk_overall_progress,
    chunk_window,
    stage_progress,
)


class TestStageProgress:
    def test_preparation_stages_fill_first_forty_percent(self) -> None:
        assert stage_progress("fileValidation", 0) == 0
        assert stage_progress("fileValidation", 100) == 2
        assert stage_progress("ffmpegInit", 100) == 5
        assert stage_progress("audioConversion", 50) == 20
        assert stage_progress("audioConversion", 100) == 35
        assert stage_progress("audioSplitting", 100) == 40

    def test_stage_percent_clamped(self) -> None:
        assert stage_progress("audioConversion", 250) == 35

    def test_unknown_stage_raises(self) -> None:
        with pytest.raises(KeyError):
            stage_progress("finalizing", 50)


class TestChunkProgress:
    def test_chunk_window(self) -> None:
        assert chunk_window(120.0, 4) == 30.0
        assert chunk_window(120.0, 0) == 0.0

    def test_chunk_owns_its_slice(self) -> None:
        assert chunk_overall_progress(0, 3, 0) == 40
        assert chunk_completed_progress(0, 3) == pytest.approx(60)
        assert chunk_overall_progress(1, 3, 0) == pytest.approx(60)
        assert chunk_completed_progress(2, 3) == pytest.approx(100)

    def test_single_chunk_spans_transcription_share(self) -> None:
        assert chunk_overall_progress(0, 1, 50) == pytest.approx(70)

    def test_local_progress_from_processed_end(self) -> None:
        # chunk 1 of 2 over 100s covers 50-100s
        assert chunk_local_progress(1, 2, 75.0, 100.0) == pytest.approx(50)

    def test_local_progress_clamped(self) -> None:
        assert chunk_local_progress(1, 2, 10.0, 100.0) == 0
        assert chunk_local_progress(0, 2, 90.0, 100.0) == 100

    def test_local_progress_without_duration(self) -> None:
        assert chunk_local_progress(0, 1, 10.0, 0.0) == 0


class TestProgressTracker:
    def test_monotonic_while_processing(self) -> None:
        published: list[float] = []
        tracker = ProgressTracker(published.append)
        tracker.is_processing = True

        tracker.update(30)
        tracker.update(20)
        tracker.update(45)

        assert tracker.value == 45
        assert published == [30, 30, 45]

    def test_force_bypasses_guard(self) -> None:
        tracker = ProgressTracker(lambda value: None)
        tracker.is_processing = True
        tracker.update(80)
        tracker.update(0, force=True)
        assert tracker.value == 0

    def test_not_processing_accepts_any_value(self) -> None:
        tracker = ProgressTracker(lambda value: None)
        tracker.update(80)
        tracker.update(10)
        assert tracker.value == 10

    def test_values_clamped(self) -> None:
        tracker = ProgressTracker(lambda value: None)
        assert tracker.update(140) == 100
        assert tracker.update(-3) == 0

    def test_reset(self) -> None:
        published: list[float] = []
        tracker = ProgressTracker(published.append)
        tracker.is_processing = True
        tracker.update(60)
        tracker.reset()
        assert tracker.value == 0
        assert published[-1] == 0


class TestProgressThrottle:
    def test_first_increase_passes(self) -> None:
        throttle = ProgressThrottle(1.0, clock=lambda: 0.0)
        assert throttle.accept(12.4) == 12

    def test_suppresses_within_interval(self) -> None:
        now = [0.0]
        throttle = ProgressThrottle(1.0, clock=lambda: now[0])
        assert throttle.accept(10) == 10
        now[0] = 0.5
        assert throttle.accept(20) is None
        now[0] = 1.2
        assert throttle.accept(20) == 20

    def test_suppresses_non_increasing(self) -> None:
        now = [0.0]
        throttle = ProgressThrottle(1.0, clock=lambda: now[0])
        throttle.accept(50)
        now[0] = 5.0
        assert throttle.accept(50) is None
        assert throttle.accept(49.6) is None

    def test_zero_interval_passes_every_increase(self) -> None:
        throttle = ProgressThrottle(0, clock=lambda: 0.0)
        assert throttle.accept(1) == 1
        assert throttle.accept(2) == 2
