"""Tests for chunkscribe.utils module."""

from __future__ import annotations

from chunkscribe.utils import format_duration, format_size, size_in_mb


class TestFormatDuration:
    def test_seconds_only(self) -> None:
        assert format_duration(45.0) == "0:45"

    def test_minutes_and_seconds(self) -> None:
        assert format_duration(125.0) == "2:05"

    def test_hours_minutes_seconds(self) -> None:
        assert format_duration(3725.0) == "1:02:05"

    def test_zero(self) -> None:
        assert format_duration(0.0) == "0:00"

    def test_float_seconds(self) -> None:
        assert format_duration(90.7) == "1:30"


class TestFormatSize:
    def test_bytes(self) -> None:
        assert format_size(512) == "512.0 B"

    def test_megabytes(self) -> None:
        assert format_size(5 * 1024 * 1024) == "5.0 MB"


class TestSizeInMb:
    def test_two_decimals(self) -> None:
        assert size_in_mb(12 * 1024 * 1024 + 512 * 1024) == "12.50"

    def test_small(self) -> None:
        assert size_in_mb(100) == "0.00"
