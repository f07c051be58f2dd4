"""Tests for chunkscribe.messages module."""

from __future__ import annotations

from chunkscribe.messages import render


class TestRender:
    def test_formats_params(self) -> None:
        assert render("logs.uploadingChunk", {"current": 2, "total": 5}) == "Uploading chunk 2/5..."

    def test_unknown_key_renders_as_key(self) -> None:
        assert render("logs.somethingNew") == "logs.somethingNew"

    def test_missing_params_render_template(self) -> None:
        assert render("steps.chunkProcessing") == "Transcribe chunk {current}/{total}"
