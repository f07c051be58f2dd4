"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from chunkscribe.config import BackendConfig, TranscriptionOptions
from chunkscribe.pipeline.orchestrator import TranscriptionService
from chunkscribe.pipeline.state import PipelineCallbacks


class FakeAudioEngine:
    """In-memory AudioEngine returning canned chunks."""

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        duration: float = 10.0,
        wav_data: bytes = b"RIFF" + b"\x00" * 96,
        fail_on: str | None = None,
    ) -> None:
        self.chunks = [b"chunk-0"] if chunks is None else chunks
        self.duration = duration
        self.wav_data = wav_data
        self.fail_on = fail_on
        self.loaded = False

    async def ensure_loaded(self) -> None:
        if self.fail_on == "init":
            raise RuntimeError("engine failed to load")
        self.loaded = True

    async def convert_to_wav(self, source, on_progress=None, on_log=None):
        if self.fail_on == "convert":
            raise RuntimeError("unsupported codec")
        if on_log:
            on_log("  Duration: 00:00:10.00, start: 0.000000, bitrate: 128 kb/s")
        if on_progress:
            on_progress(40)
            on_progress(100)
        return self.wav_data, self.duration

    async def split_into_chunks(self, wav_data, on_progress=None, on_log=None, duration=None):
        if on_progress:
            on_progress(100)
        return list(self.chunks)


class ScriptedTransport:
    """Transport that plays back one scripted response per call.

    Each response is either an exception to raise or a dict with optional
    ``partials`` (batches fed to on_partial) and ``result`` (return value).
    A response may also be a callable taking on_partial, for custom steps.
    """

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.calls: list[int] = []

    async def __call__(
        self,
        base_url,
        chunk,
        chunk_index,
        options,
        token=None,
        on_partial=None,
        use_server_proxy=False,
    ):
        self.calls.append(chunk_index)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(on_partial)
        for batch in response.get("partials", []):
            on_partial(batch)
        return response.get("result")


class Recorder:
    """Collects everything the pipeline reports through its callbacks."""

    def __init__(self) -> None:
        self.logs: list[tuple[str, str, dict | None]] = []
        self.ffmpeg_lines: list[str] = []
        self.states: list[dict] = []
        self.progress: list[float] = []
        self.segment_updates: list[list] = []
        self.step_updates: list = []

    def callbacks(self) -> PipelineCallbacks:
        return PipelineCallbacks(
            on_log=lambda kind, key, params=None: self.logs.append((kind, key, params)),
            on_ffmpeg_log=self.ffmpeg_lines.append,
            on_state_update=self.states.append,
            on_progress=self.progress.append,
            on_segments_update=self.segment_updates.append,
            on_steps_update=self.step_updates.append,
        )

    def log_keys(self, kind: str | None = None) -> list[str]:
        return [key for k, key, _ in self.logs if kind is None or k == kind]


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    path = tmp_path / "interview.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 64)
    return path


@pytest.fixture
def backend() -> BackendConfig:
    return BackendConfig(base_url="http://localhost:8000", token="secret")


@pytest.fixture
def json_options() -> TranscriptionOptions:
    return TranscriptionOptions(model="whisper-1", response_format="json")


@pytest.fixture
def vtt_options() -> TranscriptionOptions:
    return TranscriptionOptions(model="whisper-1", response_format="vtt")


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_service(recorder: Recorder, sleeps: list[float]):
    """Factory for a TranscriptionService wired to fakes."""

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def factory(engine: FakeAudioEngine, transport: ScriptedTransport) -> TranscriptionService:
        return TranscriptionService(
            engine=engine,
            callbacks=recorder.callbacks(),
            transport=transport,
            sleep=fake_sleep,
            progress_debounce=0,
        )

    return factory


@pytest.fixture
def sample_vtt() -> str:
    return (
        "WEBVTT\n"
        "\n"
        "00:00:00.000 --> 00:00:02.500\n"
        "When I was young,\n"
        "\n"
        "00:00:02.500 --> 00:00:05.000\n"
        "my grandmother would take us to the river.\n"
        "\n"
    )


@pytest.fixture
def fake_engine() -> type[FakeAudioEngine]:
    return FakeAudioEngine


@pytest.fixture
def scripted_transport() -> type[ScriptedTransport]:
    return ScriptedTransport
