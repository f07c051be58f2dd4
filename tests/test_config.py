"""Tests for chunkscribe.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from chunkscribe.config import (
    ENV_API_TOKEN,
    ENV_API_URL,
    BackendConfig,
    ChunkscribeConfig,
    TranscriptionOptions,
    load_config,
    merge_config,
    resolve_config,
    write_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(ENV_API_URL, raising=False)
    monkeypatch.delenv(ENV_API_TOKEN, raising=False)


class TestTranscriptionOptions:
    def test_defaults(self) -> None:
        options = TranscriptionOptions()
        assert options.model == "whisper-1"
        assert options.response_format == "vtt"
        assert options.task == "transcribe"
        assert options.detect_language

    def test_explicit_language(self) -> None:
        assert not TranscriptionOptions(language="fr").detect_language
        assert TranscriptionOptions(language="auto").detect_language

    def test_invalid_response_format_raises(self) -> None:
        with pytest.raises(ValidationError):
            TranscriptionOptions(response_format="mp3")

    def test_invalid_granularity_raises(self) -> None:
        with pytest.raises(ValidationError):
            TranscriptionOptions(timestamp_granularity="phoneme")

    def test_invalid_task_raises(self) -> None:
        with pytest.raises(ValidationError):
            TranscriptionOptions(task="summarize")

    def test_temperature_range(self) -> None:
        with pytest.raises(ValidationError):
            TranscriptionOptions(temperature=1.5)

    def test_hotwords_stripped(self) -> None:
        options = TranscriptionOptions(hotwords=[" river ", "", "delta"])
        assert options.hotwords == ["river", "delta"]


class TestBackendConfig:
    def test_trailing_slash_removed(self) -> None:
        assert BackendConfig(base_url="http://host:8000/").base_url == "http://host:8000"

    def test_blank_url_is_none(self) -> None:
        assert BackendConfig(base_url="  ").base_url is None


class TestChunkscribeConfig:
    def test_defaults(self) -> None:
        config = ChunkscribeConfig()
        assert config.max_chunk_bytes == 100 * 1024 * 1024
        assert config.max_retries == 2
        assert config.retry_delay == 1.0
        assert config.progress_debounce == 1.0

    def test_negative_retries_raise(self) -> None:
        with pytest.raises(ValidationError):
            ChunkscribeConfig(max_retries=-1)


class TestMergeConfig:
    def test_overrides_win(self) -> None:
        merged = merge_config({"max_retries": 2}, {"max_retries": 4})
        assert merged["max_retries"] == 4

    def test_none_never_overrides(self) -> None:
        merged = merge_config({"backend": {"token": "abc"}}, {"backend": {"token": None}})
        assert merged["backend"]["token"] == "abc"

    def test_nested_sections_merge(self) -> None:
        base = {"options": {"model": "large-v3", "language": "en"}}
        merged = merge_config(base, {"options": {"language": "de"}})
        assert merged["options"] == {"model": "large-v3", "language": "de"}

    def test_new_section_drops_none_values(self) -> None:
        merged = merge_config({}, {"options": {"model": None, "language": "de"}})
        assert merged["options"] == {"language": "de"}


class TestLoadConfig:
    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "chunkscribe.yaml"
        write_config(
            {
                "backend": {"base_url": "http://host:8000/"},
                "options": {"model": "large-v3", "response_format": "json"},
                "max_retries": 4,
            },
            path,
        )

        config = load_config(path)

        assert config.backend.base_url == "http://host:8000"
        assert config.options.model == "large-v3"
        assert config.max_retries == 4
        assert config.config_path == path

    def test_load_from_directory(self, tmp_path: Path) -> None:
        write_config({"options": {"language": "nl"}}, tmp_path / "chunkscribe.yaml")
        assert load_config(tmp_path).options.language == "nl"

    def test_overrides_take_precedence(self, tmp_path: Path) -> None:
        write_config({"options": {"model": "small"}}, tmp_path / "chunkscribe.yaml")
        config = load_config(tmp_path, {"options": {"model": "medium", "language": None}})
        assert config.options.model == "medium"

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / "chunkscribe.yaml").write_text("")
        assert load_config(tmp_path).options.model == "whisper-1"

    def test_load_missing_config_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_invalid_value_raises(self, tmp_path: Path) -> None:
        write_config({"options": {"response_format": "mp3"}}, tmp_path / "chunkscribe.yaml")
        with pytest.raises(ValidationError):
            load_config(tmp_path)


class TestResolveConfig:
    def test_without_file_uses_overrides(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        config = resolve_config(
            overrides={"backend": {"base_url": "http://cli", "token": None}, "options": {}}
        )
        assert config.backend.base_url == "http://cli"
        assert config.config_path is None

    def test_picks_up_working_directory_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_config({"backend": {"base_url": "http://from-file"}}, tmp_path / "chunkscribe.yaml")
        monkeypatch.chdir(tmp_path)
        assert resolve_config().backend.base_url == "http://from-file"

    def test_environment_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv(ENV_API_URL, "http://from-env")
        monkeypatch.setenv(ENV_API_TOKEN, "env-token")

        config = resolve_config()

        assert config.backend.base_url == "http://from-env"
        assert config.backend.token == "env-token"

    def test_explicit_value_beats_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv(ENV_API_URL, "http://from-env")
        config = resolve_config(overrides={"backend": {"base_url": "http://cli"}})
        assert config.backend.base_url == "http://cli"
