"""
chunkscribe.config - YAML config loading, override merging, validation.

Handles loading chunkscribe.yaml, applying command-line overrides and
environment fallbacks, and validating transcription and backend settings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_FILENAME = "chunkscribe.yaml"

ENV_API_URL = "CHUNKSCRIBE_API_URL"
ENV_API_TOKEN = "CHUNKSCRIBE_API_TOKEN"

RESPONSE_FORMATS = ("text", "json", "verbose_json", "srt", "vtt")
TIMESTAMP_GRANULARITIES = ("word", "segment")


class TranscriptionOptions(BaseModel):
    """Options sent to the backend with every chunk."""

    model: str = "whisper-1"
    language: str | None = None
    response_format: str = "vtt"
    timestamp_granularity: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    prompt: str | None = None
    hotwords: list[str] = Field(default_factory=list)
    task: str = "transcribe"
    use_vad_filter: bool = False

    @field_validator("response_format")
    @classmethod
    def validate_response_format(cls, v: str) -> str:
        if v not in RESPONSE_FORMATS:
            raise ValueError(f"response_format must be one of: {set(RESPONSE_FORMATS)}")
        return v

    @field_validator("timestamp_granularity")
    @classmethod
    def validate_timestamp_granularity(cls, v: str | None) -> str | None:
        if v is not None and v not in TIMESTAMP_GRANULARITIES:
            raise ValueError(
                f"timestamp_granularity must be one of: {set(TIMESTAMP_GRANULARITIES)}"
            )
        return v

    @field_validator("task")
    @classmethod
    def validate_task(cls, v: str) -> str:
        valid = {"transcribe", "translate"}
        if v not in valid:
            raise ValueError(f"task must be one of: {valid}")
        return v

    @field_validator("hotwords")
    @classmethod
    def strip_hotwords(cls, v: list[str]) -> list[str]:
        return [w.strip() for w in v if w.strip()]

    @property
    def detect_language(self) -> bool:
        return not self.language or self.language == "auto"


class BackendConfig(BaseModel):
    """Where and how to reach the transcription backend."""

    base_url: str | None = None
    token: str | None = None
    use_server_proxy: bool = False

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v.rstrip("/") or None


class ChunkscribeConfig(BaseModel):
    """Resolved configuration for one Chunkscribe invocation."""

    options: TranscriptionOptions = Field(default_factory=TranscriptionOptions)
    backend: BackendConfig = Field(default_factory=BackendConfig)

    max_chunk_bytes: int = Field(default=100 * 1024 * 1024, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0)
    progress_debounce: float = Field(default=1.0, ge=0.0)

    config_path: Path | None = None


def merge_config(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge overrides into a base config. Nested sections merge key by key.

    ``None`` values in overrides never replace a base value.
    """
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            section = merged.get(key)
            merged[key] = merge_config(section if isinstance(section, dict) else {}, value)
        else:
            merged[key] = value
    return merged


def apply_env_fallbacks(raw: dict[str, Any]) -> dict[str, Any]:
    """Fill an unset backend URL or token from the environment."""
    backend = dict(raw.get("backend") or {})
    if not backend.get("base_url") and os.environ.get(ENV_API_URL):
        backend["base_url"] = os.environ[ENV_API_URL]
    if not backend.get("token") and os.environ.get(ENV_API_TOKEN):
        backend["token"] = os.environ[ENV_API_TOKEN]
    return {**raw, "backend": backend}


def load_config(path: Path, overrides: dict[str, Any] | None = None) -> ChunkscribeConfig:
    """Load and validate configuration from a YAML file.

    Args:
        path: Config file, or a directory containing chunkscribe.yaml
        overrides: Values taking precedence over the file (e.g. CLI flags)

    Raises:
        FileNotFoundError: If the config file does not exist
    """
    config_file = path / CONFIG_FILENAME if path.is_dir() else path
    if not config_file.exists():
        raise FileNotFoundError(f"No {CONFIG_FILENAME} found at {path}")

    with open(config_file) as f:
        raw_config = yaml.safe_load(f) or {}

    merged = merge_config(raw_config, overrides or {})
    merged = apply_env_fallbacks(merged)
    merged["config_path"] = config_file

    return ChunkscribeConfig(**merged)


def resolve_config(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> ChunkscribeConfig:
    """Load from a file when one is given or present in the working directory,
    otherwise build from overrides and the environment alone."""
    if config_path is not None:
        return load_config(config_path, overrides)

    default_file = Path.cwd() / CONFIG_FILENAME
    if default_file.exists():
        return load_config(default_file, overrides)

    merged = apply_env_fallbacks(merge_config({}, overrides or {}))
    return ChunkscribeConfig(**merged)


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
