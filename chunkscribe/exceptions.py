"""
chunkscribe.exceptions - Custom exception classes.

All Chunkscribe-specific exceptions inherit from ChunkscribeError.
"""


class ChunkscribeError(Exception):
    """Base exception for all Chunkscribe errors."""

    pass


class ConfigError(ChunkscribeError):
    """Configuration loading or validation error."""

    pass


class InputFileError(ChunkscribeError):
    """Input media file missing, unreadable or empty."""

    pass


class AudioEngineError(ChunkscribeError):
    """Audio engine could not be initialized."""

    pass


class ConversionError(AudioEngineError):
    """Media to WAV conversion error."""

    pass


class SplittingError(AudioEngineError):
    """Chunk splitting error."""

    pass


class TranscriptionError(ChunkscribeError):
    """Transcription backend or transport error."""

    pass


class DependencyError(ChunkscribeError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")
