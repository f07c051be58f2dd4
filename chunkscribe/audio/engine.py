"""
chunkscribe.audio.engine - FFmpeg audio conversion and chunk splitting.

Converts any media file to 16kHz mono 16-bit WAV (what Whisper backends
expect) and cuts oversized WAV data into equal-duration chunks. FFmpeg
runs as an asyncio subprocess; its stderr is parsed for the input
duration and conversion progress, and every line is forwarded raw.
"""

from __future__ import annotations

import asyncio
import math
import re
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Protocol

from chunkscribe.exceptions import ConversionError, DependencyError, SplittingError
from chunkscribe.logging import logger

ProgressCallback = Callable[[float], None]
LineCallback = Callable[[str], None]

SAMPLE_RATE = 16000
CHANNELS = 1
BYTES_PER_SAMPLE = 2
WAV_HEADER_SIZE = 44
DEFAULT_MAX_CHUNK_BYTES = 100 * 1024 * 1024

DURATION_RE = re.compile(r"Duration: (\d{2}):(\d{2}):(\d{2})\.(\d{2})")
TIME_RE = re.compile(r"time=(\d{2}):(\d{2}):(\d{2})\.(\d{2})")

WAV_ARGS = ["-ar", str(SAMPLE_RATE), "-ac", str(CHANNELS), "-c:a", "pcm_s16le"]


class AudioEngine(Protocol):
    """What the pipeline needs from an audio toolkit."""

    async def ensure_loaded(self) -> None: ...

    async def convert_to_wav(
        self,
        source: Path,
        on_progress: ProgressCallback | None = None,
        on_log: LineCallback | None = None,
    ) -> tuple[bytes, float]: ...

    async def split_into_chunks(
        self,
        wav_data: bytes,
        on_progress: ProgressCallback | None = None,
        on_log: LineCallback | None = None,
        duration: float | None = None,
    ) -> list[bytes]: ...


def _clock_to_seconds(match: re.Match[str]) -> float:
    hours, minutes, seconds, centiseconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds + centiseconds / 100


def parse_duration_line(line: str) -> float | None:
    """Seconds from an FFmpeg ``Duration: HH:MM:SS.cc`` line."""
    match = DURATION_RE.search(line)
    return _clock_to_seconds(match) if match else None


def parse_time_line(line: str) -> float | None:
    """Seconds from an FFmpeg ``time=HH:MM:SS.cc`` progress line."""
    match = TIME_RE.search(line)
    return _clock_to_seconds(match) if match else None


def wav_duration_from_size(size: int) -> float:
    """Duration of 16kHz mono 16-bit WAV data, assuming a 44-byte header."""
    if size <= WAV_HEADER_SIZE:
        return 0.0
    samples = (size - WAV_HEADER_SIZE) / (BYTES_PER_SAMPLE * CHANNELS)
    return samples / SAMPLE_RATE


class FFmpegAudioEngine:
    """AudioEngine backed by the ffmpeg binary."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.max_chunk_bytes = max_chunk_bytes
        self.resolved_path: str | None = None

    @property
    def loaded(self) -> bool:
        return self.resolved_path is not None

    async def ensure_loaded(self) -> None:
        """Locate the ffmpeg binary.

        Raises:
            DependencyError: If ffmpeg is not installed
        """
        if self.loaded:
            return
        resolved = shutil.which(self.ffmpeg_path)
        if resolved is None:
            raise DependencyError(
                "ffmpeg",
                "binary not found on PATH",
                install_hint="macOS: brew install ffmpeg; Debian/Ubuntu: sudo apt install ffmpeg",
            )
        self.resolved_path = resolved
        logger.debug("Using ffmpeg at %s", resolved)

    async def _run(self, args: list[str], on_line: LineCallback | None) -> int:
        proc = await asyncio.create_subprocess_exec(
            self.resolved_path or self.ffmpeg_path,
            "-hide_banner",
            "-y",
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        if proc.stderr is None:
            proc.kill()
            await proc.wait()
            raise ConversionError("FFmpeg stderr pipe is not available")
        try:
            buffer = b""
            while True:
                data = await proc.stderr.read(4096)
                if not data:
                    break
                buffer += data
                # ffmpeg ends progress lines with \r
                *lines, buffer = re.split(rb"[\r\n]", buffer)
                for raw in lines:
                    line = raw.decode("utf-8", errors="replace").strip()
                    if line and on_line is not None:
                        on_line(line)
            if buffer.strip() and on_line is not None:
                on_line(buffer.decode("utf-8", errors="replace").strip())
            return await proc.wait()
        finally:
            if proc.returncode is None:
                logger.debug("Killing ffmpeg process %d", proc.pid)
                proc.kill()
                await proc.wait()

    async def convert_to_wav(
        self,
        source: Path,
        on_progress: ProgressCallback | None = None,
        on_log: LineCallback | None = None,
    ) -> tuple[bytes, float]:
        """Convert a media file to 16kHz mono WAV.

        Args:
            source: Input media file
            on_progress: Receives 0-100 conversion progress
            on_log: Receives every raw ffmpeg output line

        Returns:
            WAV bytes and the input duration in seconds

        Raises:
            ConversionError: If ffmpeg fails
        """
        await self.ensure_loaded()
        duration = 0.0
        last_percent = 0

        def handle_line(line: str) -> None:
            nonlocal duration, last_percent
            if not duration:
                duration = parse_duration_line(line) or 0.0
            if duration > 0 and on_progress is not None:
                current = parse_time_line(line)
                if current is not None:
                    percent = min(100, round(current / duration * 100))
                    if percent > last_percent:
                        last_percent = percent
                        on_progress(percent)
            if on_log is not None:
                on_log(line)

        try:
            with tempfile.TemporaryDirectory(prefix="chunkscribe_") as tmp:
                output = Path(tmp) / "output.wav"
                returncode = await self._run(
                    ["-i", str(source), "-vn", *WAV_ARGS, "-f", "wav", str(output)],
                    handle_line,
                )
                if returncode != 0 or not output.exists():
                    raise ConversionError(f"FFmpeg conversion failed with exit code {returncode}")
                data = output.read_bytes()
        except ConversionError:
            raise
        except Exception as e:
            raise ConversionError(f"FFmpeg conversion failed: {e}") from e

        if not duration:
            duration = wav_duration_from_size(len(data))

        return data, duration

    async def split_into_chunks(
        self,
        wav_data: bytes,
        on_progress: ProgressCallback | None = None,
        on_log: LineCallback | None = None,
        duration: float | None = None,
    ) -> list[bytes]:
        """Split WAV data into chunks no larger than ``max_chunk_bytes``.

        Data within the limit comes back as a single chunk. Larger data is
        cut into ceil(size / limit) slices of equal duration.

        Raises:
            SplittingError: If ffmpeg fails on any slice
        """
        if len(wav_data) <= self.max_chunk_bytes:
            if on_progress is not None:
                on_progress(100)
            return [wav_data]

        await self.ensure_loaded()
        chunk_count = math.ceil(len(wav_data) / self.max_chunk_bytes)
        total = duration or wav_duration_from_size(len(wav_data))
        slice_duration = total / chunk_count
        chunks: list[bytes] = []

        try:
            with tempfile.TemporaryDirectory(prefix="chunkscribe_") as tmp:
                source = Path(tmp) / "input_for_splitting.wav"
                source.write_bytes(wav_data)

                for i in range(chunk_count):
                    output = Path(tmp) / f"chunk_{i}.wav"
                    returncode = await self._run(
                        [
                            "-i",
                            str(source),
                            "-ss",
                            f"{i * slice_duration:.3f}",
                            "-t",
                            f"{slice_duration:.3f}",
                            *WAV_ARGS,
                            str(output),
                        ],
                        on_log,
                    )
                    if returncode != 0 or not output.exists():
                        raise SplittingError(
                            f"FFmpeg failed on chunk {i + 1}/{chunk_count} "
                            f"with exit code {returncode}"
                        )
                    chunks.append(output.read_bytes())
                    output.unlink()

                    if on_progress is not None:
                        on_progress(round((i + 1) / chunk_count * 100))
        except SplittingError:
            raise
        except Exception as e:
            raise SplittingError(f"Chunk splitting failed: {e}") from e

        return chunks
