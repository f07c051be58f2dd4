"""
chunkscribe.pipeline.orchestrator - Chunked transcription pipeline.

Runs validate → engine init → convert → split → [per chunk: dispatch →
merge] → finalize, reporting step status, overall progress, processing
state, logs and the growing transcript through PipelineCallbacks.

Failures before transcription abort the run. A failing chunk is marked
as errored and the loop moves on, so a run can finish with a partial
transcript. Chunks are dispatched strictly one after another: each
chunk's time offset depends on where the previous chunk's transcript
ended.
"""

from __future__ import annotations

import asyncio
import time
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable

from chunkscribe.audio.engine import AudioEngine, FFmpegAudioEngine
from chunkscribe.config import BackendConfig, ChunkscribeConfig, TranscriptionOptions
from chunkscribe.exceptions import (
    AudioEngineError,
    ChunkscribeError,
    ConfigError,
    ConversionError,
    InputFileError,
    SplittingError,
)
from chunkscribe.logging import logger
from chunkscribe.messages import render
from chunkscribe.models import TranscriptionResult, TranscriptionSegment
from chunkscribe.pipeline.progress import (
    ProgressThrottle,
    chunk_completed_progress,
    chunk_local_progress,
    chunk_overall_progress,
    chunk_window,
    stage_progress,
)
from chunkscribe.pipeline.state import PipelineCallbacks, RunState
from chunkscribe.pipeline.steps import (
    apply_progress,
    apply_status,
    create_initial_steps,
    get_chunk_step_id,
    with_chunk_steps,
)
from chunkscribe.transcribe.client import transcribe_chunk
from chunkscribe.transcribe.dispatcher import TranscriptionDispatcher, Transport
from chunkscribe.transcribe.parsing import parse_fallback_response
from chunkscribe.utils import format_size, size_in_mb


def _status(step_id: str, status: str, error: str | None = None, skip_reason: str | None = None):
    return partial(
        apply_status, step_id=step_id, status=status, error=error, skip_reason=skip_reason
    )


def _progress(step_id: str, progress: float):
    return partial(apply_progress, step_id=step_id, progress=progress)


def _reset_steps(_steps):
    return create_initial_steps()


class TranscriptionService:
    """Processes one media file at a time into a merged transcript.

    Starting a new run (or calling reset()) supersedes any run still in
    flight: its remaining callbacks are silently dropped.
    """

    def __init__(
        self,
        engine: AudioEngine | None = None,
        callbacks: PipelineCallbacks | None = None,
        transport: Transport = transcribe_chunk,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        progress_debounce: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine or FFmpegAudioEngine()
        self.callbacks = callbacks or PipelineCallbacks()
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.progress_debounce = progress_debounce
        self.sleep = sleep
        self.clock = clock
        self._generation = 0
        self.run: RunState | None = None

    @classmethod
    def from_config(
        cls,
        config: ChunkscribeConfig,
        callbacks: PipelineCallbacks | None = None,
        engine: AudioEngine | None = None,
        transport: Transport = transcribe_chunk,
    ) -> TranscriptionService:
        return cls(
            engine=engine or FFmpegAudioEngine(max_chunk_bytes=config.max_chunk_bytes),
            callbacks=callbacks,
            transport=transport,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            progress_debounce=config.progress_debounce,
        )

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _new_run(self) -> RunState:
        self._generation += 1
        self.run = RunState(self._generation, self.callbacks, self._is_current)
        return self.run

    def reset(self) -> None:
        """Abandon any run in flight and return every step and counter to its initial state."""
        run = self._new_run()
        run.update_state(
            is_processing=False,
            progress=0,
            step_progress=0,
            current_step="",
            status="",
            status_params=None,
            current_chunk=0,
            total_chunks=0,
        )
        run.set_progress(0, force=True)
        run.update_steps(_reset_steps)

    async def process_file(
        self,
        file: Path,
        options: TranscriptionOptions,
        backend: BackendConfig,
    ) -> TranscriptionResult:
        """Transcribe a media file.

        Args:
            file: Media file to transcribe
            options: Transcription options sent with every chunk
            backend: Backend URL, token and proxy flag

        Returns:
            The merged transcript, wall-clock processing time and file name

        Raises:
            ConfigError: If the backend base URL is missing
            InputFileError: If the file is missing or empty
            AudioEngineError: If the engine cannot start, convert or split
        """
        started = time.perf_counter()
        run = self._new_run()
        file = Path(file)

        try:
            run.update_state(
                is_processing=True,
                progress=0,
                step_progress=0,
                current_chunk=0,
                total_chunks=0,
                current_step="",
                status="",
                status_params=None,
                is_ffmpeg_initializing=False,
                has_ffmpeg_started=False,
            )
            run.set_progress(0, force=True)
            run.update_steps(_reset_steps)

            file_size = self._validate(run, file, backend)
            await self._init_engine(run)
            wav_data = await self._convert(run, file)
            chunks = await self._split(run, wav_data)

            run.update_state(
                current_step="processing.startingTranscription",
                status="processing.startingTranscription",
                status_params=None,
            )
            run.log("info", "logs.startingTranscription")

            segments = await self._process_chunks(run, chunks, options, backend)

            run.update_steps(_status("finalizing", "inProgress"))
            run.update_steps(_progress("finalizing", 50))
            processing_time = time.perf_counter() - started
            run.update_steps(_progress("finalizing", 100))
            run.update_steps(_status("finalizing", "completed"))
            run.log(
                "success",
                "logs.transcriptionComplete",
                time=f"{processing_time:.2f}",
                segments=len(segments),
            )

            run.set_progress(100)
            run.update_state(
                is_processing=False,
                progress=100,
                current_step="complete",
                step_progress=100,
                status="processing.complete",
                status_params=None,
            )
            logger.debug(
                "Processed %s (%d bytes) into %d segments", file.name, file_size, len(segments)
            )

            return TranscriptionResult(
                segments=segments,
                processing_time=processing_time,
                original_file_name=file.name,
            )

        except Exception as e:
            run.update_state(
                is_processing=False,
                progress=0,
                current_step="error",
                step_progress=0,
                status="processing.error",
                status_params=None,
                current_chunk=0,
                total_chunks=0,
            )
            run.set_progress(0, force=True)
            run.log("error", "errors.processingFailed", error=str(e))
            raise

    def _validate(self, run: RunState, file: Path, backend: BackendConfig) -> int:
        run.update_steps(_status("fileValidation", "inProgress"))
        run.update_steps(_progress("fileValidation", 50))

        try:
            if not backend.base_url:
                raise ConfigError(render("errors.missingBaseUrl"))
            if not file.is_file():
                raise InputFileError(f"File not found: {file}")
            file_size = file.stat().st_size
            if file_size == 0:
                raise InputFileError(f"File is empty: {file}")
        except ChunkscribeError as e:
            run.update_steps(_status("fileValidation", "error", error=str(e)))
            raise

        run.log(
            "info", "logs.processingStart", fileName=file.name, fileSize=format_size(file_size)
        )
        run.update_steps(_progress("fileValidation", 100))
        run.update_steps(_status("fileValidation", "completed"))
        run.set_progress(stage_progress("fileValidation", 100))
        return file_size

    async def _init_engine(self, run: RunState) -> None:
        run.update_steps(_status("ffmpegInit", "inProgress"))
        run.update_state(
            is_ffmpeg_initializing=True,
            current_step="processing.initializingFFmpeg",
            status="processing.initializingFFmpeg",
            status_params=None,
        )

        try:
            await self.engine.ensure_loaded()
        except Exception as e:
            run.update_steps(_status("ffmpegInit", "error", error=str(e)))
            if isinstance(e, ChunkscribeError):
                raise
            raise AudioEngineError(f"Audio engine initialization failed: {e}") from e
        finally:
            run.update_state(is_ffmpeg_initializing=False)

        run.update_steps(_progress("ffmpegInit", 100))
        run.update_steps(_status("ffmpegInit", "completed"))
        run.update_state(has_ffmpeg_started=True)
        run.set_progress(stage_progress("ffmpegInit", 100))
        run.log("success", "logs.ffmpegInitialized")

    async def _convert(self, run: RunState, file: Path) -> bytes:
        run.update_steps(_status("audioConversion", "inProgress"))
        run.update_state(
            current_step="processing.converting",
            status="processing.converting",
            status_params=None,
            step_progress=0,
        )
        throttle = ProgressThrottle(self.progress_debounce, self.clock)

        def on_progress(progress: float) -> None:
            accepted = throttle.accept(progress)
            if accepted is None:
                return
            run.update_steps(_progress("audioConversion", accepted))
            run.update_state(
                step_progress=accepted,
                status="processing.converting",
                status_params={"progress": f"{accepted:.1f}"},
            )
            run.set_progress(stage_progress("audioConversion", accepted))

        try:
            wav_data, duration = await self.engine.convert_to_wav(
                file, on_progress=on_progress, on_log=run.ffmpeg_log
            )
        except Exception as e:
            run.update_steps(_status("audioConversion", "error", error=str(e)))
            if isinstance(e, ChunkscribeError):
                raise
            raise ConversionError(f"Audio conversion failed: {e}") from e

        run.total_duration = duration
        run.update_steps(_progress("audioConversion", 100))
        run.update_steps(_status("audioConversion", "completed"))
        run.set_progress(stage_progress("audioConversion", 100))
        run.log("success", "logs.conversionComplete")
        run.log("success", "logs.durationRetrieved", duration=f"{duration:.2f}")
        return wav_data

    async def _split(self, run: RunState, wav_data: bytes) -> list[bytes]:
        run.update_steps(_status("audioSplitting", "inProgress"))
        run.update_state(
            current_step="processing.splitting",
            status="processing.splitting",
            status_params=None,
            step_progress=0,
        )
        run.log("info", "logs.splittingIntoChunks")
        throttle = ProgressThrottle(self.progress_debounce, self.clock)

        def on_progress(progress: float) -> None:
            accepted = throttle.accept(progress)
            if accepted is None:
                return
            run.update_steps(_progress("audioSplitting", accepted))
            run.update_state(
                step_progress=accepted,
                status="processing.splitting",
                status_params={"progress": f"{accepted:.1f}"},
            )
            run.set_progress(stage_progress("audioSplitting", accepted))

        try:
            chunks = await self.engine.split_into_chunks(
                wav_data,
                on_progress=on_progress,
                on_log=run.ffmpeg_log,
                duration=run.total_duration,
            )
        except Exception as e:
            run.update_steps(_status("audioSplitting", "error", error=str(e)))
            if isinstance(e, ChunkscribeError):
                raise
            raise SplittingError(f"Chunk splitting failed: {e}") from e

        if not chunks:
            message = render("logs.audioSplittingFailed")
            run.update_steps(_status("audioSplitting", "error", error=message))
            raise SplittingError(message)

        file_size_mb = size_in_mb(len(wav_data))
        if len(chunks) == 1:
            skip_reason = render("logs.noSplittingNeeded", {"fileSize": file_size_mb})
            run.update_steps(_status("audioSplitting", "skipped", skip_reason=skip_reason))
        else:
            run.update_steps(_progress("audioSplitting", 100))
            run.update_steps(_status("audioSplitting", "completed"))
        run.update_steps(partial(with_chunk_steps, chunk_count=len(chunks)))
        run.chunk_count = len(chunks)
        run.update_state(total_chunks=len(chunks))
        run.set_progress(stage_progress("audioSplitting", 100))

        if len(chunks) == 1:
            run.log("success", "logs.noSplittingNeeded", fileSize=file_size_mb)
            run.log("info", "logs.singleFileProcessing")
        else:
            run.log("success", "logs.splittingComplete", chunks=len(chunks))
            run.log("info", "logs.chunksInfo", chunks=len(chunks))

        return chunks

    async def _process_chunks(
        self,
        run: RunState,
        chunks: list[bytes],
        options: TranscriptionOptions,
        backend: BackendConfig,
    ) -> list[TranscriptionSegment]:
        chunk_count = len(chunks)
        window = chunk_window(run.total_duration, chunk_count)
        dispatcher = TranscriptionDispatcher(
            self.transport,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            on_log=lambda kind, key, params=None: run.log(kind, key, **(params or {})),
            sleep=self.sleep,
        )

        for i, chunk in enumerate(chunks):
            if not run.is_current:
                logger.debug("Run %d superseded, stopping at chunk %d", run.generation, i)
                break

            step_id = get_chunk_step_id(i)
            run.update_steps(_status(step_id, "inProgress"))
            run.update_state(
                current_chunk=i + 1,
                total_chunks=chunk_count,
                current_step="processing.uploadingChunk",
                status="processing.uploadingChunk",
                status_params=None,
                step_progress=0,
            )
            if chunk_count == 1:
                run.log("info", "logs.uploadingFile")
            else:
                run.log("info", "logs.uploadingChunk", current=i + 1, total=chunk_count)

            run.merger.begin_chunk()

            def on_partial(batch: list[dict[str, Any]], index: int = i) -> None:
                if not run.is_current:
                    return
                run.merger.merge_streaming(batch)
                self._report_chunk_progress(run, index, chunk_count)

            try:
                run.log("info", "logs.sendingToAPI", endpoint=backend.base_url)
                result = await dispatcher.dispatch(chunk, i, options, backend, on_partial)

                if chunk_count == 1:
                    run.log("success", "logs.fileProcessed")
                else:
                    run.log("success", "logs.chunkProcessed", current=i + 1, total=chunk_count)

                if not run.merger.streamed:
                    segments = parse_fallback_response(result, options.response_format, window)
                    run.merger.merge_fallback(segments)
                run.merger.finish_chunk()

                run.update_steps(_progress(step_id, 100))
                run.update_steps(_status(step_id, "completed"))
                run.set_progress(chunk_completed_progress(i, chunk_count))
                if chunk_count == 1:
                    run.update_state(
                        current_step="processing.complete",
                        step_progress=100,
                        status="processing.complete",
                        status_params=None,
                    )
                else:
                    run.update_state(
                        current_step="processing.processingChunk",
                        step_progress=(i + 1) / chunk_count * 100,
                        status="logs.chunkProcessed",
                        status_params={"current": i + 1, "total": chunk_count},
                    )

            except Exception as e:
                run.merger.finish_chunk()
                run.update_steps(_status(step_id, "error", error=str(e)))
                run.log("error", "errors.chunkProcessingFailed", chunk=i + 1, error=str(e))
                logger.debug("Chunk %d failed", i + 1, exc_info=True)
                continue

        return run.merger.snapshot()

    def _report_chunk_progress(self, run: RunState, index: int, chunk_count: int) -> None:
        step_id = get_chunk_step_id(index)
        current_step = (
            "processing.processingFile" if chunk_count == 1 else "processing.processingChunk"
        )
        processed = run.merger.last_segment_end

        if processed is not None and run.total_duration > 0:
            local = chunk_local_progress(index, chunk_count, processed, run.total_duration)
            run.update_steps(_progress(step_id, round(local)))
            run.set_progress(chunk_overall_progress(index, chunk_count, local))
        else:
            processed = 0.0
            local = 50.0
            run.update_steps(_progress(step_id, local))
            run.set_progress(chunk_overall_progress(index, chunk_count, 0))

        run.update_state(
            current_step=current_step,
            step_progress=local,
            status=current_step,
            status_params={
                "current": index + 1,
                "total": chunk_count,
                "processed": f"{processed:.1f}",
                "total_duration": f"{run.total_duration:.1f}",
                "progress": f"{local:.1f}",
            },
        )
