"""
chunkscribe.messages - English text for pipeline message keys.

The pipeline reports through message keys plus parameters so callers can
localize; this catalog is the default rendering.
"""

from __future__ import annotations

from typing import Any

MESSAGES: dict[str, str] = {
    "logs.processingStart": "Processing {fileName} ({fileSize})",
    "logs.ffmpegInitialized": "FFmpeg initialized",
    "logs.ffmpegInitializationFailed": "FFmpeg initialization failed",
    "logs.conversionComplete": "Audio conversion complete",
    "logs.durationRetrieved": "Audio duration: {duration}s",
    "logs.splittingIntoChunks": "Splitting audio into chunks...",
    "logs.noSplittingNeeded": "No splitting needed ({fileSize} MB)",
    "logs.singleFileProcessing": "Processing as a single file",
    "logs.splittingComplete": "Split into {chunks} chunks",
    "logs.chunksInfo": "Transcribing {chunks} chunks one at a time",
    "logs.startingTranscription": "Starting transcription",
    "logs.uploadingFile": "Uploading file...",
    "logs.uploadingChunk": "Uploading chunk {current}/{total}...",
    "logs.sendingToAPI": "Sending to {endpoint}",
    "logs.transientRetry": "Transport interrupted, retrying (attempt {attempt}/{total})",
    "logs.fileProcessed": "File processed",
    "logs.chunkProcessed": "Chunk {current}/{total} processed",
    "logs.transcriptionComplete": "Transcription complete in {time}s ({segments} segments)",
    "logs.audioSplittingFailed": "Audio splitting produced no chunks",
    "errors.transientTransportError": "Transport kept failing after retries",
    "errors.chunkProcessingFailed": "Chunk {chunk} failed: {error}",
    "errors.processingFailed": "Processing failed: {error}",
    "errors.missingBaseUrl": "API base URL is not configured",
    "steps.ffmpegInit": "Initialize FFmpeg",
    "steps.fileValidation": "Validate file",
    "steps.audioConversion": "Convert audio",
    "steps.audioSplitting": "Split audio",
    "steps.transcription": "Transcribe",
    "steps.chunkProcessing": "Transcribe chunk {current}/{total}",
    "steps.finalizing": "Finalize",
    "processing.initializingFFmpeg": "Initializing FFmpeg...",
    "processing.converting": "Converting audio...",
    "processing.splitting": "Splitting audio...",
    "processing.startingTranscription": "Starting transcription...",
    "processing.uploadingChunk": "Uploading...",
    "processing.processingFile": "Transcribing {processed}s / {total_duration}s",
    "processing.processingChunk": "Chunk {current}/{total}: {processed}s / {total_duration}s",
    "processing.complete": "Complete",
    "processing.error": "Error",
}


def render(message_key: str, params: dict[str, Any] | None = None) -> str:
    """Render a message key. Unknown keys render as the key itself; a
    template missing parameters renders unformatted."""
    template = MESSAGES.get(message_key)
    if template is None:
        return message_key
    try:
        return template.format(**(params or {}))
    except (KeyError, IndexError, ValueError):
        return template
