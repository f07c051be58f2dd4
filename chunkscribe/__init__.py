"""
Chunkscribe - chunked transcription against Whisper-compatible backends.

Takes a media file and produces one time-aligned transcript through a
staged pipeline: validation → audio engine init → WAV conversion →
chunk splitting → per-chunk transcription and merge → finalize.
"""

__version__ = "0.1.0"
