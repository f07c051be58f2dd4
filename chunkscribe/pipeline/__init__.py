"""
chunkscribe.pipeline - Chunked transcription orchestration.

Step tracking, overall progress, the segment merger and the orchestrator
that drives a file through conversion, splitting and per-chunk
transcription.
"""

from __future__ import annotations
