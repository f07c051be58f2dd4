"""
chunkscribe.audio - FFmpeg-based audio engine.

Converts media to 16kHz mono WAV and splits it into upload-sized chunks.
"""

from __future__ import annotations
