"""
chunkscribe.transcribe - Backend transport, dispatch and response parsing.

Sends audio chunks to a Whisper-compatible HTTP API, retries transient
transport failures and parses non-streamed responses into segments.
"""

from __future__ import annotations
