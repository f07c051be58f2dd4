"""
chunkscribe.transcribe.client - httpx transport for Whisper-compatible APIs.

Posts one WAV chunk as multipart form data and reads the response body
incrementally. Cue text arriving mid-response is parsed on the fly and
reported through ``on_partial`` so the transcript can grow while the
request is still open.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

import httpx
from pydantic import BaseModel

from chunkscribe.config import TranscriptionOptions
from chunkscribe.exceptions import TranscriptionError
from chunkscribe.transcribe.dispatcher import PartialCallback
from chunkscribe.transcribe.parsing import CUE_ARROW, SSE_PREFIX, parse_cue_text

API_ENDPOINTS = {
    "health": "/health",
    "transcribe": "/v1/audio/transcriptions",
    "translate": "/v1/audio/translations",
}

TEXT_FORMATS = {"vtt", "srt", "text"}

DEFAULT_TIMEOUT = 600.0


class ApiStatus(BaseModel):
    status: Literal["unknown", "healthy", "error"]
    message: str
    details: str = ""


def build_endpoint(base_url: str, endpoint: str) -> str:
    return f"{base_url.rstrip('/')}{endpoint}"


def build_form_data(options: TranscriptionOptions) -> dict[str, str]:
    """Form fields sent alongside the audio file."""
    data = {
        "model": options.model,
        "response_format": options.response_format or "vtt",
        "stream": "true",
    }
    if not options.detect_language:
        data["language"] = options.language
    if options.timestamp_granularity:
        data["timestamp_granularities"] = options.timestamp_granularity
    if options.temperature is not None:
        data["temperature"] = str(options.temperature)
    if options.prompt:
        data["prompt"] = options.prompt
    if options.hotwords:
        data["hotwords"] = ",".join(options.hotwords)
    if options.use_vad_filter:
        data["vad_filter"] = "true"
    return data


def _auth_headers(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


@asynccontextmanager
async def _open_client(
    client: httpx.AsyncClient | None, use_server_proxy: bool, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, trust_env=use_server_proxy) as owned:
        yield owned


def _format_body(body: str) -> str:
    stripped = body.strip()
    if stripped.startswith(("{", "[")):
        try:
            return json.dumps(json.loads(stripped), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            pass
    return body


async def transcribe_chunk(
    base_url: str,
    chunk: bytes,
    chunk_index: int,
    options: TranscriptionOptions,
    token: str | None = None,
    on_partial: PartialCallback | None = None,
    use_server_proxy: bool = False,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Transcribe one audio chunk.

    Args:
        base_url: Backend root URL
        chunk: WAV bytes
        chunk_index: Position of the chunk, used in the upload filename
        options: Transcription options
        token: Optional bearer token
        on_partial: Called with the full list of cues parsed so far
            each time that list grows
        use_server_proxy: Honour HTTP(S)_PROXY settings from the environment
        client: Existing client to use instead of opening one
        timeout: Request timeout in seconds

    Returns:
        Raw response text for text formats, otherwise the decoded JSON

    Raises:
        TranscriptionError: On HTTP errors, network failures or bad JSON
    """
    endpoint = API_ENDPOINTS["translate" if options.task == "translate" else "transcribe"]
    url = build_endpoint(base_url, endpoint)
    files = {"file": (f"audio_chunk_{chunk_index}.wav", bytes(chunk), "audio/wav")}

    result = ""
    content_type = ""
    reported = 0

    try:
        async with _open_client(client, use_server_proxy, timeout) as http:
            async with http.stream(
                "POST",
                url,
                files=files,
                data=build_form_data(options),
                headers=_auth_headers(token),
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TranscriptionError(f"API Error {response.status_code}: {body}")

                content_type = response.headers.get("content-type", "")
                async for piece in response.aiter_text():
                    result += piece
                    if on_partial is None or (CUE_ARROW not in piece and SSE_PREFIX not in piece):
                        continue
                    segments = parse_cue_text(result, compare_text=True)
                    if len(segments) > reported:
                        reported = len(segments)
                        on_partial([segment.model_dump() for segment in segments])
    except httpx.HTTPError as e:
        raise TranscriptionError(f"Network error talking to {base_url}: {e}") from e

    if options.response_format in TEXT_FORMATS or "text/plain" in content_type:
        return result

    try:
        return json.loads(result)
    except json.JSONDecodeError as e:
        raise TranscriptionError(f"Backend returned invalid JSON: {e}") from e


async def check_health(
    base_url: str,
    token: str | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
) -> ApiStatus:
    """Probe the backend's health endpoint. Never raises."""
    url = build_endpoint(base_url, API_ENDPOINTS["health"])
    try:
        async with _open_client(client, True, timeout) as http:
            response = await http.get(url, headers=_auth_headers(token))
    except httpx.HTTPError as e:
        return ApiStatus(
            status="error",
            message="Connection to API server failed",
            details=str(e),
        )

    body = _format_body(response.text)
    if response.is_error:
        return ApiStatus(
            status="error",
            message=f"HTTP error! status: {response.status_code}",
            details=f"{response.reason_phrase}\n\n{body}",
        )
    return ApiStatus(status="healthy", message="API is healthy", details=body)
