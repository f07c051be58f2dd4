"""
chunkscribe.transcribe.dispatcher - Send one chunk to the backend with retries.

Wraps a transport callable. Errors whose message carries a known
transient-channel signature are retried (2 extra attempts, 1s apart by
default); anything else propagates on the first failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from chunkscribe.config import BackendConfig, TranscriptionOptions
from chunkscribe.logging import logger

PartialCallback = Callable[[list[dict[str, Any]]], None]

TRANSIENT_ERROR_SIGNATURES = (
    "message channel closed",
    "listener indicated an asynchronous response",
    "server disconnected without sending a response",
)


class Transport(Protocol):
    """Sends one chunk; may call ``on_partial`` any number of times before returning."""

    def __call__(
        self,
        base_url: str,
        chunk: bytes,
        chunk_index: int,
        options: TranscriptionOptions,
        token: str | None = None,
        on_partial: PartialCallback | None = None,
        use_server_proxy: bool = False,
    ) -> Awaitable[Any]: ...


def _error_messages(error: BaseException) -> list[str]:
    messages = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        messages.append(str(current).lower())
        current = current.__cause__ or current.__context__
    return messages


def is_transient_error(error: BaseException) -> bool:
    """True when the error, or anything it was raised from, has a transient signature."""
    return any(
        signature in message
        for message in _error_messages(error)
        for signature in TRANSIENT_ERROR_SIGNATURES
    )


class TranscriptionDispatcher:
    """Dispatch a chunk through a transport, retrying transient failures."""

    def __init__(
        self,
        transport: Transport,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        on_log: Callable[..., None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_log = on_log
        self.sleep = sleep

    def _log(self, kind: str, message_key: str, **params: Any) -> None:
        if self.on_log is not None:
            self.on_log(kind, message_key, params or None)

    async def dispatch(
        self,
        chunk: bytes,
        chunk_index: int,
        options: TranscriptionOptions,
        backend: BackendConfig,
        on_partial: PartialCallback | None = None,
    ) -> Any:
        """Send one chunk and return the transport's final result.

        Raises:
            Exception: The transport's error, once retries are exhausted
                or immediately if it is not transient
        """
        total_attempts = self.max_retries + 1

        for attempt in range(total_attempts):
            try:
                return await self.transport(
                    backend.base_url,
                    chunk,
                    chunk_index,
                    options,
                    token=backend.token,
                    on_partial=on_partial,
                    use_server_proxy=backend.use_server_proxy,
                )
            except Exception as e:
                if not is_transient_error(e):
                    raise
                if attempt >= self.max_retries:
                    self._log("error", "errors.transientTransportError")
                    raise
                logger.debug("Transient error on chunk %d: %s", chunk_index, e)
                self._log(
                    "info",
                    "logs.transientRetry",
                    attempt=attempt + 1,
                    total=total_attempts,
                )
                await self.sleep(self.retry_delay)
