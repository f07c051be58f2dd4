"""Tests for chunkscribe.transcribe.dispatcher module."""

from __future__ import annotations

import asyncio

import pytest

from chunkscribe.config import BackendConfig, TranscriptionOptions
from chunkscribe.exceptions import TranscriptionError
from chunkscribe.transcribe.dispatcher import TranscriptionDispatcher, is_transient_error

TRANSIENT = (
    "Could not establish connection. "
    "The message channel closed before a response was received"
)


def make_dispatcher(transport, logs: list, sleeps: list) -> TranscriptionDispatcher:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return TranscriptionDispatcher(
        transport,
        on_log=lambda kind, key, params=None: logs.append((kind, key, params)),
        sleep=fake_sleep,
    )


def dispatch(dispatcher: TranscriptionDispatcher, backend: BackendConfig, on_partial=None):
    return asyncio.run(
        dispatcher.dispatch(b"wav", 0, TranscriptionOptions(), backend, on_partial)
    )


class TestIsTransientError:
    def test_matches_signature(self) -> None:
        assert is_transient_error(RuntimeError(TRANSIENT))

    def test_case_insensitive(self) -> None:
        assert is_transient_error(RuntimeError("A LISTENER INDICATED AN ASYNCHRONOUS RESPONSE"))

    def test_matches_wrapped_cause(self) -> None:
        try:
            try:
                raise ConnectionError("Server disconnected without sending a response.")
            except ConnectionError as inner:
                raise TranscriptionError("Network error") from inner
        except TranscriptionError as e:
            assert is_transient_error(e)

    def test_ordinary_errors_not_transient(self) -> None:
        assert not is_transient_error(TranscriptionError("API Error 500: boom"))


class TestDispatch:
    def test_success_first_try(self, backend: BackendConfig, scripted_transport) -> None:
        transport = scripted_transport([{"result": "ok"}])
        logs: list = []
        sleeps: list = []
        assert dispatch(make_dispatcher(transport, logs, sleeps), backend) == "ok"
        assert transport.calls == [0]
        assert sleeps == []

    def test_transient_failures_retried(self, backend: BackendConfig, scripted_transport) -> None:
        transport = scripted_transport(
            [RuntimeError(TRANSIENT), RuntimeError(TRANSIENT), {"result": "ok"}]
        )
        logs: list = []
        sleeps: list = []

        assert dispatch(make_dispatcher(transport, logs, sleeps), backend) == "ok"

        assert transport.calls == [0, 0, 0]
        assert sleeps == [1.0, 1.0]
        retries = [params for kind, key, params in logs if key == "logs.transientRetry"]
        assert retries == [{"attempt": 1, "total": 3}, {"attempt": 2, "total": 3}]

    def test_retries_exhausted(self, backend: BackendConfig, scripted_transport) -> None:
        transport = scripted_transport([RuntimeError(TRANSIENT)] * 3)
        logs: list = []
        sleeps: list = []

        with pytest.raises(RuntimeError, match="message channel closed"):
            dispatch(make_dispatcher(transport, logs, sleeps), backend)

        assert transport.calls == [0, 0, 0]
        assert ("error", "errors.transientTransportError", None) in logs

    def test_non_transient_not_retried(self, backend: BackendConfig, scripted_transport) -> None:
        transport = scripted_transport([TranscriptionError("API Error 401: unauthorized")])
        logs: list = []
        sleeps: list = []

        with pytest.raises(TranscriptionError, match="401"):
            dispatch(make_dispatcher(transport, logs, sleeps), backend)

        assert transport.calls == [0]
        assert sleeps == []
        assert logs == []

    def test_partials_forwarded(self, backend: BackendConfig, scripted_transport) -> None:
        batch = [{"start": 0, "end": 1, "text": "hi"}]
        transport = scripted_transport([{"partials": [batch], "result": "done"}])
        received: list = []

        dispatch(make_dispatcher(transport, [], []), backend, received.append)

        assert received == [batch]

    def test_zero_retries(self, backend: BackendConfig, scripted_transport) -> None:
        transport = scripted_transport([RuntimeError(TRANSIENT)])
        dispatcher = TranscriptionDispatcher(transport, max_retries=0)
        with pytest.raises(RuntimeError):
            dispatch(dispatcher, backend)
        assert transport.calls == [0]

    def test_negative_retries_rejected(self, scripted_transport) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            TranscriptionDispatcher(scripted_transport([]), max_retries=-1)
