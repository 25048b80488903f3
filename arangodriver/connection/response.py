"""Raw response handle returned by the transport."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from arangodriver.connection.abort import CallGuard
from arangodriver.errors import (
    CancelledError,
    ConnectionFailedError,
    DeadlineExceededError,
    DriverError,
    TransportError,
    TransportTimeoutError,
)


def transport_error(
    exc: Exception,
    guard: CallGuard,
    endpoint: str,
    *,
    aborted: bool = False,
    fallback: type[TransportError] = TransportError,
) -> DriverError:
    """Translate an httpx failure into the driver error the caller sees.

    Failures caused by the call's own cancellation or deadline are reported
    as such rather than as network trouble.
    """
    if aborted or guard.cancelled:
        return CancelledError("request cancelled")
    if isinstance(exc, httpx.TimeoutException):
        if guard.expired() or guard.deadline_bound:
            return DeadlineExceededError("request deadline exceeded")
        return TransportTimeoutError(str(exc), endpoint=endpoint)
    if isinstance(exc, httpx.ConnectError):
        return ConnectionFailedError(str(exc), endpoint=endpoint)
    return fallback(str(exc), endpoint=endpoint)


class Response:
    """Status, headers and a body stream owned by the caller.

    The body must be consumed or the response closed, otherwise the pooled
    connection stays checked out. ``close`` is idempotent.
    """

    def __init__(
        self,
        raw: httpx.Response,
        endpoint: str,
        *,
        guard: CallGuard | None = None,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._raw = raw
        self._endpoint = endpoint
        self._guard = guard if guard is not None else CallGuard()
        self._content: bytes | None = None
        self._on_close: list[Callable[[], None]] = [on_close] if on_close is not None else []
        self._closed = False
        self._aborted = False
        self._lock = threading.Lock()
        self.data: Any = None  # decoded body, set by Connection.do

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    @property
    def code(self) -> int:
        return self._raw.status_code

    @property
    def endpoint(self) -> str:
        """Endpoint that handled the request."""
        return self._endpoint

    @property
    def headers(self) -> httpx.Headers:
        return self._raw.headers

    def header(self, key: str) -> str | None:
        return self._raw.headers.get(key)

    @property
    def content_type(self) -> str:
        return self._raw.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @property
    def http_version(self) -> str:
        return self._raw.http_version

    @property
    def raw(self) -> httpx.Response:
        return self._raw

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------
    def iter_bytes(self) -> Iterator[bytes]:
        """Yield decompressed body chunks.

        Raises:
            CancelledError: When the call is cancelled mid-body.
            DeadlineExceededError: When the deadline passes mid-body.
        """
        if self._content is not None:
            if self._content:
                yield self._content
            return
        chunks = self._raw.iter_bytes()
        while True:
            if self._guard.expired():
                self.close()
                raise DeadlineExceededError("request deadline exceeded while reading body")
            try:
                # bound per chunk only; the caller's code between chunks
                # must not run under this call's guard
                with self._guard.bound():
                    chunk = next(chunks, None)
            except httpx.StreamConsumed:
                return
            except httpx.StreamClosed as exc:
                if self._aborted or self._guard.cancelled:
                    raise CancelledError("request cancelled while reading body") from exc
                return
            except httpx.TransportError as exc:
                raise self._body_error(exc) from exc
            if chunk is None:
                return
            yield chunk

    def read(self) -> bytes:
        """Read the whole body and close the response."""
        try:
            return self.buffer()
        finally:
            self.close()

    def buffer(self) -> bytes:
        """Load the whole body into memory; it stays readable afterwards."""
        if self._content is None:
            if self._closed and not self._aborted:
                raise ConnectionFailedError("response closed before its body was read", endpoint=self._endpoint)
            self._content = b"".join(self.iter_bytes())
        return self._content

    def _body_error(self, exc: Exception) -> DriverError:
        return transport_error(
            exc, self._guard, self._endpoint, aborted=self._aborted, fallback=ConnectionFailedError
        )

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._closed:
                self._on_close.append(callback)
                return
        callback()

    def abort(self) -> None:
        """Close the response because the caller cancelled."""
        self._aborted = True
        self._guard.cancel()
        self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            callbacks, self._on_close = self._on_close, []
        self._raw.close()
        for callback in callbacks:
            callback()

    def __enter__(self) -> Response:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Response [{self.code}] from {self._endpoint}>"


__all__ = ["Response", "transport_error"]
