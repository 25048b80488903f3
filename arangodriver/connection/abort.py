"""Interruptible socket I/O for calls in flight.

httpx blocks the calling thread in ``recv`` while it waits for response
headers or body bytes. A :class:`CallGuard` bound to that thread caps each
socket timeout at the call's deadline and lets a cancellation shut the
socket down from another thread, so both take effect in the middle of a read.

Streams that multiplex several calls (HTTP/2) are never shut down or timed
out on behalf of one call, since that would fail every call sharing the
connection. Calls on those streams stop at the next body chunk instead.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

import httpcore
import httpx

logger = logging.getLogger(__name__)

_bound = threading.local()


def current_guard() -> CallGuard | None:
    """Guard governing socket I/O on the calling thread, if any."""
    return getattr(_bound, "guard", None)


class CallGuard:
    """Deadline and cancellation state for the socket I/O of one call."""

    def __init__(self, deadline: float | None = None) -> None:
        self.deadline = deadline  # time.monotonic() based
        self._lock = threading.Lock()
        self._cancelled = False
        self._stream: AbortableStream | None = None
        self.deadline_bound = False  # last operation waited on the deadline, not its own timeout

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def cancel(self) -> None:
        """Mark the call cancelled and unblock the socket it is waiting on."""
        with self._lock:
            self._cancelled = True
            stream = self._stream
        if stream is not None:
            logger.debug("Shutting down socket of cancelled call")
            stream.shutdown()

    def cap(self, timeout: float | None, timeout_error: type[Exception]) -> float | None:
        """Shrink ``timeout`` to the time left before the deadline."""
        if self.deadline is None:
            return timeout
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise timeout_error("call deadline exceeded")
        self.deadline_bound = timeout is None or remaining <= timeout
        return remaining if timeout is None else min(timeout, remaining)

    @contextmanager
    def bound(self) -> Iterator[CallGuard]:
        """Make this guard govern socket I/O on the current thread."""
        previous = current_guard()
        _bound.guard = self
        try:
            yield self
        finally:
            _bound.guard = previous

    @contextmanager
    def watching(
        self,
        stream: AbortableStream,
        timeout: float | None,
        timeout_error: type[Exception],
        error: type[Exception],
    ) -> Iterator[float | None]:
        """Expose ``stream`` to :meth:`cancel` for one blocking operation.

        Yields the socket timeout to use.
        """
        timeout = self.cap(timeout, timeout_error)
        with self._lock:
            if self._cancelled:
                raise error("call cancelled")
            self._stream = stream
        try:
            yield timeout
        finally:
            with self._lock:
                self._stream = None


class AbortableStream(httpcore.NetworkStream):
    """Network stream deferring to the calling thread's :class:`CallGuard`."""

    def __init__(self, stream: httpcore.NetworkStream, *, shared: bool = False) -> None:
        self._stream = stream
        self.shared = shared

    def _guard(self) -> CallGuard | None:
        return None if self.shared else current_guard()

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        guard = self._guard()
        if guard is None:
            return self._stream.read(max_bytes, timeout)
        with guard.watching(self, timeout, httpcore.ReadTimeout, httpcore.ReadError) as capped:
            return self._stream.read(max_bytes, capped)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        guard = self._guard()
        if guard is None:
            self._stream.write(buffer, timeout)
            return
        with guard.watching(self, timeout, httpcore.WriteTimeout, httpcore.WriteError) as capped:
            self._stream.write(buffer, capped)

    def close(self) -> None:
        self._stream.close()

    def start_tls(
        self,
        ssl_context: Any,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> AbortableStream:
        stream = self._stream.start_tls(ssl_context, server_hostname, timeout)
        ssl_object = stream.get_extra_info("ssl_object")
        shared = ssl_object is not None and ssl_object.selected_alpn_protocol() == "h2"
        return AbortableStream(stream, shared=shared)

    def get_extra_info(self, info: str) -> Any:
        return self._stream.get_extra_info(info)

    def shutdown(self) -> None:
        """Shut the socket down so a blocked ``recv`` returns at once."""
        sock = self._stream.get_extra_info("socket")
        if sock is None:
            return
        try:
            # the plain socket method; SSLSocket.shutdown would drop its
            # SSL object under the reading thread
            socket.socket.shutdown(sock, socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Socket already closed: %s", exc)


class AbortableBackend(httpcore.NetworkBackend):
    """Synchronous network backend producing :class:`AbortableStream` objects."""

    def __init__(self, *, multiplexed_cleartext: bool = False) -> None:
        self._backend = httpcore.SyncBackend()
        # h2c with prior knowledge multiplexes plain TCP connections too
        self._multiplexed_cleartext = multiplexed_cleartext

    def _connect_timeout(self, timeout: float | None) -> float | None:
        guard = current_guard()
        if guard is None:
            return timeout
        return guard.cap(timeout, httpcore.ConnectTimeout)

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> AbortableStream:
        stream = self._backend.connect_tcp(
            host,
            port,
            timeout=self._connect_timeout(timeout),
            local_address=local_address,
            socket_options=socket_options,
        )
        return AbortableStream(stream, shared=self._multiplexed_cleartext)

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> AbortableStream:
        stream = self._backend.connect_unix_socket(
            path,
            timeout=self._connect_timeout(timeout),
            socket_options=socket_options,
        )
        return AbortableStream(stream, shared=self._multiplexed_cleartext)

    def sleep(self, seconds: float) -> None:
        self._backend.sleep(seconds)


class AbortableTransport(httpx.HTTPTransport):
    """``httpx.HTTPTransport`` whose sockets honour the calling thread's guard."""

    def __init__(
        self,
        *,
        verify: Any = True,
        cert: Any = None,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits | None = None,
        uds: str | None = None,
    ) -> None:
        # HTTPTransport keeps nothing but its pool, built here with the
        # guarded backend in place of httpcore's default one
        limits = limits if limits is not None else httpx.Limits()
        self._pool = httpcore.ConnectionPool(
            ssl_context=httpx.create_ssl_context(verify=verify, cert=cert),
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            http1=http1,
            http2=http2,
            uds=uds,
            retries=0,
            network_backend=AbortableBackend(multiplexed_cleartext=http2 and not http1),
        )


__all__ = [
    "AbortableBackend",
    "AbortableStream",
    "AbortableTransport",
    "CallGuard",
    "current_guard",
]
