"""Per-request context: deadline, cancellation and feature flags.

A ``RequestContext`` travels with a call through every layer. It is
immutable apart from its cancellation event; derived contexts are created
with the ``with_*`` helpers, which return a copy.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from arangodriver.errors import CancelledError, DeadlineExceededError


class CancelToken:
    """Thread-safe cancellation flag with abort callbacks.

    Transports register callbacks that close in-flight responses so that a
    cancelled call unblocks promptly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove
        callback()
        return lambda: None

    def wait(self, timeout: float | None) -> bool:
        return self._event.wait(timeout)


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Deadline, cancellation and feature flags for one logical call."""

    deadline: float | None = None  # time.monotonic() based
    cancel_token: CancelToken | None = None
    use_queue_timeout: bool = False
    max_queue_time: float | None = None
    async_request: bool = False
    async_id: str | None = None
    endpoint: str | None = None
    transaction_id: str | None = None
    allow_dirty_read: bool = False
    headers: dict[str, str] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------
    def with_timeout(self, seconds: float) -> RequestContext:
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return replace(self, deadline=deadline)

    def with_deadline(self, deadline: float) -> RequestContext:
        return replace(self, deadline=deadline)

    def with_cancel(self) -> tuple[RequestContext, CancelToken]:
        token = CancelToken()
        parent = self.cancel_token
        if parent is not None:
            parent.add_callback(token.cancel)
        return replace(self, cancel_token=token), token

    def with_queue_timeout(self, max_queue_time: float | None = None) -> RequestContext:
        return replace(self, use_queue_timeout=True, max_queue_time=max_queue_time)

    def with_async(self) -> RequestContext:
        return replace(self, async_request=True)

    def with_async_id(self, job_id: str) -> RequestContext:
        return replace(self, async_id=job_id)

    def with_endpoint(self, endpoint: str) -> RequestContext:
        return replace(self, endpoint=endpoint)

    def with_transaction_id(self, transaction_id: str) -> RequestContext:
        return replace(self, transaction_id=transaction_id)

    def with_header(self, key: str, value: str) -> RequestContext:
        return replace(self, headers={**self.headers, key: value})

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without a deadline."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise if the context is cancelled or past its deadline."""
        if self.cancelled:
            raise CancelledError("request cancelled")
        if self.expired():
            raise DeadlineExceededError("request deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation or deadline."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, max(remaining, 0.0))
        if self.cancel_token is not None:
            self.cancel_token.wait(seconds)
        elif seconds > 0:
            time.sleep(seconds)
        self.check()


BACKGROUND = RequestContext()


def context_or_background(ctx: RequestContext | None) -> RequestContext:
    return ctx if ctx is not None else BACKGROUND


__all__ = ["BACKGROUND", "CancelToken", "RequestContext", "context_or_background"]
