"""Retry and failover around a connection.

``FailoverConnection`` owns endpoint selection for each attempt. On a
retryable outcome it either rotates to an endpoint that has not failed yet
during this call or, for a leader redirect, goes straight to the redirect
target. Attempts are bounded by ``RetryConfig.max_attempts`` and by the
caller's deadline, whichever is reached first.

Retryable outcomes:

- ``TransportError`` (refused, reset, transport timeout)
- ``307``/``308`` with a ``Location`` header (leader redirect)
- ``503`` carrying a "not leader" or "leadership challenge" error number
- ``412`` carrying the "queue time violated" error number
- any ``503`` when ``retry_on_503`` is enabled

Everything else, including cancellation, deadline expiry and decode errors,
propagates on the first occurrence.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from arangodriver.connection.base import Connection, ConnectionWrapper, Wrapper
from arangodriver.connection.context import RequestContext, context_or_background
from arangodriver.connection.endpoints import LeaderEndpoints, normalize_endpoint
from arangodriver.connection.request import Request
from arangodriver.connection.response import Response
from arangodriver.errors import (
    ArangoError,
    DeadlineExceededError,
    DecodeError,
    InvalidArgumentError,
    TransportError,
    is_no_leader_or_ongoing,
    is_queue_time_violated,
)

logger = logging.getLogger(__name__)

REDIRECT_CODES = (307, 308)


@dataclass(slots=True)
class RetryConfig:
    """Bounds for the failover loop.

    ``max_attempts`` counts the first try. Backoff doubles per retry and is
    capped at ``max_backoff`` seconds.
    """

    max_attempts: int = 3
    backoff: float = 0.1
    max_backoff: float = 2.0
    retry_on_503: bool = False

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")
        if self.backoff < 0 or self.max_backoff < 0:
            raise InvalidArgumentError("backoff must not be negative")

    def delay(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (1-based)."""
        return min(self.backoff * (2 ** (retry - 1)), self.max_backoff)


class FailoverConnection(ConnectionWrapper):
    """Retries retryable outcomes against other endpoints."""

    def __init__(self, inner: Connection, config: RetryConfig | None = None) -> None:
        super().__init__(inner)
        self._config = config or RetryConfig()
        self._config.validate()

    @property
    def retry_config(self) -> RetryConfig:
        return self._config

    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        return self._execute(ctx, request, lambda c, r: self._inner.do(c, r, target))

    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        return self._execute(ctx, request, self._inner.stream)

    # ------------------------------------------------------------------
    # Failover loop
    # ------------------------------------------------------------------
    def _execute(
        self,
        ctx: RequestContext | None,
        request: Request,
        send: Callable[[RequestContext, Request], Response],
    ) -> Response:
        ctx = context_or_background(ctx)
        pinned = request.endpoint or ctx.endpoint
        failed: set[str] = set()
        moved = False
        last_error: BaseException | None = None
        max_attempts = self._config.max_attempts

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._wait(ctx, attempt - 1, last_error)

            endpoint = pinned or self.endpoints.get(
                None, request.method, request.url_path(), exclude=failed
            )
            attempt_request = request.clone()
            attempt_request.endpoint = endpoint

            try:
                response = send(ctx, attempt_request)
            except TransportError as exc:
                logger.warning(
                    "Request %s %s to %s failed (attempt %d/%d): %s",
                    request.method, request.url_path(), endpoint, attempt, max_attempts, exc,
                )
                last_error = exc
                failed.add(endpoint)
                moved = True
                continue

            reason = self._retry_reason(response)
            if reason is None:
                if moved:
                    self.endpoints.mark_good(response.endpoint)
                return response

            if attempt == max_attempts:
                logger.warning(
                    "Giving up on %s %s after %d attempts: %s",
                    request.method, request.url_path(), attempt, reason,
                )
                return response

            logger.info(
                "Retrying %s %s (attempt %d/%d): %s from %s",
                request.method, request.url_path(), attempt, max_attempts, reason, endpoint,
            )
            last_error = ArangoError.from_body(response.code, response.data)
            if response.code in REDIRECT_CODES:
                pinned = self._follow_redirect(response.header("location"), endpoint)
            else:
                failed.add(endpoint)
            moved = True
            response.close()

        assert last_error is not None
        raise last_error

    def _wait(self, ctx: RequestContext, retry: int, last_error: BaseException | None) -> None:
        delay = self._config.delay(retry)
        remaining = ctx.remaining()
        if remaining is not None and remaining <= delay:
            raise DeadlineExceededError("deadline exceeded while retrying") from last_error
        ctx.sleep(delay)

    def _retry_reason(self, response: Response) -> str | None:
        code = response.code
        if code in REDIRECT_CODES:
            return "leader redirect" if response.header("location") else None
        if code not in (412, 503):
            return None

        err = ArangoError.from_body(code, self._error_body(response))
        if is_no_leader_or_ongoing(err):
            return "no leader"
        if is_queue_time_violated(err):
            return "queue time violated"
        if code == 503 and self._config.retry_on_503:
            return "service unavailable"
        return None

    def _error_body(self, response: Response) -> Any:
        if response.data is None and not response.closed:
            try:
                content = response.buffer()
                if content:
                    response.data = self.decoder(response.content_type).decode(content)
            except DecodeError:
                return None
        return response.data

    def _follow_redirect(self, location: str | None, current: str) -> str:
        parts = urlsplit(location or "")
        if not parts.netloc:
            return current
        base = f"{parts.scheme}://{parts.netloc}"
        endpoints = self.endpoints
        if isinstance(endpoints, LeaderEndpoints):
            return endpoints.set_leader(base)
        return normalize_endpoint(base)


def retry_wrapper(config: RetryConfig | None = None) -> Wrapper:
    def wrapper(connection: Connection) -> Connection:
        return FailoverConnection(connection, config)

    return wrapper


def retry_on_503(max_attempts: int = 3, backoff: float = 0.1) -> Wrapper:
    """Failover wrapper that also retries plain ``503 Service Unavailable``."""
    return retry_wrapper(RetryConfig(max_attempts=max_attempts, backoff=backoff, retry_on_503=True))


__all__ = ["FailoverConnection", "REDIRECT_CODES", "RetryConfig", "retry_on_503", "retry_wrapper"]
