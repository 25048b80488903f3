"""HTTP/1.1 and HTTP/2 transport built on httpx.

Protocol note: HTTP/2 over TLS is negotiated through ALPN. For cleartext
``http://`` endpoints HTTP/2 is only used with ``http2_cleartext`` set, which
speaks h2c with prior knowledge; otherwise httpx falls back to HTTP/1.1.

This layer never retries. It reports network failures as
``TransportError`` and hands back every received status code, including
non-2xx ones, for the wrappers above it to interpret. Cancellation and
deadlines interrupt calls in flight through the guarded sockets of
:mod:`arangodriver.connection.abort`.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from typing import Any

import httpx

from arangodriver.connection.abort import AbortableTransport, CallGuard
from arangodriver.connection.auth import Authentication
from arangodriver.connection.base import Connection
from arangodriver.connection.codec import Codec, codec_for, convert
from arangodriver.connection.compression import apply_request_headers, compress_body
from arangodriver.connection.configuration import ConnectionConfig
from arangodriver.connection.context import RequestContext, context_or_background
from arangodriver.connection.endpoints import Endpoints, RoundRobinEndpoints, normalize_endpoint
from arangodriver.connection.request import Request
from arangodriver.connection.response import Response, transport_error
from arangodriver.errors import (
    CancelledError,
    DecodeError,
    DeadlineExceededError,
    ProtocolError,
)

logger = logging.getLogger(__name__)

SUPPORTED_HTTP_VERSIONS = frozenset({"HTTP/1.0", "HTTP/1.1", "HTTP/2"})


class HttpConnection(Connection):
    """Connection executing requests over one shared httpx client."""

    def __init__(self, config: ConnectionConfig, endpoints: Endpoints | None = None) -> None:
        config.validate()
        self._config = config
        self._endpoints = endpoints if endpoints is not None else RoundRobinEndpoints(config.endpoints)
        self._authentication: Authentication | None = config.authentication
        self._codec = codec_for(config.content_type)
        self._streams = (
            threading.BoundedSemaphore(config.max_concurrent_streams)
            if config.max_concurrent_streams
            else None
        )

        # Unix socket transport if socket_path is provided, otherwise network.
        if config.transport is not None:
            transport = config.transport
        else:
            transport = AbortableTransport(
                uds=config.socket_path or None,
                verify=config.verify,
                cert=config.cert,
                http1=not config.http2_cleartext,
                http2=config.http2,
                limits=config.limits(),
            )

        self._client = httpx.Client(
            http2=config.http2,
            transport=transport,
            timeout=config.timeout(),
            follow_redirects=False,
        )

    # ------------------------------------------------------------------
    # Connection API
    # ------------------------------------------------------------------
    @property
    def endpoints(self) -> Endpoints:
        return self._endpoints

    def set_endpoints(self, endpoints: Endpoints) -> None:
        self._endpoints = endpoints

    @property
    def authentication(self) -> Authentication | None:
        return self._authentication

    def set_authentication(self, authentication: Authentication | None) -> None:
        self._authentication = authentication

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def decoder(self, content_type: str | None = None) -> Codec:
        return codec_for(content_type, default=self._codec)

    def close(self) -> None:
        self._client.close()

    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        ctx = context_or_background(ctx)
        # fail before any I/O when the caller already gave up
        ctx.check()

        endpoint = self._resolve(ctx, request)
        http_request = self._build(ctx, request, endpoint)

        request_id = uuid.uuid4().hex
        logger.debug("(%s) Sending request %s %s", request_id, request.method, http_request.url)

        self._acquire_stream(ctx)
        guard = CallGuard(ctx.deadline)
        forget_cancel: Callable[[], None] = lambda: None
        if ctx.cancel_token is not None:
            # registered before sending so a cancel also interrupts the wait for headers
            forget_cancel = ctx.cancel_token.add_callback(guard.cancel)
        try:
            with guard.bound():
                raw = self._client.send(http_request, stream=True, auth=self._authentication)
        except httpx.TransportError as exc:
            forget_cancel()
            self._release_stream()
            logger.debug("(%s) Request failed: %s", request_id, exc)
            raise transport_error(exc, guard, endpoint) from exc
        except BaseException:
            forget_cancel()
            self._release_stream()
            raise

        logger.debug("(%s) Response received: %d", request_id, raw.status_code)

        response = Response(raw, endpoint, guard=guard, on_close=self._release_stream)
        response.add_close_callback(forget_cancel)
        if raw.http_version not in SUPPORTED_HTTP_VERSIONS:
            response.close()
            raise ProtocolError(
                f"Unexpected HTTP version {raw.http_version!r} for {request.method} {http_request.url}"
            )

        if ctx.cancel_token is not None:
            response.add_close_callback(ctx.cancel_token.add_callback(response.abort))
        if ctx.cancelled:
            response.close()
            raise CancelledError("request cancelled")
        return response

    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        response = self.stream(ctx, request)
        try:
            content = response.buffer()
        finally:
            response.close()

        codec = self.decoder(response.content_type)
        if 200 <= response.code < 300:
            if content:
                response.data = convert(codec.decode(content), target)
            return response

        try:
            response.data = codec.decode(content)
        except DecodeError:
            # error pages from proxies are not always encoded
            response.data = None
        return response

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _resolve(self, ctx: RequestContext, request: Request) -> str:
        # an endpoint set on the request was chosen by failover or a redirect
        # and may lie outside the resolver's set
        if request.endpoint:
            return normalize_endpoint(request.endpoint)
        return self._endpoints.get(ctx.endpoint, request.method, request.url_path())

    def _build(self, ctx: RequestContext, request: Request, endpoint: str) -> httpx.Request:
        headers: dict[str, str] = {
            "content-type": self._codec.content_type,
            "accept": self._codec.content_type,
            "user-agent": self._config.user_agent,
        }
        apply_request_headers(self._config.compression, headers)
        headers.update({k.lower(): v for k, v in ctx.headers.items()})
        if ctx.transaction_id:
            headers["x-arango-trx-id"] = ctx.transaction_id
        if ctx.allow_dirty_read:
            headers["x-arango-allow-dirty-read"] = "true"
        if ctx.use_queue_timeout:
            queue_time = ctx.max_queue_time if ctx.max_queue_time is not None else ctx.remaining()
            if queue_time is not None:
                headers["x-arango-queue-time-seconds"] = f"{max(queue_time, 0.0):g}"
        headers.update(request.headers)

        content: bytes | None = None
        if request.has_body:
            body = request.body
            if isinstance(body, (bytes, bytearray)):
                content = bytes(body)
            else:
                content = self.decoder(headers["content-type"]).encode(body)
            content = compress_body(self._config.compression, content, headers)

        return self._client.build_request(
            request.method,
            request.url(endpoint),
            params=request.query or None,
            headers=headers,
            content=content,
            timeout=self._config.timeout(ctx.remaining()),
        )

    def _acquire_stream(self, ctx: RequestContext) -> None:
        if self._streams is None:
            return
        remaining = ctx.remaining()
        if not self._streams.acquire(timeout=remaining if remaining is not None else None):
            raise DeadlineExceededError("deadline exceeded waiting for a free stream")

    def _release_stream(self) -> None:
        if self._streams is not None:
            self._streams.release()


__all__ = ["HttpConnection", "SUPPORTED_HTTP_VERSIONS"]
