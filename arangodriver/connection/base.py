"""Connection interface shared by the transport and its wrappers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from arangodriver.connection.codec import Codec
from arangodriver.connection.context import RequestContext
from arangodriver.connection.endpoints import Endpoints
from arangodriver.connection.request import Request, new_url
from arangodriver.connection.response import Response

if TYPE_CHECKING:
    from arangodriver.connection.auth import Authentication
    from arangodriver.connection.configuration import ConnectionConfig


class Connection(ABC):
    """Executes logical requests against one of the known endpoints.

    ``stream`` hands back an open body which the caller must close; ``do``
    reads and decodes the body before returning.
    """

    def new_request(self, method: str, *parts: str) -> Request:
        return Request(method=method.upper(), path=new_url(*parts))

    def new_request_with_endpoint(self, endpoint: str, method: str, *parts: str) -> Request:
        request = self.new_request(method, *parts)
        request.endpoint = endpoint
        return request

    @abstractmethod
    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        """Execute ``request`` and return the response with an open body."""

    @abstractmethod
    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        """Execute ``request``; the decoded body is stored on ``response.data``.

        ``target`` is applied to 2xx bodies only; error bodies keep their
        raw decoded form so callers can build an ``ArangoError`` from them.
        """

    @property
    @abstractmethod
    def endpoints(self) -> Endpoints: ...

    @abstractmethod
    def set_endpoints(self, endpoints: Endpoints) -> None: ...

    @property
    @abstractmethod
    def authentication(self) -> Authentication | None: ...

    @abstractmethod
    def set_authentication(self, authentication: Authentication | None) -> None: ...

    @property
    @abstractmethod
    def config(self) -> ConnectionConfig: ...

    @abstractmethod
    def decoder(self, content_type: str | None = None) -> Codec:
        """Codec for ``content_type``, defaulting to the configured one."""

    def close(self) -> None:
        """Release pooled network resources."""

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


class ConnectionWrapper(Connection):
    """Delegates everything to an inner connection; subclasses override calls."""

    def __init__(self, inner: Connection) -> None:
        self._inner = inner

    @property
    def inner(self) -> Connection:
        return self._inner

    def new_request(self, method: str, *parts: str) -> Request:
        return self._inner.new_request(method, *parts)

    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        return self._inner.stream(ctx, request)

    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        return self._inner.do(ctx, request, target)

    @property
    def endpoints(self) -> Endpoints:
        return self._inner.endpoints

    def set_endpoints(self, endpoints: Endpoints) -> None:
        self._inner.set_endpoints(endpoints)

    @property
    def authentication(self) -> Authentication | None:
        return self._inner.authentication

    def set_authentication(self, authentication: Authentication | None) -> None:
        self._inner.set_authentication(authentication)

    @property
    def config(self) -> ConnectionConfig:
        return self._inner.config

    def decoder(self, content_type: str | None = None) -> Codec:
        return self._inner.decoder(content_type)

    def close(self) -> None:
        self._inner.close()


Wrapper = Callable[[Connection], Connection]


def wrap(connection: Connection, *wrappers: Wrapper) -> Connection:
    """Apply ``wrappers`` innermost first."""
    for wrapper in wrappers:
        connection = wrapper(connection)
    return connection


__all__ = ["Connection", "ConnectionWrapper", "Wrapper", "wrap"]
