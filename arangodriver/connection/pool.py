"""Round-robin pool over several independent connections.

Each member owns its own httpx client, which spreads load over more TCP
connections than one HTTP/2 connection would use.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from arangodriver.connection.base import Connection
from arangodriver.connection.codec import Codec
from arangodriver.connection.context import RequestContext
from arangodriver.connection.endpoints import Endpoints
from arangodriver.connection.request import Request
from arangodriver.connection.response import Response
from arangodriver.errors import InvalidArgumentError

if TYPE_CHECKING:
    from arangodriver.connection.auth import Authentication
    from arangodriver.connection.configuration import ConnectionConfig

ConnectionFactory = Callable[[], Connection]


class ConnectionPool(Connection):
    def __init__(self, factory: ConnectionFactory, size: int) -> None:
        if size < 1:
            raise InvalidArgumentError("connection pool size must be at least 1")
        self._lock = threading.Lock()
        self._connections = [factory() for _ in range(size)]
        self._next = 0

    def __len__(self) -> int:
        return len(self._connections)

    def _connection(self) -> Connection:
        with self._lock:
            connection = self._connections[self._next]
            self._next = (self._next + 1) % len(self._connections)
        return connection

    def new_request(self, method: str, *parts: str) -> Request:
        return self._connections[0].new_request(method, *parts)

    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        return self._connection().stream(ctx, request)

    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        return self._connection().do(ctx, request, target)

    @property
    def endpoints(self) -> Endpoints:
        return self._connections[0].endpoints

    def set_endpoints(self, endpoints: Endpoints) -> None:
        with self._lock:
            for connection in self._connections:
                connection.set_endpoints(endpoints)

    @property
    def authentication(self) -> Authentication | None:
        return self._connections[0].authentication

    def set_authentication(self, authentication: Authentication | None) -> None:
        """Set credentials on every member, restoring the old ones on failure."""
        with self._lock:
            done: list[tuple[Connection, Authentication | None]] = []
            try:
                for connection in self._connections:
                    previous = connection.authentication
                    connection.set_authentication(authentication)
                    done.append((connection, previous))
            except Exception:
                for connection, previous in done:
                    connection.set_authentication(previous)
                raise

    @property
    def config(self) -> ConnectionConfig:
        return self._connections[0].config

    def decoder(self, content_type: str | None = None) -> Codec:
        return self._connections[0].decoder(content_type)

    def close(self) -> None:
        for connection in self._connections:
            connection.close()


__all__ = ["ConnectionFactory", "ConnectionPool"]
