"""
ArangoDB Client
===============

One client value covers server information, database management and
agency access. It is built around a single connection stack::

    HttpConnection (or ConnectionPool)
      -> FailoverConnection      retries and endpoint rotation
      -> AsyncJobConnection      x-arango-async handling
      -> ReauthenticatingConnection (optional, token based auth)
"""

from __future__ import annotations

import logging
from typing import Any

from arangodriver.arangodb.agency import Agency
from arangodriver.arangodb.database import Database
from arangodriver.arangodb.models import CreateDatabaseOptions, VersionInfo
from arangodriver.connection.async_jobs import async_job_wrapper
from arangodriver.connection.base import Connection, Wrapper, wrap
from arangodriver.connection.call import call_delete, call_get, call_post
from arangodriver.connection.configuration import ConnectionConfig
from arangodriver.connection.context import RequestContext
from arangodriver.connection.endpoints import Endpoints, RoundRobinEndpoints
from arangodriver.connection.http import HttpConnection
from arangodriver.connection.pool import ConnectionPool
from arangodriver.connection.request import segment, with_query
from arangodriver.connection.retry import RetryConfig, retry_wrapper
from arangodriver.errors import ArangoError, is_not_found

logger = logging.getLogger(__name__)

SYSTEM_DATABASE = "_system"


def new_connection(
    config: ConnectionConfig | None = None,
    *,
    endpoints: Endpoints | None = None,
    retry: RetryConfig | None = None,
    authentication: Wrapper | None = None,
    pool_size: int = 1,
    async_jobs: bool = True,
) -> Connection:
    """Build the connection stack for ``config``.

    Args:
        config: Transport configuration; defaults to a local server.
        endpoints: Endpoint policy shared by every pooled transport;
            round robin over ``config.endpoints`` when omitted.
        retry: Failover bounds.
        authentication: Token wrapper such as ``jwt_auth_wrapper(...)``;
            static credentials belong in ``config.authentication``.
        pool_size: Number of independent transports.
        async_jobs: Whether to honour async flags on request contexts.
    """
    config = config or ConnectionConfig()
    if endpoints is None:
        endpoints = RoundRobinEndpoints(config.endpoints)

    def factory() -> Connection:
        return HttpConnection(config, endpoints)

    connection = ConnectionPool(factory, pool_size) if pool_size > 1 else factory()
    wrappers: list[Wrapper] = [retry_wrapper(retry)]
    if async_jobs:
        wrappers.append(async_job_wrapper)
    if authentication is not None:
        wrappers.append(authentication)

    logger.debug(
        "Connection built for %s (pool=%d, content_type=%s)",
        ", ".join(endpoints.list()), pool_size, config.content_type,
    )
    return wrap(connection, *wrappers)


class Client:
    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._closed = False

    @classmethod
    def from_config(cls, config: ConnectionConfig | None = None, **kwargs: Any) -> Client:
        return cls(new_connection(config, **kwargs))

    @property
    def connection(self) -> Connection:
        return self._connection

    # Context management ------------------------------------------------
    def close(self) -> None:
        if self._closed:
            return
        self._connection.close()
        self._closed = True

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    # Server info -------------------------------------------------------
    def version(self, *, details: bool = False, ctx: RequestContext | None = None) -> VersionInfo:
        modifiers = [with_query("details", True)] if details else []
        response = call_get(
            ctx,
            self._connection,
            "_api/version",
            target=VersionInfo,
            modifiers=modifiers,
            allowed_codes=(200,),
        )
        return response.data

    # Databases ---------------------------------------------------------
    def database(self, name: str, *, ctx: RequestContext | None = None) -> Database:
        """Open an existing database; raises a not-found ``ArangoError`` otherwise."""
        response = call_get(
            ctx,
            self._connection,
            ["_db", segment(name), "_api", "database", "current"],
            allowed_codes=(200,),
        )
        return Database(self, name, response.data.get("result"))

    def database_exists(self, name: str, *, ctx: RequestContext | None = None) -> bool:
        try:
            self.database(name, ctx=ctx)
        except ArangoError as exc:
            if is_not_found(exc):
                return False
            raise
        return True

    def databases(self, *, ctx: RequestContext | None = None) -> list[Database]:
        response = call_get(ctx, self._connection, self._system_url(), allowed_codes=(200,))
        return [Database(self, name) for name in response.data.get("result", [])]

    def accessible_databases(self, *, ctx: RequestContext | None = None) -> list[Database]:
        response = call_get(ctx, self._connection, self._system_url("user"), allowed_codes=(200,))
        return [Database(self, name) for name in response.data.get("result", [])]

    def create_database(
        self,
        name: str,
        options: CreateDatabaseOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> Database:
        body: dict[str, Any] = {"name": name}
        if options is not None:
            settings = options.to_body()
            users = settings.pop("users", None)
            if users:
                body["users"] = users
            if settings:
                body["options"] = settings
        call_post(ctx, self._connection, self._system_url(), body, allowed_codes=(201,))
        logger.info("Created database %s", name)
        return Database(self, name)

    def remove_database(self, name: str, *, ctx: RequestContext | None = None) -> None:
        call_delete(ctx, self._connection, self._system_url(segment(name)), allowed_codes=(200, 202))
        logger.info("Removed database %s", name)

    # Agency ------------------------------------------------------------
    def agency(self) -> Agency:
        return Agency(self._connection)

    def _system_url(self, *parts: str) -> list[str]:
        return ["_db", SYSTEM_DATABASE, "_api", "database", *parts]


__all__ = ["Client", "SYSTEM_DATABASE", "new_connection"]
