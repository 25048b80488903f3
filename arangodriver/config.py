"""Environment-driven connection configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping

from arangodriver.connection.auth import Authentication, BasicAuthentication, bearer_authentication
from arangodriver.connection.codec import APPLICATION_JSON
from arangodriver.connection.configuration import DEFAULT_ENDPOINT, ConnectionConfig

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_timeout(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def _parse_endpoints(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def resolve_connection_config(
    *,
    endpoints: list[str] | None = None,
    username: str | None = None,
    password: str | None = None,
    jwt: str | None = None,
    content_type: str | None = None,
    http2: bool | None = None,
    socket_path: str | None = None,
    connect_timeout: float | None = None,
    read_timeout: float | None = None,
    write_timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> ConnectionConfig:
    """Resolve configuration using explicit parameters and environment values.

    Explicit arguments win over the environment, which wins over the
    :class:`ConnectionConfig` defaults. A JWT takes precedence over
    username/password credentials.
    """

    env = os.environ if env is None else env

    if endpoints is None:
        endpoints = _parse_endpoints(env.get("ARANGO_ENDPOINTS"))
        if not endpoints:
            endpoints = [env.get("ARANGO_HTTP_BASE_URL", DEFAULT_ENDPOINT)]

    jwt = jwt or env.get("ARANGO_JWT")
    username = username or env.get("ARANGO_USERNAME")
    if password is None:
        password = env.get("ARANGO_PASSWORD")

    authentication: Authentication | None = None
    if jwt:
        authentication = bearer_authentication(jwt)
    elif username or password:
        # ArangoDB's default account
        authentication = BasicAuthentication(username or "root", password or "")

    content_type = content_type or env.get("ARANGO_CONTENT_TYPE", APPLICATION_JSON)
    http2 = http2 if http2 is not None else _parse_bool(env.get("ARANGO_HTTP2"), True)
    socket_path = socket_path or env.get("ARANGO_SOCKET") or None

    connect_timeout = connect_timeout if connect_timeout is not None else _parse_timeout(env.get("ARANGO_CONNECT_TIMEOUT"), 5.0)
    read_timeout = read_timeout if read_timeout is not None else _parse_timeout(env.get("ARANGO_READ_TIMEOUT"), 30.0)
    write_timeout = write_timeout if write_timeout is not None else _parse_timeout(env.get("ARANGO_WRITE_TIMEOUT"), 30.0)

    config = ConnectionConfig(
        endpoints=endpoints,
        content_type=content_type,
        http2=http2,
        socket_path=socket_path,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        write_timeout=write_timeout,
        authentication=authentication,
    )
    config.validate()
    return config


__all__ = ["resolve_connection_config"]
