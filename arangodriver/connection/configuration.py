"""Connection configuration with recognized options and documented defaults.

The configuration is shared by reference across every request issued through
one connection. It is not locked internally: mutate it from a single writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from arangodriver.connection.codec import APPLICATION_JSON, is_supported_content_type
from arangodriver.connection.compression import CompressionConfig
from arangodriver.errors import InvalidArgumentError

if TYPE_CHECKING:
    from arangodriver.connection.auth import Authentication

DEFAULT_ENDPOINT = "http://localhost:8529"


@dataclass(slots=True)
class ConnectionConfig:
    """Configuration for the HTTP transport."""

    endpoints: list[str] = field(default_factory=lambda: [DEFAULT_ENDPOINT])
    content_type: str = APPLICATION_JSON
    http2: bool = True
    http2_cleartext: bool = False  # prior-knowledge h2c for http:// endpoints
    verify: bool | str = True
    cert: str | tuple[str, str] | None = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    pool_timeout: float = 5.0
    idle_timeout: float = 90.0
    max_connections: int = 100
    max_keepalive_connections: int = 20
    max_concurrent_streams: int | None = None
    compression: CompressionConfig | None = None
    authentication: Authentication | None = None
    socket_path: str | None = None  # None = use network, str = use Unix socket
    user_agent: str = "arangodriver/0.1"
    transport: httpx.BaseTransport | None = None

    def validate(self) -> None:
        """Raise ``InvalidArgumentError`` listing every invalid option."""
        errors: list[str] = []
        if not self.endpoints:
            errors.append("at least one endpoint is required")
        if not is_supported_content_type(self.content_type):
            errors.append(f"unsupported content type: {self.content_type}")
        if self.http2_cleartext and not self.http2:
            errors.append("http2_cleartext requires http2")
        for name in ("connect_timeout", "read_timeout", "write_timeout", "pool_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.max_connections < 1:
            errors.append("max_connections must be at least 1")
        if self.max_concurrent_streams is not None and self.max_concurrent_streams < 1:
            errors.append("max_concurrent_streams must be at least 1")
        if self.compression is not None:
            errors.extend(self.compression.validate())
        if errors:
            raise InvalidArgumentError("invalid connection configuration: " + "; ".join(errors))

    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
            keepalive_expiry=self.idle_timeout,
        )

    def timeout(self, remaining: float | None = None) -> httpx.Timeout:
        """Transport timeouts, capped by the seconds left before a deadline."""

        def cap(value: float) -> float:
            if remaining is None:
                return value
            return max(min(value, remaining), 0.001)

        return httpx.Timeout(
            connect=cap(self.connect_timeout),
            read=cap(self.read_timeout),
            write=cap(self.write_timeout),
            pool=cap(self.pool_timeout),
        )


__all__ = ["ConnectionConfig", "DEFAULT_ENDPOINT"]
