"""
ArangoDB Driver
===============

Client for ArangoDB over httpx (HTTP/1.1 and HTTP/2).

Subpackages:
- connection: endpoints, transport, codecs, failover, authentication
- arangodb: client, databases, collections, batch readers, agency
"""

from .arangodb import Client, Collection, Database, new_connection
from .config import resolve_connection_config
from .connection import ConnectionConfig, RequestContext, RetryConfig
from .errors import ArangoError, DriverError

__version__ = "0.1.0"

__all__ = [
    "ArangoError",
    "Client",
    "Collection",
    "ConnectionConfig",
    "Database",
    "DriverError",
    "RequestContext",
    "RetryConfig",
    "new_connection",
    "resolve_connection_config",
]
