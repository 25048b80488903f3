"""
Connection Layer
================

Endpoint resolution, the httpx transport, content codecs and the wrappers
(authentication, failover, async jobs, pooling) composed around it.
"""

from .async_jobs import AsyncJobConnection, async_job_wrapper
from .auth import (
    Authentication,
    BasicAuthentication,
    HeaderAuthentication,
    JWTTokenProvider,
    ReauthenticatingConnection,
    StaticTokenProvider,
    TokenProvider,
    bearer_authentication,
    jwt_auth_wrapper,
    sso_auth_wrapper,
    wrap_authentication,
)
from .base import Connection, ConnectionWrapper, Wrapper, wrap
from .call import (
    call,
    call_delete,
    call_get,
    call_head,
    call_patch,
    call_post,
    call_put,
    call_stream,
    check_status,
)
from .codec import APPLICATION_JSON, APPLICATION_MSGPACK, JSON, MSGPACK, Codec, codec_for
from .compression import CompressionConfig
from .configuration import ConnectionConfig
from .context import BACKGROUND, CancelToken, RequestContext
from .endpoints import (
    Endpoints,
    LeaderEndpoints,
    MaglevHashEndpoints,
    RoundRobinEndpoints,
    request_db_name_value_extractor,
)
from .http import HttpConnection
from .pool import ConnectionPool
from .request import Request, segment
from .response import Response
from .retry import FailoverConnection, RetryConfig, retry_on_503, retry_wrapper

__all__ = [
    "APPLICATION_JSON",
    "APPLICATION_MSGPACK",
    "AsyncJobConnection",
    "Authentication",
    "BACKGROUND",
    "BasicAuthentication",
    "CancelToken",
    "Codec",
    "CompressionConfig",
    "Connection",
    "ConnectionConfig",
    "ConnectionPool",
    "ConnectionWrapper",
    "Endpoints",
    "FailoverConnection",
    "HeaderAuthentication",
    "HttpConnection",
    "JSON",
    "JWTTokenProvider",
    "LeaderEndpoints",
    "MSGPACK",
    "MaglevHashEndpoints",
    "ReauthenticatingConnection",
    "Request",
    "RequestContext",
    "Response",
    "RetryConfig",
    "RoundRobinEndpoints",
    "StaticTokenProvider",
    "TokenProvider",
    "Wrapper",
    "async_job_wrapper",
    "bearer_authentication",
    "call",
    "call_delete",
    "call_get",
    "call_head",
    "call_patch",
    "call_post",
    "call_put",
    "call_stream",
    "check_status",
    "codec_for",
    "jwt_auth_wrapper",
    "request_db_name_value_extractor",
    "retry_on_503",
    "retry_wrapper",
    "segment",
    "sso_auth_wrapper",
    "wrap",
    "wrap_authentication",
]
