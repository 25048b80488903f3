"""Authentication: static headers, basic auth and renewable bearer tokens.

Credentials are ``httpx.Auth`` flows handed to the client on every send.
Token based credentials are managed by :class:`ReauthenticatingConnection`,
which renews the token shortly before it expires and, when the server still
answers ``401``, renews once more and retries the call exactly once. Renewal
goes through the wrapped connection so logins get the same failover as
every other call.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Generator
from typing import Any

import httpx
import orjson

from arangodriver.connection.base import Connection, ConnectionWrapper, Wrapper
from arangodriver.connection.call import call_post
from arangodriver.connection.context import RequestContext
from arangodriver.connection.request import Request
from arangodriver.connection.response import Response
from arangodriver.errors import ArangoError, AuthenticationError, InvalidArgumentError

logger = logging.getLogger(__name__)

# lifetime assumed for tokens whose expiry cannot be parsed
FALLBACK_TOKEN_LIFETIME = 60.0

Authentication = httpx.Auth


class HeaderAuthentication(httpx.Auth):
    """Sets one fixed header on every request."""

    def __init__(self, key: str, value: str) -> None:
        self.key = key.lower()
        self.value = value

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers[self.key] = self.value
        yield request

    def __repr__(self) -> str:
        return f"HeaderAuthentication({self.key!r})"


class BasicAuthentication(httpx.BasicAuth):
    def __init__(self, username: str, password: str) -> None:
        super().__init__(username, password)
        self.username = username

    def __repr__(self) -> str:
        return f"BasicAuthentication({self.username!r})"


def bearer_authentication(token: str) -> HeaderAuthentication:
    return HeaderAuthentication("Authorization", f"bearer {token}")


def parse_jwt_expiry(token: str) -> float:
    """Return the ``exp`` claim of ``token`` as a Unix timestamp.

    Raises:
        ValueError: If the token is not a JWT or carries no ``exp`` claim.
    """
    parts = token.split(".")
    if len(parts) < 2:
        raise ValueError("invalid JWT format")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = orjson.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, orjson.JSONDecodeError) as exc:
        raise ValueError(f"invalid JWT payload: {exc}") from exc
    if not isinstance(claims, dict) or "exp" not in claims:
        raise ValueError("JWT carries no exp claim")
    return float(claims["exp"])


class TokenProvider(ABC):
    """Owns a bearer token and knows how to renew it."""

    def __init__(self, leeway: float = 30.0, clock: Callable[[], float] = time.time) -> None:
        self._leeway = leeway
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expiry = 0.0

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def expiry(self) -> float:
        return self._expiry

    def _set_token(self, token: str) -> None:
        self._token = token
        try:
            self._expiry = parse_jwt_expiry(token)
        except ValueError as exc:
            logger.warning("Failed to parse JWT expiry: %s", exc)
            self._expiry = self._clock() + FALLBACK_TOKEN_LIFETIME

    def _needs_renewal(self) -> bool:
        return self._token is None or self._clock() >= self._expiry - self._leeway

    def authentication(
        self,
        ctx: RequestContext | None,
        connection: Connection,
        *,
        stale_token: str | None = None,
    ) -> Authentication:
        """Return credentials, renewing the token when needed.

        ``stale_token`` forces a renewal unless another thread already
        replaced that token.
        """
        with self._lock:
            force = stale_token is not None and stale_token == self._token
            if force or self._needs_renewal():
                logger.info("Renewing authentication token")
                self._set_token(self._renew(ctx, connection))
            return bearer_authentication(self._token)

    @abstractmethod
    def _renew(self, ctx: RequestContext | None, connection: Connection) -> str:
        """Obtain a fresh token."""


class JWTTokenProvider(TokenProvider):
    """Obtain tokens through the ``/_open/auth`` login exchange."""

    def __init__(self, username: str, password: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._username = username
        self._password = password

    def _renew(self, ctx: RequestContext | None, connection: Connection) -> str:
        response = call_post(
            ctx,
            connection,
            "_open/auth",
            {"username": self._username, "password": self._password},
        )
        if response.code != 200:
            raise AuthenticationError(
                f"login failed for user {self._username!r}"
            ) from ArangoError.from_body(response.code, response.data)
        token = (response.data or {}).get("jwt")
        if not token:
            raise AuthenticationError("login response carries no token")
        return token


class StaticTokenProvider(TokenProvider):
    """Start from a token obtained elsewhere (for example an SSO login).

    Once it expires the provider asks ``/_open/auth`` for a new one; a
    redirect means the user has to log in through the browser again.
    """

    def __init__(self, initial_token: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if initial_token:
            self._set_token(initial_token)

    def _renew(self, ctx: RequestContext | None, connection: Connection) -> str:
        response = call_post(ctx, connection, "_open/auth", None)
        if response.code == 200 and (response.data or {}).get("jwt"):
            return response.data["jwt"]
        if response.code == 307:
            location = response.header("location")
            raise AuthenticationError(f"SSO redirect: please authenticate via browser at {location}")
        raise AuthenticationError("token renewal failed") from ArangoError.from_body(
            response.code, response.data
        )


class ReauthenticatingConnection(ConnectionWrapper):
    """Keeps the inner connection's bearer token fresh."""

    def __init__(self, inner: Connection, provider: TokenProvider) -> None:
        super().__init__(inner)
        self._provider = provider

    def _refresh(self, ctx: RequestContext | None, stale_token: str | None = None) -> str | None:
        self._inner.set_authentication(
            self._provider.authentication(ctx, self._inner, stale_token=stale_token)
        )
        return self._provider.token

    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        token = self._refresh(ctx)
        response = self._inner.do(ctx, request.clone(), target)
        if response.code != 401:
            return response
        self._refresh(ctx, stale_token=token)
        return self._inner.do(ctx, request.clone(), target)

    def stream(self, ctx: RequestContext | None, request: Request) -> Response:
        token = self._refresh(ctx)
        response = self._inner.stream(ctx, request.clone())
        if response.code != 401:
            return response
        response.close()
        self._refresh(ctx, stale_token=token)
        return self._inner.stream(ctx, request.clone())

    def set_authentication(self, authentication: Authentication | None) -> None:
        raise InvalidArgumentError(
            "Unable to override authentication when it is managed by a token provider"
        )


def wrap_authentication(provider: TokenProvider) -> Wrapper:
    def wrapper(connection: Connection) -> Connection:
        return ReauthenticatingConnection(connection, provider)

    return wrapper


def jwt_auth_wrapper(username: str, password: str, **kwargs: Any) -> Wrapper:
    return wrap_authentication(JWTTokenProvider(username, password, **kwargs))


def sso_auth_wrapper(initial_token: str, **kwargs: Any) -> Wrapper:
    return wrap_authentication(StaticTokenProvider(initial_token, **kwargs))


__all__ = [
    "Authentication",
    "BasicAuthentication",
    "HeaderAuthentication",
    "JWTTokenProvider",
    "ReauthenticatingConnection",
    "StaticTokenProvider",
    "TokenProvider",
    "bearer_authentication",
    "jwt_auth_wrapper",
    "parse_jwt_expiry",
    "sso_auth_wrapper",
    "wrap_authentication",
]
