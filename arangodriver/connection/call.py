"""Call helpers: build a request, apply modifiers, dispatch, check status."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from arangodriver.connection.base import Connection
from arangodriver.connection.context import RequestContext
from arangodriver.connection.request import (
    DELETE,
    GET,
    HEAD,
    PATCH,
    POST,
    PUT,
    Request,
    RequestModifier,
    apply_modifiers,
    with_body,
)
from arangodriver.connection.response import Response
from arangodriver.errors import ArangoError

Url = str | Sequence[str]


def build_request(
    connection: Connection,
    method: str,
    url: Url,
    modifiers: Iterable[RequestModifier | None] = (),
) -> Request:
    parts = (url,) if isinstance(url, str) else tuple(url)
    request = connection.new_request(method, *parts)
    return apply_modifiers(request, modifiers)


def check_status(response: Response, allowed_codes: Iterable[int]) -> Response:
    """Raise ``ArangoError`` built from the body when the code is not allowed."""
    allowed = tuple(allowed_codes)
    if allowed and response.code not in allowed:
        raise ArangoError.from_body(response.code, response.data)
    return response


def call(
    ctx: RequestContext | None,
    connection: Connection,
    method: str,
    url: Url,
    *,
    target: Any = None,
    modifiers: Iterable[RequestModifier | None] = (),
    allowed_codes: Iterable[int] = (),
) -> Response:
    request = build_request(connection, method, url, modifiers)
    response = connection.do(ctx, request, target)
    return check_status(response, allowed_codes)


def call_stream(
    ctx: RequestContext | None,
    connection: Connection,
    method: str,
    url: Url,
    *,
    modifiers: Iterable[RequestModifier | None] = (),
) -> Response:
    """Dispatch and return the response with its body still open."""
    request = build_request(connection, method, url, modifiers)
    return connection.stream(ctx, request)


def call_get(ctx: RequestContext | None, connection: Connection, url: Url, **kwargs: Any) -> Response:
    return call(ctx, connection, GET, url, **kwargs)


def call_head(ctx: RequestContext | None, connection: Connection, url: Url, **kwargs: Any) -> Response:
    return call(ctx, connection, HEAD, url, **kwargs)


def call_delete(ctx: RequestContext | None, connection: Connection, url: Url, **kwargs: Any) -> Response:
    return call(ctx, connection, DELETE, url, **kwargs)


def _with_body(body: Any, kwargs: dict[str, Any]) -> dict[str, Any]:
    kwargs["modifiers"] = (*kwargs.get("modifiers", ()), with_body(body))
    return kwargs


def call_post(ctx: RequestContext | None, connection: Connection, url: Url, body: Any, **kwargs: Any) -> Response:
    return call(ctx, connection, POST, url, **_with_body(body, kwargs))


def call_put(ctx: RequestContext | None, connection: Connection, url: Url, body: Any, **kwargs: Any) -> Response:
    return call(ctx, connection, PUT, url, **_with_body(body, kwargs))


def call_patch(ctx: RequestContext | None, connection: Connection, url: Url, body: Any, **kwargs: Any) -> Response:
    return call(ctx, connection, PATCH, url, **_with_body(body, kwargs))


__all__ = [
    "build_request",
    "call",
    "call_delete",
    "call_get",
    "call_head",
    "call_patch",
    "call_post",
    "call_put",
    "call_stream",
    "check_status",
]
