"""Logical request and request modifiers."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

GET = "GET"
POST = "POST"
PUT = "PUT"
PATCH = "PATCH"
DELETE = "DELETE"
HEAD = "HEAD"

BODY_METHODS = frozenset({POST, PUT, PATCH, DELETE})

_NO_BODY = object()


def new_url(*parts: str) -> tuple[str, ...]:
    """Split ``parts`` on ``/`` into path segments, dropping empty ones.

    Segments are escaped when the request URL is built, so keys containing
    reserved characters must be passed as a single part through
    :func:`segment`.
    """
    segments: list[str] = []
    for part in parts:
        if isinstance(part, Segment):
            segments.append(part)
            continue
        segments.extend(s for s in str(part).split("/") if s)
    return tuple(segments)


class Segment(str):
    """A path segment that is never split on ``/``."""


def segment(value: str) -> Segment:
    return Segment(value)


@dataclass(slots=True)
class Request:
    """A logical request: method, path segments, query, headers and body.

    The request is mutated only by modifiers before dispatch; the transport
    treats it as read-only.
    """

    method: str
    path: tuple[str, ...]
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = _NO_BODY
    endpoint: str | None = None
    fragment: str | None = None

    @property
    def has_body(self) -> bool:
        return self.body is not _NO_BODY

    def set_body(self, body: Any) -> None:
        self.body = body

    def add_header(self, key: str, value: str) -> None:
        self.headers[key.lower()] = value

    def get_header(self, key: str) -> str | None:
        return self.headers.get(key.lower())

    def add_query(self, key: str, value: str) -> None:
        self.query[key] = value

    def get_query(self, key: str) -> str | None:
        return self.query.get(key)

    def set_fragment(self, value: str) -> None:
        self.fragment = value

    def url_path(self) -> str:
        """Escaped path, always starting with ``/``."""
        return "/" + "/".join(quote(part, safe="") for part in self.path)

    def url(self, base: str) -> str:
        url = base.rstrip("/") + self.url_path()
        if self.fragment:
            url = f"{url}#{self.fragment}"
        return url

    def clone(self) -> Request:
        return Request(
            method=self.method,
            path=self.path,
            query=dict(self.query),
            headers=dict(self.headers),
            body=self.body,
            endpoint=self.endpoint,
            fragment=self.fragment,
        )


RequestModifier = Callable[[Request], None]


def apply_modifiers(request: Request, modifiers: Iterable[RequestModifier | None]) -> Request:
    for modifier in modifiers:
        if modifier is not None:
            modifier(request)
    return request


def with_body(body: Any) -> RequestModifier:
    def modify(r: Request) -> None:
        r.set_body(body)

    return modify


def with_query(key: str, value: Any) -> RequestModifier:
    def modify(r: Request) -> None:
        r.add_query(key, bool_to_string(value) if isinstance(value, bool) else str(value))

    return modify


def with_header(key: str, value: str) -> RequestModifier:
    def modify(r: Request) -> None:
        r.add_header(key, value)

    return modify


def with_fragment(value: str) -> RequestModifier:
    def modify(r: Request) -> None:
        r.set_fragment(value)

    return modify


def with_transaction_id(transaction_id: str) -> RequestModifier:
    return with_header("x-arango-trx-id", transaction_id)


def with_if_match(revision: str) -> RequestModifier:
    return with_header("If-Match", revision)


def with_if_none_match(revision: str) -> RequestModifier:
    return with_header("If-None-Match", revision)


def with_endpoint(endpoint: str) -> RequestModifier:
    def modify(r: Request) -> None:
        r.endpoint = endpoint

    return modify


def bool_to_string(value: bool) -> str:
    return "true" if value else "false"


__all__ = [
    "BODY_METHODS",
    "DELETE",
    "GET",
    "HEAD",
    "PATCH",
    "POST",
    "PUT",
    "Request",
    "RequestModifier",
    "Segment",
    "apply_modifiers",
    "bool_to_string",
    "new_url",
    "segment",
    "with_body",
    "with_endpoint",
    "with_fragment",
    "with_header",
    "with_if_match",
    "with_if_none_match",
    "with_query",
    "with_transaction_id",
]
