"""
Query Cursor
============

``Database.query`` returns a :class:`Cursor` holding the first batch of
results. Later batches are fetched on demand from the coordinator that
created the cursor, since cursors only exist there.

- ``read()`` returns the next row, or raises :class:`NoMoreDocumentsError`
  once every row has been consumed or the cursor was closed.
- ``close()`` releases the server-side cursor if results are still pending.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from arangodriver.arangodb.models import CursorStats
from arangodriver.connection.call import call_delete, call_put
from arangodriver.connection.codec import convert
from arangodriver.connection.context import RequestContext
from arangodriver.connection.request import segment, with_endpoint
from arangodriver.errors import ArangoError, NoMoreDocumentsError, is_not_found

if TYPE_CHECKING:
    from arangodriver.arangodb.database import Database

logger = logging.getLogger(__name__)


class Cursor:
    """Batch-wise iterator over the results of one AQL query."""

    def __init__(
        self,
        database: Database,
        endpoint: str,
        data: dict[str, Any],
        *,
        document_type: Any = None,
    ) -> None:
        self._database = database
        self._endpoint = endpoint
        self._document_type = document_type
        self._lock = threading.Lock()
        self._closed = False
        self._id: str | None = None
        self._count: int | None = data.get("count")
        self._batch: deque[Any] = deque()
        self._server_has_more = False
        self._stats = CursorStats()
        self._load(data)

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def endpoint(self) -> str:
        """Coordinator holding the cursor."""
        return self._endpoint

    @property
    def count(self) -> int | None:
        """Total number of results; only known when the query asked for it."""
        return self._count

    @property
    def statistics(self) -> CursorStats:
        return self._stats

    @property
    def closed(self) -> bool:
        return self._closed

    def has_more(self) -> bool:
        """Whether the next ``read`` will return a row."""
        return not self._closed and (bool(self._batch) or self._server_has_more)

    def read(self, document_type: Any = None, *, ctx: RequestContext | None = None) -> Any:
        """Return the next result row.

        Raises:
            NoMoreDocumentsError: Every row has been consumed, or the cursor was closed.
        """
        with self._lock:
            while not self._batch:
                if self._closed or not self._server_has_more:
                    raise NoMoreDocumentsError()
                self._fetch(ctx)
            row = self._batch.popleft()
        return convert(row, document_type or self._document_type)

    def read_all(self, document_type: Any = None, *, ctx: RequestContext | None = None) -> list[Any]:
        rows: list[Any] = []
        while True:
            try:
                rows.append(self.read(document_type, ctx=ctx))
            except NoMoreDocumentsError:
                return rows

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.read()
            except NoMoreDocumentsError:
                return

    def close(self, *, ctx: RequestContext | None = None) -> None:
        """Drop pending rows and delete the server-side cursor if it is still open."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._batch.clear()
            if self._id is None or not self._server_has_more:
                return
            try:
                call_delete(
                    ctx,
                    self._database.connection,
                    self._url(),
                    modifiers=[with_endpoint(self._endpoint)],
                    allowed_codes=(202,),
                )
            except ArangoError as exc:
                if not is_not_found(exc):
                    raise
                logger.debug("Cursor %s already gone on %s", self._id, self._endpoint)

    def __enter__(self) -> Cursor:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Cursor({self._id!r}, count={self._count!r})"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load(self, data: dict[str, Any]) -> None:
        self._batch.extend(data.get("result") or [])
        self._server_has_more = bool(data.get("hasMore"))
        if data.get("id"):
            self._id = str(data["id"])
        if data.get("count") is not None:
            self._count = int(data["count"])
        stats = (data.get("extra") or {}).get("stats")
        if stats:
            self._stats = CursorStats.model_validate(stats)

    def _fetch(self, ctx: RequestContext | None) -> None:
        logger.debug("Fetching next batch of cursor %s from %s", self._id, self._endpoint)
        response = call_put(
            ctx,
            self._database.connection,
            self._url(),
            None,
            modifiers=[with_endpoint(self._endpoint)],
            allowed_codes=(200,),
        )
        self._load(response.data or {})

    def _url(self) -> list[str]:
        return self._database.url("cursor", segment(self._id or ""))


__all__ = ["Cursor"]
