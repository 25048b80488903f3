"""
Batch Operation Reader
======================

A batch call sends N documents in one request and receives one array with
one element per input. The reader pulls those elements lazily from the
open response body:

- ``len(reader)`` is the number of inputs, before and after consumption.
- ``read()`` returns a :class:`DocumentResult`, or raises the item's
  :class:`ArangoError` after advancing past it. After the last item it
  raises :class:`NoMoreDocumentsError`.
- ``read_all()`` drains the reader into a result list and a parallel
  :class:`ErrorSlice`.

A body that is not an array, or that ends before N elements, raises
``ProtocolError``/``DecodeError`` and closes the response. One reader is
one cursor: calls are serialized by a lock but results are only
meaningful to a single consumer.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any

from arangodriver.arangodb.documents import DocumentMeta, DocumentResult
from arangodriver.connection.codec import Codec, convert
from arangodriver.connection.response import Response
from arangodriver.errors import (
    ERROR_NUM_CONFLICT,
    ERROR_NUM_DATA_SOURCE_NOT_FOUND,
    ERROR_NUM_DOCUMENT_NOT_FOUND,
    ERROR_NUM_UNIQUE_CONSTRAINT_VIOLATED,
    ArangoError,
    DriverError,
    ErrorSlice,
    NoMoreDocumentsError,
    ProtocolError,
)

logger = logging.getLogger(__name__)

# Per-item errors carry no status code of their own.
ITEM_ERROR_CODES = {
    ERROR_NUM_CONFLICT: 412,
    ERROR_NUM_DOCUMENT_NOT_FOUND: 404,
    ERROR_NUM_DATA_SOURCE_NOT_FOUND: 404,
    ERROR_NUM_UNIQUE_CONSTRAINT_VIOLATED: 409,
}


def item_error(item: dict[str, Any]) -> ArangoError:
    error_num = int(item.get("errorNum") or 0)
    code = int(item.get("code") or ITEM_ERROR_CODES.get(error_num, 400))
    return ArangoError(
        code,
        error_num,
        str(item.get("errorMessage") or ""),
        details=item,
    )


class DocumentResultReader:
    """Lazy, ordered cursor over the results of one batch call."""

    def __init__(
        self,
        response: Response,
        codec: Codec,
        count: int,
        *,
        document_type: Any = None,
        old_type: Any = None,
        new_type: Any = None,
    ) -> None:
        self._response = response
        self._array = codec.array_reader(response.iter_bytes())
        self._count = count
        self._document_type = document_type
        self._old_type = old_type
        self._new_type = new_type
        self._position = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._count

    @property
    def position(self) -> int:
        """Number of results consumed so far."""
        return self._position

    @property
    def closed(self) -> bool:
        return self._response.closed

    def read(self, document_type: Any = None) -> DocumentResult:
        """Return the next result.

        Raises:
            ArangoError: The item at this position failed; the cursor still advances.
            NoMoreDocumentsError: Every result has been consumed, or the reader was closed.
            ProtocolError: The response body is malformed or truncated.
        """
        with self._lock:
            if self._position >= self._count or self._response.closed:
                self._finish()
                raise NoMoreDocumentsError()
            item = self._next_item()
            self._position += 1
            if self._position == self._count:
                self._finish()
        return self._convert(item, document_type or self._document_type)

    def read_all(self, document_type: Any = None) -> tuple[list[DocumentResult | None], ErrorSlice]:
        """Drain the reader; entries line up with the inputs."""
        results: list[DocumentResult | None] = []
        errors = ErrorSlice()
        for outcome in self._outcomes(document_type):
            if isinstance(outcome, ArangoError):
                results.append(None)
                errors.append(outcome)
            else:
                results.append(outcome)
                errors.append(None)
        return results, errors

    def __iter__(self) -> Iterator[DocumentResult | ArangoError]:
        return self._outcomes(None)

    def close(self) -> None:
        """Stop early; remaining results are discarded."""
        self._response.close()

    def __enter__(self) -> DocumentResultReader:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _outcomes(self, document_type: Any) -> Iterator[DocumentResult | ArangoError]:
        while True:
            try:
                yield self.read(document_type)
            except NoMoreDocumentsError:
                return
            except ArangoError as exc:
                yield exc

    def _next_item(self) -> Any:
        try:
            if not self._array.more():
                raise ProtocolError(
                    f"response ended after {self._position} of {self._count} results"
                )
            return self._array.next()
        except DriverError:
            self._response.close()
            raise

    def _finish(self) -> None:
        if self._response.closed:
            return
        try:
            if self._array.more():
                logger.warning(
                    "Batch response carries more than %d results; ignoring the rest", self._count
                )
        except DriverError as exc:
            logger.debug("Ignoring malformed batch trailer: %s", exc)
        finally:
            self._response.close()

    def _convert(self, item: Any, document_type: Any) -> DocumentResult:
        if not isinstance(item, dict):
            raise ProtocolError(f"unexpected batch item of type {type(item).__name__}")
        if item.get("error"):
            raise item_error(item)

        result = DocumentResult(meta=DocumentMeta.model_validate(item))
        if document_type is not None:
            result.document = convert(item, document_type)
        if "old" in item:
            result.old = convert(item["old"], self._old_type)
        if "new" in item:
            result.new = convert(item["new"], self._new_type)
        return result


class DocumentReadReader(DocumentResultReader):
    """Batch read results; each successful item is the full document."""

    def _convert(self, item: Any, document_type: Any) -> DocumentResult:
        result = super()._convert(item, None)
        result.document = convert(item, document_type)
        return result


__all__ = ["DocumentReadReader", "DocumentResultReader", "ITEM_ERROR_CODES", "item_error"]
