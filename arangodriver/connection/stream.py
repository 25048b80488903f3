"""Streaming decoders over a chunked response body.

Two shapes are supported for each encoding:

- a *stream decoder* pulling successive top-level values from one body,
- an *array reader* pulling the elements of one top-level array lazily.

Both raise :class:`NoMoreValuesError` once exhausted and
:class:`DecodeError` for malformed or truncated input. JSON is parsed
incrementally with ``ijson``; msgpack with ``msgpack.Unpacker``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any

import ijson
import msgpack

from arangodriver.errors import DecodeError, NoMoreValuesError

_JSON_ERRORS = (ijson.JSONError, UnicodeDecodeError)


class ChunkReader:
    """File-like view over an iterable of byte chunks.

    ``read`` hands out at most one chunk per call, so the parser never
    pulls more of the body than it needs for the next event.
    """

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""
        self.received = 0

    def read(self, size: int = -1) -> bytes:
        if size == 0:
            return b""
        if not self._pending:
            for chunk in self._chunks:
                if chunk:
                    self._pending = bytes(chunk)
                    self.received += len(chunk)
                    break
            else:
                return b""
        if size < 0 or size >= len(self._pending):
            data, self._pending = self._pending, b""
        else:
            data, self._pending = self._pending[:size], self._pending[size:]
        return data


class JsonStreamDecoder:
    """Pull successive whitespace-separated JSON values from a chunked stream."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._values = ijson.items(ChunkReader(chunks), "", multiple_values=True, use_float=True)

    def decode(self) -> Any:
        """Return the next top-level value.

        Raises:
            NoMoreValuesError: When the stream holds no further values.
            DecodeError: When the next value is malformed or truncated.
        """
        try:
            return next(self._values)
        except StopIteration:
            raise NoMoreValuesError() from None
        except _JSON_ERRORS as exc:
            raise DecodeError(f"invalid JSON stream: {exc}") from exc

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.decode()
            except NoMoreValuesError:
                return


class JsonArrayReader:
    """Lazily read the elements of a single top-level JSON array."""

    _UNKNOWN = object()

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._source = ChunkReader(chunks)
        self._items: Iterator[Any] | None = None
        self._next: Any = self._UNKNOWN
        self._done = False
        self._count = 0

    def _open(self) -> Iterator[Any]:
        if self._items is not None:
            return self._items
        events = ijson.parse(self._source, use_float=True)
        try:
            _, event, _ = next(events)
        except StopIteration:
            raise DecodeError("empty body where an array was expected") from None
        except _JSON_ERRORS as exc:
            if not self._source.received:
                raise DecodeError("empty body where an array was expected") from exc
            raise DecodeError(f"invalid JSON body: {exc}") from exc
        if event != "start_array":
            raise DecodeError(f"expected array, got {event}")
        self._items = ijson.items(events, "item")
        return self._items

    def more(self) -> bool:
        if self._done:
            return False
        if self._next is self._UNKNOWN:
            items = self._open()
            try:
                self._next = next(items)
            except StopIteration:
                self._done = True
                return False
            except _JSON_ERRORS as exc:
                raise DecodeError(f"array truncated or malformed after {self._count} elements: {exc}") from exc
        return True

    def next(self) -> Any:
        if not self.more():
            raise NoMoreValuesError()
        value, self._next = self._next, self._UNKNOWN
        self._count += 1
        return value


class MsgpackStreamDecoder:
    """Pull successive msgpack values from a chunked byte stream."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._unpacker = msgpack.Unpacker(raw=False, strict_map_key=False)
        self._fed = 0
        self._consumed = 0

    def _pull(self, operation: Callable[[], Any]) -> Any:
        while True:
            try:
                value = operation()
            except msgpack.OutOfData:
                chunk = next(self._chunks, None)
                if chunk is None:
                    if self._fed > self._consumed:
                        raise DecodeError("unexpected end of msgpack stream") from None
                    raise NoMoreValuesError() from None
                self._unpacker.feed(chunk)
                self._fed += len(chunk)
                continue
            except (msgpack.UnpackException, ValueError) as exc:
                raise DecodeError(f"invalid msgpack data: {exc}") from exc
            self._consumed = self._unpacker.tell()
            return value

    def decode(self) -> Any:
        return self._pull(self._unpacker.unpack)

    def read_array_header(self) -> int:
        return self._pull(self._unpacker.read_array_header)

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.decode()
            except NoMoreValuesError:
                return


class MsgpackArrayReader:
    """Lazily read the elements of a single top-level msgpack array."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._decoder = MsgpackStreamDecoder(chunks)
        self._remaining: int | None = None

    def _open(self) -> None:
        if self._remaining is not None:
            return
        try:
            self._remaining = self._decoder.read_array_header()
        except NoMoreValuesError:
            raise DecodeError("empty body where an array was expected") from None

    def more(self) -> bool:
        self._open()
        return bool(self._remaining)

    def next(self) -> Any:
        if not self.more():
            raise NoMoreValuesError()
        try:
            value = self._decoder.decode()
        except NoMoreValuesError:
            raise DecodeError("array truncated") from None
        self._remaining -= 1
        return value


__all__ = [
    "ChunkReader",
    "JsonArrayReader",
    "JsonStreamDecoder",
    "MsgpackArrayReader",
    "MsgpackStreamDecoder",
]
