"""Content codecs: JSON (orjson) and a compact binary encoding (msgpack).

Both codecs share one contract: ``encode(value) -> bytes``,
``decode(data, target) -> value``, plus streaming helpers over a chunked
body. Typed targets (pydantic models, dataclasses, ``TypedDict``, generic
containers) are resolved once per type into a cached ``TypeAdapter``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from functools import lru_cache
from typing import Any

import msgpack
import orjson
from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from arangodriver.errors import DecodeError, InvalidArgumentError
from arangodriver.connection.stream import (
    JsonArrayReader,
    JsonStreamDecoder,
    MsgpackArrayReader,
    MsgpackStreamDecoder,
)

APPLICATION_JSON = "application/json"
APPLICATION_MSGPACK = "application/x-msgpack"

_PLAIN_TYPES = (dict, list, str, int, float, bool, type(None))


@lru_cache(maxsize=512)
def type_adapter(target: Any) -> TypeAdapter:
    """Return the cached adapter describing how to validate ``target``."""
    return TypeAdapter(target)


def to_builtins(value: Any) -> Any:
    """Convert models and dataclasses into plain encodable structures."""
    if isinstance(value, _PLAIN_TYPES) and not isinstance(value, (dict, list)):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return to_jsonable_python(value, by_alias=True)


def convert(value: Any, target: Any = None) -> Any:
    """Validate an already-decoded ``value`` into ``target``.

    ``None`` and ``Any`` targets return the value unchanged.
    """
    if target is None or target is Any:
        return value
    try:
        return type_adapter(target).validate_python(value)
    except ValidationError as exc:
        raise DecodeError(f"cannot decode value into {target!r}: {exc}") from exc


class Codec(ABC):
    """Encode and decode one wire encoding."""

    content_type: str

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """Serialize ``value``."""

    @abstractmethod
    def _loads(self, data: bytes) -> Any:
        """Parse one complete payload."""

    @abstractmethod
    def stream_decoder(self, chunks: Iterable[bytes]) -> JsonStreamDecoder | MsgpackStreamDecoder:
        """Decoder pulling successive top-level values from ``chunks``."""

    @abstractmethod
    def array_reader(self, chunks: Iterable[bytes]) -> JsonArrayReader | MsgpackArrayReader:
        """Reader pulling the elements of one top-level array lazily."""

    def decode(self, data: bytes, target: Any = None) -> Any:
        """Decode ``data``, optionally validating it into ``target``.

        An empty payload decodes to ``None``.
        """
        if not data:
            return None
        return convert(self._loads(data), target)

    def reencode(self, value: Any, target: Any) -> Any:
        """Round-trip ``value`` through the wire encoding into ``target``."""
        return self.decode(self.encode(value), target)


class JsonCodec(Codec):
    content_type = APPLICATION_JSON

    def encode(self, value: Any) -> bytes:
        try:
            return orjson.dumps(value, default=_json_default)
        except TypeError as exc:
            raise InvalidArgumentError(f"cannot encode value as JSON: {exc}") from exc

    def _loads(self, data: bytes) -> Any:
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise DecodeError(f"invalid JSON payload: {exc}") from exc

    def stream_decoder(self, chunks: Iterable[bytes]) -> JsonStreamDecoder:
        return JsonStreamDecoder(chunks)

    def array_reader(self, chunks: Iterable[bytes]) -> JsonArrayReader:
        return JsonArrayReader(chunks)


class MsgpackCodec(Codec):
    content_type = APPLICATION_MSGPACK

    def encode(self, value: Any) -> bytes:
        try:
            return msgpack.packb(value, use_bin_type=True, default=to_builtins)
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidArgumentError(f"cannot encode value as msgpack: {exc}") from exc

    def _loads(self, data: bytes) -> Any:
        try:
            return msgpack.unpackb(data, raw=False, strict_map_key=False)
        except (msgpack.UnpackException, ValueError) as exc:
            raise DecodeError(f"invalid msgpack payload: {exc}") from exc

    def stream_decoder(self, chunks: Iterable[bytes]) -> MsgpackStreamDecoder:
        return MsgpackStreamDecoder(chunks)

    def array_reader(self, chunks: Iterable[bytes]) -> MsgpackArrayReader:
        return MsgpackArrayReader(chunks)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return to_jsonable_python(value, by_alias=True)


JSON = JsonCodec()
MSGPACK = MsgpackCodec()

_CODECS: dict[str, Codec] = {
    APPLICATION_JSON: JSON,
    APPLICATION_MSGPACK: MSGPACK,
}


def codec_for(content_type: str | None, default: Codec = JSON) -> Codec:
    """Pick the codec for a content type, falling back to ``default``."""
    if not content_type:
        return default
    key = content_type.split(";", 1)[0].strip().lower()
    return _CODECS.get(key, default)


def is_supported_content_type(content_type: str) -> bool:
    return content_type.split(";", 1)[0].strip().lower() in _CODECS


__all__ = [
    "APPLICATION_JSON",
    "APPLICATION_MSGPACK",
    "Codec",
    "JSON",
    "JsonCodec",
    "MSGPACK",
    "MsgpackCodec",
    "codec_for",
    "convert",
    "is_supported_content_type",
    "to_builtins",
    "type_adapter",
]
