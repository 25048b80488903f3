"""
Document Metadata and Operation Options
=======================================

Options are explicit dataclasses: every field defaults to ``None`` (or
``False`` for the return flags) and only fields that are set end up in the
request. Typed targets for ``old``/``new`` bodies are given as types; a
fresh instance is built for every result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from arangodriver.connection.request import (
    RequestModifier,
    with_header,
    with_if_match,
    with_if_none_match,
    with_query,
)
from arangodriver.errors import InvalidArgumentError

QUERY_WAIT_FOR_SYNC = "waitForSync"
QUERY_OVERWRITE = "overwrite"
QUERY_OVERWRITE_MODE = "overwriteMode"
QUERY_SILENT = "silent"
QUERY_RETURN_NEW = "returnNew"
QUERY_RETURN_OLD = "returnOld"
QUERY_KEEP_NULL = "keepNull"
QUERY_MERGE_OBJECTS = "mergeObjects"
QUERY_REFILL_INDEX_CACHES = "refillIndexCaches"
QUERY_IGNORE_REVS = "ignoreRevs"
QUERY_ONLY_GET = "onlyget"

HEADER_ALLOW_DIRTY_READ = "x-arango-allow-dirty-read"


class DocumentMeta(BaseModel):
    """Key, id and revision of a stored document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(default="", alias="_key")
    id: str = Field(default="", alias="_id")
    rev: str = Field(default="", alias="_rev")
    old_rev: str | None = Field(default=None, alias="_oldRev")


@dataclass(slots=True)
class DocumentResult:
    """Outcome of one successful document operation.

    ``document`` is set by reads, ``old``/``new`` only when requested.
    """

    meta: DocumentMeta
    document: Any = None
    old: Any = None
    new: Any = None

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def rev(self) -> str:
        return self.meta.rev


class OverwriteMode(str, Enum):
    IGNORE = "ignore"
    REPLACE = "replace"
    UPDATE = "update"
    CONFLICT = "conflict"


def validate_key(key: str) -> None:
    if not key:
        raise InvalidArgumentError("key is empty")


def _flag(modifiers: list[RequestModifier], name: str, value: bool | None) -> None:
    if value is not None:
        modifiers.append(with_query(name, value))


@dataclass(slots=True)
class _ReturnOptions:
    return_new: bool = False
    return_old: bool = False
    new_type: Any = None
    old_type: Any = None

    @property
    def wants_new(self) -> bool:
        return self.return_new or self.new_type is not None

    @property
    def wants_old(self) -> bool:
        return self.return_old or self.old_type is not None

    def _return_modifiers(self, modifiers: list[RequestModifier]) -> None:
        if self.wants_new:
            modifiers.append(with_query(QUERY_RETURN_NEW, True))
        if self.wants_old:
            modifiers.append(with_query(QUERY_RETURN_OLD, True))


@dataclass(slots=True)
class CreateDocumentOptions(_ReturnOptions):
    wait_for_sync: bool | None = None
    overwrite: bool | None = None
    overwrite_mode: OverwriteMode | None = None
    silent: bool | None = None
    keep_null: bool | None = None
    merge_objects: bool | None = None
    refill_index_caches: bool | None = None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        _flag(modifiers, QUERY_WAIT_FOR_SYNC, self.wait_for_sync)
        _flag(modifiers, QUERY_OVERWRITE, self.overwrite)
        if self.overwrite_mode is not None:
            modifiers.append(with_query(QUERY_OVERWRITE_MODE, OverwriteMode(self.overwrite_mode).value))
        _flag(modifiers, QUERY_SILENT, self.silent)
        _flag(modifiers, QUERY_KEEP_NULL, self.keep_null)
        _flag(modifiers, QUERY_MERGE_OBJECTS, self.merge_objects)
        _flag(modifiers, QUERY_REFILL_INDEX_CACHES, self.refill_index_caches)
        self._return_modifiers(modifiers)
        return modifiers


@dataclass(slots=True)
class UpdateDocumentOptions(_ReturnOptions):
    if_match: str | None = None  # revision for single-document calls
    wait_for_sync: bool | None = None
    ignore_revs: bool | None = None
    silent: bool | None = None
    keep_null: bool | None = None
    merge_objects: bool | None = None
    refill_index_caches: bool | None = None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self.if_match:
            modifiers.append(with_if_match(self.if_match))
        _flag(modifiers, QUERY_WAIT_FOR_SYNC, self.wait_for_sync)
        _flag(modifiers, QUERY_IGNORE_REVS, self.ignore_revs)
        _flag(modifiers, QUERY_SILENT, self.silent)
        _flag(modifiers, QUERY_KEEP_NULL, self.keep_null)
        _flag(modifiers, QUERY_MERGE_OBJECTS, self.merge_objects)
        _flag(modifiers, QUERY_REFILL_INDEX_CACHES, self.refill_index_caches)
        self._return_modifiers(modifiers)
        return modifiers


@dataclass(slots=True)
class ReplaceDocumentOptions(_ReturnOptions):
    if_match: str | None = None
    wait_for_sync: bool | None = None
    ignore_revs: bool | None = None
    silent: bool | None = None
    refill_index_caches: bool | None = None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self.if_match:
            modifiers.append(with_if_match(self.if_match))
        _flag(modifiers, QUERY_WAIT_FOR_SYNC, self.wait_for_sync)
        _flag(modifiers, QUERY_IGNORE_REVS, self.ignore_revs)
        _flag(modifiers, QUERY_SILENT, self.silent)
        _flag(modifiers, QUERY_REFILL_INDEX_CACHES, self.refill_index_caches)
        self._return_modifiers(modifiers)
        return modifiers


@dataclass(slots=True)
class DeleteDocumentOptions:
    if_match: str | None = None
    wait_for_sync: bool | None = None
    ignore_revs: bool | None = None
    silent: bool | None = None
    refill_index_caches: bool | None = None
    return_old: bool = False
    old_type: Any = None

    @property
    def wants_old(self) -> bool:
        return self.return_old or self.old_type is not None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self.if_match:
            modifiers.append(with_if_match(self.if_match))
        _flag(modifiers, QUERY_WAIT_FOR_SYNC, self.wait_for_sync)
        _flag(modifiers, QUERY_IGNORE_REVS, self.ignore_revs)
        _flag(modifiers, QUERY_SILENT, self.silent)
        _flag(modifiers, QUERY_REFILL_INDEX_CACHES, self.refill_index_caches)
        if self.wants_old:
            modifiers.append(with_query(QUERY_RETURN_OLD, True))
        return modifiers


@dataclass(slots=True)
class ReadDocumentOptions:
    if_match: str | None = None
    if_none_match: str | None = None
    ignore_revs: bool | None = None  # batch reads only
    allow_dirty_read: bool | None = None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self.if_match:
            modifiers.append(with_if_match(self.if_match))
        if self.if_none_match:
            modifiers.append(with_if_none_match(self.if_none_match))
        _flag(modifiers, QUERY_IGNORE_REVS, self.ignore_revs)
        if self.allow_dirty_read:
            modifiers.append(with_header(HEADER_ALLOW_DIRTY_READ, "true"))
        return modifiers


class ImportOnDuplicate(str, Enum):
    ERROR = "error"
    UPDATE = "update"
    REPLACE = "replace"
    IGNORE = "ignore"


@dataclass(slots=True)
class ImportOptions:
    """Options of the bulk import endpoint.

    ``overwrite`` empties the collection before the import.
    """

    from_prefix: str | None = None
    to_prefix: str | None = None
    overwrite: bool | None = None
    on_duplicate: ImportOnDuplicate | None = None
    complete: bool | None = None  # abort everything on the first error
    wait_for_sync: bool | None = None
    details: bool | None = None

    def modifiers(self) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self.from_prefix:
            modifiers.append(with_query("fromPrefix", self.from_prefix))
        if self.to_prefix:
            modifiers.append(with_query("toPrefix", self.to_prefix))
        _flag(modifiers, QUERY_OVERWRITE, self.overwrite)
        if self.on_duplicate is not None:
            modifiers.append(with_query("onDuplicate", ImportOnDuplicate(self.on_duplicate).value))
        _flag(modifiers, "complete", self.complete)
        _flag(modifiers, QUERY_WAIT_FOR_SYNC, self.wait_for_sync)
        _flag(modifiers, "details", self.details)
        return modifiers


class ImportResult(BaseModel):
    """Counters reported by a bulk import."""

    model_config = ConfigDict(extra="ignore")

    created: int = 0
    errors: int = 0
    empty: int = 0
    updated: int = 0
    ignored: int = 0
    details: list[str] = Field(default_factory=list)


def reject_silent(options: Any) -> None:
    """Batch calls need one result per input; ``silent`` would drop them."""
    if options is not None and getattr(options, "silent", None):
        raise InvalidArgumentError("silent is not supported for batch operations")


__all__ = [
    "CreateDocumentOptions",
    "DeleteDocumentOptions",
    "DocumentMeta",
    "DocumentResult",
    "ImportOnDuplicate",
    "ImportOptions",
    "ImportResult",
    "OverwriteMode",
    "ReadDocumentOptions",
    "ReplaceDocumentOptions",
    "UpdateDocumentOptions",
    "reject_silent",
    "validate_key",
]
