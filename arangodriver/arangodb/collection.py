"""Collection handle: document operations and collection administration."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from arangodriver.arangodb.documents import (
    QUERY_ONLY_GET,
    CreateDocumentOptions,
    DeleteDocumentOptions,
    DocumentMeta,
    DocumentResult,
    ImportOptions,
    ImportResult,
    ReadDocumentOptions,
    ReplaceDocumentOptions,
    UpdateDocumentOptions,
    reject_silent,
    validate_key,
)
from arangodriver.arangodb.readers import DocumentReadReader, DocumentResultReader
from arangodriver.connection.base import Connection
from arangodriver.connection.call import (
    build_request,
    call_delete,
    call_get,
    call_head,
    call_patch,
    call_post,
    call_put,
)
from arangodriver.connection.codec import JSON, Codec, convert
from arangodriver.connection.context import RequestContext
from arangodriver.connection.request import (
    DELETE,
    PATCH,
    POST,
    PUT,
    RequestModifier,
    segment,
    with_body,
    with_fragment,
    with_header,
    with_query,
    with_transaction_id,
)
from arangodriver.connection.response import Response
from arangodriver.errors import ArangoError, DecodeError

if TYPE_CHECKING:
    from arangodriver.arangodb.database import Database

logger = logging.getLogger(__name__)

DOCUMENT_COLLECTION = 2
EDGE_COLLECTION = 3

APPLICATION_NDJSON = "application/x-ndjson"


class Collection:
    """Handle on one collection of a database.

    Handles obtained through a stream transaction send every request with
    that transaction's id.
    """

    def __init__(
        self,
        database: Database,
        name: str,
        *,
        info: dict[str, Any] | None = None,
        transaction_id: str | None = None,
    ) -> None:
        self._database = database
        self._name = name
        self._info = info or {}
        self._transaction_id = transaction_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def database(self) -> Database:
        return self._database

    @property
    def connection(self) -> Connection:
        return self._database.connection

    @property
    def transaction_id(self) -> str | None:
        return self._transaction_id

    @property
    def type(self) -> int:
        return int(self._info.get("type", DOCUMENT_COLLECTION))

    def __repr__(self) -> str:
        return f"Collection({self._database.name!r}, {self._name!r})"

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------
    def document_exists(self, key: str, *, ctx: RequestContext | None = None) -> bool:
        validate_key(key)
        response = call_head(ctx, self.connection, self._document_url(key), modifiers=self._modifiers())
        if response.code == 200:
            return True
        if response.code == 404:
            return False
        raise ArangoError.from_body(response.code, response.data)

    def read_document(
        self,
        key: str,
        document_type: Any = None,
        options: ReadDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResult:
        """Read one document; ``document_type`` validates the body."""
        validate_key(key)
        response = call_get(
            ctx,
            self.connection,
            self._document_url(key),
            modifiers=self._modifiers(options),
            allowed_codes=(200,),
        )
        return DocumentResult(
            meta=DocumentMeta.model_validate(response.data or {}),
            document=convert(response.data, document_type),
        )

    def create_document(
        self,
        document: Any,
        options: CreateDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResult:
        response = call_post(
            ctx,
            self.connection,
            self._document_url(),
            document,
            modifiers=self._modifiers(options),
            allowed_codes=(201, 202),
        )
        return self._result(response.data, options)

    def update_document(
        self,
        key: str,
        patch: Any,
        options: UpdateDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResult:
        """Partially update a document.

        With ``options.if_match`` set, a stale revision raises a
        precondition-failed ``ArangoError`` and nothing is changed.
        """
        validate_key(key)
        response = call_patch(
            ctx,
            self.connection,
            self._document_url(key),
            patch,
            modifiers=self._modifiers(options),
            allowed_codes=(200, 201, 202),
        )
        return self._result(response.data, options)

    def replace_document(
        self,
        key: str,
        document: Any,
        options: ReplaceDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResult:
        validate_key(key)
        response = call_put(
            ctx,
            self.connection,
            self._document_url(key),
            document,
            modifiers=self._modifiers(options),
            allowed_codes=(200, 201, 202),
        )
        return self._result(response.data, options)

    def delete_document(
        self,
        key: str,
        options: DeleteDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResult:
        validate_key(key)
        response = call_delete(
            ctx,
            self.connection,
            self._document_url(key),
            modifiers=self._modifiers(options),
            allowed_codes=(200, 202),
        )
        return self._result(response.data, options)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------
    def read_documents(
        self,
        keys: Iterable[str | dict[str, Any]],
        document_type: Any = None,
        options: ReadDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentReadReader:
        keys = list(keys)
        response = self._stream(
            ctx,
            PUT,
            keys,
            options,
            with_fragment("get"),
            with_query(QUERY_ONLY_GET, True),
            allowed_codes=(200,),
        )
        return DocumentReadReader(response, self._codec(response), len(keys), document_type=document_type)

    def create_documents(
        self,
        documents: Iterable[Any],
        options: CreateDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResultReader:
        documents = list(documents)
        reject_silent(options)
        response = self._stream(ctx, POST, documents, options, allowed_codes=(201, 202))
        return self._reader(response, len(documents), options)

    def update_documents(
        self,
        documents: Iterable[Any],
        options: UpdateDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResultReader:
        """Patch several documents; each one must carry its ``_key``."""
        documents = list(documents)
        reject_silent(options)
        response = self._stream(ctx, PATCH, documents, options, allowed_codes=(200, 201, 202))
        return self._reader(response, len(documents), options)

    def replace_documents(
        self,
        documents: Iterable[Any],
        options: ReplaceDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResultReader:
        documents = list(documents)
        reject_silent(options)
        response = self._stream(ctx, PUT, documents, options, allowed_codes=(200, 201, 202))
        return self._reader(response, len(documents), options)

    def delete_documents(
        self,
        keys: Iterable[str | dict[str, Any]],
        options: DeleteDocumentOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> DocumentResultReader:
        """Delete by key; dicts with ``_key`` (and ``_rev``) are accepted too."""
        keys = list(keys)
        reject_silent(options)
        response = self._stream(ctx, DELETE, keys, options, allowed_codes=(200, 202))
        return self._reader(response, len(keys), options)

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------
    def import_documents(
        self,
        documents: Iterable[Any],
        options: ImportOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> ImportResult:
        """Load documents through the import endpoint, one JSON line each.

        Rejected documents are counted in ``errors``; with
        ``options.complete`` the first rejection fails the whole import.
        """
        lines = [JSON.encode(document) for document in documents]
        if not lines:
            return ImportResult()

        response = call_post(
            ctx,
            self.connection,
            self._database.url("import"),
            b"\n".join(lines),
            modifiers=[
                *self._modifiers(options),
                with_query("collection", self._name),
                with_query("type", "documents"),
                with_header("content-type", APPLICATION_NDJSON),
            ],
            allowed_codes=(201,),
        )
        result = ImportResult.model_validate(response.data or {})
        logger.info(
            "Imported %d documents into %s/%s (%d errors)",
            result.created,
            self._database.name,
            self._name,
            result.errors,
        )
        return result

    # ------------------------------------------------------------------
    # Collection administration
    # ------------------------------------------------------------------
    def properties(self, *, ctx: RequestContext | None = None) -> dict[str, Any]:
        response = call_get(
            ctx, self.connection, self._collection_url("properties"), allowed_codes=(200,)
        )
        self._info = response.data
        return response.data

    def count(self, *, ctx: RequestContext | None = None) -> int:
        response = call_get(
            ctx,
            self.connection,
            self._collection_url("count"),
            modifiers=self._modifiers(),
            allowed_codes=(200,),
        )
        return int(response.data["count"])

    def truncate(self, *, ctx: RequestContext | None = None) -> None:
        call_put(
            ctx,
            self.connection,
            self._collection_url("truncate"),
            None,
            modifiers=self._modifiers(),
            allowed_codes=(200,),
        )

    def remove(self, *, ctx: RequestContext | None = None) -> None:
        call_delete(ctx, self.connection, self._collection_url(), allowed_codes=(200,))
        logger.info("Removed collection %s/%s", self._database.name, self._name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _document_url(self, key: str | None = None) -> list[str]:
        parts = self._database.url("document", segment(self._name))
        if key is not None:
            parts.append(segment(key))
        return parts

    def _collection_url(self, *parts: str) -> list[str]:
        return self._database.url("collection", segment(self._name), *parts)

    def _modifiers(self, options: Any = None) -> list[RequestModifier]:
        modifiers: list[RequestModifier] = []
        if self._transaction_id:
            modifiers.append(with_transaction_id(self._transaction_id))
        if options is not None:
            modifiers.extend(options.modifiers())
        return modifiers

    def _stream(
        self,
        ctx: RequestContext | None,
        method: str,
        body: Sequence[Any],
        options: Any,
        *extra: RequestModifier,
        allowed_codes: Sequence[int],
    ) -> Response:
        """Send a batch request and hand back the still-open body."""
        modifiers = [*self._modifiers(options), with_body(list(body)), with_fragment("multiple"), *extra]
        request = build_request(self.connection, method, self._document_url(), modifiers)
        response = self.connection.stream(ctx, request)
        if response.code in allowed_codes:
            return response

        content = response.read()
        try:
            data = self._codec(response).decode(content)
        except DecodeError:
            data = None
        raise ArangoError.from_body(response.code, data)

    def _codec(self, response: Response) -> Codec:
        return self.connection.decoder(response.content_type)

    def _reader(self, response: Response, count: int, options: Any) -> DocumentResultReader:
        return DocumentResultReader(
            response,
            self._codec(response),
            count,
            old_type=getattr(options, "old_type", None),
            new_type=getattr(options, "new_type", None),
        )

    def _result(self, data: Any, options: Any) -> DocumentResult:
        data = data or {}
        result = DocumentResult(meta=DocumentMeta.model_validate(data))
        if "old" in data:
            result.old = convert(data["old"], getattr(options, "old_type", None))
        if "new" in data:
            result.new = convert(data["new"], getattr(options, "new_type", None))
        return result


__all__ = ["Collection", "DOCUMENT_COLLECTION", "EDGE_COLLECTION"]
