"""Database handle: collections, AQL queries and stream transactions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from arangodriver.arangodb.collection import Collection
from arangodriver.arangodb.cursor import Cursor
from arangodriver.arangodb.models import (
    BeginTransactionOptions,
    CreateCollectionOptions,
    CreateCollectionProperties,
    QueryOptions,
    TransactionCollections,
    TransactionStatus,
)
from arangodriver.connection.base import Connection
from arangodriver.connection.call import call_delete, call_get, call_post, call_put
from arangodriver.connection.context import RequestContext, context_or_background
from arangodriver.connection.request import RequestModifier, segment, with_query
from arangodriver.errors import ArangoError, is_not_found

if TYPE_CHECKING:
    from arangodriver.arangodb.client import Client

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, client: Client, name: str, info: dict[str, Any] | None = None) -> None:
        self._client = client
        self._name = name
        self._info = info or {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def client(self) -> Client:
        return self._client

    @property
    def connection(self) -> Connection:
        return self._client.connection

    def url(self, *parts: str) -> list[str]:
        """Path segments of ``/_db/<name>/_api/<parts>``."""
        return ["_db", segment(self._name), "_api", *parts]

    def __repr__(self) -> str:
        return f"Database({self._name!r})"

    def info(self, *, ctx: RequestContext | None = None) -> dict[str, Any]:
        response = call_get(ctx, self.connection, self.url("database", "current"), allowed_codes=(200,))
        self._info = response.data.get("result", {})
        return self._info

    def remove(self, *, ctx: RequestContext | None = None) -> None:
        self._client.remove_database(self._name, ctx=ctx)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------
    def collection(self, name: str, *, ctx: RequestContext | None = None) -> Collection:
        """Open an existing collection; raises a not-found ``ArangoError`` otherwise."""
        response = call_get(
            ctx, self.connection, self.url("collection", segment(name)), allowed_codes=(200,)
        )
        return Collection(self, name, info=response.data)

    def collection_exists(self, name: str, *, ctx: RequestContext | None = None) -> bool:
        try:
            self.collection(name, ctx=ctx)
        except ArangoError as exc:
            if is_not_found(exc):
                return False
            raise
        return True

    def collections(self, *, ctx: RequestContext | None = None) -> list[Collection]:
        response = call_get(
            ctx,
            self.connection,
            self.url("collection"),
            modifiers=[with_query("excludeSystem", True)],
            allowed_codes=(200,),
        )
        return [Collection(self, info["name"], info=info) for info in response.data.get("result", [])]

    def create_collection(
        self,
        name: str,
        properties: CreateCollectionProperties | None = None,
        options: CreateCollectionOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> Collection:
        body = properties.to_body() if properties is not None else {}
        body["name"] = name
        modifiers: list[RequestModifier] = []
        if options is not None:
            if options.enforce_replication_factor is not None:
                modifiers.append(with_query("enforceReplicationFactor", options.enforce_replication_factor))
            if options.wait_for_sync_replication is not None:
                modifiers.append(with_query("waitForSyncReplication", options.wait_for_sync_replication))
        response = call_post(
            ctx,
            self.connection,
            self.url("collection"),
            body,
            modifiers=modifiers,
            allowed_codes=(200, 201),
        )
        logger.info("Created collection %s/%s", self._name, name)
        return Collection(self, name, info=response.data)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def query(
        self,
        query: str,
        bind_vars: dict[str, Any] | None = None,
        options: QueryOptions | None = None,
        *,
        document_type: Any = None,
        ctx: RequestContext | None = None,
    ) -> Cursor:
        """Run an AQL query and return a cursor over its results.

        Rows are validated into ``document_type`` when one is given.
        """
        body: dict[str, Any] = options.to_body() if options is not None else {}
        body["query"] = query
        if bind_vars:
            body["bindVars"] = bind_vars
        response = call_post(ctx, self.connection, self.url("cursor"), body, allowed_codes=(201,))
        cursor = Cursor(self, response.endpoint, response.data or {}, document_type=document_type)
        logger.debug("Opened cursor %s in %s on %s", cursor.id, self._name, response.endpoint)
        return cursor

    def validate_query(self, query: str, *, ctx: RequestContext | None = None) -> dict[str, Any]:
        """Parse a query without running it; syntax errors raise ``ArangoError``."""
        response = call_post(ctx, self.connection, self.url("query"), {"query": query}, allowed_codes=(200,))
        return response.data

    # ------------------------------------------------------------------
    # Stream transactions
    # ------------------------------------------------------------------
    def begin_transaction(
        self,
        collections: TransactionCollections,
        options: BeginTransactionOptions | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> Transaction:
        body: dict[str, Any] = options.to_body() if options is not None else {}
        body["collections"] = collections.to_body()
        response = call_post(
            ctx,
            self.connection,
            self.url("transaction", "begin"),
            body,
            allowed_codes=(200, 201),
        )
        result = response.data.get("result", {})
        logger.debug("Began transaction %s in %s", result.get("id"), self._name)
        return Transaction(self, str(result["id"]))

    def transaction(self, transaction_id: str) -> Transaction:
        return Transaction(self, transaction_id)


class Transaction:
    """A running stream transaction.

    Collections and contexts derived from it carry ``x-arango-trx-id``.
    """

    def __init__(self, database: Database, transaction_id: str) -> None:
        self._database = database
        self._id = transaction_id

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"Transaction({self._id!r})"

    def collection(self, name: str) -> Collection:
        return Collection(self._database, name, transaction_id=self._id)

    def context(self, ctx: RequestContext | None = None) -> RequestContext:
        return context_or_background(ctx).with_transaction_id(self._id)

    def status(self, *, ctx: RequestContext | None = None) -> TransactionStatus:
        response = call_get(ctx, self._database.connection, self._url(), allowed_codes=(200,))
        return TransactionStatus(response.data["result"]["status"])

    def commit(self, *, ctx: RequestContext | None = None) -> None:
        call_put(ctx, self._database.connection, self._url(), None, allowed_codes=(200,))
        logger.debug("Committed transaction %s", self._id)

    def abort(self, *, ctx: RequestContext | None = None) -> None:
        call_delete(ctx, self._database.connection, self._url(), allowed_codes=(200,))
        logger.debug("Aborted transaction %s", self._id)

    def _url(self) -> list[str]:
        return self._database.url("transaction", segment(self._id))


__all__ = ["Database", "Transaction"]
