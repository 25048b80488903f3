"""Shared fixtures: an in-memory ArangoDB stand-in behind httpx.MockTransport."""

import re
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

import httpx
import msgpack
import orjson
import pytest

from arangodriver.arangodb import Client
from arangodriver.connection import ConnectionConfig, RetryConfig

MSGPACK_TYPE = "application/x-msgpack"
NDJSON_TYPE = "application/x-ndjson"
FOR_RETURN = re.compile(r"^FOR (?P<var>\w+) IN (?P<source>@@\w+|\w+) RETURN (?P=var)$", re.IGNORECASE)


def _error(code: int, error_num: int, message: str, **extra: Any) -> tuple[int, dict[str, Any]]:
    return code, {"error": True, "code": code, "errorNum": error_num, "errorMessage": message, **extra}


def _item_error(error_num: int, message: str, **extra: Any) -> dict[str, Any]:
    # batch items carry no code of their own
    return {"error": True, "errorNum": error_num, "errorMessage": message, **extra}


class FakeArango:
    """Enough of the HTTP API for databases, collections, documents, cursors and import."""

    def __init__(self) -> None:
        self.databases: dict[str, dict[str, dict[str, dict[str, Any]]]] = {"_system": {}}
        self.requests: list[httpx.Request] = []
        self.transactions: dict[str, str] = {}
        self._revision = 0
        self._transaction_seq = 0
        self.cursors: dict[str, tuple[int, list[Any]]] = {}  # id -> (batch size, pending rows)
        self._cursor_seq = 0
        self.cursor_hosts: dict[str, str] = {}  # cursors live on the coordinator that created them

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------
    def add_database(self, name: str) -> None:
        self.databases.setdefault(name, {})

    def add_collection(self, database: str, name: str) -> None:
        self.add_database(database)
        self.databases[database].setdefault(name, {})

    def put(self, database: str, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        """Store ``document`` directly and return its stored form."""
        self.add_collection(database, collection)
        stored = self._stamp(collection, dict(document))
        self.databases[database][collection][stored["_key"]] = stored
        return stored

    def documents(self, database: str, collection: str) -> dict[str, dict[str, Any]]:
        return self.databases[database][collection]

    # ------------------------------------------------------------------
    # Transport entry point
    # ------------------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raw = request.url.raw_path.decode("ascii").split("?", 1)[0]
        parts = [unquote(p) for p in raw.strip("/").split("/") if p]
        body = self._decode(request)

        database = "_system"
        if len(parts) >= 2 and parts[0] == "_db":
            database = parts[1]
            parts = parts[2:]

        code, payload = self._route(request, database, parts, body)
        return self._encode(request, code, payload)

    def _route(self, request: httpx.Request, database: str, parts: list[str], body: Any) -> tuple[int, Any]:
        method = request.method
        query = request.url.params

        if parts == ["_api", "version"]:
            return 200, {"server": "arango", "version": "3.12.1", "license": "community"}

        if database not in self.databases:
            return _error(404, 1228, "database not found")

        if parts[:2] == ["_api", "database"]:
            return self._database_api(method, database, parts[2:], body)
        if parts[:2] == ["_api", "collection"]:
            return self._collection_api(method, database, parts[2:], body)
        if parts[:2] == ["_api", "transaction"]:
            return self._transaction_api(method, parts[2:], body)
        if parts[:2] == ["_api", "cursor"]:
            return self._cursor_api(request, database, parts[2:], body)
        if parts == ["_api", "query"] and method == "POST":
            parsed = self._parse_query(body["query"], {})
            if parsed is None:
                return _error(400, 1501, "syntax error, unexpected identifier")
            return 200, {"error": False, "code": 200, "parsed": True, "collections": [parsed]}
        if parts == ["_api", "import"] and method == "POST":
            return self._import(database, query, body)
        if parts[:2] == ["_api", "document"] and len(parts) >= 3:
            collection = parts[2]
            if collection not in self.databases[database]:
                return _error(404, 1203, "collection or view not found")
            docs = self.databases[database][collection]
            if len(parts) == 4:
                return self._single(request, collection, docs, parts[3], body)
            return self._batch(method, query, collection, docs, body)
        return _error(404, 404, "unknown path")

    # ------------------------------------------------------------------
    # Databases, collections, transactions
    # ------------------------------------------------------------------
    def _database_api(self, method: str, database: str, rest: list[str], body: Any) -> tuple[int, Any]:
        if rest == ["current"]:
            return 200, {"error": False, "code": 200, "result": {"name": database, "isSystem": database == "_system"}}
        if method == "GET":
            return 200, {"error": False, "code": 200, "result": sorted(self.databases)}
        if method == "POST":
            if body["name"] in self.databases:
                return _error(409, 1207, "duplicate database name")
            self.databases[body["name"]] = {}
            return 201, {"error": False, "code": 201, "result": True}
        if method == "DELETE" and rest:
            if rest[0] not in self.databases:
                return _error(404, 1228, "database not found")
            del self.databases[rest[0]]
            return 200, {"error": False, "code": 200, "result": True}
        return _error(405, 405, "method not supported")

    def _collection_api(self, method: str, database: str, rest: list[str], body: Any) -> tuple[int, Any]:
        collections = self.databases[database]
        if not rest:
            if method == "POST":
                if body["name"] in collections:
                    return _error(409, 1207, "duplicate name")
                collections[body["name"]] = {}
                return 200, {"name": body["name"], "type": body.get("type", 2), "status": 3}
            return 200, {"error": False, "code": 200, "result": [{"name": n, "type": 2} for n in sorted(collections)]}

        name = rest[0]
        if name not in collections:
            return _error(404, 1203, "collection or view not found")
        if len(rest) == 1:
            if method == "DELETE":
                del collections[name]
                return 200, {"error": False, "code": 200, "id": "1"}
            return 200, {"name": name, "type": 2, "status": 3}
        if rest[1] == "count":
            return 200, {"name": name, "count": len(collections[name])}
        if rest[1] == "truncate" and method == "PUT":
            collections[name].clear()
            return 200, {"name": name}
        if rest[1] == "properties":
            return 200, {"name": name, "type": 2, "waitForSync": False}
        return _error(404, 404, "unknown path")

    def _transaction_api(self, method: str, rest: list[str], body: Any) -> tuple[int, Any]:
        if rest == ["begin"] and method == "POST":
            self._transaction_seq += 1
            trx_id = str(1000 + self._transaction_seq)
            self.transactions[trx_id] = "running"
            return 201, {"error": False, "code": 201, "result": {"id": trx_id, "status": "running"}}
        trx_id = rest[0] if rest else ""
        if trx_id not in self.transactions:
            return _error(404, 1655, "transaction not found")
        if method == "PUT":
            self.transactions[trx_id] = "committed"
        elif method == "DELETE":
            self.transactions[trx_id] = "aborted"
        return 200, {"error": False, "code": 200, "result": {"id": trx_id, "status": self.transactions[trx_id]}}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def _stamp(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        self._revision += 1
        document.setdefault("_key", f"k{self._revision}")
        document["_id"] = f"{collection}/{document['_key']}"
        document["_rev"] = f"_r{self._revision}"
        return document

    @staticmethod
    def _meta(document: dict[str, Any]) -> dict[str, Any]:
        return {"_key": document["_key"], "_id": document["_id"], "_rev": document["_rev"]}

    def _single(
        self, request: httpx.Request, collection: str, docs: dict[str, Any], key: str, body: Any
    ) -> tuple[int, Any]:
        method = request.method
        current = docs.get(key)
        if current is None:
            return _error(404, 1202, "document not found")

        if_match = request.headers.get("if-match")
        if if_match is not None and if_match != current["_rev"]:
            return _error(412, 1200, "conflict, _rev values do not match", **self._meta(current))

        if method in ("GET", "HEAD"):
            if_none_match = request.headers.get("if-none-match")
            if if_none_match is not None and if_none_match == current["_rev"]:
                return 304, None
            return 200, (current if method == "GET" else None)

        returns = self._return_flags(request.url.params)
        if method == "DELETE":
            del docs[key]
            result = {**self._meta(current)}
            if returns["old"]:
                result["old"] = current
            return 200, result

        old = current
        if method == "PATCH":
            new = {**current, **body}
        else:
            new = {**body}
        new["_key"] = key
        new = self._stamp(collection, new)
        docs[key] = new
        result = {**self._meta(new), "_oldRev": old["_rev"]}
        if returns["old"]:
            result["old"] = old
        if returns["new"]:
            result["new"] = new
        return 201, result

    @staticmethod
    def _return_flags(params: httpx.QueryParams) -> dict[str, bool]:
        return {
            "old": params.get("returnOld") == "true",
            "new": params.get("returnNew") == "true",
        }

    def _batch(
        self, method: str, params: httpx.QueryParams, collection: str, docs: dict[str, Any], body: Any
    ) -> tuple[int, Any]:
        if method == "POST" and isinstance(body, dict):
            stored = self._stamp(collection, dict(body))
            if stored["_key"] in docs:
                return _error(409, 1210, "unique constraint violated")
            docs[stored["_key"]] = stored
            result = self._meta(stored)
            if self._return_flags(params)["new"]:
                result["new"] = stored
            return 202, result

        if not isinstance(body, list):
            return _error(400, 600, "expecting array")

        returns = self._return_flags(params)
        check_revs = params.get("ignoreRevs") == "false"
        results: list[dict[str, Any]] = []
        for entry in body:
            ref = {"_key": entry} if isinstance(entry, str) else entry
            key = ref.get("_key")

            if method == "POST":
                stored = self._stamp(collection, dict(ref))
                if stored["_key"] in docs:
                    results.append(_item_error(1210, "unique constraint violated"))
                    continue
                docs[stored["_key"]] = stored
                result = self._meta(stored)
                if returns["new"]:
                    result["new"] = stored
                results.append(result)
                continue

            current = docs.get(key)
            if current is None:
                results.append(_item_error(1202, "document not found"))
                continue
            if check_revs and ref.get("_rev") and ref["_rev"] != current["_rev"]:
                results.append(_item_error(1200, "conflict, _rev values do not match", **self._meta(current)))
                continue

            if method == "PUT" and params.get("onlyget") == "true":
                results.append(current)
                continue

            if method == "DELETE":
                del docs[key]
                result = self._meta(current)
                if returns["old"]:
                    result["old"] = current
                results.append(result)
                continue

            changes = {k: v for k, v in ref.items() if k not in ("_rev", "_id")}
            new = {**current, **changes} if method == "PATCH" else changes
            new = self._stamp(collection, new)
            docs[key] = new
            result = {**self._meta(new), "_oldRev": current["_rev"]}
            if returns["old"]:
                result["old"] = current
            if returns["new"]:
                result["new"] = new
            results.append(result)

        code = 200 if method == "PUT" and params.get("onlyget") == "true" else 202
        return code, results

    # ------------------------------------------------------------------
    # Queries and import
    # ------------------------------------------------------------------
    @staticmethod
    def _parse_query(query: str, bind_vars: dict[str, Any]) -> str | None:
        """Collection scanned by ``FOR x IN coll RETURN x``; None for anything else."""
        match = FOR_RETURN.match(query.strip())
        if match is None:
            return None
        source = match.group("source")
        if source.startswith("@@"):
            return bind_vars.get(source[1:])
        return source

    def _cursor_api(self, request: httpx.Request, database: str, rest: list[str], body: Any) -> tuple[int, Any]:
        method = request.method
        if not rest and method == "POST":
            bind_vars = body.get("bindVars", {})
            collection = self._parse_query(body["query"], bind_vars)
            if collection is None:
                return _error(400, 1501, "syntax error, unexpected identifier")
            if collection not in self.databases[database]:
                return _error(404, 1203, "collection or view not found")
            rows = [self.databases[database][collection][k] for k in sorted(self.databases[database][collection])]
            self._cursor_seq += 1
            cursor_id = str(5000 + self._cursor_seq)
            self.cursors[cursor_id] = (body.get("batchSize", 1000), rows)
            self.cursor_hosts[cursor_id] = request.url.host
            batch = self._next_batch(cursor_id)
            stats: dict[str, Any] = {"scannedFull": len(rows), "executionTime": 0.001}
            if body.get("options", {}).get("fullCount"):
                stats["fullCount"] = len(rows)
            batch["extra"] = {"stats": stats}
            if body.get("count"):
                batch["count"] = len(rows)
            return 201, {"error": False, "code": 201, **batch}

        cursor_id = rest[0] if rest else ""
        if cursor_id not in self.cursors or self.cursor_hosts.get(cursor_id) != request.url.host:
            return _error(404, 1600, "cursor not found")
        if method == "DELETE":
            del self.cursors[cursor_id]
            return 202, {"error": False, "code": 202, "id": cursor_id}
        if method == "PUT":
            return 200, {"error": False, "code": 200, **self._next_batch(cursor_id)}
        return _error(405, 405, "method not supported")

    def _next_batch(self, cursor_id: str) -> dict[str, Any]:
        size, rows = self.cursors[cursor_id]
        batch, rest = rows[:size], rows[size:]
        if rest:
            self.cursors[cursor_id] = (size, rest)
            return {"result": batch, "hasMore": True, "id": cursor_id}
        del self.cursors[cursor_id]
        return {"result": batch, "hasMore": False}

    def _import(self, database: str, params: httpx.QueryParams, body: Any) -> tuple[int, Any]:
        collection = params.get("collection")
        if params.get("type") != "documents" or not isinstance(body, list):
            return _error(400, 400, "expecting documents")
        if collection not in self.databases[database]:
            return _error(404, 1203, "collection or view not found")
        target = self.databases[database][collection]
        if params.get("overwrite") == "true":
            target.clear()

        docs = dict(target)
        on_duplicate = params.get("onDuplicate", "error")
        counts = {"created": 0, "errors": 0, "empty": 0, "updated": 0, "ignored": 0}
        details: list[str] = []
        for position, document in enumerate(body):
            if not document:
                counts["empty"] += 1
                continue
            key = document.get("_key")
            if key is None or key not in docs:
                stored = self._stamp(collection, dict(document))
                docs[stored["_key"]] = stored
                counts["created"] += 1
            elif on_duplicate == "error":
                counts["errors"] += 1
                details.append(f"at position {position}: creating document failed with error 'unique constraint violated'")
            elif on_duplicate == "ignore":
                counts["ignored"] += 1
            else:
                merged = {**docs[key], **document} if on_duplicate == "update" else dict(document)
                docs[key] = self._stamp(collection, merged)
                counts["updated"] += 1

        if counts["errors"] and params.get("complete") == "true":
            return _error(409, 1210, "unique constraint violated")
        target.clear()
        target.update(docs)
        result: dict[str, Any] = {"error": False, **counts}
        if params.get("details") == "true":
            result["details"] = details
        return 201, result

    # ------------------------------------------------------------------
    # Wire encoding
    # ------------------------------------------------------------------
    @staticmethod
    def _decode(request: httpx.Request) -> Any:
        content = request.content
        if not content:
            return None
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(MSGPACK_TYPE):
            return msgpack.unpackb(content, raw=False)
        if content_type.startswith(NDJSON_TYPE):
            return [orjson.loads(line) for line in content.splitlines() if line.strip()]
        return orjson.loads(content)

    @staticmethod
    def _encode(request: httpx.Request, code: int, payload: Any) -> httpx.Response:
        if payload is None or request.method == "HEAD":
            return httpx.Response(code)
        if request.headers.get("accept", "").startswith(MSGPACK_TYPE):
            return httpx.Response(
                code,
                content=msgpack.packb(payload, use_bin_type=True),
                headers={"content-type": MSGPACK_TYPE},
            )
        return httpx.Response(
            code,
            content=orjson.dumps(payload),
            headers={"content-type": "application/json; charset=utf-8"},
        )


class Script:
    """Transport handler answering from a fixed list of steps.

    Each step is an exception to raise, a callable taking the request, or a
    ``(status, body, headers)`` tuple. The last step repeats.
    """

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(request)
        status, body, *rest = step
        headers = dict(rest[0]) if rest else {}
        if body is None:
            return httpx.Response(status, headers=headers)
        headers.setdefault("content-type", "application/json")
        return httpx.Response(status, content=orjson.dumps(body), headers=headers)

    @property
    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def script() -> type[Script]:
    return Script


@pytest.fixture
def fake_server() -> FakeArango:
    return FakeArango()


@pytest.fixture
def make_config(fake_server: FakeArango) -> Callable[..., ConnectionConfig]:
    def factory(**kwargs: Any) -> ConnectionConfig:
        kwargs.setdefault("transport", httpx.MockTransport(fake_server.handler))
        return ConnectionConfig(**kwargs)

    return factory


@pytest.fixture
def client(make_config):
    client = Client.from_config(make_config(), retry=RetryConfig(backoff=0))
    yield client
    client.close()


@pytest.fixture
def database(client, fake_server):
    fake_server.add_database("shop")
    return client.database("shop")


@pytest.fixture
def collection(database, fake_server):
    fake_server.add_collection("shop", "items")
    return database.collection("items")
