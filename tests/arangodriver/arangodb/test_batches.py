"""Unit tests for batch document operations and the lazy result readers."""

import httpx
import orjson
import pytest
from pydantic import BaseModel

from arangodriver.arangodb import (
    Client,
    CreateDocumentOptions,
    DeleteDocumentOptions,
    ReadDocumentOptions,
    UpdateDocumentOptions,
)
from arangodriver.arangodb.readers import DocumentResultReader, item_error
from arangodriver.connection import RetryConfig
from arangodriver.connection.codec import JSON
from arangodriver.connection.response import Response
from arangodriver.errors import (
    ArangoError,
    InvalidArgumentError,
    NoMoreDocumentsError,
    ProtocolError,
    is_conflict,
    is_no_more_documents,
    is_not_found,
    is_precondition_failed,
)


class Item(BaseModel):
    name: str = ""
    stock: int = 0


def streamed_reader(body: bytes, count: int, **kwargs) -> DocumentResultReader:
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(202, content=body)))
    raw = client.send(client.build_request("POST", "http://db1:8529/_api/document/items"), stream=True)
    return DocumentResultReader(Response(raw, "http://db1:8529"), JSON, count, **kwargs)


class TestBatchScenario:
    """End-to-end batch flows against the in-memory server."""

    def test_create_then_delete_with_missing_key(self, collection) -> None:
        """Deleting a, b and a missing key should report two successes and one not-found in order."""
        with collection.create_documents([{"_key": k} for k in ("a", "b", "c")]) as created:
            assert len(created) == 3
            results, errors = created.read_all()
        assert [r.key for r in results] == ["a", "b", "c"]
        assert errors.first_non_none() is None

        reader = collection.delete_documents(["a", "b", "nonexistent"])
        assert len(reader) == 3

        first = reader.read()
        second = reader.read()
        with pytest.raises(ArangoError) as exc_info:
            reader.read()
        with pytest.raises(NoMoreDocumentsError):
            reader.read()

        assert (first.key, second.key) == ("a", "b")
        assert is_not_found(exc_info.value)
        assert exc_info.value.code == 404
        assert len(reader) == 3

    def test_exactly_n_reads_then_sentinel(self, collection) -> None:
        """N reads should return values and the next one the sentinel, repeatedly."""
        reader = collection.create_documents([{"n": i} for i in range(5)])
        for _ in range(5):
            reader.read()
        assert reader.position == 5
        for _ in range(2):
            with pytest.raises(NoMoreDocumentsError) as exc_info:
                reader.read()
            assert is_no_more_documents(exc_info.value)
        assert reader.closed

    def test_failures_do_not_block_siblings(self, collection, fake_server) -> None:
        """Successes plus failures should equal the input count."""
        fake_server.put("shop", "items", {"_key": "taken"})
        reader = collection.create_documents([{"_key": "x"}, {"_key": "taken"}, {"_key": "y"}, {"_key": "taken"}])

        results, errors = reader.read_all()

        assert len(results) == len(errors) == 4
        assert [r.key if r else None for r in results] == ["x", None, "y", None]
        assert sum(e is None for e in errors) + sum(e is not None for e in errors) == 4
        assert all(is_conflict(e) for e in errors if e is not None)
        assert errors[1].error_num == 1210

    def test_iteration_yields_results_and_errors(self, collection, fake_server) -> None:
        """Iterating should yield results and per-item errors in order."""
        fake_server.put("shop", "items", {"_key": "a"})
        outcomes = list(collection.delete_documents(["a", "zzz"]))
        assert outcomes[0].key == "a"
        assert isinstance(outcomes[1], ArangoError)

    def test_update_returns_typed_old_and_new_per_item(self, collection, fake_server) -> None:
        """Each item should get its own old and new values."""
        fake_server.put("shop", "items", {"_key": "a", "name": "a", "stock": 1})
        fake_server.put("shop", "items", {"_key": "b", "name": "b", "stock": 2})

        reader = collection.update_documents(
            [{"_key": "a", "stock": 10}, {"_key": "b", "stock": 20}],
            UpdateDocumentOptions(old_type=Item, new_type=Item),
        )
        results, _ = reader.read_all()

        assert [r.old for r in results] == [Item(name="a", stock=1), Item(name="b", stock=2)]
        assert [r.new for r in results] == [Item(name="a", stock=10), Item(name="b", stock=20)]
        assert results[0].old is not results[1].old
        assert results[0].meta.old_rev is not None

    def test_batch_stale_revision_per_item(self, collection, fake_server) -> None:
        """With ignore_revs=False a stale _rev should fail only that item."""
        a = fake_server.put("shop", "items", {"_key": "a", "stock": 1})
        fake_server.put("shop", "items", {"_key": "b", "stock": 1})

        reader = collection.update_documents(
            [{"_key": "a", "_rev": a["_rev"], "stock": 2}, {"_key": "b", "_rev": "_stale", "stock": 2}],
            UpdateDocumentOptions(ignore_revs=False),
        )
        results, errors = reader.read_all()

        assert results[0] is not None and errors[0] is None
        assert is_precondition_failed(errors[1])
        assert errors[1].code == 412
        assert fake_server.documents("shop", "items")["b"]["stock"] == 1

    def test_read_documents_into_target(self, collection, fake_server) -> None:
        """Batch reads should decode each document and report missing ones."""
        fake_server.put("shop", "items", {"_key": "a", "name": "lamp", "stock": 3})

        reader = collection.read_documents(["a", "ghost"], Item)
        ok = reader.read()
        with pytest.raises(ArangoError) as exc_info:
            reader.read()

        assert ok.document == Item(name="lamp", stock=3)
        assert ok.key == "a"
        assert is_not_found(exc_info.value)
        request = fake_server.requests[-1]
        assert request.method == "PUT"
        assert request.url.params["onlyget"] == "true"
        assert orjson.loads(request.content) == ["a", "ghost"]

    def test_read_documents_with_options(self, collection, fake_server) -> None:
        """Read options should reach the batch request."""
        fake_server.put("shop", "items", {"_key": "a"})
        reader = collection.read_documents(["a"], options=ReadDocumentOptions(allow_dirty_read=True))
        reader.read_all()
        assert fake_server.requests[-1].headers["x-arango-allow-dirty-read"] == "true"

    def test_empty_batch(self, collection) -> None:
        """An empty batch should be exhausted immediately."""
        reader = collection.create_documents([])
        assert len(reader) == 0
        with pytest.raises(NoMoreDocumentsError):
            reader.read()

    def test_delete_returns_old(self, collection, fake_server) -> None:
        """Batch deletes should return old bodies when asked."""
        fake_server.put("shop", "items", {"_key": "a", "name": "lamp"})
        results, _ = collection.delete_documents(["a"], DeleteDocumentOptions(old_type=Item)).read_all()
        assert results[0].old == Item(name="lamp")

    def test_silent_rejected_for_batches(self, collection) -> None:
        """silent would drop per-item results, so batches refuse it."""
        with pytest.raises(InvalidArgumentError):
            collection.create_documents([{"a": 1}], CreateDocumentOptions(silent=True))

    def test_whole_call_error_raised_up_front(self, collection, fake_server) -> None:
        """A failing batch request should raise before a reader is returned."""
        del fake_server.databases["shop"]["items"]
        with pytest.raises(ArangoError) as exc_info:
            collection.create_documents([{"a": 1}])
        assert exc_info.value.error_num == 1203

    def test_batches_over_msgpack(self, make_config, fake_server) -> None:
        """The binary content type should stream batch results too."""
        fake_server.add_collection("shop", "items")
        with Client.from_config(
            make_config(content_type="application/x-msgpack"), retry=RetryConfig(backoff=0)
        ) as client:
            collection = client.database("shop").collection("items")
            results, errors = collection.create_documents(
                [{"_key": "m1"}, {"_key": "m2"}], CreateDocumentOptions(return_new=True)
            ).read_all()
        assert [r.key for r in results] == ["m1", "m2"]
        assert results[1].new["_key"] == "m2"
        assert errors.first_non_none() is None


class TestDocumentResultReader:
    """Tests for reader behaviour on raw bodies."""

    def test_malformed_envelope_fails_first_read(self) -> None:
        """A body that is not an array should fail the first read."""
        reader = streamed_reader(b'{"error": false}', 2)
        with pytest.raises(ProtocolError):
            reader.read()
        assert reader.closed
        with pytest.raises(NoMoreDocumentsError):
            reader.read()

    def test_short_array_is_protocol_error(self) -> None:
        """Fewer results than inputs should raise ProtocolError."""
        reader = streamed_reader(b'[{"_key": "a", "_id": "items/a", "_rev": "1"}]', 2)
        assert reader.read().key == "a"
        with pytest.raises(ProtocolError):
            reader.read()

    def test_extra_results_are_ignored(self) -> None:
        """Results beyond the input count should be dropped."""
        reader = streamed_reader(b'[{"_key": "a"}, {"_key": "b"}]', 1)
        assert reader.read().key == "a"
        with pytest.raises(NoMoreDocumentsError):
            reader.read()
        assert reader.closed

    def test_non_object_item(self) -> None:
        """Items must be objects."""
        reader = streamed_reader(b"[42]", 1)
        with pytest.raises(ProtocolError):
            reader.read()

    def test_close_stops_reading(self) -> None:
        """A closed reader should report exhaustion."""
        reader = streamed_reader(b'[{"_key": "a"}, {"_key": "b"}]', 2)
        reader.read()
        reader.close()
        with pytest.raises(NoMoreDocumentsError):
            reader.read()


class TestItemError:
    """Tests for per-item error mapping."""

    @pytest.mark.parametrize("error_num,code", [(1200, 412), (1202, 404), (1203, 404), (1210, 409), (600, 400)])
    def test_code_from_error_num(self, error_num: int, code: int) -> None:
        """Items without a code should get one from their error number."""
        err = item_error({"error": True, "errorNum": error_num, "errorMessage": "x"})
        assert err.code == code
        assert err.error_num == error_num

    def test_explicit_code_kept(self) -> None:
        """An explicit code should win."""
        assert item_error({"error": True, "code": 400, "errorNum": 1202}).code == 400
