"""Unit tests for arangodriver.arangodb.agency module."""

import httpx
import orjson
import pytest

from arangodriver.arangodb.agency import Agency, KeyNotFoundError, full_key, is_key_not_found
from arangodriver.connection.configuration import ConnectionConfig
from arangodriver.connection.endpoints import LeaderEndpoints
from arangodriver.connection.http import HttpConnection
from arangodriver.connection.retry import FailoverConnection, RetryConfig
from arangodriver.errors import ArangoError, ProtocolError, is_precondition_failed

AGENTS = ["http://agent1:8531", "http://agent2:8531", "http://agent3:8531"]

TREE = [{"arango": {"Plan": {"Version": 7, "Databases": {"shop": {"id": "42"}}}}}]


def agency(handler, endpoints=None) -> Agency:
    endpoints = endpoints or LeaderEndpoints(AGENTS)
    config = ConnectionConfig(endpoints=AGENTS, transport=httpx.MockTransport(handler))
    return Agency(FailoverConnection(HttpConnection(config, endpoints), RetryConfig(backoff=0)))


class TestReadKey:
    """Tests for Agency.read_key."""

    def test_walks_nested_objects(self, script) -> None:
        """The value under the full key path should be returned."""
        handler = script((200, TREE))
        value = agency(handler).read_key(["arango", "Plan", "Version"])

        assert value == 7
        request = handler.requests[0]
        assert request.url.path == "/_api/agency/read"
        assert orjson.loads(request.content) == [["/arango/Plan/Version"]]

    def test_converts_into_target(self, script) -> None:
        """A target type should be applied to the value."""
        handler = script((200, TREE))
        value = agency(handler).read_key(["arango", "Plan", "Databases"], dict[str, dict[str, str]])
        assert value == {"shop": {"id": "42"}}

    def test_missing_key(self, script) -> None:
        """A missing path element should raise KeyNotFoundError naming the prefix."""
        handler = script((200, TREE))

        with pytest.raises(KeyNotFoundError) as exc_info:
            agency(handler).read_key(["arango", "Current", "Version"])

        assert exc_info.value.key == ["arango", "Current"]
        assert is_key_not_found(exc_info.value)

    def test_scalar_in_path_is_protocol_error(self, script) -> None:
        """Descending into a non-object should raise ProtocolError."""
        handler = script((200, TREE))
        with pytest.raises(ProtocolError):
            agency(handler).read_key(["arango", "Plan", "Version", "deeper"])

    def test_unexpected_envelope(self, script) -> None:
        """Exactly one element is expected back."""
        handler = script((200, [{}, {}]))
        with pytest.raises(ProtocolError):
            agency(handler).read_key(["arango"])

    def test_follows_leader_redirect(self, script) -> None:
        """A follower's redirect should move the request and the leader."""
        endpoints = LeaderEndpoints(AGENTS)
        handler = script((307, None, {"location": "http://agent2:8531/_api/agency/read"}), (200, TREE))

        value = agency(handler, endpoints).read_key(["arango", "Plan", "Version"])

        assert value == 7
        assert handler.hosts == ["agent1", "agent2"]
        assert endpoints.leader == "http://agent2:8531"
        assert orjson.loads(handler.requests[1].content) == [["/arango/Plan/Version"]]


class TestWrites:
    """Tests for agency write transactions."""

    def test_write_key_sends_set_operation(self, script) -> None:
        """write_key should send one set operation without preconditions."""
        handler = script((200, {"results": [12]}))
        agency(handler).write_key(["arango", "Target", "Lock"], "me", ttl=30)

        request = handler.requests[0]
        assert request.url.path == "/_api/agency/write"
        assert orjson.loads(request.content) == [
            [{"/arango/Target/Lock": {"op": "set", "new": "me", "ttl": 30}}, {}]
        ]

    def test_write_key_if_empty_adds_precondition(self, script) -> None:
        """The oldEmpty condition should accompany the operation."""
        handler = script((200, {"results": [3]}))
        agency(handler).write_key_if_empty(["lock"], {"owner": "a"})

        operations, conditions = orjson.loads(handler.requests[0].content)[0]
        assert operations == {"/lock": {"op": "set", "new": {"owner": "a"}}}
        assert conditions == {"/lock": {"oldEmpty": True}}

    def test_write_key_if_equal_to(self, script) -> None:
        """The old value should be sent as a precondition."""
        handler = script((200, {"results": [4]}))
        agency(handler).write_key_if_equal_to(["lock"], "b", "a")

        _, conditions = orjson.loads(handler.requests[0].content)[0]
        assert conditions == {"/lock": {"old": "a"}}

    def test_remove_key(self, script) -> None:
        """remove_key should send a delete operation."""
        handler = script((200, {"results": [5]}))
        agency(handler).remove_key(["lock"])
        assert orjson.loads(handler.requests[0].content) == [[{"/lock": {"op": "delete"}}, {}]]

    def test_remove_key_if_equal_to(self, script) -> None:
        """The delete should carry the old value condition."""
        handler = script((200, {"results": [6]}))
        agency(handler).remove_key_if_equal_to(["lock"], "a")
        assert orjson.loads(handler.requests[0].content) == [
            [{"/lock": {"op": "delete"}}, {"/lock": {"old": "a"}}]
        ]

    def test_transient_store(self, script) -> None:
        """Transient writes should go to their own endpoint."""
        handler = script((200, {"results": [1]}))
        agency(handler).write_transaction({"/x": {"op": "set", "new": 1}}, transient=True)
        assert handler.requests[0].url.path == "/_api/agency/transient"

    @pytest.mark.parametrize(
        "status,body",
        [
            (412, {"results": [0]}),
            (200, {"results": [0]}),
            (200, {"results": []}),
        ],
    )
    def test_failed_precondition(self, script, status: int, body: dict) -> None:
        """A rejected transaction should raise a 412 ArangoError."""
        handler = script((status, body))

        with pytest.raises(ArangoError) as exc_info:
            agency(handler).write_key_if_empty(["lock"], "me")

        assert exc_info.value.code == 412
        assert is_precondition_failed(exc_info.value)
        assert len(handler.requests) == 1

    def test_too_many_results(self, script) -> None:
        """One transaction must produce one result."""
        handler = script((200, {"results": [1, 2]}))
        with pytest.raises(ProtocolError):
            agency(handler).write_key(["x"], 1)


def test_full_key() -> None:
    """Keys are joined into an absolute agency path."""
    assert full_key(["arango", "Plan"]) == "/arango/Plan"
