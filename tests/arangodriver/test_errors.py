"""Unit tests for arangodriver.errors module."""

import pytest

from arangodriver.errors import (
    ArangoError,
    CancelledError,
    ConnectionFailedError,
    DeadlineExceededError,
    DriverError,
    ErrorSlice,
    NoMoreDocumentsError,
    ProtocolError,
    TransportError,
    TransportTimeoutError,
    as_arango_error,
    cause_chain,
    is_canceled,
    is_conflict,
    is_no_leader,
    is_no_leader_or_ongoing,
    is_no_more_documents,
    is_not_found,
    is_precondition_failed,
    is_queue_time_violated,
    is_temporary,
    is_timeout,
    is_transport_error,
)


class TestArangoError:
    """Tests for the structured server error."""

    def test_is_driver_error(self) -> None:
        """ArangoError should inherit from DriverError."""
        assert issubclass(ArangoError, DriverError)

    def test_from_body_reads_envelope(self) -> None:
        """from_body should take code, errorNum and message from the envelope."""
        body = {"error": True, "code": 404, "errorNum": 1202, "errorMessage": "document not found"}
        err = ArangoError.from_body(500, body)
        assert err.code == 404
        assert err.error_num == 1202
        assert str(err) == "document not found"
        assert err.details == body

    def test_from_body_without_envelope(self) -> None:
        """A non-dict body should keep only the status code."""
        err = ArangoError.from_body(502, b"<html>bad gateway</html>")
        assert err.code == 502
        assert err.error_num == 0
        assert "502" in str(err)

    def test_full_error_includes_all_parts(self) -> None:
        """full_error should mention code, errorNum and message."""
        err = ArangoError(409, 1210, "unique constraint violated")
        text = err.full_error()
        assert "409" in text
        assert "1210" in text
        assert "unique constraint violated" in text

    @pytest.mark.parametrize("code,temporary,timeout", [(503, True, False), (504, False, True), (408, False, True), (400, False, False)])
    def test_temporary_and_timeout_flags(self, code: int, temporary: bool, timeout: bool) -> None:
        """Flags should follow the status code."""
        err = ArangoError(code)
        assert err.temporary is temporary
        assert err.timeout is timeout


class TestPredicates:
    """Tests for error classification helpers."""

    def test_not_found_by_code_or_error_num(self) -> None:
        """is_not_found should match 404 and the not-found error numbers."""
        assert is_not_found(ArangoError(404))
        assert is_not_found(ArangoError(400, 1202))
        assert is_not_found(ArangoError(400, 1203))
        assert not is_not_found(ArangoError(409, 1210))

    def test_precondition_failed(self) -> None:
        """is_precondition_failed should match 412 and revision conflicts."""
        assert is_precondition_failed(ArangoError(412, 1200))
        assert is_precondition_failed(ArangoError(409, 1200))
        assert not is_precondition_failed(ArangoError(404, 1202))

    def test_conflict(self) -> None:
        """is_conflict should match 409."""
        assert is_conflict(ArangoError(409, 1210))
        assert not is_conflict(ArangoError(412, 1200))

    def test_leader_errors_need_503(self) -> None:
        """Leadership predicates require both code 503 and the error number."""
        assert is_no_leader(ArangoError(503, 1496))
        assert is_no_leader_or_ongoing(ArangoError(503, 1495))
        assert not is_no_leader(ArangoError(500, 1496))

    def test_queue_time_violated(self) -> None:
        """is_queue_time_violated should require 412 with errorNum 21."""
        assert is_queue_time_violated(ArangoError(412, 21))
        assert not is_queue_time_violated(ArangoError(412, 1200))

    def test_has_error_false_never_matches(self) -> None:
        """A body flagged error=false should not classify as an error."""
        err = ArangoError(404, 1202, has_error=False)
        assert not is_not_found(err)

    def test_predicates_follow_cause_chain(self) -> None:
        """Predicates should inspect wrapped causes."""
        try:
            try:
                raise ArangoError(503, 0, "unavailable")
            except ArangoError as inner:
                raise ProtocolError("wrapped") from inner
        except ProtocolError as outer:
            assert is_temporary(outer)
            assert as_arango_error(outer).code == 503

    def test_transport_and_abort_classification(self) -> None:
        """Transport, timeout and cancellation errors should be told apart."""
        assert is_transport_error(ConnectionFailedError("refused"))
        assert is_timeout(TransportTimeoutError("slow"))
        assert is_timeout(DeadlineExceededError("late"))
        assert is_canceled(CancelledError("stop"))
        assert not is_transport_error(CancelledError("stop"))
        assert not is_canceled(TransportError("reset"))

    def test_no_more_documents(self) -> None:
        """is_no_more_documents should match the sentinel."""
        assert is_no_more_documents(NoMoreDocumentsError())
        assert not is_no_more_documents(ArangoError(404))

    def test_none_matches_nothing(self) -> None:
        """Predicates should accept None."""
        assert not is_not_found(None)
        assert as_arango_error(None) is None


class TestCauseChain:
    """Tests for cause_chain."""

    def test_yields_error_and_causes(self) -> None:
        """cause_chain should walk __cause__ links in order."""
        root = ValueError("root")
        middle = TransportError("middle")
        middle.__cause__ = root
        top = ProtocolError("top")
        top.__cause__ = middle
        assert list(cause_chain(top)) == [top, middle, root]

    def test_stops_on_cycles(self) -> None:
        """A cyclic chain should be visited once."""
        a = ValueError("a")
        b = ValueError("b")
        a.__cause__ = b
        b.__cause__ = a
        assert list(cause_chain(a)) == [a, b]


class TestErrorSlice:
    """Tests for ErrorSlice."""

    def test_first_non_none(self) -> None:
        """first_non_none should skip successful positions."""
        err = ArangoError(404, 1202)
        assert ErrorSlice([None, err, None]).first_non_none() is err
        assert ErrorSlice([None, None]).first_non_none() is None
