"""Error taxonomy for the driver.

Four non-overlapping signal categories reach callers:

- ``TransportError``: the request never produced a usable HTTP response
  (connection refused, reset, timeout). Retryable by the failover layer.
- ``ProtocolError``: a response arrived but could not be understood
  (malformed envelope, unexpected content type, truncated batch). Fatal.
- ``ArangoError``: a structured application error produced by the server for
  an operation or for a single batch item. Never retried automatically.
- ``NoMoreDocumentsError``: the iteration-termination sentinel.

Cancellation and deadline expiry raise ``RequestAbortedError`` subclasses,
which are distinct from all of the above.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

# General errors
ERROR_NUM_NOT_IMPLEMENTED = 9
ERROR_NUM_FORBIDDEN = 11
ERROR_NUM_QUEUE_TIME_VIOLATED = 21
ERROR_NUM_DISABLED = 36

# Storage errors
ERROR_NUM_READ_ONLY = 1004
ERROR_NUM_CONFLICT = 1200
ERROR_NUM_DOCUMENT_NOT_FOUND = 1202
ERROR_NUM_DATA_SOURCE_NOT_FOUND = 1203
ERROR_NUM_ILLEGAL_NAME = 1208
ERROR_NUM_UNIQUE_CONSTRAINT_VIOLATED = 1210
ERROR_NUM_DATABASE_NOT_FOUND = 1228

# Cluster errors
ERROR_NUM_WRITE_CONCERN_NOT_FULFILLED = 1429
ERROR_NUM_LEADERSHIP_CHALLENGE_ONGOING = 1495
ERROR_NUM_NOT_LEADER = 1496

# User management
ERROR_NUM_USER_DUPLICATE = 1702


class DriverError(Exception):
    """Base class for every error raised by the driver."""


class InvalidArgumentError(DriverError):
    """Raised when the caller passes arguments the driver cannot use."""


class EndpointError(DriverError):
    """Raised when no endpoint can be resolved (configuration error)."""


class TransportError(DriverError):
    """Network-level failure; no HTTP response was received."""

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


class ConnectionFailedError(TransportError):
    """Connection refused, reset, or the host could not be reached."""


class TransportTimeoutError(TransportError):
    """The transport-level timeout elapsed before a response arrived."""


class RequestAbortedError(DriverError):
    """The caller aborted the request through its context."""


class CancelledError(RequestAbortedError):
    """The request context was cancelled."""


class DeadlineExceededError(RequestAbortedError):
    """The request context deadline passed."""


class ProtocolError(DriverError):
    """A response was received but could not be interpreted."""


class DecodeError(ProtocolError):
    """The codec failed to decode a payload."""


class AuthenticationError(DriverError):
    """Credentials could not be obtained or were rejected."""


class AsyncJobInProgressError(DriverError):
    """The server accepted the request as an async job that is not done yet."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"async job {job_id} is in progress")
        self.job_id = job_id


class NoMoreDocumentsError(DriverError):
    """Iteration-termination sentinel for readers and cursors."""

    def __init__(self) -> None:
        super().__init__("no more documents")


class NoMoreValuesError(DriverError):
    """A streaming decoder has no further top-level values."""

    def __init__(self) -> None:
        super().__init__("no more values")


class ArangoError(DriverError):
    """Structured application error returned by the server.

    Attributes:
        code: HTTP compatible status code
        error_num: Server-internal error number
        message: Human readable message
        has_error: The ``error`` flag from the response envelope
    """

    def __init__(
        self,
        code: int,
        error_num: int = 0,
        message: str = "",
        *,
        has_error: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.error_num = error_num
        self.message = message
        self.has_error = has_error
        self.details = details or {}
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.message:
            return self.message
        return f"ArangoError: Code {self.code}, ErrorNum {self.error_num}"

    def __repr__(self) -> str:
        return f"ArangoError(code={self.code}, error_num={self.error_num}, message={self.message!r})"

    def full_error(self) -> str:
        return f"ArangoError: Code {self.code}, ErrorNum {self.error_num}: {self.message}"

    @property
    def timeout(self) -> bool:
        return self.has_error and self.code in (408, 504)

    @property
    def temporary(self) -> bool:
        return self.has_error and self.code == 503

    @classmethod
    def from_body(cls, code: int, body: Any) -> ArangoError:
        """Build an error from a decoded error envelope.

        Falls back to an error carrying only ``code`` when ``body`` is not an
        error envelope.
        """
        if not isinstance(body, dict):
            return cls(code)
        return cls(
            int(body.get("code") or code),
            int(body.get("errorNum") or 0),
            str(body.get("errorMessage") or body.get("message") or ""),
            has_error=bool(body.get("error", True)),
            details=body,
        )


def cause_chain(err: BaseException | None) -> Iterable[BaseException]:
    """Yield ``err`` and its ``__cause__`` chain."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def _check(err: BaseException | None, predicate: Callable[[BaseException], bool]) -> bool:
    return any(predicate(e) for e in cause_chain(err))


def as_arango_error(err: BaseException | None) -> ArangoError | None:
    """Return the first ``ArangoError`` in the cause chain of ``err``."""
    for e in cause_chain(err):
        if isinstance(e, ArangoError):
            return e
    return None


def is_arango_error_with_code(err: BaseException | None, code: int) -> bool:
    return _check(err, lambda e: isinstance(e, ArangoError) and e.has_error and e.code == code)


def is_arango_error_with_error_num(err: BaseException | None, *error_nums: int) -> bool:
    return _check(
        err,
        lambda e: isinstance(e, ArangoError) and e.has_error and e.error_num in error_nums,
    )


def is_invalid_request(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 400)


def is_unauthorized(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 401)


def is_forbidden(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 403)


def is_not_found(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 404) or is_arango_error_with_error_num(
        err, ERROR_NUM_DOCUMENT_NOT_FOUND, ERROR_NUM_DATA_SOURCE_NOT_FOUND
    )


def is_conflict(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 409) or is_arango_error_with_error_num(
        err, ERROR_NUM_USER_DUPLICATE
    )


def is_precondition_failed(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 412) or is_arango_error_with_error_num(
        err, ERROR_NUM_CONFLICT, ERROR_NUM_UNIQUE_CONSTRAINT_VIOLATED
    )


def is_no_leader(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 503) and is_arango_error_with_error_num(
        err, ERROR_NUM_NOT_LEADER
    )


def is_no_leader_or_ongoing(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 503) and is_arango_error_with_error_num(
        err, ERROR_NUM_LEADERSHIP_CHALLENGE_ONGOING, ERROR_NUM_NOT_LEADER
    )


def is_queue_time_violated(err: BaseException | None) -> bool:
    return is_arango_error_with_code(err, 412) and is_arango_error_with_error_num(
        err, ERROR_NUM_QUEUE_TIME_VIOLATED
    )


def is_temporary(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, ArangoError) and e.temporary)


def is_timeout(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, (DeadlineExceededError, TransportTimeoutError)))


def is_canceled(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, CancelledError))


def is_transport_error(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, TransportError))


def is_no_more_documents(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, (NoMoreDocumentsError, NoMoreValuesError)))


def is_invalid_argument(err: BaseException | None) -> bool:
    return _check(err, lambda e: isinstance(e, InvalidArgumentError))


class ErrorSlice(list):
    """List of per-item errors (``None`` where the item succeeded)."""

    def first_non_none(self) -> BaseException | None:
        for err in self:
            if err is not None:
                return err
        return None


__all__ = [
    "ArangoError",
    "AsyncJobInProgressError",
    "AuthenticationError",
    "CancelledError",
    "ConnectionFailedError",
    "DeadlineExceededError",
    "DecodeError",
    "DriverError",
    "EndpointError",
    "ErrorSlice",
    "InvalidArgumentError",
    "NoMoreDocumentsError",
    "NoMoreValuesError",
    "ProtocolError",
    "RequestAbortedError",
    "TransportError",
    "TransportTimeoutError",
    "as_arango_error",
    "cause_chain",
    "is_arango_error_with_code",
    "is_arango_error_with_error_num",
    "is_canceled",
    "is_conflict",
    "is_forbidden",
    "is_invalid_argument",
    "is_invalid_request",
    "is_no_leader",
    "is_no_leader_or_ongoing",
    "is_no_more_documents",
    "is_not_found",
    "is_precondition_failed",
    "is_queue_time_violated",
    "is_temporary",
    "is_timeout",
    "is_transport_error",
    "is_unauthorized",
]
