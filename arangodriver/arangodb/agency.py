"""Agency key-value access.

The agency only accepts reads and writes on its leader; followers answer
with ``307`` and a ``Location`` header. Run this over a connection that
uses :class:`LeaderEndpoints` behind a :class:`FailoverConnection`, which
follows those redirects and remembers the leader.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from arangodriver.connection.base import Connection
from arangodriver.connection.call import call_post
from arangodriver.connection.codec import convert
from arangodriver.connection.context import RequestContext
from arangodriver.errors import ArangoError, DriverError, ProtocolError, cause_chain

logger = logging.getLogger(__name__)

AgencyKey = Sequence[str]


class KeyNotFoundError(DriverError):
    def __init__(self, key: AgencyKey) -> None:
        super().__init__(f"key {'/'.join(key)!r} not found")
        self.key = list(key)


def is_key_not_found(err: BaseException | None) -> bool:
    return any(isinstance(e, KeyNotFoundError) for e in cause_chain(err))


def full_key(key: AgencyKey) -> str:
    return "/" + "/".join(key)


class Agency:
    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def read_key(self, key: AgencyKey, target: Any = None, *, ctx: RequestContext | None = None) -> Any:
        """Return the value stored under ``key``.

        Raises:
            KeyNotFoundError: If any part of the key path is missing.
        """
        response = call_post(
            ctx,
            self._connection,
            "_api/agency/read",
            [[full_key(key)]],
            allowed_codes=(200, 201, 202),
        )
        data = response.data
        if not isinstance(data, list) or len(data) != 1:
            raise ProtocolError(f"agency read: expected 1 element, got {data!r}")

        current = data[0]
        for i, part in enumerate(key):
            if not isinstance(current, dict):
                raise ProtocolError(f"agency data is not an object at {full_key(key[:i])!r}")
            if part not in current:
                raise KeyNotFoundError(key[: i + 1])
            current = current[part]
        return convert(current, target)

    def write_transaction(
        self,
        operations: dict[str, Any],
        conditions: dict[str, Any] | None = None,
        *,
        transient: bool = False,
        ctx: RequestContext | None = None,
    ) -> None:
        """Apply ``operations`` atomically if every precondition holds.

        A failed precondition raises ``ArangoError`` with code 412.
        """
        url = "_api/agency/transient" if transient else "_api/agency/write"
        response = call_post(
            ctx,
            self._connection,
            url,
            [[operations, conditions or {}]],
            allowed_codes=(200, 201, 202, 412),
        )
        results = (response.data or {}).get("results") or []
        if len(results) > 1:
            raise ProtocolError(f"agency write: expected 1 result, got {len(results)}")
        if response.code == 412 or not results or results[0] == 0:
            logger.debug("Agency write precondition failed for %s", ", ".join(operations))
            raise ArangoError(412, message="agency precondition failed")

    def write_key(
        self,
        key: AgencyKey,
        value: Any,
        ttl: float | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> None:
        self.write_transaction({full_key(key): _set(value, ttl)}, ctx=ctx)

    def write_key_if_empty(
        self,
        key: AgencyKey,
        value: Any,
        ttl: float | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> None:
        self.write_transaction(
            {full_key(key): _set(value, ttl)},
            {full_key(key): {"oldEmpty": True}},
            ctx=ctx,
        )

    def write_key_if_equal_to(
        self,
        key: AgencyKey,
        new_value: Any,
        old_value: Any,
        ttl: float | None = None,
        *,
        ctx: RequestContext | None = None,
    ) -> None:
        self.write_transaction(
            {full_key(key): _set(new_value, ttl)},
            {full_key(key): {"old": old_value}},
            ctx=ctx,
        )

    def remove_key(self, key: AgencyKey, *, ctx: RequestContext | None = None) -> None:
        self.write_transaction({full_key(key): {"op": "delete"}}, ctx=ctx)

    def remove_key_if_equal_to(
        self, key: AgencyKey, old_value: Any, *, ctx: RequestContext | None = None
    ) -> None:
        self.write_transaction(
            {full_key(key): {"op": "delete"}},
            {full_key(key): {"old": old_value}},
            ctx=ctx,
        )


def _set(value: Any, ttl: float | None) -> dict[str, Any]:
    operation: dict[str, Any] = {"op": "set", "new": value}
    if ttl is not None:
        operation["ttl"] = int(ttl)
    return operation


__all__ = ["Agency", "AgencyKey", "KeyNotFoundError", "full_key", "is_key_not_found"]
