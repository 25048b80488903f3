"""Endpoint resolution across a multi-node deployment.

Three policies share the :class:`Endpoints` interface:

- :class:`RoundRobinEndpoints` cycles through the known set.
- :class:`MaglevHashEndpoints` maps a value extracted from the request
  (by default the database name) onto one endpoint with Maglev consistent
  hashing, so a membership change remaps only a small share of keys.
- :class:`LeaderEndpoints` sticks to the current leader and is moved by
  leader redirects.

All resolvers are safe for concurrent ``get`` calls; ``update`` swaps the
whole set atomically.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Iterable
from urllib.parse import urlsplit

from arangodriver.errors import EndpointError

logger = logging.getLogger(__name__)

# Fixed so that the slot a key hashes to does not move when members change.
DEFAULT_LOOKUP_SIZE = 4099

_SCHEME_FIXUPS = {"tcp": "http", "http": "http", "ssl": "https", "https": "https"}


def normalize_endpoint(endpoint: str) -> str:
    """Validate an endpoint URL and map ``tcp``/``ssl`` schemes to HTTP ones."""
    parts = urlsplit(endpoint.strip())
    scheme = _SCHEME_FIXUPS.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise EndpointError(f"invalid endpoint {endpoint!r}")
    path = parts.path.rstrip("/")
    return f"{scheme}://{parts.netloc}{path}"


def normalize_endpoints(endpoints: Iterable[str]) -> list[str]:
    result: list[str] = []
    for endpoint in endpoints:
        normalized = normalize_endpoint(endpoint)
        if normalized not in result:
            result.append(normalized)
    return result


class Endpoints(ABC):
    """Set of known base URLs plus a selection policy."""

    def __init__(self, endpoints: Iterable[str]) -> None:
        self._lock = threading.Lock()
        self._endpoints = normalize_endpoints(endpoints)

    def list(self) -> list[str]:
        with self._lock:
            return list(self._endpoints)

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)

    def __contains__(self, endpoint: object) -> bool:
        with self._lock:
            return endpoint in self._endpoints

    def update(self, endpoints: Iterable[str]) -> None:
        """Atomically replace the known set."""
        new_endpoints = normalize_endpoints(endpoints)
        if not new_endpoints:
            raise EndpointError("endpoint set must not be empty")
        with self._lock:
            self._endpoints = new_endpoints
            self._on_update()
        logger.info("Endpoint set updated: %s", ", ".join(new_endpoints))

    def mark_good(self, endpoint: str) -> None:
        """Record that ``endpoint`` just served a request after a failover."""

    def get(
        self,
        provided: str | None = None,
        method: str = "",
        path: str = "",
        *,
        exclude: Collection[str] = (),
    ) -> str:
        """Return the endpoint to use for a request.

        Args:
            provided: Endpoint pinned by the caller; used when acceptable.
            method: Request method, for value extraction.
            path: Escaped request path, for value extraction.
            exclude: Endpoints that already failed during this call.

        Raises:
            EndpointError: If the set is empty.
        """
        with self._lock:
            if not self._endpoints:
                raise EndpointError("no endpoints known")
            return self._select(provided, method, path, exclude)

    def _on_update(self) -> None:
        """Hook run under the lock after the set changes."""

    @abstractmethod
    def _select(self, provided: str | None, method: str, path: str, exclude: Collection[str]) -> str:
        """Pick an endpoint; called with the lock held and a non-empty set."""


class RoundRobinEndpoints(Endpoints):
    """Cycle deterministically through the known endpoints."""

    def __init__(self, endpoints: Iterable[str]) -> None:
        super().__init__(endpoints)
        self._index = 0

    def _on_update(self) -> None:
        self._index = 0

    def mark_good(self, endpoint: str) -> None:
        with self._lock:
            if endpoint in self._endpoints:
                self._index = self._endpoints.index(endpoint)

    def _select(self, provided: str | None, method: str, path: str, exclude: Collection[str]) -> str:
        if provided:
            return provided
        count = len(self._endpoints)
        for _ in range(count):
            if self._index >= count:
                self._index = 0
            candidate = self._endpoints[self._index]
            self._index += 1
            if candidate not in exclude:
                return candidate
        # every endpoint failed already; keep cycling
        if self._index >= count:
            self._index = 0
        candidate = self._endpoints[self._index]
        self._index += 1
        return candidate


class LeaderEndpoints(Endpoints):
    """Send everything to the current leader; redirects move the leader."""

    def __init__(self, endpoints: Iterable[str]) -> None:
        super().__init__(endpoints)
        self._leader: str | None = self._endpoints[0] if self._endpoints else None

    @property
    def leader(self) -> str | None:
        with self._lock:
            return self._leader

    def _on_update(self) -> None:
        if self._leader not in self._endpoints:
            self._leader = self._endpoints[0]

    def set_leader(self, endpoint: str) -> str:
        """Make ``endpoint`` the leader, adding it to the set if unknown."""
        normalized = normalize_endpoint(endpoint)
        with self._lock:
            if normalized not in self._endpoints:
                self._endpoints.append(normalized)
            if self._leader != normalized:
                logger.info("Leader changed from %s to %s", self._leader, normalized)
            self._leader = normalized
        return normalized

    def mark_good(self, endpoint: str) -> None:
        with self._lock:
            if endpoint in self._endpoints:
                self._leader = endpoint

    def _select(self, provided: str | None, method: str, path: str, exclude: Collection[str]) -> str:
        if provided:
            return provided
        leader = self._leader or self._endpoints[0]
        if leader not in exclude:
            return leader
        start = self._endpoints.index(leader) if leader in self._endpoints else 0
        count = len(self._endpoints)
        for offset in range(1, count + 1):
            candidate = self._endpoints[(start + offset) % count]
            if candidate not in exclude:
                return candidate
        return leader


RequestHashValueExtractor = Callable[[str, str], str]


def request_db_name_value_extractor(method: str, path: str) -> str:
    """Use the database name of a ``/_db/<name>/...`` path as the hash value.

    Falls back to ``"<method>_<path>"`` for paths without a database part.
    """
    parts = path.strip().strip("/").split("/")
    if len(parts) >= 3 and parts[0] == "_db":
        return parts[1]
    return f"{method}_{path}"


def _hash64(value: str, salt: bytes) -> int:
    digest = hashlib.blake2b(value.encode("utf-8"), digest_size=8, person=salt).digest()
    return int.from_bytes(digest, "big")


def find_next_prime(n: int) -> int:
    n = max(n, 2)
    while True:
        if all(n % d for d in range(2, int(n**0.5) + 1)):
            return n
        n += 1


def build_maglev_table(endpoints: list[str], size: int) -> list[int]:
    """Populate a Maglev lookup table of ``size`` slots with endpoint indexes.

    ``size`` must be prime and at least ``len(endpoints)``.
    """
    count = len(endpoints)
    offsets = [_hash64(ep, b"offset") % size for ep in endpoints]
    skips = [_hash64(ep, b"skip") % (size - 1) + 1 for ep in endpoints]
    next_index = [0] * count
    table = [-1] * size
    filled = 0
    while True:
        for i in range(count):
            slot = (offsets[i] + next_index[i] * skips[i]) % size
            while table[slot] >= 0:
                next_index[i] += 1
                slot = (offsets[i] + next_index[i] * skips[i]) % size
            table[slot] = i
            next_index[i] += 1
            filled += 1
            if filled == size:
                return table


class MaglevHashEndpoints(Endpoints):
    """Consistent-hash endpoints keyed by a value extracted from each request."""

    def __init__(
        self,
        endpoints: Iterable[str],
        extractor: RequestHashValueExtractor = request_db_name_value_extractor,
        lookup_size: int = DEFAULT_LOOKUP_SIZE,
    ) -> None:
        super().__init__(endpoints)
        self._extractor = extractor
        self._lookup_size = lookup_size
        self._table: list[int] = []
        self._on_update()

    def _on_update(self) -> None:
        # order of endpoints affects the table
        self._endpoints.sort()
        if not self._endpoints:
            self._table = []
            return
        size = find_next_prime(max(self._lookup_size, len(self._endpoints)))
        self._table = build_maglev_table(self._endpoints, size)

    def lookup(self, value: str) -> str:
        """Return the endpoint owning ``value``."""
        with self._lock:
            if not self._endpoints:
                raise EndpointError("no endpoints known")
            return self._endpoints[self._table[self._slot(value)]]

    def _slot(self, value: str) -> int:
        return _hash64(value, b"key") % len(self._table)

    def _select(self, provided: str | None, method: str, path: str, exclude: Collection[str]) -> str:
        if provided and provided in self._endpoints:
            return provided
        try:
            value = self._extractor(method, path)
        except Exception as exc:
            raise EndpointError(
                f"could not extract hash value for method {method!r} path {path!r}"
            ) from exc
        slot = self._slot(value)
        candidate = self._endpoints[self._table[slot]]
        if candidate not in exclude:
            return candidate
        # walk the table so the fallback is deterministic for the key
        size = len(self._table)
        for offset in range(1, size):
            fallback = self._endpoints[self._table[(slot + offset) % size]]
            if fallback not in exclude:
                return fallback
        return candidate


__all__ = [
    "DEFAULT_LOOKUP_SIZE",
    "Endpoints",
    "LeaderEndpoints",
    "MaglevHashEndpoints",
    "RequestHashValueExtractor",
    "RoundRobinEndpoints",
    "build_maglev_table",
    "find_next_prime",
    "normalize_endpoint",
    "normalize_endpoints",
    "request_db_name_value_extractor",
]
