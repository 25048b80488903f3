"""Request and response models for databases, collections and transactions.

Bodies are pydantic models serialized ``by_alias`` with unset fields left
out, so only what the caller set reaches the server.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CollectionType(IntEnum):
    DOCUMENT = 2
    EDGE = 3


class KeyOptions(_Body):
    type: str | None = None
    allow_user_keys: bool | None = Field(default=None, alias="allowUserKeys")
    increment: int | None = None
    offset: int | None = None


class CreateCollectionProperties(_Body):
    """Properties of a new collection; everything is optional."""

    type: CollectionType | None = None
    wait_for_sync: bool | None = Field(default=None, alias="waitForSync")
    is_system: bool | None = Field(default=None, alias="isSystem")
    cache_enabled: bool | None = Field(default=None, alias="cacheEnabled")
    key_options: KeyOptions | None = Field(default=None, alias="keyOptions")
    number_of_shards: int | None = Field(default=None, alias="numberOfShards")
    replication_factor: int | str | None = Field(default=None, alias="replicationFactor")
    write_concern: int | None = Field(default=None, alias="writeConcern")
    shard_keys: list[str] | None = Field(default=None, alias="shardKeys")
    sharding_strategy: str | None = Field(default=None, alias="shardingStrategy")
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")


class CreateCollectionOptions(_Body):
    """Query options of the create call (not part of the body)."""

    enforce_replication_factor: bool | None = None
    wait_for_sync_replication: bool | None = None


class DatabaseUser(_Body):
    username: str
    password: str | None = Field(default=None, alias="passwd")
    active: bool | None = None
    extra: dict[str, Any] | None = None


class CreateDatabaseOptions(_Body):
    users: list[DatabaseUser] | None = None
    sharding: str | None = None
    replication_factor: int | str | None = Field(default=None, alias="replicationFactor")
    write_concern: int | None = Field(default=None, alias="writeConcern")


class TransactionCollections(_Body):
    read: list[str] | None = None
    write: list[str] | None = None
    exclusive: list[str] | None = None


class BeginTransactionOptions(_Body):
    wait_for_sync: bool | None = Field(default=None, alias="waitForSync")
    allow_implicit: bool | None = Field(default=None, alias="allowImplicit")
    lock_timeout: float | None = Field(default=None, alias="lockTimeout")
    max_transaction_size: int | None = Field(default=None, alias="maxTransactionSize")


class TransactionStatus(str, Enum):
    RUNNING = "running"
    COMMITTED = "committed"
    ABORTED = "aborted"


class VersionInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    server: str = ""
    version: str = ""
    license: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def major_minor(self) -> tuple[int, int]:
        parts = self.version.split(".")
        try:
            return int(parts[0]), int(parts[1])
        except (IndexError, ValueError):
            return 0, 0


class QuerySubOptions(_Body):
    """Extra AQL options sent under ``options``."""

    full_count: bool | None = Field(default=None, alias="fullCount")
    stream: bool | None = None
    profile: bool | None = None
    max_plans: int | None = Field(default=None, alias="maxPlans")
    max_runtime: float | None = Field(default=None, alias="maxRuntime")
    fill_block_cache: bool | None = Field(default=None, alias="fillBlockCache")
    satellite_sync_wait: float | None = Field(default=None, alias="satelliteSyncWait")
    shard_ids: list[str] | None = Field(default=None, alias="shardIds")


class QueryOptions(_Body):
    count: bool | None = None
    batch_size: int | None = Field(default=None, alias="batchSize")
    cache: bool | None = None
    memory_limit: int | None = Field(default=None, alias="memoryLimit")
    ttl: float | None = None
    options: QuerySubOptions | None = None


class CursorStats(BaseModel):
    """Execution statistics reported with a query result."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    writes_executed: int = Field(default=0, alias="writesExecuted")
    writes_ignored: int = Field(default=0, alias="writesIgnored")
    scanned_full: int = Field(default=0, alias="scannedFull")
    scanned_index: int = Field(default=0, alias="scannedIndex")
    filtered: int = 0
    full_count: int | None = Field(default=None, alias="fullCount")
    execution_time: float = Field(default=0.0, alias="executionTime")
    http_requests: int = Field(default=0, alias="httpRequests")
    peak_memory_usage: int = Field(default=0, alias="peakMemoryUsage")


__all__ = [
    "BeginTransactionOptions",
    "CollectionType",
    "CreateCollectionOptions",
    "CreateCollectionProperties",
    "CreateDatabaseOptions",
    "CursorStats",
    "DatabaseUser",
    "KeyOptions",
    "QueryOptions",
    "QuerySubOptions",
    "TransactionCollections",
    "TransactionStatus",
    "VersionInfo",
]
