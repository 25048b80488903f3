"""
ArangoDB API
============

Client, database and collection handles over the connection layer, with
AQL query cursors, bulk import and the lazy batch result readers.
"""

from .agency import Agency, KeyNotFoundError, is_key_not_found
from .client import Client, new_connection
from .collection import Collection
from .cursor import Cursor
from .database import Database, Transaction
from .documents import (
    CreateDocumentOptions,
    DeleteDocumentOptions,
    DocumentMeta,
    DocumentResult,
    ImportOnDuplicate,
    ImportOptions,
    ImportResult,
    OverwriteMode,
    ReadDocumentOptions,
    ReplaceDocumentOptions,
    UpdateDocumentOptions,
)
from .models import (
    BeginTransactionOptions,
    CollectionType,
    CreateCollectionOptions,
    CreateCollectionProperties,
    CreateDatabaseOptions,
    CursorStats,
    DatabaseUser,
    KeyOptions,
    QueryOptions,
    QuerySubOptions,
    TransactionCollections,
    TransactionStatus,
    VersionInfo,
)
from .readers import DocumentReadReader, DocumentResultReader

__all__ = [
    "Agency",
    "BeginTransactionOptions",
    "Client",
    "Collection",
    "CollectionType",
    "CreateCollectionOptions",
    "CreateCollectionProperties",
    "CreateDatabaseOptions",
    "CreateDocumentOptions",
    "Cursor",
    "CursorStats",
    "Database",
    "DatabaseUser",
    "DeleteDocumentOptions",
    "DocumentMeta",
    "DocumentReadReader",
    "DocumentResult",
    "DocumentResultReader",
    "ImportOnDuplicate",
    "ImportOptions",
    "ImportResult",
    "KeyNotFoundError",
    "KeyOptions",
    "OverwriteMode",
    "QueryOptions",
    "QuerySubOptions",
    "ReadDocumentOptions",
    "ReplaceDocumentOptions",
    "Transaction",
    "TransactionCollections",
    "TransactionStatus",
    "UpdateDocumentOptions",
    "VersionInfo",
    "is_key_not_found",
    "new_connection",
]
