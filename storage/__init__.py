"""Document storage for farm records."""

from storage.documents import (
    DocumentStore,
    SQLiteDocumentStore,
    WriteBatch,
    farm_collection,
    open_store,
)

__all__ = [
    "DocumentStore",
    "SQLiteDocumentStore",
    "WriteBatch",
    "farm_collection",
    "open_store",
]
