"""Transactional document store.

Records are JSON documents addressed by a collection path and a document id,
mirroring the hierarchical layout the rest of the system relies on:

    farms/{farmId}
    farms/{farmId}/shipments/{shipmentId}
    farms/{farmId}/fish_instances/{instanceId}
    farms/{farmId}/aquariums/{aquariumId}
    farmFish/{fishId}                       (legacy, farm given by farmId field)
    farms/{farmId}/reception_plans/{planId}
    farms/{farmId}/reception_items/{itemId}

``SQLiteDocumentStore`` keeps every document in one table. A ``WriteBatch``
groups writes that are applied in a single SQLite transaction: either all
of them become visible or none do.
"""

import json
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.config import load_settings
from core.errors import DocumentNotFound, StoreError
from core.observability.logging import get_logger


logger = get_logger(__name__)

FARMS = "farms"
SHIPMENTS = "shipments"
FISH_INSTANCES = "fish_instances"
AQUARIUMS = "aquariums"
LEGACY_FARM_FISH = "farmFish"
RECEPTION_PLANS = "reception_plans"
RECEPTION_ITEMS = "reception_items"


def farm_collection(farm_id: str, name: str) -> str:
    """Path of a farm-scoped collection, e.g. ``farms/f1/shipments``."""
    return f"{FARMS}/{farm_id}/{name}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(data: Dict[str, Any]) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


def _merge(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``updates`` to ``target``; dotted keys address nested maps."""
    merged = dict(target)
    for key, value in updates.items():
        if "." not in key:
            merged[key] = value
            continue
        parts = key.split(".")
        node = merged
        for part in parts[:-1]:
            child = node.get(part)
            child = dict(child) if isinstance(child, dict) else {}
            node[part] = child
            node = child
        node[parts[-1]] = value
    return merged


# =============================================================================
# Batched Writes
# =============================================================================

@dataclass
class WriteOp:
    """One pending write inside a batch."""
    kind: str  # "set" | "update" | "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class WriteBatch:
    """Collects writes to commit atomically with ``DocumentStore.commit``."""

    def __init__(self):
        self.ops: List[WriteOp] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp("set", collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp("update", collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(WriteOp("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self.ops)


# =============================================================================
# Store Interface
# =============================================================================

class DocumentStore(ABC):
    """Abstract transactional document store."""

    def new_id(self) -> str:
        """Generate a fresh, store-unique document id."""
        return uuid.uuid4().hex

    def batch(self) -> WriteBatch:
        return WriteBatch()

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document or None when it does not exist."""

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Return documents matching every ``field == value`` pair in ``where``."""

    @abstractmethod
    def commit(self, batch: WriteBatch) -> None:
        """Apply every write in ``batch`` atomically.

        Raises:
            DocumentNotFound: An update targets a missing document (nothing applied)
            StoreError: Any other failure (nothing applied)
        """

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit(self.batch().set(collection, doc_id, data))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.commit(self.batch().update(collection, doc_id, data))

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit(self.batch().delete(collection, doc_id))

    def require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        """Like ``get`` but raises DocumentNotFound for a missing document."""
        doc = self.get(collection, doc_id)
        if doc is None:
            raise DocumentNotFound(collection, doc_id)
        return doc


# =============================================================================
# SQLite Implementation
# =============================================================================

class SQLiteDocumentStore(DocumentStore):
    """Document store backed by one SQLite table.

    A connection is opened per call, so instances are cheap and safe to share
    between the API, activities and tests.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents(collection, created_at)
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        finally:
            conn.close()
        return json.loads(row["data"]) if row else None

    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        sql = "SELECT data FROM documents WHERE collection = ?"
        params: List[Any] = [collection]

        for field_name, value in (where or {}).items():
            if value is None:
                sql += " AND json_extract(data, ?) IS NULL"
                params.append(f"$.{field_name}")
            else:
                sql += " AND json_extract(data, ?) = ?"
                params.extend([f"$.{field_name}", value])

        direction = "DESC" if descending else "ASC"
        if order_by:
            sql += f" ORDER BY json_extract(data, ?) {direction}, created_at {direction}"
            params.append(f"$.{order_by}")
        else:
            sql += f" ORDER BY created_at {direction}, rowid {direction}"

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e
        finally:
            conn.close()
        return [json.loads(row["data"]) for row in rows]

    def commit(self, batch: WriteBatch) -> None:
        if not batch.ops:
            return
        conn = self._connect()
        try:
            with conn:
                cursor = conn.cursor()
                for index, op in enumerate(batch.ops):
                    self._apply_write(cursor, op, index)
        except (DocumentNotFound, StoreError):
            raise
        except Exception as e:
            logger.error(
                "Batch rolled back",
                extra_fields={"writes": len(batch.ops), "error": str(e)},
            )
            raise StoreError(f"Batch of {len(batch.ops)} writes failed: {e}") from e
        finally:
            conn.close()

    def _apply_write(self, cursor: sqlite3.Cursor, op: WriteOp, index: int) -> None:
        """Apply one write of a batch inside the open transaction."""
        now = _now()
        if op.kind == "set":
            cursor.execute("""
                INSERT INTO documents (collection, doc_id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(collection, doc_id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (op.collection, op.doc_id, _encode(op.data), now, now))
        elif op.kind == "update":
            row = cursor.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (op.collection, op.doc_id),
            ).fetchone()
            if row is None:
                raise DocumentNotFound(op.collection, op.doc_id)
            merged = _merge(json.loads(row["data"]), op.data)
            cursor.execute(
                "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND doc_id = ?",
                (_encode(merged), now, op.collection, op.doc_id),
            )
        elif op.kind == "delete":
            cursor.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (op.collection, op.doc_id),
            )
        else:
            raise StoreError(f"Unknown write kind: {op.kind}")

    def count(self, collection: str) -> int:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM documents WHERE collection = ?", (collection,)
            ).fetchone()
        finally:
            conn.close()
        return int(row["n"])


def open_store(db_path: Optional[Path] = None) -> SQLiteDocumentStore:
    """Open the configured SQLite store (``FISHFARM_DB_PATH``) or ``db_path``."""
    if db_path is None:
        db_path = load_settings().db_path
    return SQLiteDocumentStore(db_path)
