"""
backend/store.py

Document store for project records, comments and user roles.

Documents are JSON objects addressed by slash-separated paths:
- users/{uid}
- projects/{owner_id}/userProjects/{project_id}
- projects/{owner_id}/userProjects/{project_id}/comments/{comment_id}

Supports:
- get / set / atomic partial update / delete by path
- add with a generated id inside a collection
- ordered live subscriptions that push FULL snapshots after every write
- SERVER_TIMESTAMP sentinel, resolved when the write is applied

Backed by SQLAlchemy: SQLite for local dev, PostgreSQL when DATABASE_URL is set.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path as FsPath
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

try:
    from backend.config import DATABASE_URL, DATABASE_PATH, IS_DEV
except ModuleNotFoundError:
    from config import DATABASE_URL, DATABASE_PATH, IS_DEV


Snapshot = List[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]


# ---------------------------------------------------------
# Errors
# ---------------------------------------------------------
class RecordNotFound(Exception):
    """Raised when a document addressed by path does not exist."""
    pass


class StoreError(Exception):
    """Raised when the underlying database fails on a read or write."""
    pass


# ---------------------------------------------------------
# Server timestamp sentinel
# ---------------------------------------------------------
class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def resolve_server_timestamps(data: Any, ts: str) -> Any:
    """Replace every SERVER_TIMESTAMP sentinel (nested dicts included) with ts."""
    if data is SERVER_TIMESTAMP:
        return ts
    if isinstance(data, dict):
        return {k: resolve_server_timestamps(v, ts) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_server_timestamps(v, ts) for v in data]
    return data


# ---------------------------------------------------------
# Paths
# ---------------------------------------------------------
def user_path(uid: str) -> str:
    return f"users/{uid}"


def projects_collection(owner_id: str) -> str:
    return f"projects/{owner_id}/userProjects"


def project_path(owner_id: str, project_id: str) -> str:
    return f"{projects_collection(owner_id)}/{project_id}"


def comments_collection(owner_id: str, project_id: str) -> str:
    return f"{project_path(owner_id, project_id)}/comments"


def comment_path(owner_id: str, project_id: str, comment_id: str) -> str:
    return f"{comments_collection(owner_id, project_id)}/{comment_id}"


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection_path, doc_id)."""
    parts = path.strip("/").split("/")
    if len(parts) < 2 or len(parts) % 2 != 0 or not all(parts):
        raise ValueError(f"Invalid document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


# ---------------------------------------------------------
# Live subscription handle
# ---------------------------------------------------------
class Subscription:
    """Handle for an ordered live query; call unsubscribe() to release it."""

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        order_field: str,
        direction: str,
        callback: SnapshotCallback,
    ):
        self.store = store
        self.collection = collection
        self.order_field = order_field
        self.direction = direction
        self.callback = callback
        self.active = True

    def deliver(self, snapshot: Snapshot) -> None:
        if self.active:
            self.callback(snapshot)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.store._remove_subscription(self)


# ---------------------------------------------------------
# Document store
# ---------------------------------------------------------
class DocumentStore:
    """
    JSON document store with per-collection live subscriptions.

    All writes are serialized through one lock and run in a single transaction,
    so update_record() is an atomic read-merge-write. Snapshots are delivered
    synchronously after the write commits.
    """

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            engine = create_engine_for(url)
        self._engine = engine
        self._is_postgres = engine.dialect.name == "postgresql"
        self._lock = threading.RLock()
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self.ensure_schema()

    # -- schema ---------------------------------------------------------
    def ensure_schema(self) -> None:
        """Create the documents table if missing (idempotent)."""
        if self._is_postgres:
            ddl = """
                CREATE TABLE IF NOT EXISTS documents (
                    seq SERIAL PRIMARY KEY,
                    path TEXT UNIQUE NOT NULL,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """
        else:
            ddl = """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT UNIQUE NOT NULL,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """
        try:
            with self._engine.begin() as conn:
                conn.execute(text(ddl))
                conn.execute(text(
                    "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
                ))
        except SQLAlchemyError as e:
            print(f"[STORE] Schema setup failed: {e}")
            raise StoreError("Document store unavailable") from e

    # -- reads ----------------------------------------------------------
    def get_record(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the document at path, or None when it does not exist."""
        split_path(path)
        try:
            with self._lock, self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT data FROM documents WHERE path = :path"),
                    {"path": path},
                ).fetchone()
        except SQLAlchemyError as e:
            print(f"[STORE] Read failed for {path}: {e}")
            raise StoreError("Failed to read record") from e
        if row is None:
            return None
        return json.loads(row[0])

    def query_ordered(self, collection: str, order_field: str, direction: str = "desc") -> Snapshot:
        """
        Return every document in a collection as [{"id": ..., **data}],
        ordered by order_field (documents missing the field sort first in asc).
        Insertion order breaks ties.
        """
        if direction not in ("asc", "desc"):
            raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
        try:
            with self._lock, self._engine.connect() as conn:
                rows = conn.execute(
                    text("SELECT seq, doc_id, data FROM documents WHERE collection = :collection"),
                    {"collection": collection},
                ).fetchall()
        except SQLAlchemyError as e:
            print(f"[STORE] Query failed for {collection}: {e}")
            raise StoreError("Failed to query collection") from e

        docs = []
        for seq, doc_id, raw in rows:
            data = json.loads(raw)
            value = data.get(order_field)
            docs.append(((value is not None, "" if value is None else str(value), seq), {"id": doc_id, **data}))
        docs.sort(key=lambda item: item[0], reverse=(direction == "desc"))
        return [doc for _, doc in docs]

    # -- writes ---------------------------------------------------------
    def set_record(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create or fully replace the document at path. Returns the stored data."""
        collection, doc_id = split_path(path)
        resolved = resolve_server_timestamps(data, now_iso())
        payload = json.dumps(resolved)
        with self._lock:
            try:
                with self._engine.begin() as conn:
                    updated = conn.execute(
                        text("UPDATE documents SET data = :data WHERE path = :path"),
                        {"data": payload, "path": path},
                    )
                    if updated.rowcount == 0:
                        conn.execute(
                            text(
                                "INSERT INTO documents (path, collection, doc_id, data) "
                                "VALUES (:path, :collection, :doc_id, :data)"
                            ),
                            {"path": path, "collection": collection, "doc_id": doc_id, "data": payload},
                        )
            except SQLAlchemyError as e:
                print(f"[STORE] Write failed for {path}: {e}")
                raise StoreError("Failed to write record") from e
        if IS_DEV:
            print(f"[STORE] set {path}")
        self._notify(collection)
        return resolved

    def add_record(self, collection: str, data: Dict[str, Any]) -> str:
        """Store data under a newly generated id in collection. Returns the id."""
        doc_id = uuid.uuid4().hex
        self.set_record(f"{collection}/{doc_id}", data)
        return doc_id

    def update_record(self, path: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Atomically merge partial into the existing document (top-level keys
        are replaced). Returns the merged document.

        Raises:
            RecordNotFound: If no document exists at path
            StoreError: On database failure
        """
        collection, _ = split_path(path)
        resolved = resolve_server_timestamps(partial, now_iso())
        with self._lock:
            try:
                with self._engine.begin() as conn:
                    select_sql = "SELECT data FROM documents WHERE path = :path"
                    if self._is_postgres:
                        select_sql += " FOR UPDATE"
                    row = conn.execute(text(select_sql), {"path": path}).fetchone()
                    if row is None:
                        raise RecordNotFound(path)
                    merged = {**json.loads(row[0]), **resolved}
                    conn.execute(
                        text("UPDATE documents SET data = :data WHERE path = :path"),
                        {"data": json.dumps(merged), "path": path},
                    )
            except SQLAlchemyError as e:
                print(f"[STORE] Update failed for {path}: {e}")
                raise StoreError("Failed to update record") from e
        if IS_DEV:
            print(f"[STORE] update {path} fields={sorted(resolved)}")
        self._notify(collection)
        return merged

    def delete_record(self, path: str, recursive: bool = False) -> bool:
        """
        Delete the document at path. With recursive=True, documents in nested
        collections below it are removed too. Returns True if the document existed.
        """
        collection, _ = split_path(path)
        affected = {collection}
        with self._lock:
            try:
                with self._engine.begin() as conn:
                    deleted = conn.execute(
                        text("DELETE FROM documents WHERE path = :path"),
                        {"path": path},
                    ).rowcount
                    if recursive:
                        prefix_params = {"prefix": f"{path}/", "n": len(path) + 1}
                        nested = conn.execute(
                            text("SELECT DISTINCT collection FROM documents WHERE substr(path, 1, :n) = :prefix"),
                            prefix_params,
                        ).fetchall()
                        affected.update(r[0] for r in nested)
                        conn.execute(
                            text("DELETE FROM documents WHERE substr(path, 1, :n) = :prefix"),
                            prefix_params,
                        )
            except SQLAlchemyError as e:
                print(f"[STORE] Delete failed for {path}: {e}")
                raise StoreError("Failed to delete record") from e
        if IS_DEV:
            print(f"[STORE] delete {path} existed={bool(deleted)}")
        for name in affected:
            self._notify(name)
        return bool(deleted)

    # -- live queries ---------------------------------------------------
    def subscribe_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str,
        callback: SnapshotCallback,
    ) -> Subscription:
        """
        Open a live ordered query. The callback receives the current snapshot
        immediately and a full new snapshot after every write to the collection.

        Snapshots are queried and delivered under the store lock, so a listener
        never sees an older snapshot after a newer one. Callbacks must not block.
        """
        sub = Subscription(self, collection, order_field, direction, callback)
        with self._lock:
            snapshot = self.query_ordered(collection, order_field, direction)
            self._subscriptions.setdefault(collection, []).append(sub)
            sub.deliver(snapshot)
        return sub

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(collection, []))

    def _remove_subscription(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.collection, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscriptions.pop(sub.collection, None)

    def _notify(self, collection: str) -> None:
        with self._lock:
            subs = list(self._subscriptions.get(collection, []))
        for sub in subs:
            with self._lock:
                try:
                    snapshot = self.query_ordered(collection, sub.order_field, sub.direction)
                except StoreError:
                    print(f"[STORE] Snapshot refresh failed for {collection}; listener keeps last snapshot")
                    continue
                sub.deliver(snapshot)


def create_engine_for(url: Optional[str] = None) -> Engine:
    """
    Build the SQLAlchemy engine. Explicit url wins, then DATABASE_URL,
    then a SQLite file at DATABASE_PATH next to this module.
    """
    url = url or DATABASE_URL
    if not url:
        db_file = FsPath(DATABASE_PATH)
        if not db_file.is_absolute():
            db_file = FsPath(__file__).resolve().parent / db_file
        url = f"sqlite:///{db_file}"
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True)


_default_store: Optional[DocumentStore] = None
_default_lock = threading.Lock()


def get_store() -> DocumentStore:
    """Process-wide store built from configuration (FastAPI dependency)."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = DocumentStore()
        return _default_store
