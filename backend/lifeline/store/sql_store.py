"""
SQL Document Store

DocumentStore backed by the `documents` table. Conditional writes use
optimistic concurrency: the UPDATE only matches the row version that was
read, so two writers racing on the same document cannot both succeed.

SQLAlchemy sessions are synchronous; each unit of work runs in a worker
thread so the event loop keeps serving sockets and HTTP meanwhile. Units
of work from one store instance are serialized, which keeps a shared
SQLite connection (StaticPool, in-memory databases) consistent.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import json
import threading
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ..database.models import DocumentRecord
from ..errors import NotFound, PreconditionFailed, StoreUnavailable
from .base import (
    DocumentStore,
    get_field,
    merge_fields,
    plain,
    split_path,
    unmet_expectations,
)


class SqlDocumentStore(DocumentStore):
    """
    SQLAlchemy-backed DocumentStore

    Usage:
        store = SqlDocumentStore(SessionLocal)
        await store.set("cases/case-1", case.to_document())
    """

    # Version races re-read and re-check `expected` this many times
    MAX_VERSION_RETRIES = 5

    def __init__(self, session_factory: Callable[[], Session]):
        super().__init__()
        self.session_factory = session_factory
        self._lock = threading.Lock()

        # Statistics
        self.writes = 0
        self.conflicts = 0
        self.version_retries = 0

    def _session(self) -> Session:
        return self.session_factory()

    async def _run(self, work: Callable[..., Any], *args) -> Any:
        """Run a blocking unit of work off the event loop"""
        def locked():
            with self._lock:
                return work(*args)
        return await asyncio.to_thread(locked)

    # ==================== Blocking units of work ====================

    def _read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as session:
            record = session.get(DocumentRecord, (collection, doc_id))
            return json.loads(record.data) if record else None

    def _write(self, collection: str, doc_id: str, doc: Dict[str, Any]):
        with self._session() as session:
            record = session.get(DocumentRecord, (collection, doc_id))
            if record is None:
                record = DocumentRecord(collection=collection, doc_id=doc_id, version=1)
                session.add(record)
            else:
                record.version += 1
            record.data = json.dumps(doc)
            record.updated_at = time.time()
            session.commit()

    def _conditional_write(
        self,
        path: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]]
    ) -> Tuple[bool, Dict[str, Any]]:
        """One read-check-write attempt; False when the row version moved"""
        collection, doc_id = split_path(path)
        with self._session() as session:
            record = session.get(DocumentRecord, (collection, doc_id))
            if record is None:
                raise NotFound(f"Document not found: {path}")

            current = json.loads(record.data)
            if unmet_expectations(current, expected):
                self.conflicts += 1
                raise PreconditionFailed(path, plain(expected), current=current)

            doc = merge_fields(current, fields)
            matched = (
                session.query(DocumentRecord)
                .filter_by(collection=collection, doc_id=doc_id, version=record.version)
                .update(
                    {
                        DocumentRecord.data: json.dumps(doc),
                        DocumentRecord.version: record.version + 1,
                        DocumentRecord.updated_at: time.time(),
                    },
                    synchronize_session=False
                )
            )
            session.commit()
        return bool(matched), doc

    def _scan(self, collection: str) -> List[Dict[str, Any]]:
        with self._session() as session:
            records = session.query(DocumentRecord).filter_by(collection=collection).all()
            return [json.loads(r.data) for r in records]

    # ==================== DocumentStore ====================

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        collection, doc_id = split_path(path)
        try:
            return await self._run(self._read, collection, doc_id)
        except OperationalError as e:
            raise StoreUnavailable(f"Read failed for {path}: {e.orig}")

    async def set(self, path: str, value: Dict[str, Any]) -> Dict[str, Any]:
        collection, doc_id = split_path(path)
        doc = plain(value)
        try:
            await self._run(self._write, collection, doc_id, doc)
        except OperationalError as e:
            raise StoreUnavailable(f"Write failed for {path}: {e.orig}")

        self.writes += 1
        await self._publish(path, doc)
        return doc

    async def update(
        self,
        path: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            for _ in range(self.MAX_VERSION_RETRIES):
                matched, doc = await self._run(self._conditional_write, path, fields, expected)
                if matched:
                    self.writes += 1
                    await self._publish(path, doc)
                    return doc

                # Another writer bumped the version between read and write
                self.version_retries += 1
        except OperationalError as e:
            raise StoreUnavailable(f"Update failed for {path}: {e.orig}")

        raise StoreUnavailable(f"Update for {path} kept losing version races")

    async def query(
        self,
        collection: str,
        field: Optional[str] = None,
        value: Any = None
    ) -> List[Dict[str, Any]]:
        try:
            docs = await self._run(self._scan, collection)
        except OperationalError as e:
            raise StoreUnavailable(f"Query failed for {collection}: {e.orig}")

        if field is None:
            return docs
        want = plain(value)
        return [d for d in docs if get_field(d, field) == want]

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'backend': 'sql',
            'writes': self.writes,
            'conflicts': self.conflicts,
            'versionRetries': self.version_retries,
        }
