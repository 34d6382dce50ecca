"""
In-Memory Document Store

Process-local store used by default and in tests. Each document has its
own asyncio lock so conditional writes are evaluated and applied without
interleaving.
"""

from typing import Any, Dict, List, Optional
import asyncio
import copy

from ..errors import NotFound, PreconditionFailed
from .base import (
    DocumentStore,
    get_field,
    merge_fields,
    plain,
    split_path,
    unmet_expectations,
)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore"""

    def __init__(self):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        # Statistics
        self.reads = 0
        self.writes = 0
        self.conflicts = 0

    def _lock(self, path: str) -> asyncio.Lock:
        if path not in self._locks:
            self._locks[path] = asyncio.Lock()
        return self._locks[path]

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        collection, doc_id = split_path(path)
        self.reads += 1
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, path: str, value: Dict[str, Any]) -> Dict[str, Any]:
        collection, doc_id = split_path(path)
        async with self._lock(path):
            doc = copy.deepcopy(plain(value))
            self._collections.setdefault(collection, {})[doc_id] = doc
            self.writes += 1
        await self._publish(path, doc)
        return copy.deepcopy(doc)

    async def update(
        self,
        path: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        collection, doc_id = split_path(path)
        async with self._lock(path):
            current = self._collections.get(collection, {}).get(doc_id)
            if current is None:
                raise NotFound(f"Document not found: {path}")

            if unmet_expectations(current, expected):
                self.conflicts += 1
                raise PreconditionFailed(path, plain(expected), current=copy.deepcopy(current))

            doc = merge_fields(current, fields)
            self._collections[collection][doc_id] = doc
            self.writes += 1

        await self._publish(path, doc)
        return copy.deepcopy(doc)

    async def query(
        self,
        collection: str,
        field: Optional[str] = None,
        value: Any = None
    ) -> List[Dict[str, Any]]:
        self.reads += 1
        docs = self._collections.get(collection, {}).values()
        if field is None:
            return [copy.deepcopy(d) for d in docs]
        want = plain(value)
        return [copy.deepcopy(d) for d in docs if get_field(d, field) == want]

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'backend': 'memory',
            'collections': {name: len(docs) for name, docs in self._collections.items()},
            'reads': self.reads,
            'writes': self.writes,
            'conflicts': self.conflicts,
        }
