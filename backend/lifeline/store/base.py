"""
Document Store Interface

Abstract per-document store used by the dispatch core. Writes are atomic
per document; there are no multi-document transactions. Conditional
writes (`expected`) are the only concurrency primitive.

Paths are "<collection>/<doc_id>". Subscribers registered on a document
path receive changes to that document; subscribers registered on a bare
collection name receive changes to every document in it.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
import asyncio
import copy


# Collections
CASES = "cases"
AMBULANCES = "ambulances"
HOSPITALS = "hospitals"
ACCOUNTS = "accounts"

ChangeCallback = Callable[[str, Optional[Dict[str, Any]]], Union[None, Awaitable[None]]]

_MISSING = object()


def doc_path(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


def split_path(path: str) -> Tuple[str, str]:
    """Split "<collection>/<doc_id>" into its parts"""
    collection, sep, doc_id = path.partition('/')
    if not sep or not collection or not doc_id or '/' in doc_id:
        raise ValueError(f"Invalid document path: {path!r}")
    return collection, doc_id


def plain(value: Any) -> Any:
    """Reduce enums (and containers of them) to their stored JSON form"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def get_field(doc: Dict[str, Any], field: str, default: Any = None) -> Any:
    """Read a dotted field ("patient.severity") from a document"""
    value: Any = doc
    for part in field.split('.'):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return default
    return value


def merge_fields(doc: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of doc with (possibly dotted) fields applied"""
    merged = copy.deepcopy(doc)
    for key, value in fields.items():
        target = merged
        parts = key.split('.')
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = copy.deepcopy(plain(value))
    return merged


def unmet_expectations(doc: Dict[str, Any], expected: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fields whose current value differs from the expected one"""
    if not expected:
        return {}
    unmet = {}
    for field, want in expected.items():
        have = get_field(doc, field, _MISSING)
        have = None if have is _MISSING else have
        if have != plain(want):
            unmet[field] = have
    return unmet


class DocumentStore(ABC):
    """
    Abstract document store

    Implementations must make `update` atomic per document and evaluate
    `expected` against the same version of the document they write.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = {}

    @abstractmethod
    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        """Read a document (None when absent)"""

    @abstractmethod
    async def set(self, path: str, value: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace a document"""

    @abstractmethod
    async def update(
        self,
        path: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Merge fields into an existing document

        Args:
            path: Document path
            fields: Field values to merge (dotted keys address nested fields)
            expected: Field values that must hold before the write

        Returns:
            The document after the write

        Raises:
            NotFound: document does not exist
            PreconditionFailed: an expected field no longer matches
            StoreUnavailable: transient backend failure
        """

    @abstractmethod
    async def query(
        self,
        collection: str,
        field: Optional[str] = None,
        value: Any = None
    ) -> List[Dict[str, Any]]:
        """Equality query on a (dotted) field; all documents when field is None"""

    def subscribe(self, path: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a change callback

        Returns:
            Function that removes the subscription
        """
        self._subscribers.setdefault(path, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(path, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    async def _publish(self, path: str, doc: Optional[Dict[str, Any]]):
        """Notify document and collection subscribers of a change"""
        collection, _ = split_path(path)
        callbacks = list(self._subscribers.get(path, [])) + list(self._subscribers.get(collection, []))

        for callback in callbacks:
            try:
                result = callback(path, copy.deepcopy(doc))
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                # A failing subscriber must not fail the write that triggered it
                print(f"[STORE] Subscriber error for {path}: {e}")
