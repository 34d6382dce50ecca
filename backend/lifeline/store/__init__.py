"""
Document Store Package

Per-document store with conditional writes and change subscriptions.
"""

from typing import Optional

from .base import (
    ACCOUNTS,
    AMBULANCES,
    CASES,
    HOSPITALS,
    DocumentStore,
    doc_path,
    get_field,
    split_path,
)
from .memory_store import InMemoryDocumentStore
from .retry import RetryPolicy
from .sql_store import SqlDocumentStore


def create_store(backend: str = "memory", session_factory=None) -> DocumentStore:
    """
    Create a document store for the configured backend

    Args:
        backend: "memory" or "sql"
        session_factory: SQLAlchemy session factory (sql only)
    """
    if backend == "memory":
        return InMemoryDocumentStore()

    if backend == "sql":
        if session_factory is None:
            from ..database import SessionLocal, init_db
            init_db()
            session_factory = SessionLocal
        return SqlDocumentStore(session_factory)

    raise ValueError(f"Unknown store backend: {backend}")


# Global store instance
_store: Optional[DocumentStore] = None


def get_store() -> Optional[DocumentStore]:
    """Get global document store"""
    return _store


def init_store(backend: str = "memory", session_factory=None) -> DocumentStore:
    """Initialize global document store"""
    global _store
    _store = create_store(backend, session_factory)
    print(f"[STORE] Document store initialized ({backend})")
    return _store


__all__ = [
    "ACCOUNTS",
    "AMBULANCES",
    "CASES",
    "HOSPITALS",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "RetryPolicy",
    "doc_path",
    "get_field",
    "split_path",
    "create_store",
    "get_store",
    "init_store",
]
