"""
Database Package

SQLAlchemy engine, session factory and ORM models backing the SQL
document store.
"""

from .database import Base, SessionLocal, engine, init_db
from .models import DocumentRecord

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "init_db",
    "DocumentRecord",
]
