"""
Database Configuration and Session Management

This module provides SQLAlchemy database engine, session factory,
and database initialization utilities.
"""

import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Ensure data directory exists
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database URL - SQLite unless overridden
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{DATA_DIR}/lifeline.db"
)

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    echo=False  # Set to True for SQL debugging
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def init_db(bind=None):
    """
    Initialize database - create all tables

    Called on application startup when the SQL store is selected.
    """
    # Import all models to ensure they're registered with Base
    from lifeline.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

    print(f"[OK] Database initialized at: {DATABASE_URL if bind is None else bind.url}")
