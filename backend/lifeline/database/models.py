"""
SQLAlchemy ORM Models

Documents are stored as JSON text keyed by (collection, doc_id) with a
version counter used for optimistic conditional writes.
"""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, Index
from sqlalchemy.sql import func
from .database import Base


class DocumentRecord(Base):
    """
    One dispatch document (case, ambulance, hospital or account)

    `version` increments on every write; an update only lands if the
    version it read is still current.
    """
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)

    data = Column(Text, nullable=False)          # JSON document
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(Float, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index('idx_documents_collection', 'collection'),
    )
