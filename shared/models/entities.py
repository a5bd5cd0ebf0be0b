"""SQLAlchemy ORM database models."""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class KeyValueEntry(Base):
    """Key-value table - JSON documents for version logs and prompt cache entries."""
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)  # e.g. 'essay_versions:<activity_id>'
    value = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
