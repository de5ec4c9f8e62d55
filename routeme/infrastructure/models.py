"""
SQLAlchemy ORM models.

Tables
------
* ``stored_values`` -- string blobs keyed by name (the search history lives
  under a single key as a JSON array)
"""

from sqlalchemy import Column, DateTime, String, Text, func

from .database import Base


class StoredValueModel(Base):
    __tablename__ = "stored_values"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
