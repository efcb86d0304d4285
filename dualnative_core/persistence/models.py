"""
Dual-Native core database models
"""

import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlalchemy.sql import func

from .database import Base


class StorageItem(Base):
    """
    Model representing one value of the key-value storage, e.g. the serialized catalog
    """

    __tablename__ = "storage"

    key: str = Column(String(255), nullable=False, primary_key=True, unique=True)
    value: Any = Column(JSON, nullable=True)
    modified: datetime.datetime = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"StorageItem(key={self.key!r})"


class Resource(Base):
    """
    Model representing the machine representation of one resource

    The ``content`` column holds the whole JSON document, the other
    columns are kept for the resource provider and its consumers.
    """

    __tablename__ = "resources"

    rid: str = Column(String(255), nullable=False, primary_key=True, unique=True)
    hr: str = Column(Text, nullable=True)
    content: dict = Column(JSON, nullable=False)
    resource_metadata: dict = Column("metadata", JSON, nullable=False, default=dict)
    created: datetime.datetime = Column(DateTime, server_default=func.now())
    modified: datetime.datetime = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"Resource(rid={self.rid!r})"
