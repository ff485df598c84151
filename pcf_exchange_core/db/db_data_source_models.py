"""
Data source and endpoint tables.

Just the data structure; conversion to schemas lives in the repository.
"""

import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from .db_base import EncryptedBinary, TimestampMixin
from .db_config import Base


class DataSourceRecord(Base, TimestampMixin):
    """A registered partner system with its encrypted secret."""

    __tablename__ = "data_source"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    source_type = Column(String(50), nullable=False)
    user_name = Column(String(255), nullable=False)
    password = Column(EncryptedBinary, nullable=False)  # Encrypted storage

    endpoints = relationship(
        "EndpointRecord",
        back_populates="data_source",
        cascade="all, delete-orphan",
        order_by="EndpointRecord.position",
    )


class EndpointRecord(Base):
    """One action URL; owned by exactly one data source."""

    __tablename__ = "endpoint"

    id = Column(Integer, primary_key=True, autoincrement=True)
    data_source_id = Column(
        String(36), ForeignKey("data_source.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    action_kind = Column(String(50), nullable=False)
    url = Column(String(2048), nullable=False)

    data_source = relationship("DataSourceRecord", back_populates="endpoints")

    __table_args__ = (
        Index("ix_endpoint_kind", "data_source_id", "action_kind", unique=True),
        Index("ix_endpoint_url", "url"),
    )
