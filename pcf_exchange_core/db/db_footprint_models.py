"""
Product footprint table.

The footprint document is stored whole in a JSON column; the identity and
version columns are lifted out for lookups.
"""

from sqlalchemy import Column, Integer, String

from .db_base import JSON, TimestampMixin
from .db_config import Base


class FootprintRecord(Base, TimestampMixin):
    """Simple footprint model - just data, no logic."""

    __tablename__ = "product_footprint"

    product_footprint_id = Column(Integer, primary_key=True, autoincrement=True)
    data_id = Column(String(255), nullable=False, unique=True, index=True)
    version = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)
    data_source_id = Column(String(36), nullable=True, index=True)
    document = Column(JSON, nullable=False)
