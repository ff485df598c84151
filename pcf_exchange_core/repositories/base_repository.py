"""
Repository interfaces for the persistence collaborators.

The exchange core only needs CRUD by key: data sources by their opaque id,
footprints by local id (with a lookup by external data id).
"""

from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from ..schemas.data_source_schemas import DataSource
from ..schemas.footprint_schemas import Footprint

K = TypeVar("K")
V = TypeVar("V")


class Repository(ABC, Generic[K, V]):
    """Minimal CRUD contract."""

    @abstractmethod
    def get(self, key: K) -> Optional[V]:
        """Return the value stored under key, or None."""

    @abstractmethod
    def list(self) -> List[V]:
        """Return all stored values."""

    @abstractmethod
    def put(self, value: V) -> V:
        """Insert or replace a value and return the stored copy."""

    @abstractmethod
    def delete(self, key: K) -> bool:
        """Delete the value under key; return whether one existed."""


class DataSourceRepository(Repository[str, DataSource]):
    """Data sources keyed by data_source_id."""


class FootprintRepository(Repository[int, Footprint]):
    """
    Footprints keyed by product_footprint_id.

    put() assigns product_footprint_id to footprints that have none.
    """

    @abstractmethod
    def get_by_data_id(self, data_id: str) -> Optional[Footprint]:
        """Return the footprint with the given external data id, or None."""
