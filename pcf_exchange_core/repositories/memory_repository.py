"""In-memory repositories; values are copied on the way in and out."""

import itertools
import threading
from typing import Dict, List, Optional

from ..exceptions import duplicate
from ..processing.footprint_tree import clone_footprint
from ..schemas.data_source_schemas import DataSource
from ..schemas.footprint_schemas import Footprint
from .base_repository import DataSourceRepository, FootprintRepository


class InMemoryDataSourceRepository(DataSourceRepository):
    def __init__(self):
        self._items: Dict[str, DataSource] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[DataSource]:
        with self._lock:
            item = self._items.get(key)
            return item.model_copy(deep=True) if item else None

    def list(self) -> List[DataSource]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def put(self, value: DataSource) -> DataSource:
        with self._lock:
            self._items[value.data_source_id] = value.model_copy(deep=True)
            return value.model_copy(deep=True)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None


class InMemoryFootprintRepository(FootprintRepository):
    def __init__(self):
        self._items: Dict[int, Footprint] = {}
        self._by_data_id: Dict[str, int] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, key: int) -> Optional[Footprint]:
        with self._lock:
            item = self._items.get(key)
            return clone_footprint(item) if item else None

    def get_by_data_id(self, data_id: str) -> Optional[Footprint]:
        with self._lock:
            key = self._by_data_id.get(data_id)
            return clone_footprint(self._items[key]) if key is not None else None

    def list(self) -> List[Footprint]:
        with self._lock:
            return [clone_footprint(item) for item in self._items.values()]

    def put(self, value: Footprint) -> Footprint:
        stored = clone_footprint(value)
        with self._lock:
            owner = self._by_data_id.get(stored.data_id)
            if stored.product_footprint_id is None:
                stored.product_footprint_id = owner if owner is not None else next(self._ids)
            elif owner is not None and owner != stored.product_footprint_id:
                raise duplicate("Footprint", data_id=stored.data_id)
            previous = self._items.get(stored.product_footprint_id)
            if previous is not None and previous.data_id != stored.data_id:
                self._by_data_id.pop(previous.data_id, None)
            self._items[stored.product_footprint_id] = stored
            self._by_data_id[stored.data_id] = stored.product_footprint_id
            return clone_footprint(stored)

    def delete(self, key: int) -> bool:
        with self._lock:
            item = self._items.pop(key, None)
            if item is None:
                return False
            self._by_data_id.pop(item.data_id, None)
            return True
