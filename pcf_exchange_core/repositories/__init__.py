"""Persistence collaborators: repository interfaces and implementations."""

from .base_repository import DataSourceRepository, FootprintRepository, Repository
from .memory_repository import InMemoryDataSourceRepository, InMemoryFootprintRepository

__all__ = [
    "DataSourceRepository",
    "FootprintRepository",
    "InMemoryDataSourceRepository",
    "InMemoryFootprintRepository",
    "Repository",
]
