"""Database models and connection management."""

from .db_config import Base, DatabaseManager, close_db, get_db_manager, initialize_db, set_db_manager

__all__ = [
    "Base",
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "initialize_db",
    "set_db_manager",
]
