"""Database package for Mahallu API."""

from mahallu_api.database.manager import DatabaseManager, db_manager

__all__ = ["DatabaseManager", "db_manager"]
