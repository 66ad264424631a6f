"""
Persistent store adapters.
"""

from .base import TrainingStore
from .memory import InMemoryStore
from .sql import SqlStore, create_store_engine


def create_store(database_url: str) -> TrainingStore:
    """
    Build a store for a URL; "memory://" selects the in-process store.
    """

    if database_url.startswith("memory://"):
        return InMemoryStore()
    store = SqlStore(database_url)
    store.create_schema()
    return store


__all__ = [
    "TrainingStore",
    "InMemoryStore",
    "SqlStore",
    "create_store",
    "create_store_engine",
]
