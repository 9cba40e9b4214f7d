"""Persistent store abstraction and the in-memory backend."""

from .base import Patch, PersistentStore, Query
from .memory import MemoryStore

__all__ = ["MemoryStore", "Patch", "PersistentStore", "Query"]
