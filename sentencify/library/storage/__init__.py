"""Persistence backends for the model library."""

from .memory import InMemoryStorage
from .protocol import ModelPersistence
from .sqlite import SQLiteStorage

__all__ = ["InMemoryStorage", "ModelPersistence", "SQLiteStorage"]
