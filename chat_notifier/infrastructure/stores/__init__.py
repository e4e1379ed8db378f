"""Store implementations consumed by the delivery engine."""

from .memory import InMemoryStore
from .relational import SqlAlchemyStore

__all__ = ["InMemoryStore", "SqlAlchemyStore"]
