"""
Persistence layer: record upserts, cursors, registry entries and read queries.
"""

from .cursor import CursorStore
from .market import MarketRepository
from .records import RecordStore, UpsertReport, UpsertStatus
from .registry import RegistryStore

__all__ = [
    "CursorStore",
    "MarketRepository",
    "RecordStore",
    "UpsertReport",
    "UpsertStatus",
    "RegistryStore",
]
