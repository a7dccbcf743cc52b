"""
Database models.

Orders and tokens mirror the external indexer; state holds ingress
cursors; registries cache contract capabilities.
"""

from .base import Base, BaseModel, TimestampMixin
from .order import Order, OrderKind
from .token import Token
from .state import State
from .registry import Registry

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Order",
    "OrderKind",
    "Token",
    "State",
    "Registry",
]
