"""
State model - named durable values such as ingress cursors.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class State(BaseModel, TimestampMixin):
    """Single key/value document per partition."""

    __tablename__ = "state"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    def __repr__(self) -> str:
        return f"<State(key={self.key}, value={self.value})>"
