"""
Declarative base and shared mixins for all models.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base holding the metadata of every table."""


class BaseModel(Base):
    """Abstract model with dictionary conversion keyed by column name."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Return column values keyed by column name, skipping unset ones."""
        values = {}
        for attr in self.__mapper__.column_attrs:
            value = getattr(self, attr.key)
            if value is not None:
                values[attr.columns[0].name] = value
        return values


class TimestampMixin:
    """Bookkeeping timestamps maintained by the database."""

    indexed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        comment="When the row was first written"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        comment="When the row was last written"
    )
