"""
Order model - marketplace orders mirrored from the external indexer.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class OrderKind(str, Enum):
    """Order variants reported by the indexer."""
    AUCTION = "AUCTION"
    DIRECT = "DIRECT"


class Order(BaseModel, TimestampMixin):
    """Order model keyed by network and the indexer-assigned id."""

    __tablename__ = "orders"

    network: Mapped[str] = mapped_column(String(64), primary_key=True, comment="Ingress partition the order came from")

    id: Mapped[str] = mapped_column(String(128), primary_key=True, comment="Indexer order id")

    last_block: Mapped[Optional[str]] = mapped_column(
        String(78),
        nullable=True,
        comment="Ordering token of the last indexer update"
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    kind: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    open: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    open_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    open_to: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    maker: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    taker: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    # Amounts are uint256 on chain; kept as decimal strings
    currency: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    price: Mapped[Optional[str]] = mapped_column(String(78), nullable=True)
    price_is_minimum: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    paid_amount: Mapped[Optional[str]] = mapped_column(String(78), nullable=True)

    # No FK constraint: orders and tokens are upserted concurrently
    token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="Token.id on the same network")

    __table_args__ = (
        Index("idx_orders_token", "network", "token"),
        Index("idx_orders_maker", "maker"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, network={self.network}, kind={self.kind})>"
