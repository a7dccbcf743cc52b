"""
Token model - NFTs referenced by marketplace orders.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Text, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Token(BaseModel, TimestampMixin):
    """
    Token model keyed by network and the indexer-assigned id (contract +
    token id). The same contract address can exist on several chains.

    A token is enriched once ``metadata`` is present; until then enrichment
    is pending or has failed.
    """

    __tablename__ = "tokens"

    network: Mapped[str] = mapped_column(String(64), primary_key=True)

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    contract: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    token_id: Mapped[Optional[str]] = mapped_column(String(78), nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    token_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON(none_as_null=True), nullable=True)

    __table_args__ = (
        Index("idx_tokens_contract", "contract"),
        Index("idx_tokens_owner", "owner"),
    )

    @property
    def is_enriched(self) -> bool:
        return self.token_metadata is not None

    def __repr__(self) -> str:
        return f"<Token(id={self.id}, network={self.network}, enriched={self.is_enriched})>"
