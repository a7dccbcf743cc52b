"""
Registry model - contract capabilities discovered through ERC-165.
"""

from typing import Dict, Optional

from sqlalchemy import String, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Registry(BaseModel, TimestampMixin):
    """
    Capability flags for one contract on one network.

    Only confirmed answers are stored: True for supported, False for
    confirmed unsupported. Undetermined probes never reach this table.
    """

    __tablename__ = "registries"

    network: Mapped[str] = mapped_column(String(64), primary_key=True)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)

    is_erc721: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    supports_erc721_metadata: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    supports_erc2981: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    extensions: Mapped[Optional[Dict[str, bool]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Protocol-specific interface flags by name"
    )

    def __repr__(self) -> str:
        return f"<Registry(network={self.network}, address={self.address}, is_erc721={self.is_erc721})>"
