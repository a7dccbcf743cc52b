"""
Durable layer of the contract capability registry.
"""

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from market_ingress.core.database import Database
from market_ingress.core.exceptions import DatabaseError
from market_ingress.models.registry import Registry

from .base import upsert_statement

FLAG_COLUMNS = ("is_erc721", "supports_erc721_metadata", "supports_erc2981", "extensions")


class RegistryStore:
    """Reads and writes confirmed registry entries keyed by (network, address)."""

    def __init__(self, database: Database):
        self.database = database
        self.table = Registry.__table__

    async def get(self, network: str, address: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(*(self.table.c[name] for name in FLAG_COLUMNS)).where(
                        self.table.c.network == network,
                        self.table.c.address == address,
                    )
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to read registry entry",
                {"network": network, "address": address, "error": str(e)}
            ) from e
        return dict(row._mapping) if row else None

    async def upsert(self, network: str, address: str, flags: Dict[str, Any]) -> None:
        row = {"network": network, "address": address}
        row.update({name: flags.get(name) for name in FLAG_COLUMNS})
        try:
            async with self.database.session() as session:
                await session.execute(
                    upsert_statement(self.database.dialect_name, self.table, [row], ["network", "address"])
                )
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to save registry entry",
                {"network": network, "address": address, "error": str(e)}
            ) from e
