"""
Durable cursor documents, one per ingress partition.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from market_ingress.core.database import Database
from market_ingress.core.exceptions import DatabaseError
from market_ingress.models.state import State

from .base import upsert_statement


class CursorStore:
    """Key/value store for the last processed ordering token."""

    def __init__(self, database: Database):
        self.database = database
        self.table = State.__table__

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self.database.session() as session:
                result = await session.execute(select(self.table.c.value).where(self.table.c.key == key))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to read cursor", {"key": key, "error": str(e)}) from e

    async def set(self, key: str, value: str) -> None:
        try:
            async with self.database.session() as session:
                await session.execute(
                    upsert_statement(self.database.dialect_name, self.table, [{"key": key, "value": value}], ["key"])
                )
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to save cursor", {"key": key, "error": str(e)}) from e
