"""
Read-side queries over orders and tokens.

Rows come back as payload dicts shaped like the live change events: absent
fields are dropped, bookkeeping timestamps are not exposed, and orders embed
their token under ``token``.
"""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, select

from market_ingress.core.database import Database
from market_ingress.models.order import Order
from market_ingress.models.token import Token
from market_ingress.subscriptions.where import Where
from market_ingress.utils.serialization import exclude_none, jsonable

from .base import chunked

HIDDEN_COLUMNS = {"indexed_at", "updated_at"}
TOKEN_PREFIX = "token__"


def _payload_columns(table) -> List[Any]:
    return [column for column in table.c if column.name not in HIDDEN_COLUMNS]


class MarketRepository:
    """Snapshot and lookup queries used by subscriptions and the token service."""

    def __init__(self, database: Database):
        self.database = database
        self.orders = Order.__table__
        self.tokens = Token.__table__

    async def find_orders(
        self,
        where: Optional[Where] = None,
        network: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        token_columns = [column.label(TOKEN_PREFIX + column.name) for column in _payload_columns(self.tokens)]
        stmt = (
            select(*_payload_columns(self.orders), *token_columns)
            .select_from(self.orders.outerjoin(
                self.tokens,
                and_(self.tokens.c.network == self.orders.c.network, self.tokens.c.id == self.orders.c.token),
            ))
            .order_by(self.orders.c.created_at.desc(), self.orders.c.network, self.orders.c.id)
            .offset(skip)
            .limit(limit)
        )
        if network:
            stmt = stmt.where(self.orders.c.network == network)
        if where:
            stmt = stmt.where(*where.clauses(self.orders, {"token": self.tokens}))

        async with self.database.session() as session:
            result = await session.execute(stmt)
            rows = [dict(row._mapping) for row in result.fetchall()]

        items = []
        for row in rows:
            order = {k: v for k, v in row.items() if not k.startswith(TOKEN_PREFIX)}
            token = {k[len(TOKEN_PREFIX):]: v for k, v in row.items() if k.startswith(TOKEN_PREFIX)}
            item = exclude_none(order)
            token = exclude_none(token)
            if token:
                item["token"] = token
            items.append(jsonable(item))
        return items

    async def find_tokens(
        self,
        where: Optional[Where] = None,
        network: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(*_payload_columns(self.tokens))
            .order_by(self.tokens.c.created_at.desc(), self.tokens.c.network, self.tokens.c.id)
            .offset(skip)
            .limit(limit)
        )
        if network:
            stmt = stmt.where(self.tokens.c.network == network)
        if where:
            stmt = stmt.where(*where.clauses(self.tokens))

        async with self.database.session() as session:
            result = await session.execute(stmt)
            return [jsonable(exclude_none(row._mapping)) for row in result.fetchall()]

    async def get_token(self, network: str, token_id: str) -> Optional[Dict[str, Any]]:
        async with self.database.session() as session:
            result = await session.execute(
                select(*_payload_columns(self.tokens)).where(
                    self.tokens.c.network == network,
                    self.tokens.c.id == token_id,
                )
            )
            row = result.first()
            return jsonable(exclude_none(row._mapping)) if row else None

    async def get_enriched_tokens(self, network: str, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Return tokens of a network that already carry metadata, keyed by id."""
        found: Dict[str, Dict[str, Any]] = {}
        async with self.database.session() as session:
            for chunk in chunked(list(ids), 500):
                result = await session.execute(
                    select(self.tokens.c.id, self.tokens.c["metadata"]).where(
                        self.tokens.c.network == network,
                        self.tokens.c.id.in_(chunk),
                        self.tokens.c["metadata"].isnot(None),
                    )
                )
                for row in result.fetchall():
                    found[row.id] = {"id": row.id, "metadata": row._mapping["metadata"]}
        return found
