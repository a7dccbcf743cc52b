"""
Dialect-aware upsert helpers shared by the repositories.
"""

from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import Table, func
from sqlalchemy.dialects import postgresql, sqlite

from market_ingress.core.exceptions import ConfigurationError


def dialect_insert(dialect_name: str, table: Table):
    """Return an INSERT construct supporting ON CONFLICT for the dialect."""
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise ConfigurationError(
        f"Upserts are not supported on {dialect_name}",
        {"dialect": dialect_name}
    )


def upsert_statement(
    dialect_name: str,
    table: Table,
    rows: Sequence[Dict[str, Any]],
    index_elements: Iterable[str],
):
    """
    Build ``INSERT .. ON CONFLICT DO UPDATE`` for rows sharing one key set.

    Only the columns present in the rows are written, so absent fields keep
    their stored values.
    """
    keys = list(index_elements)
    stmt = dialect_insert(dialect_name, table).values(list(rows))
    columns = [name for name in rows[0] if name not in keys]
    set_ = {name: stmt.excluded[name] for name in columns}
    if "updated_at" in table.c and "updated_at" not in set_:
        set_["updated_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=keys, set_=set_)


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]
