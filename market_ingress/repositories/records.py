"""
Bulk upsert store for indexer records keyed by network and a stable id.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Set, Tuple

from sqlalchemy import Table, select
from sqlalchemy.exc import SQLAlchemyError

from market_ingress.core.database import Database
from market_ingress.core.exceptions import DatabaseError
from market_ingress.core.logging import get_logger

from .base import chunked, upsert_statement

logger = get_logger(__name__)

SELECT_CHUNK = 500

RecordKey = Tuple[Any, ...]


class UpsertStatus(str, Enum):
    """Outcome of one input record of a bulk upsert."""
    INSERTED = "inserted"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class UpsertReport:
    """Per-index outcome of a bulk upsert, in input order."""
    statuses: List[UpsertStatus] = field(default_factory=list)

    def _indices(self, status: UpsertStatus) -> Set[int]:
        return {i for i, s in enumerate(self.statuses) if s is status}

    @property
    def inserted(self) -> Set[int]:
        return self._indices(UpsertStatus.INSERTED)

    @property
    def updated(self) -> Set[int]:
        return self._indices(UpsertStatus.UPDATED)

    @property
    def failed(self) -> Set[int]:
        return self._indices(UpsertStatus.FAILED)


class RecordStore:
    """
    Durable collection with insert-if-absent, merge-if-present writes.

    Records are identified by their key columns (network and indexer id by
    default). Writes are unordered: records are grouped by the set of fields
    they carry and each group is written in its own transaction. A group
    that fails is retried one record at a time, so a bad record only fails
    itself.
    """

    def __init__(self, database: Database, table: Table, keys: Sequence[str] = ("network", "id")):
        self.database = database
        self.table = table
        self.keys = tuple(keys)
        self.logger = logger.bind(service="record_store", table=table.name)

    def _key(self, record: Dict[str, Any]) -> RecordKey:
        return tuple(record.get(name) for name in self.keys)

    async def bulk_upsert(self, records: Sequence[Dict[str, Any]]) -> UpsertReport:
        """Upsert records and report which indices were newly inserted."""
        if not records:
            return UpsertReport()

        # Duplicate keys merge in input order, like sequential $set
        merged: Dict[RecordKey, Dict[str, Any]] = {}
        positions: Dict[RecordKey, List[int]] = {}
        for index, record in enumerate(records):
            key = self._key(record)
            merged.setdefault(key, {}).update(record)
            positions.setdefault(key, []).append(index)

        existing = await self._existing_keys(list(merged))

        groups: Dict[frozenset, List[Dict[str, Any]]] = {}
        for row in merged.values():
            groups.setdefault(frozenset(row), []).append(row)

        failed: Set[RecordKey] = set()
        for rows in groups.values():
            failed |= await self._write_group(rows)

        statuses: List[UpsertStatus] = [UpsertStatus.UPDATED] * len(records)
        for key, indices in positions.items():
            if key in failed:
                for index in indices:
                    statuses[index] = UpsertStatus.FAILED
            elif key not in existing:
                statuses[indices[0]] = UpsertStatus.INSERTED

        report = UpsertReport(statuses)
        self.logger.debug(
            "Bulk upsert completed",
            records=len(records),
            inserted=len(report.inserted),
            failed=len(report.failed)
        )
        return report

    async def _existing_keys(self, keys: List[RecordKey]) -> Set[RecordKey]:
        """Keys already stored, looked up per partition value of the leading key columns."""
        *scope_names, id_name = self.keys
        scope_columns = [self.table.c[name] for name in scope_names]
        id_column = self.table.c[id_name]

        by_scope: Dict[RecordKey, List[Any]] = {}
        for key in keys:
            by_scope.setdefault(key[:-1], []).append(key[-1])

        found: Set[RecordKey] = set()
        try:
            async with self.database.session() as session:
                for scope, ids in by_scope.items():
                    for chunk in chunked(ids, SELECT_CHUNK):
                        conditions = [column == value for column, value in zip(scope_columns, scope)]
                        result = await session.execute(
                            select(id_column).where(*conditions, id_column.in_(chunk))
                        )
                        found.update(scope + (row[0],) for row in result.fetchall())
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to read existing records",
                {"table": self.table.name, "error": str(e)}
            ) from e
        return found

    async def _write_group(self, rows: List[Dict[str, Any]]) -> Set[RecordKey]:
        """Write rows sharing one field set; return the keys that failed."""
        dialect = self.database.dialect_name
        try:
            async with self.database.session() as session:
                await session.execute(upsert_statement(dialect, self.table, rows, self.keys))
            return set()
        except SQLAlchemyError as e:
            self.logger.warning(
                "Group upsert failed, retrying records individually",
                rows=len(rows),
                error=str(e)
            )

        failed = set()
        for row in rows:
            try:
                async with self.database.session() as session:
                    await session.execute(upsert_statement(dialect, self.table, [row], self.keys))
            except SQLAlchemyError as e:
                key = self._key(row)
                failed.add(key)
                self.logger.error("Record upsert failed", key=list(key), error=str(e))
        return failed
