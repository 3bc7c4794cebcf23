"""Generic filtered access to the attendance, notification and job-log tables.

Every call returns a ``StoreResult`` which unpacks as ``rows, error``; the
error is ``None`` on success. Callers that cannot continue without the rows
use ``result.unwrap()``.

Filters are Django-style lookups::

    {"employee_id": 3, "date": today, "check_out_time__isnull": True}
    {"created_at__gte": cutoff, "id__in": [1, 2, 3]}

Ordering is a list of column names, ``"-created_at"`` for descending.
"""
import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Protocol, Sequence, Tuple

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from workforce.core.exceptions import ConflictError, StoreError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Mapping[str, Any]

LOOKUPS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "isnull")

ATTENDANCE = "attendance_records"
NOTIFICATIONS = "notifications"
JOB_LOGS = "job_execution_logs"
EMPLOYEES = "employees"


class StoreResult(NamedTuple):
    rows: List[Row]
    error: Optional[StoreError]

    def unwrap(self) -> List[Row]:
        if self.error is not None:
            raise self.error
        return self.rows

    def first(self) -> Optional[Row]:
        rows = self.unwrap()
        return rows[0] if rows else None


def parse_lookup(key: str) -> Tuple[str, str]:
    column, _, op = key.partition("__")
    op = op or "eq"
    if op not in LOOKUPS:
        raise ValueError(f"Unsupported lookup {op!r} in filter {key!r}")
    return column, op


class RecordStore(Protocol):
    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Sequence[str] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> StoreResult:
        ...

    async def insert(self, table: str, rows: Sequence[Row]) -> StoreResult:
        ...

    async def update(self, table: str, filters: Filters, patch: Row) -> StoreResult:
        ...

    async def delete(self, table: str, filters: Filters) -> StoreResult:
        ...


class SqlAlchemyRecordStore:
    """RecordStore over SQLAlchemy Core tables.

    Each call runs in its own session and transaction so that independent
    units of work can be awaited concurrently.
    """

    def __init__(self, sessionmaker: async_sessionmaker, tables: Mapping[str, Table]):
        self._sessionmaker = sessionmaker
        self._tables = dict(tables)

    def _table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise ValueError(f"Unknown table {name!r}") from None

    def _where(self, table: Table, filters: Optional[Filters]):
        clauses = []
        for key, value in (filters or {}).items():
            name, op = parse_lookup(key)
            column = table.c[name]
            if op == "eq":
                clauses.append(column.is_(None) if value is None else column == value)
            elif op == "ne":
                clauses.append(column.is_not(None) if value is None else column != value)
            elif op == "gt":
                clauses.append(column > value)
            elif op == "gte":
                clauses.append(column >= value)
            elif op == "lt":
                clauses.append(column < value)
            elif op == "lte":
                clauses.append(column <= value)
            elif op == "in":
                clauses.append(column.in_(list(value)))
            elif op == "isnull":
                clauses.append(column.is_(None) if value else column.is_not(None))
        return clauses

    async def select(self, table, filters=None, order_by=(), offset=0, limit=None) -> StoreResult:
        t = self._table(table)
        stmt = select(t).where(*self._where(t, filters))
        for key in order_by:
            column = t.c[key.lstrip("-")]
            stmt = stmt.order_by(column.desc() if key.startswith("-") else column.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                return StoreResult([dict(row) for row in result.mappings().all()], None)
        except SQLAlchemyError as e:
            logger.error("RecordStore: select on %s failed: %s", table, e)
            return StoreResult([], StoreError(str(e), table=table))

    async def insert(self, table, rows) -> StoreResult:
        if not rows:
            return StoreResult([], None)
        t = self._table(table)
        stmt = insert(t).values(list(rows)).returning(*t.c)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                inserted = [dict(row) for row in result.mappings().all()]
                await session.commit()
                return StoreResult(inserted, None)
        except IntegrityError as e:
            msg = str(getattr(e, "orig", e))
            logger.info("RecordStore: insert into %s rejected by constraint: %s", table, msg)
            return StoreResult([], ConflictError(msg, table=table))
        except SQLAlchemyError as e:
            logger.error("RecordStore: insert into %s failed: %s", table, e)
            return StoreResult([], StoreError(str(e), table=table))

    async def update(self, table, filters, patch) -> StoreResult:
        if not filters:
            raise ValueError("update without filters is not allowed")
        t = self._table(table)
        stmt = update(t).where(*self._where(t, filters)).values(**patch).returning(*t.c)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                updated = [dict(row) for row in result.mappings().all()]
                await session.commit()
                return StoreResult(updated, None)
        except SQLAlchemyError as e:
            logger.error("RecordStore: update on %s failed: %s", table, e)
            return StoreResult([], StoreError(str(e), table=table))

    async def delete(self, table, filters) -> StoreResult:
        if not filters:
            raise ValueError("delete without filters is not allowed")
        t = self._table(table)
        stmt = delete(t).where(*self._where(t, filters)).returning(*t.c)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                deleted = [dict(row) for row in result.mappings().all()]
                await session.commit()
                return StoreResult(deleted, None)
        except SQLAlchemyError as e:
            logger.error("RecordStore: delete on %s failed: %s", table, e)
            return StoreResult([], StoreError(str(e), table=table))
