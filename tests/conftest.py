import asyncio
import copy
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from workforce.config import Settings
from workforce.container import build_container
from workforce.core.exceptions import ConflictError, DeliveryError, StoreError
from workforce.database import Base
from workforce.services.geofence import EARTH_RADIUS_METERS, Coordinates
from workforce.store import ATTENDANCE, EMPLOYEES, StoreResult, parse_lookup

LAGOS = ZoneInfo("Africa/Lagos")
OFFICE = Coordinates(6.5244, 3.3792)

MONDAY = date(2025, 6, 2)
FRIDAY = date(2025, 6, 6)
SATURDAY = date(2025, 6, 7)

UNIQUE_KEYS = {ATTENDANCE: ("employee_id", "date")}


def at(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=LAGOS)


def north_of_office(meters: float) -> Coordinates:
    """A point due north of the office, ``meters`` away along the meridian."""
    return Coordinates(OFFICE.latitude + math.degrees(meters / EARTH_RADIUS_METERS), OFFICE.longitude)


def _matches(row: Dict[str, Any], filters) -> bool:
    for key, expected in (filters or {}).items():
        column, op = parse_lookup(key)
        value = row.get(column)
        if op == "eq":
            ok = value == expected
        elif op == "ne":
            ok = value != expected
        elif op == "in":
            ok = value in list(expected)
        elif op == "isnull":
            ok = (value is None) == bool(expected)
        elif value is None:
            ok = False
        elif op == "gt":
            ok = value > expected
        elif op == "gte":
            ok = value >= expected
        elif op == "lt":
            ok = value < expected
        else:
            ok = value <= expected
        if not ok:
            return False
    return True


class InMemoryRecordStore:
    """RecordStore fake with the same row shape and uniqueness rules as the database."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in Base.metadata.tables}
        self._ids: Dict[str, int] = {name: 0 for name in Base.metadata.tables}
        # (operation, table) -> exception returned instead of touching the data
        self.failures: Dict[tuple, StoreError] = {}
        self.calls: List[tuple] = []

    def fail(self, operation: str, table: str, message: str = "connection reset"):
        self.failures[(operation, table)] = StoreError(message, table=table)

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self._add(table, row) for row in rows]

    def rows(self, table: str, **filters) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self.tables[table] if _matches(r, filters)]

    def _add(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        full = {column: None for column in Base.metadata.tables[table].c.keys()}
        full.update(copy.deepcopy(row))
        if full.get("id") is None:
            self._ids[table] += 1
            full["id"] = self._ids[table]
        self.tables[table].append(full)
        return copy.deepcopy(full)

    async def _enter(self, operation: str, table: str) -> Optional[StoreError]:
        self.calls.append((operation, table))
        # let concurrent callers interleave between their awaits
        await asyncio.sleep(0)
        return self.failures.get((operation, table))

    async def select(self, table, filters=None, order_by=(), offset=0, limit=None) -> StoreResult:
        error = await self._enter("select", table)
        if error:
            return StoreResult([], error)
        rows = [r for r in self.tables[table] if _matches(r, filters)]
        for key in reversed(list(order_by)):
            column = key.lstrip("-")
            rows.sort(key=lambda r: (r[column] is None, r[column]), reverse=key.startswith("-"))
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return StoreResult(copy.deepcopy(rows), None)

    async def insert(self, table, rows) -> StoreResult:
        error = await self._enter("insert", table)
        if error:
            return StoreResult([], error)
        unique = UNIQUE_KEYS.get(table)
        if unique:
            taken = {tuple(r[c] for c in unique) for r in self.tables[table]}
            for row in rows:
                key = tuple(row.get(c) for c in unique)
                if key in taken:
                    return StoreResult([], ConflictError(f"duplicate key {key}", table=table))
                taken.add(key)
        return StoreResult([self._add(table, row) for row in rows], None)

    async def update(self, table, filters, patch) -> StoreResult:
        if not filters:
            raise ValueError("update without filters is not allowed")
        error = await self._enter("update", table)
        if error:
            return StoreResult([], error)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(copy.deepcopy(patch))
                updated.append(copy.deepcopy(row))
        return StoreResult(updated, None)

    async def delete(self, table, filters) -> StoreResult:
        if not filters:
            raise ValueError("delete without filters is not allowed")
        error = await self._enter("delete", table)
        if error:
            return StoreResult([], error)
        deleted = [r for r in self.tables[table] if _matches(r, filters)]
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]
        return StoreResult(copy.deepcopy(deleted), None)


class FixedClock:
    def __init__(self, now: datetime, tz: ZoneInfo = LAGOS):
        self.tz = tz
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeEmailChannel:
    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent = []
        self.failing = set()
        self.delay = 0.0

    async def send(self, message) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if message.recipient in self.failing:
            raise DeliveryError(f"mailbox unavailable: {message.recipient}")
        self.sent.append(message)


def make_settings(**overrides) -> Settings:
    values = dict(
        SECRET_KEY="test-secret",
        TIMEZONE="Africa/Lagos",
        OFFICE_LATITUDE=OFFICE.latitude,
        OFFICE_LONGITUDE=OFFICE.longitude,
        OFFICE_RADIUS_METERS=100,
        CRON_SECRET="cron-secret",
        SCHEDULER_ENABLED=False,
        DELIVERY_TIMEOUT_SECONDS=1.0,
        NOTIFY_ADMINS_OF_LATE_ARRIVALS=False,
        NOTIFY_ADMINS_OF_ABSENCES=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


EMPLOYEE_ROWS = [
    {"id": 1, "full_name": "Ada Okafor", "email": "ada@example.com", "role": "staff", "status": "active"},
    {"id": 2, "full_name": "Bayo Adeyemi", "email": "bayo@example.com", "role": "staff", "status": "active"},
    {"id": 3, "full_name": "Chioma Eze", "email": "chioma@example.com", "role": "admin", "status": "active"},
    {"id": 4, "full_name": "Dapo Bello", "email": "dapo@example.com", "role": "staff", "status": "inactive"},
]


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    store.seed(EMPLOYEES, EMPLOYEE_ROWS)
    return store


@pytest.fixture
def clock():
    return FixedClock(at(MONDAY, 9, 3))


@pytest.fixture
def email():
    return FakeEmailChannel()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def container(settings, store, clock, email):
    return build_container(settings, clock=clock, store=store, email=email)
