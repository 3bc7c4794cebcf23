import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from workforce.core.clock import Clock
from workforce.core.exceptions import BatchInsertError
from workforce.services.delivery import IN_APP, DeliveryResult, deliver
from workforce.store import NOTIFICATIONS, RecordStore, Row

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """The one allow-list of notification types."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ANNOUNCEMENT = "announcement"
    UPDATE = "update"
    SYSTEM_ALERT = "system_alert"
    CHAT = "chat"
    TASK = "task"
    LEAVE = "leave"
    PURCHASE = "purchase"
    BIRTHDAY = "birthday"
    CHECKOUT = "checkout"
    LATE_ARRIVAL = "late_arrival"
    ABSENCE = "absence"


DEFAULT_TYPE = NotificationType.INFO
ALLOWED_TYPES = frozenset(t.value for t in NotificationType)
BATCH_SIZE = 50


@dataclass(frozen=True)
class NotificationRequest:
    user_id: int
    type: str
    title: str
    message: str
    related_id: Optional[Any] = None
    action_url: Optional[str] = None


def coerce_type(value: Any) -> str:
    raw = value.value if isinstance(value, NotificationType) else value
    if raw in ALLOWED_TYPES:
        return raw
    logger.warning("NotificationDispatcher: invalid notification type %r, using %r", value, DEFAULT_TYPE.value)
    return DEFAULT_TYPE.value


def _related(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class NotificationDispatcher:
    def __init__(
        self,
        store: RecordStore,
        clock: Clock,
        *,
        ttl_days: int = 30,
        dedup_window_minutes: int = 5,
        delivery_timeout: float = 10.0,
    ):
        self._store = store
        self._clock = clock
        self._ttl = timedelta(days=ttl_days)
        self._window_minutes = dedup_window_minutes
        self._timeout = delivery_timeout
        self._locks: Dict[Tuple, asyncio.Lock] = {}
        self._lock_users: Dict[Tuple, int] = {}

    def _row(self, req: NotificationRequest, now: datetime) -> Row:
        return {
            "user_id": req.user_id,
            "type": coerce_type(req.type),
            "title": req.title,
            "message": req.message,
            "related_id": _related(req.related_id),
            "action_url": req.action_url,
            "is_read": False,
            "created_at": now,
            "expires_at": now + self._ttl,
        }

    async def create_notification(self, req: NotificationRequest) -> Row:
        row = self._row(req, self._clock.now())
        created = (await self._store.insert(NOTIFICATIONS, [row])).first()
        logger.info("NotificationDispatcher: created notification %s for user %s (%s)", created["id"], req.user_id, row["type"])
        return created

    async def check_conflict(
        self,
        user_id: int,
        type: str,
        related_id: Optional[Any] = None,
        window_minutes: Optional[int] = None,
    ) -> bool:
        window = self._window_minutes if window_minutes is None else window_minutes
        cutoff = self._clock.now() - timedelta(minutes=window)
        filters = {"user_id": user_id, "type": coerce_type(type), "created_at__gte": cutoff}
        if related_id is None:
            filters["related_id__isnull"] = True
        else:
            filters["related_id"] = _related(related_id)

        rows, error = await self._store.select(NOTIFICATIONS, filters, limit=1)
        if error is not None:
            # never block delivery because the dedup lookup failed
            logger.error("NotificationDispatcher: conflict check failed, allowing send: %s", error)
            return False
        if rows:
            logger.info("NotificationDispatcher: duplicate %s notification for user %s (related %s)", type, user_id, related_id)
        return bool(rows)

    @asynccontextmanager
    async def _key_lock(self, key: Tuple):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def create_safe(
        self,
        req: NotificationRequest,
        prevent_duplicates: bool = True,
        window_minutes: Optional[int] = None,
    ) -> Optional[Row]:
        if not prevent_duplicates:
            return await self.create_notification(req)

        req = replace(req, type=coerce_type(req.type))
        key = (req.user_id, req.type, _related(req.related_id))
        async with self._key_lock(key):
            if await self.check_conflict(req.user_id, req.type, req.related_id, window_minutes):
                logger.info("NotificationDispatcher: skipping duplicate notification for user %s", req.user_id)
                return None
            return await self.create_notification(req)

    async def send_batch(self, requests: Sequence[NotificationRequest]) -> List[Row]:
        now = self._clock.now()
        inserted: List[Row] = []
        for index, start in enumerate(range(0, len(requests), BATCH_SIZE)):
            chunk = [self._row(req, now) for req in requests[start:start + BATCH_SIZE]]
            rows, error = await self._store.insert(NOTIFICATIONS, chunk)
            if error is not None:
                logger.error("NotificationDispatcher: batch insert failed at chunk %s: %s", index, error)
                raise BatchInsertError(index, inserted, error)
            inserted.extend(rows)
        logger.info("NotificationDispatcher: batch of %s notifications inserted", len(inserted))
        return inserted

    async def notify(self, req: NotificationRequest, prevent_duplicates: bool = True) -> DeliveryResult:
        """Best-effort in-app notification; never raises except on cancellation."""
        result = await deliver(IN_APP, req.user_id, self.create_safe(req, prevent_duplicates), self._timeout)
        if result.ok and result.value is None:
            return DeliveryResult(channel=IN_APP, recipient=req.user_id, ok=True, skipped=True)
        return result

    # Read-side operations used by the dashboard

    async def list_for_user(self, user_id: int, limit: int = 50, offset: int = 0, unread_only: bool = False) -> List[Row]:
        filters: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            filters["is_read"] = False
        return (await self._store.select(NOTIFICATIONS, filters, order_by=["-created_at"], offset=offset, limit=limit)).unwrap()

    async def unread_count(self, user_id: int) -> int:
        rows = (await self._store.select(NOTIFICATIONS, {"user_id": user_id, "is_read": False})).unwrap()
        return len(rows)

    async def mark_as_read(self, notification_id: int, user_id: int) -> Optional[Row]:
        result = await self._store.update(NOTIFICATIONS, {"id": notification_id, "user_id": user_id}, {"is_read": True})
        return result.first()

    async def mark_all_as_read(self, user_id: int) -> int:
        result = await self._store.update(NOTIFICATIONS, {"user_id": user_id, "is_read": False}, {"is_read": True})
        return len(result.unwrap())

    async def delete(self, notification_id: int, user_id: int) -> bool:
        result = await self._store.delete(NOTIFICATIONS, {"id": notification_id, "user_id": user_id})
        return bool(result.unwrap())

    async def delete_expired(self) -> int:
        result = await self._store.delete(NOTIFICATIONS, {"expires_at__lt": self._clock.now()})
        count = len(result.unwrap())
        logger.info("NotificationDispatcher: deleted %s expired notifications", count)
        return count
