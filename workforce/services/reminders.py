"""Checkout reminders for employees still checked in at the end of the day.

A reminder goes out at most once per attendance record. Each record's
``checkout_reminder_sent`` flag is claimed with a conditional update before
anything is sent, and the flag stays set whatever the delivery outcome.
Scheduled ticks additionally skip the run once a completed job log exists
for the day.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, NamedTuple, Optional

from workforce.core.clock import Clock, local_day
from workforce.services.delivery import DeliveryResult, EmailChannel, send_email
from workforce.services.directory import EmployeeDirectory
from workforce.services.geofence import is_working_day
from workforce.services.jobs import JobLog
from workforce.services.notifications import NotificationDispatcher, NotificationRequest, NotificationType
from workforce.services.policy import AttendancePolicy
from workforce.store import ATTENDANCE, RecordStore, Row

logger = logging.getLogger(__name__)

JOB_NAME = "daily_checkout_monitoring"
WINDOW_MINUTES = 1


class Eligibility(NamedTuple):
    eligible: bool
    reason: str


@dataclass
class ReminderResult:
    total_employees: int = 0
    reminded: int = 0
    notifications_sent: int = 0
    emails_sent: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


class ReminderScheduler:
    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher,
        email: EmailChannel,
        directory: EmployeeDirectory,
        job_log: JobLog,
        policy: AttendancePolicy,
        clock: Clock,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._email = email
        self._directory = directory
        self._job_log = job_log
        self._policy = policy
        self._clock = clock
        self._lock = asyncio.Lock()

    def _in_window(self, local_now: datetime) -> bool:
        target = self._policy.checkout_reminder_time
        now_minutes = local_now.hour * 60 + local_now.minute
        target_minutes = target.hour * 60 + target.minute
        return abs(now_minutes - target_minutes) <= WINDOW_MINUTES

    async def is_eligible(self, now: Optional[datetime] = None) -> Eligibility:
        local_now = (now or self._clock.now()).astimezone(self._policy.tz)
        day = local_now.date()
        if not is_working_day(day, self._policy.onsite_days):
            return Eligibility(False, "not an onsite-required day")
        if not self._in_window(local_now):
            return Eligibility(False, "outside the reminder window")
        if await self._job_log.has_completed(JOB_NAME, day):
            return Eligibility(False, "already completed today")
        return Eligibility(True, "due")

    async def tick(self, now: Optional[datetime] = None) -> Optional[ReminderResult]:
        """Run if due and no run is already in flight."""
        if self._lock.locked():
            logger.debug("Checkout reminders already running; tick skipped")
            return None
        async with self._lock:
            eligibility = await self.is_eligible(now)
            if not eligibility.eligible:
                logger.debug("Checkout reminders not due: %s", eligibility.reason)
                return None
            return await self._run(local_day(now or self._clock.now(), self._policy.tz))

    async def trigger(self, day: Optional[date] = None) -> ReminderResult:
        # manual path: no day or time gate, per-record flags still apply
        async with self._lock:
            return await self._run(day or local_day(self._clock.now(), self._policy.tz))

    async def _run(self, day: date) -> ReminderResult:
        started_at = await self._job_log.start(JOB_NAME, {"date": day.isoformat()})
        try:
            records = (await self._store.select(ATTENDANCE, {
                "date": day,
                "status": "checked_in",
                "check_out_time__isnull": True,
                "checkout_reminder_sent": False,
            })).unwrap()
            employees = await self._directory.by_ids({r["employee_id"] for r in records})
        except Exception as e:
            logger.error("Checkout reminders for %s failed to start: %s", day, e)
            await self._job_log.fail(JOB_NAME, started_at, e, {"date": day.isoformat()})
            raise

        logger.info("Checkout reminders for %s: %s employees still checked in", day, len(records))
        result = ReminderResult(total_employees=len(records))
        await asyncio.gather(*(self._remind(record, employees.get(record["employee_id"]), result) for record in records))

        await self._job_log.complete(JOB_NAME, started_at, result.notifications_sent, {
            "date": day.isoformat(),
            "total_employees": result.total_employees,
            "reminded": result.reminded,
            "notifications_sent": result.notifications_sent,
            "emails_sent": result.emails_sent,
            "skipped": result.skipped,
            "errors": result.errors,
        })
        logger.info(
            "Checkout reminders for %s: %s notifications, %s emails, %s errors",
            day, result.notifications_sent, result.emails_sent, len(result.errors),
        )
        return result

    async def _remind(self, record: Row, employee: Optional[Row], result: ReminderResult) -> None:
        claimed, error = await self._store.update(
            ATTENDANCE,
            {"id": record["id"], "checkout_reminder_sent": False},
            {"checkout_reminder_sent": True, "updated_at": self._clock.now()},
        )
        if error is not None:
            result.errors.append(f"Attendance {record['id']}: could not claim reminder: {error}")
            return
        if not claimed:
            result.skipped += 1
            return
        result.reminded += 1

        employee_id = record["employee_id"]
        name = employee["full_name"] if employee else f"Employee {employee_id}"
        in_app: DeliveryResult = await self._dispatcher.notify(NotificationRequest(
            user_id=employee_id,
            type=NotificationType.CHECKOUT,
            title="Checkout Reminder",
            message=(
                "Don't forget to check out before leaving the office. "
                "Please complete your checkout to record your work hours accurately."
            ),
            related_id=record["id"],
            action_url="/attendance",
        ))
        if in_app.ok and not in_app.skipped:
            result.notifications_sent += 1
        elif not in_app.ok:
            result.errors.append(f"{name}: notification failed: {in_app.error}")

        email = await send_email(
            self._email,
            employee.get("email") if employee else None,
            "Checkout Reminder - Don't Forget to Check Out",
            f"Hello {name},\n\nThis is a friendly reminder that you haven't checked out yet today.\n"
            "Please remember to check out before leaving the office.\n\nBest regards,\nHR Team",
            self._policy.delivery_timeout,
        )
        if email.ok and not email.skipped:
            result.emails_sent += 1
        elif not email.ok:
            result.errors.append(f"{name}: email failed: {email.error}")
