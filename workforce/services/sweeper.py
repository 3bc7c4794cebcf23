import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from workforce.core.clock import Clock, local_day
from workforce.core.exceptions import ConflictError
from workforce.services.delivery import DeliveryResult, EmailChannel, send_email
from workforce.services.directory import EmployeeDirectory
from workforce.services.geofence import is_working_day
from workforce.services.jobs import JobLog
from workforce.services.notifications import NotificationDispatcher, NotificationRequest, NotificationType
from workforce.services.policy import AttendancePolicy
from workforce.store import ATTENDANCE, RecordStore, Row

logger = logging.getLogger(__name__)

JOB_NAME = "absence_sweep"


@dataclass
class SweepResult:
    marked_absent: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    deliveries: List[DeliveryResult] = field(default_factory=list)


class AbsenceSweeper:
    """Marks every active employee without a record for the day as absent."""

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

    async def sweep(self, day: Optional[date] = None) -> SweepResult:
        day = day or local_day(self._clock.now(), self._policy.tz)
        if not is_working_day(day, self._policy.working_days):
            logger.info("Absence sweep for %s skipped: not a working day", day)
            return SweepResult()

        started_at = await self._job_log.start(JOB_NAME, {"date": day.isoformat()})

        try:
            employees = await self._directory.active()
            records = (await self._store.select(ATTENDANCE, {"date": day})).unwrap()
            admins = await self._directory.admins() if self._policy.notify_admins_of_absences else []
        except Exception as e:
            logger.error("Absence sweep for %s could not start: %s", day, e)
            await self._job_log.fail(JOB_NAME, started_at, e, {"date": day.isoformat()})
            raise

        present = {r["employee_id"] for r in records}
        missing = [e for e in employees if e["id"] not in present]
        logger.info("Absence sweep for %s: %s active, %s without a record", day, len(employees), len(missing))

        result = SweepResult()
        outcomes = await asyncio.gather(*(self._mark_absent(employee, day, admins, result) for employee in missing))
        result.marked_absent = sum(1 for marked in outcomes if marked)

        logger.info(
            "Absence sweep for %s finished: %s marked, %s skipped, %s errors",
            day, result.marked_absent, result.skipped, len(result.errors),
        )
        await self._job_log.complete(JOB_NAME, started_at, result.marked_absent, {
            "date": day.isoformat(),
            "skipped": result.skipped,
            "errors": result.errors,
        })
        return result

    async def _mark_absent(self, employee: Row, day: date, admins: List[Row], result: SweepResult) -> bool:
        now = self._clock.now()
        rows, error = await self._store.insert(ATTENDANCE, [{
            "employee_id": employee["id"],
            "date": day,
            "status": "absent",
            "is_late": False,
            "minutes_late": 0,
            "checkout_reminder_sent": False,
            "created_at": now,
        }])
        if isinstance(error, ConflictError):
            # checked in between the read and the insert
            logger.info("Employee %s already has a record for %s; not marking absent", employee["id"], day)
            result.skipped += 1
            return False
        if error is not None:
            message = f"Failed to mark {employee['full_name']} as absent: {error}"
            logger.error(message)
            result.errors.append(message)
            return False

        deliveries = await self._notify_absence(employee, rows[0]["id"], day, admins)
        result.deliveries.extend(deliveries)
        for delivery in deliveries:
            if not delivery.ok:
                result.errors.append(f"{employee['full_name']}: {delivery.channel} to {delivery.recipient} failed: {delivery.error}")
        return True

    async def _notify_absence(self, employee: Row, attendance_id: int, day: date, admins: List[Row]) -> List[DeliveryResult]:
        day_str = day.isoformat()
        name = employee["full_name"]
        sends = [
            self._dispatcher.notify(NotificationRequest(
                user_id=employee["id"],
                type=NotificationType.ABSENCE,
                title="Absence Recorded",
                message=(
                    f"You were marked as absent on {day_str}. If this is incorrect, "
                    "please contact HR immediately to update your attendance record."
                ),
                related_id=attendance_id,
                action_url="/attendance",
            )),
            send_email(
                self._email,
                employee.get("email"),
                "Absence Notice - Attendance Record",
                f"Hello {name},\n\nYou were marked as absent on {day_str}.\n"
                "If you believe this record is incorrect, please contact HR to have it reviewed.\n\n"
                "Best regards,\nHR Team",
                self._policy.delivery_timeout,
            ),
        ]
        for admin in admins:
            sends.append(self._dispatcher.notify(NotificationRequest(
                user_id=admin["id"],
                type=NotificationType.ABSENCE,
                title=f"Employee Absent: {name}",
                message=f"{name} was marked as absent on {day_str}.",
                related_id=attendance_id,
                action_url="/admin/attendance",
            )))

        deliveries = list(await asyncio.gather(*sends))
        for delivery in deliveries:
            if not delivery.ok:
                logger.warning("Absence %s delivery to %s failed: %s", delivery.channel, delivery.recipient, delivery.error)
        return deliveries
