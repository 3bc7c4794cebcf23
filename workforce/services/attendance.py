import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from workforce.core.clock import Clock, local_day
from workforce.core.exceptions import (
    AlreadyCheckedOutError,
    ConflictError,
    DuplicateCheckInError,
    NonWorkingDayError,
    NotCheckedInError,
    OutOfRangeError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from workforce.services.delivery import IN_APP, DeliveryResult, EmailChannel, send_email
from workforce.services.directory import EmployeeDirectory
from workforce.services.geofence import Coordinates, compute_lateness, distance, is_working_day, weekday_name
from workforce.services.notifications import NotificationDispatcher, NotificationRequest, NotificationType
from workforce.services.policy import AttendancePolicy
from workforce.store import ATTENDANCE, RecordStore, Row

logger = logging.getLogger(__name__)

ABSENT = "absent"
CHECKED_IN = "checked_in"
CHECKED_OUT = "checked_out"

MAX_PAGE_SIZE = 100
DEFAULT_STATS_DAYS = 30


@dataclass(frozen=True)
class CheckInResult:
    attendance_id: int
    is_late: bool
    minutes_late: int
    message: str
    notifications: List[DeliveryResult] = field(default_factory=list)


@dataclass(frozen=True)
class CheckOutResult:
    attendance_id: int
    total_hours: float
    message: str


@dataclass(frozen=True)
class HistoryPage:
    records: List[Row]
    page: int
    limit: int
    has_more: bool


@dataclass(frozen=True)
class AttendanceStats:
    total_days: int
    present_days: int
    absent_days: int
    late_days: int
    average_hours: float
    total_minutes_late: int
    attendance_rate: float


@dataclass(frozen=True)
class AttendanceSummary:
    start_date: date
    end_date: date
    total_records: int
    present_days: int
    absent_days: int
    late_days: int
    attendance_rate: float
    late_rate: float
    total_hours: float
    average_hours: float
    total_minutes_late: int
    average_minutes_late: int


class AttendanceStateMachine:
    """Daily attendance transitions: absent -> checked_in -> checked_out.

    One record exists per employee per local calendar day. The uniqueness of
    (employee_id, date) is enforced by the store; a lost race on insert is
    reported as a duplicate check-in.
    """

    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher,
        email: EmailChannel,
        directory: EmployeeDirectory,
        policy: AttendancePolicy,
        clock: Clock,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._email = email
        self._directory = directory
        self._policy = policy
        self._clock = clock

    def _moment(self, at: Optional[datetime]) -> datetime:
        if at is None:
            return self._clock.now()
        if at.tzinfo is None:
            raise ValidationError("Timestamp must be timezone-aware")
        return at

    def today(self, at: Optional[datetime] = None) -> date:
        return local_day(self._moment(at), self._policy.tz)

    async def get_today_status(self, employee_id: int) -> Optional[Row]:
        return (await self._store.select(ATTENDANCE, {"employee_id": employee_id, "date": self.today()}, limit=1)).first()

    async def check_in(
        self,
        employee_id: int,
        location: Optional[Coordinates] = None,
        at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> CheckInResult:
        if not employee_id:
            raise ValidationError("Employee ID is required")
        if location is not None and not isinstance(location, Coordinates):
            raise ValidationError("Invalid location data")
        moment = self._moment(at)
        day = local_day(moment, self._policy.tz)

        existing = (await self._store.select(ATTENDANCE, {"employee_id": employee_id, "date": day}, limit=1)).first()
        if existing is not None:
            raise DuplicateCheckInError()

        if not is_working_day(day, self._policy.working_days):
            raise NonWorkingDayError(weekday_name(day))

        if location is not None and self._policy.office is not None:
            meters = distance(location, self._policy.office)
            if meters > self._policy.radius_meters:
                logger.info("Check-in rejected for employee %s: %.1fm from office", employee_id, meters)
                raise OutOfRangeError(meters, self._policy.radius_meters)

        scheduled = datetime.combine(day, self._policy.work_start, tzinfo=self._policy.tz)
        lateness = compute_lateness(moment, scheduled, self._policy.late_threshold_minutes)

        rows, error = await self._store.insert(ATTENDANCE, [{
            "employee_id": employee_id,
            "date": day,
            "status": CHECKED_IN,
            "check_in_time": moment,
            "check_in_location": location.as_dict() if location else None,
            "is_late": lateness.is_late,
            "minutes_late": lateness.minutes_late,
            "checkout_reminder_sent": False,
            "notes": notes,
            "created_at": moment,
        }])
        if isinstance(error, ConflictError):
            raise DuplicateCheckInError()
        if error is not None:
            raise error
        record = rows[0]
        logger.info("Employee %s checked in (attendance %s, late=%s)", employee_id, record["id"], lateness.is_late)

        message = "Checked in successfully"
        deliveries: List[DeliveryResult] = []
        if lateness.is_late:
            message = f"Checked in successfully. You are {lateness.minutes_late} minutes late."
            deliveries = await self._notify_late(employee_id, record["id"], lateness.minutes_late, moment)

        return CheckInResult(
            attendance_id=record["id"],
            is_late=lateness.is_late,
            minutes_late=lateness.minutes_late,
            message=message,
            notifications=deliveries,
        )

    async def _notify_late(self, employee_id: int, attendance_id: int, minutes_late: int, moment: datetime) -> List[DeliveryResult]:
        clock_time = moment.astimezone(self._policy.tz).strftime("%H:%M")
        try:
            employee = await self._directory.get(employee_id)
            admins = await self._directory.admins() if self._policy.notify_admins_of_late_arrivals else []
        except StoreError as e:
            logger.error("Late arrival notification for employee %s skipped: %s", employee_id, e)
            return [DeliveryResult.failure(IN_APP, employee_id, str(e))]

        name = employee["full_name"] if employee else f"Employee {employee_id}"
        sends = [
            self._dispatcher.notify(NotificationRequest(
                user_id=employee_id,
                type=NotificationType.LATE_ARRIVAL,
                title="Late Arrival Recorded",
                message=(
                    f"You arrived {minutes_late} minutes late today at {clock_time}. "
                    "Please try to arrive on time to maintain good attendance records."
                ),
                related_id=attendance_id,
                action_url="/attendance",
            )),
        ]
        if employee:
            sends.append(send_email(
                self._email,
                employee.get("email"),
                "Late Arrival Notice - Attendance Reminder",
                f"Hello {name},\n\nYou arrived {minutes_late} minutes late today at {clock_time}.\n"
                "Please make an effort to arrive on time for future work days.\n\nBest regards,\nHR Team",
                self._policy.delivery_timeout,
            ))
        for admin in admins:
            sends.append(self._dispatcher.notify(NotificationRequest(
                user_id=admin["id"],
                type=NotificationType.LATE_ARRIVAL,
                title=f"Late Arrival: {name}",
                message=f"{name} arrived {minutes_late} minutes late at {clock_time}.",
                related_id=attendance_id,
                action_url="/admin/attendance",
            )))

        results = list(await asyncio.gather(*sends))
        for result in results:
            if not result.ok:
                logger.warning("Late arrival %s delivery to %s failed: %s", result.channel, result.recipient, result.error)
        return results

    async def check_out(
        self,
        attendance_id: int,
        location: Optional[Coordinates] = None,
        at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> CheckOutResult:
        if location is not None and not isinstance(location, Coordinates):
            raise ValidationError("Invalid location data")
        record = (await self._store.select(ATTENDANCE, {"id": attendance_id}, limit=1)).first()
        if record is None:
            raise RecordNotFoundError()
        if record["status"] == CHECKED_OUT:
            raise AlreadyCheckedOutError()
        if record["status"] != CHECKED_IN or record["check_in_time"] is None:
            raise NotCheckedInError()

        moment = self._moment(at)
        day = local_day(moment, self._policy.tz)
        if not is_working_day(day, self._policy.working_days):
            raise NonWorkingDayError(weekday_name(day))

        elapsed = (moment - record["check_in_time"]).total_seconds()
        if elapsed < 0:
            logger.warning("Checkout for attendance %s precedes check-in by %ss; recording 0 hours", attendance_id, -elapsed)
            elapsed = 0
        total_hours = round(elapsed / 3600, 2)

        combined_notes = record.get("notes")
        if notes:
            combined_notes = f"{combined_notes}\nCheckout: {notes}" if combined_notes else f"Checkout: {notes}"

        rows = (await self._store.update(
            ATTENDANCE,
            {"id": attendance_id, "status": CHECKED_IN},
            {
                "status": CHECKED_OUT,
                "check_out_time": moment,
                "check_out_location": location.as_dict() if location else None,
                "total_hours": total_hours,
                "notes": combined_notes,
                "updated_at": moment,
            },
        )).unwrap()
        if not rows:
            # another checkout won the conditional update
            raise AlreadyCheckedOutError()

        logger.info("Attendance %s checked out after %s hours", attendance_id, total_hours)
        return CheckOutResult(
            attendance_id=attendance_id,
            total_hours=total_hours,
            message=f"Checked out successfully. Total hours: {total_hours}",
        )

    async def get_history(
        self,
        employee_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 30,
    ) -> HistoryPage:
        if page < 1:
            raise ValidationError("Page must be 1 or greater")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("Start date must not be after end date")

        filters = {"employee_id": employee_id}
        if start_date:
            filters["date__gte"] = start_date
        if end_date:
            filters["date__lte"] = end_date
        rows = (await self._store.select(
            ATTENDANCE, filters, order_by=["-date"], offset=(page - 1) * limit, limit=limit + 1,
        )).unwrap()
        return HistoryPage(records=rows[:limit], page=page, limit=limit, has_more=len(rows) > limit)

    async def get_stats(
        self,
        employee_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> AttendanceStats:
        end = end_date or self.today()
        start = start_date or end - timedelta(days=DEFAULT_STATS_DAYS)
        if start > end:
            raise ValidationError("Start date must not be after end date")

        records = (await self._store.select(
            ATTENDANCE, {"employee_id": employee_id, "date__gte": start, "date__lte": end},
        )).unwrap()

        business_days = sum(
            1 for offset in range((end - start).days + 1)
            if is_working_day(start + timedelta(days=offset), self._policy.working_days)
        )
        present = [r for r in records if r["status"] in (CHECKED_IN, CHECKED_OUT)]
        total_hours = sum(r.get("total_hours") or 0 for r in present)
        average_hours = total_hours / len(present) if present else 0
        rate = len(present) / business_days * 100 if business_days else 0

        return AttendanceStats(
            total_days=business_days,
            present_days=len(present),
            absent_days=max(0, business_days - len(present)),
            late_days=sum(1 for r in present if r.get("is_late")),
            average_hours=round(average_hours, 2),
            total_minutes_late=sum(r.get("minutes_late") or 0 for r in present),
            attendance_rate=round(rate, 2),
        )

    async def get_daily_report(self, day: Optional[date] = None) -> List[Row]:
        """Every record for ``day`` with its employee attached, earliest check-in first."""
        day = day or self.today()
        records = (await self._store.select(ATTENDANCE, {"date": day})).unwrap()
        employees = await self._directory.by_ids({r["employee_id"] for r in records})
        # absent rows have no check-in time and go last
        records.sort(key=lambda r: (r["check_in_time"] is None, r["check_in_time"] or datetime.min, r["employee_id"]))
        for record in records:
            record["employee"] = employees.get(record["employee_id"])
        return records

    async def get_summary(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> AttendanceSummary:
        """Organisation-wide totals over every record in the range."""
        end = end_date or self.today()
        start = start_date or end - timedelta(days=DEFAULT_STATS_DAYS)
        if start > end:
            raise ValidationError("Start date must not be after end date")

        records = (await self._store.select(ATTENDANCE, {"date__gte": start, "date__lte": end})).unwrap()
        present = [r for r in records if r["status"] != ABSENT]
        late = [r for r in records if r.get("is_late")]
        total_hours = sum(r.get("total_hours") or 0 for r in present)
        total_minutes_late = sum(r.get("minutes_late") or 0 for r in late)

        def rate(part: int) -> float:
            return round(part / len(records) * 100, 2) if records else 0

        return AttendanceSummary(
            start_date=start,
            end_date=end,
            total_records=len(records),
            present_days=len(present),
            absent_days=len(records) - len(present),
            late_days=len(late),
            attendance_rate=rate(len(present)),
            late_rate=rate(len(late)),
            total_hours=round(total_hours, 2),
            average_hours=round(total_hours / len(present), 2) if present else 0,
            total_minutes_late=total_minutes_late,
            average_minutes_late=round(total_minutes_late / len(late)) if late else 0,
        )
