from dataclasses import dataclass
from datetime import time
from typing import FrozenSet, Optional
from zoneinfo import ZoneInfo

from workforce.config import Settings
from workforce.core.clock import parse_clock_time
from workforce.services.geofence import Coordinates


@dataclass(frozen=True)
class AttendancePolicy:
    """Attendance rules resolved once from Settings."""

    tz: ZoneInfo
    office: Optional[Coordinates]
    radius_meters: float
    working_days: FrozenSet[str]
    onsite_days: FrozenSet[str]
    work_start: time
    late_threshold_minutes: int
    checkout_reminder_time: time
    absence_sweep_time: time
    cleanup_time: time
    notify_admins_of_late_arrivals: bool
    notify_admins_of_absences: bool
    delivery_timeout: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "AttendancePolicy":
        office = None
        if settings.OFFICE_LATITUDE is not None and settings.OFFICE_LONGITUDE is not None:
            office = Coordinates(
                latitude=settings.OFFICE_LATITUDE,
                longitude=settings.OFFICE_LONGITUDE,
                address=settings.OFFICE_ADDRESS,
            )
        return cls(
            tz=ZoneInfo(settings.TIMEZONE),
            office=office,
            radius_meters=settings.OFFICE_RADIUS_METERS,
            working_days=frozenset(settings.working_days),
            onsite_days=frozenset(settings.onsite_required_days),
            work_start=parse_clock_time(settings.WORK_START_TIME),
            late_threshold_minutes=settings.LATE_THRESHOLD_MINUTES,
            checkout_reminder_time=parse_clock_time(settings.CHECKOUT_REMINDER_TIME),
            absence_sweep_time=parse_clock_time(settings.ABSENCE_SWEEP_TIME),
            cleanup_time=parse_clock_time(settings.NOTIFICATION_CLEANUP_TIME),
            notify_admins_of_late_arrivals=settings.NOTIFY_ADMINS_OF_LATE_ARRIVALS,
            notify_admins_of_absences=settings.NOTIFY_ADMINS_OF_ABSENCES,
            delivery_timeout=settings.DELIVERY_TIMEOUT_SECONDS,
        )
