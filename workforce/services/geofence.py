"""Distance, working-day and lateness calculations.

Everything here is a pure function over value types.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Collection, Optional

from workforce.config import WEEKDAYS
from workforce.core.exceptions import ValidationError

EARTH_RADIUS_METERS = 6371000.0
DEFAULT_LATE_THRESHOLD_MINUTES = 5


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    address: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.latitude, (int, float)) or not isinstance(self.longitude, (int, float)):
            raise ValidationError("Invalid location data")
        if not -90 <= self.latitude <= 90 or not -180 <= self.longitude <= 180:
            raise ValidationError("Coordinates out of range")
        if self.accuracy is not None and (not isinstance(self.accuracy, (int, float)) or self.accuracy < 0):
            raise ValidationError("Invalid location accuracy")

    def as_dict(self) -> dict:
        data = {"latitude": self.latitude, "longitude": self.longitude}
        if self.accuracy is not None:
            data["accuracy"] = self.accuracy
        if self.address:
            data["address"] = self.address
        return data


@dataclass(frozen=True)
class Lateness:
    is_late: bool
    minutes_late: int


def distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle (haversine) distance in meters."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_within_radius(point: Coordinates, office: Coordinates, radius_meters: float) -> bool:
    # boundary inclusive
    return distance(point, office) <= radius_meters


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def is_working_day(day: date, configured_days: Collection[str]) -> bool:
    return weekday_name(day) in configured_days


def compute_lateness(
    actual: datetime,
    scheduled_start: datetime,
    threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES,
) -> Lateness:
    """Whole minutes past the scheduled start; late once the threshold is reached."""
    elapsed = (actual - scheduled_start).total_seconds()
    minutes_late = max(0, math.floor(elapsed / 60))
    return Lateness(is_late=minutes_late >= threshold_minutes, minutes_late=minutes_late)
