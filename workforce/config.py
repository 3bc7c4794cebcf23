from functools import lru_cache
from typing import Optional, Set
from pydantic import Field
from pydantic_settings import BaseSettings

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _split_days(value: Optional[str]) -> Set[str]:
    if not value:
        return set()
    days = {day.strip().lower() for day in value.split(",") if day.strip()}
    unknown = days - set(WEEKDAYS)
    if unknown:
        raise ValueError(f"Invalid weekday names: {', '.join(sorted(unknown))}")
    return days


class Settings(BaseSettings):
    SECRET_KEY: str = Field("change-me-in-production")
    ALGORITHM: str = Field("HS256")

    DATABASE_URL: Optional[str] = None
    SQLALCHEMY_DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = Field(False)

    LOG_LEVEL: str = Field("INFO")
    TIMEZONE: str = Field("Africa/Lagos")

    # Office geofence. If latitude/longitude are missing the radius check is skipped.
    OFFICE_LATITUDE: Optional[float] = None
    OFFICE_LONGITUDE: Optional[float] = None
    OFFICE_ADDRESS: str = Field("Office Location")
    OFFICE_RADIUS_METERS: float = Field(100.0)

    # Comma-separated lowercase weekday names
    WORKING_DAYS: str = Field("monday,tuesday,wednesday,thursday,friday")
    ONSITE_REQUIRED_DAYS: str = Field("monday,tuesday,wednesday,thursday")

    WORK_START_TIME: str = Field("09:00")
    LATE_THRESHOLD_MINUTES: int = Field(5)

    CHECKOUT_REMINDER_TIME: str = Field("18:00")
    ABSENCE_SWEEP_TIME: str = Field("19:00")
    NOTIFICATION_CLEANUP_TIME: str = Field("02:00")

    NOTIFICATION_TTL_DAYS: int = Field(30)
    NOTIFICATION_DEDUP_WINDOW_MINUTES: int = Field(5)
    NOTIFY_ADMINS_OF_LATE_ARRIVALS: bool = Field(False)
    NOTIFY_ADMINS_OF_ABSENCES: bool = Field(True)

    # Shared secret for /cron/* endpoints (sent as "Authorization: Bearer <secret>")
    CRON_SECRET: Optional[str] = None

    DELIVERY_TIMEOUT_SECONDS: float = Field(10.0)
    SCHEDULER_ENABLED: bool = Field(True)
    SCHEDULER_TICK_SECONDS: float = Field(30.0)

    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = Field(587)
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = Field("hr@localhost")
    SMTP_USE_TLS: bool = Field(True)

    model_config = {
        "env_file": ".env",
        "extra": "allow",
    }

    @property
    def effective_database_url(self) -> str:
        url = self.SQLALCHEMY_DATABASE_URL or self.DATABASE_URL or "sqlite+aiosqlite:///./workforce.db"
        # Ensure asyncpg is used
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def working_days(self) -> Set[str]:
        return _split_days(self.WORKING_DAYS)

    @property
    def onsite_required_days(self) -> Set[str]:
        return _split_days(self.ONSITE_REQUIRED_DAYS)


@lru_cache
def get_settings() -> Settings:
    return Settings()
