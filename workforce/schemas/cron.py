from pydantic import BaseModel
from typing import List, Optional


class ReminderRunResponse(BaseModel):
    count: int
    message: str
    total_employees: int = 0
    notifications_sent: int = 0
    emails_sent: int = 0
    errors: List[str] = []


class SweepRunResponse(BaseModel):
    marked_absent: int
    skipped: int
    errors: List[str]
    message: str


class CronJobInfo(BaseModel):
    name: str
    schedule: Optional[str] = None  # local "HH:MM", or None when checked on every tick


class CronHealthResponse(BaseModel):
    status: str
    scheduler_enabled: bool
    jobs: List[CronJobInfo]
