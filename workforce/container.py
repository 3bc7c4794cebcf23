import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from workforce.config import Settings
from workforce.core.clock import Clock, SystemClock
from workforce.database import Base, create_engine_and_sessionmaker
from workforce.models import attendance, employee, job_log, notification  # noqa: F401 - registers tables
from workforce.services.attendance import AttendanceStateMachine
from workforce.services.delivery import EmailChannel, SmtpEmailChannel
from workforce.services.directory import EmployeeDirectory
from workforce.services.jobs import JobLog
from workforce.services.notifications import NotificationDispatcher
from workforce.services.policy import AttendancePolicy
from workforce.services.reminders import ReminderScheduler
from workforce.services.scheduler import DailyTrigger, JobScheduler, ScheduledJob
from workforce.services.sweeper import JOB_NAME as SWEEP_JOB, AbsenceSweeper
from workforce.store import RecordStore, SqlAlchemyRecordStore

logger = logging.getLogger(__name__)

CLEANUP_JOB = "notification_cleanup"


@dataclass(frozen=True)
class Container:
    settings: Settings
    policy: AttendancePolicy
    clock: Clock

    engine: Optional[AsyncEngine]
    sessionmaker: Optional[async_sessionmaker]
    store: RecordStore
    email: EmailChannel

    directory: EmployeeDirectory
    job_log: JobLog
    dispatcher: NotificationDispatcher
    attendance: AttendanceStateMachine
    sweeper: AbsenceSweeper
    reminders: ReminderScheduler
    scheduler: JobScheduler


def build_jobs(policy: AttendancePolicy, job_log: JobLog, sweeper: AbsenceSweeper,
               reminders: ReminderScheduler, dispatcher: NotificationDispatcher) -> List[ScheduledJob]:
    async def absence_sweep(now: datetime):
        if await job_log.has_completed(SWEEP_JOB, now.date()):
            logger.info("Absence sweep already completed for %s", now.date())
            return None
        return await sweeper.sweep(now.date())

    async def checkout_reminders(now: datetime):
        return await reminders.tick(now)

    async def notification_cleanup(now: datetime):
        started_at = await job_log.start(CLEANUP_JOB)
        try:
            deleted = await dispatcher.delete_expired()
        except Exception as e:
            await job_log.fail(CLEANUP_JOB, started_at, e)
            raise
        await job_log.complete(CLEANUP_JOB, started_at, deleted)
        return deleted

    return [
        ScheduledJob(SWEEP_JOB, absence_sweep, DailyTrigger(policy.absence_sweep_time, policy.working_days)),
        ScheduledJob("checkout_reminders", checkout_reminders),
        ScheduledJob(CLEANUP_JOB, notification_cleanup, DailyTrigger(policy.cleanup_time)),
    ]


def build_container(
    settings: Settings,
    *,
    clock: Optional[Clock] = None,
    store: Optional[RecordStore] = None,
    email: Optional[EmailChannel] = None,
) -> Container:
    policy = AttendancePolicy.from_settings(settings)
    clock = clock or SystemClock(settings.TIMEZONE)

    engine = sessionmaker = None
    if store is None:
        engine, sessionmaker = create_engine_and_sessionmaker(settings)
        store = SqlAlchemyRecordStore(sessionmaker, Base.metadata.tables)
    email = email or SmtpEmailChannel(settings)

    directory = EmployeeDirectory(store)
    job_log = JobLog(store, clock)
    dispatcher = NotificationDispatcher(
        store,
        clock,
        ttl_days=settings.NOTIFICATION_TTL_DAYS,
        dedup_window_minutes=settings.NOTIFICATION_DEDUP_WINDOW_MINUTES,
        delivery_timeout=settings.DELIVERY_TIMEOUT_SECONDS,
    )
    attendance_service = AttendanceStateMachine(store, dispatcher, email, directory, policy, clock)
    sweeper = AbsenceSweeper(store, dispatcher, email, directory, job_log, policy, clock)
    reminders = ReminderScheduler(store, dispatcher, email, directory, job_log, policy, clock)
    scheduler = JobScheduler(
        clock,
        build_jobs(policy, job_log, sweeper, reminders, dispatcher),
        tick_seconds=settings.SCHEDULER_TICK_SECONDS,
    )

    return Container(
        settings=settings,
        policy=policy,
        clock=clock,
        engine=engine,
        sessionmaker=sessionmaker,
        store=store,
        email=email,
        directory=directory,
        job_log=job_log,
        dispatcher=dispatcher,
        attendance=attendance_service,
        sweeper=sweeper,
        reminders=reminders,
        scheduler=scheduler,
    )
