import logging

from fastapi import APIRouter, Depends, HTTPException

from workforce.container import Container
from workforce.core.auth import get_container, verify_cron_secret
from workforce.core.clock import local_day
from workforce.services.geofence import is_working_day
from workforce.schemas.cron import CronHealthResponse, CronJobInfo, ReminderRunResponse, SweepRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/checkout-reminders", response_model=ReminderRunResponse, dependencies=[Depends(verify_cron_secret)])
async def checkout_reminders(container: Container = Depends(get_container)):
    today = local_day(container.clock.now(), container.policy.tz)
    if not is_working_day(today, container.policy.working_days):
        return ReminderRunResponse(count=0, message="Not a working day; no reminders sent")

    try:
        result = await container.reminders.trigger(today)
    except Exception as e:
        logger.error("Cron checkout reminders failed: %s", e)
        raise HTTPException(500, "Failed to send checkout reminders")

    return ReminderRunResponse(
        count=result.reminded,
        message=f"Sent checkout reminders to {result.reminded} employees",
        total_employees=result.total_employees,
        notifications_sent=result.notifications_sent,
        emails_sent=result.emails_sent,
        errors=result.errors,
    )


@router.get("/absence-sweep", response_model=SweepRunResponse, dependencies=[Depends(verify_cron_secret)])
async def absence_sweep(container: Container = Depends(get_container)):
    today = local_day(container.clock.now(), container.policy.tz)
    if not is_working_day(today, container.policy.working_days):
        return SweepRunResponse(marked_absent=0, skipped=0, errors=[], message="Not a working day; no absences recorded")

    try:
        result = await container.sweeper.sweep(today)
    except Exception as e:
        logger.error("Cron absence sweep failed: %s", e)
        raise HTTPException(500, "Failed to run absence sweep")
    return SweepRunResponse(
        marked_absent=result.marked_absent,
        skipped=result.skipped,
        errors=result.errors,
        message=f"Marked {result.marked_absent} employees absent",
    )


@router.get("/health", response_model=CronHealthResponse)
async def cron_health(container: Container = Depends(get_container)):
    jobs = [
        CronJobInfo(name=job.name, schedule=job.trigger.at.strftime("%H:%M") if job.trigger else None)
        for job in container.scheduler.jobs
    ]
    return CronHealthResponse(status="ok", scheduler_enabled=container.settings.SCHEDULER_ENABLED, jobs=jobs)
