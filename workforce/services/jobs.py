import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

from workforce.core.clock import Clock, day_bounds
from workforce.store import JOB_LOGS, RecordStore, Row

logger = logging.getLogger(__name__)

STARTED = "started"
COMPLETED = "completed"
FAILED = "failed"


class JobLog:
    """Append-only JobExecutionLog writer.

    A run writes a ``started`` row, then one ``completed`` or ``failed`` row
    carrying the same start time, the duration and the run's metadata.
    Write failures are logged and never abort the job itself.
    """

    def __init__(self, store: RecordStore, clock: Clock):
        self._store = store
        self._clock = clock

    async def _append(self, row: Row) -> None:
        _, error = await self._store.insert(JOB_LOGS, [row])
        if error is not None:
            logger.error("JobLog: could not record %s for %s: %s", row["status"], row["job_name"], error)

    async def start(self, job_name: str, metadata: Optional[Dict[str, Any]] = None) -> datetime:
        started_at = self._clock.now()
        await self._append({
            "job_name": job_name,
            "status": STARTED,
            "start_time": started_at,
            "records_processed": 0,
            "job_metadata": metadata or {},
        })
        logger.info("Job %s started", job_name)
        return started_at

    async def _finish(self, job_name, status, started_at, records_processed, metadata) -> None:
        ended_at = self._clock.now()
        duration = int((ended_at - started_at).total_seconds())
        await self._append({
            "job_name": job_name,
            "status": status,
            "start_time": started_at,
            "end_time": ended_at,
            "duration_seconds": duration,
            "records_processed": records_processed,
            "job_metadata": metadata or {},
        })
        logger.info("Job %s %s in %ss (%s records)", job_name, status, duration, records_processed)

    async def complete(self, job_name: str, started_at: datetime, records_processed: int = 0,
                       metadata: Optional[Dict[str, Any]] = None) -> None:
        await self._finish(job_name, COMPLETED, started_at, records_processed, metadata)

    async def fail(self, job_name: str, started_at: datetime, error: Exception,
                   metadata: Optional[Dict[str, Any]] = None) -> None:
        data = dict(metadata or {})
        data["error"] = str(error)
        await self._finish(job_name, FAILED, started_at, 0, data)

    async def has_completed(self, job_name: str, day: date) -> bool:
        """True when a completed run of ``job_name`` started on the local ``day``.

        A failed lookup reads as "not completed" so the job still gets its chance.
        """
        start, end = day_bounds(day, self._clock.tz)
        rows, error = await self._store.select(
            JOB_LOGS,
            {"job_name": job_name, "status": COMPLETED, "start_time__gte": start, "start_time__lt": end},
            limit=1,
        )
        if error is not None:
            logger.error("JobLog: lookup for %s failed: %s", job_name, error)
            return False
        return bool(rows)
