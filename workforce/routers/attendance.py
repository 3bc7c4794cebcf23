import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from workforce.container import Container
from workforce.core.auth import get_container, get_current_admin, get_current_user
from workforce.core.exceptions import CollaboratorFailure, DomainError, NotCheckedInError
from workforce.schemas.attendance import (
    AttendanceHistoryResponse,
    AttendanceRecordResponse,
    AttendanceStatsResponse,
    AttendanceSummaryResponse,
    CheckInRequest,
    CheckInResponse,
    CheckOutRequest,
    CheckOutResponse,
    DailyReportEntry,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/check-in", response_model=CheckInResponse)
async def check_in(
    payload: Optional[CheckInRequest] = None,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    payload = payload or CheckInRequest()
    try:
        location = payload.location.to_coordinates() if payload.location else None
        return await container.attendance.check_in(current_user["id"], location=location, notes=payload.notes)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("Check-in for employee %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to check in")


@router.post("/check-out", response_model=CheckOutResponse)
async def check_out(
    payload: Optional[CheckOutRequest] = None,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    payload = payload or CheckOutRequest()
    try:
        record = await container.attendance.get_today_status(current_user["id"])
        if record is None:
            raise NotCheckedInError()
        location = payload.location.to_coordinates() if payload.location else None
        return await container.attendance.check_out(record["id"], location=location, notes=payload.notes)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("Check-out for employee %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to check out")


@router.get("/status", response_model=Optional[AttendanceRecordResponse])
async def get_attendance_status(
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        return await container.attendance.get_today_status(current_user["id"])
    except CollaboratorFailure as e:
        logger.error("Status lookup for employee %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to load attendance status")


@router.get("/history", response_model=AttendanceHistoryResponse)
async def get_attendance_history(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 30,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    try:
        return await container.attendance.get_history(current_user["id"], start_date, end_date, page, limit)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("History lookup for employee %s failed: %s", current_user["id"], e)
        raise HTTPException(500, "Failed to load attendance history")


async def _stats(container: Container, employee_id: int, start_date, end_date):
    try:
        return await container.attendance.get_stats(employee_id, start_date, end_date)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("Stats for employee %s failed: %s", employee_id, e)
        raise HTTPException(500, "Failed to calculate attendance statistics")


@router.get("/stats", response_model=AttendanceStatsResponse)
async def get_attendance_stats(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    container: Container = Depends(get_container),
    current_user=Depends(get_current_user)
):
    return await _stats(container, current_user["id"], start_date, end_date)


@router.get("/employees/{employee_id}/stats", response_model=AttendanceStatsResponse)
async def get_employee_attendance_stats(
    employee_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    container: Container = Depends(get_container),
    admin=Depends(get_current_admin)
):
    """
    Admin only: statistics for any employee
    """
    return await _stats(container, employee_id, start_date, end_date)


@router.get("/employees/{employee_id}", response_model=AttendanceHistoryResponse)
async def get_employee_attendance_history(
    employee_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 30,
    container: Container = Depends(get_container),
    admin=Depends(get_current_admin)
):
    """
    Admin only: attendance history for any employee
    """
    try:
        if await container.directory.get(employee_id) is None:
            raise HTTPException(404, "Employee not found")
        return await container.attendance.get_history(employee_id, start_date, end_date, page, limit)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("History lookup for employee %s failed: %s", employee_id, e)
        raise HTTPException(500, "Failed to load attendance history")


@router.get("/report", response_model=List[DailyReportEntry])
async def get_daily_attendance_report(
    day: Optional[date] = Query(None, alias="date"),
    container: Container = Depends(get_container),
    admin=Depends(get_current_admin)
):
    """
    Admin only: every attendance record for a day, earliest check-in first
    """
    try:
        return await container.attendance.get_daily_report(day)
    except CollaboratorFailure as e:
        logger.error("Daily attendance report for %s failed: %s", day, e)
        raise HTTPException(500, "Failed to load attendance report")


@router.get("/summary", response_model=AttendanceSummaryResponse)
async def get_attendance_summary(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    container: Container = Depends(get_container),
    admin=Depends(get_current_admin)
):
    """
    Admin only: organisation-wide attendance totals
    """
    try:
        return await container.attendance.get_summary(start_date, end_date)
    except DomainError as e:
        raise HTTPException(400, str(e))
    except CollaboratorFailure as e:
        logger.error("Attendance summary failed: %s", e)
        raise HTTPException(500, "Failed to calculate attendance summary")
