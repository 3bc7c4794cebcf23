from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Any, Dict, List, Optional

from workforce.services.geofence import Coordinates


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    address: Optional[str] = None

    def to_coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude, self.accuracy, self.address)


class CheckInRequest(BaseModel):
    location: Optional[LocationIn] = None
    notes: Optional[str] = None


class CheckOutRequest(BaseModel):
    location: Optional[LocationIn] = None
    notes: Optional[str] = None


class CheckInResponse(BaseModel):
    attendance_id: int
    is_late: bool
    minutes_late: int
    message: str

    model_config = {"from_attributes": True}


class CheckOutResponse(BaseModel):
    attendance_id: int
    total_hours: float
    message: str

    model_config = {"from_attributes": True}


class AttendanceRecordResponse(BaseModel):
    id: int
    employee_id: int
    date: date
    status: str  # "absent", "checked_in", "checked_out"
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    is_late: bool = False
    minutes_late: int = 0
    check_in_location: Optional[Dict[str, Any]] = None
    check_out_location: Optional[Dict[str, Any]] = None
    total_hours: Optional[float] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class AttendanceHistoryResponse(BaseModel):
    records: List[AttendanceRecordResponse]
    page: int
    limit: int
    has_more: bool

    model_config = {"from_attributes": True}


class AttendanceStatsResponse(BaseModel):
    total_days: int
    present_days: int
    absent_days: int
    late_days: int
    average_hours: float
    total_minutes_late: int
    attendance_rate: float  # percent, 2 decimals

    model_config = {"from_attributes": True}


class EmployeeBrief(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    role: Optional[str] = None

    model_config = {"from_attributes": True}


class DailyReportEntry(AttendanceRecordResponse):
    employee: Optional[EmployeeBrief] = None


class AttendanceSummaryResponse(BaseModel):
    start_date: date
    end_date: date
    total_records: int
    present_days: int
    absent_days: int
    late_days: int
    attendance_rate: float  # percent of records, 2 decimals
    late_rate: float
    total_hours: float
    average_hours: float
    total_minutes_late: int
    average_minutes_late: int

    model_config = {"from_attributes": True}
