from sqlalchemy import Boolean, Column, Date, Float, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from workforce.database import Base, UtcDateTime, utcnow


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)  # local calendar day, not a timestamp
    status = Column(String, nullable=False)  # absent, checked_in, checked_out
    check_in_time = Column(UtcDateTime, nullable=True)
    check_out_time = Column(UtcDateTime, nullable=True)
    is_late = Column(Boolean, nullable=False, default=False)
    minutes_late = Column(Integer, nullable=False, default=0)
    check_in_location = Column(JSON, nullable=True)   # {latitude, longitude, accuracy?, address?}
    check_out_location = Column(JSON, nullable=True)
    total_hours = Column(Float, nullable=True)  # set only at checkout
    checkout_reminder_sent = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(UtcDateTime, nullable=False, default=utcnow)
    updated_at = Column(UtcDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
    )
