from sqlalchemy import Column, Integer, JSON, String
from workforce.database import Base, UtcDateTime


class JobExecutionLog(Base):
    """Append-only: one row per status change of a job run."""

    __tablename__ = "job_execution_logs"

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # started, completed, failed
    start_time = Column(UtcDateTime, nullable=False, index=True)
    end_time = Column(UtcDateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    records_processed = Column(Integer, nullable=False, default=0)
    job_metadata = Column(JSON, nullable=True)
