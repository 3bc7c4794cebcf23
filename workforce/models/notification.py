from sqlalchemy import Boolean, Column, Integer, String, Text, Index
from workforce.database import Base, UtcDateTime, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(String, nullable=True)
    action_url = Column(String, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UtcDateTime, nullable=False, default=utcnow)
    expires_at = Column(UtcDateTime, nullable=False)

    # dedup lookups: (user, type, related_id) within a trailing window
    __table_args__ = (
        Index("ix_notifications_dedup", "user_id", "type", "related_id", "created_at"),
    )
