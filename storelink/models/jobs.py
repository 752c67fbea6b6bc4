"""Background job queue model."""

from sqlalchemy import JSON, Column, Index, Integer, String, Text

from ..database import UTCDateTime, utcnow
from .base import Base, new_id


class Job(Base):
    __tablename__ = "job_queue"
    id = Column(String(36), primary_key=True, default=new_id)
    job_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="medium")
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    error_message = Column(Text)
    scheduled_at = Column(UTCDateTime, default=utcnow)
    started_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_job_queue_status_priority", "status", "priority", "scheduled_at"),
        Index("ix_job_queue_created_at", "created_at"),
    )
