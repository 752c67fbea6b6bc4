"""Sync run model — one row per background multi-store sync."""

from sqlalchemy import JSON, Column, Index, Integer, String

from ..database import UTCDateTime, utcnow
from .base import Base, new_id


class SyncRun(Base):
    """Totals and per-operation results of one run_full_sync call.

    results holds one entry per (store, stage): operation, store_id,
    success, duration_ms, records_processed and error.
    """

    __tablename__ = "sync_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    started_at = Column(UTCDateTime, nullable=False, default=utcnow)
    total_operations = Column(Integer, nullable=False, default=0)
    successful_operations = Column(Integer, nullable=False, default=0)
    failed_operations = Column(Integer, nullable=False, default=0)
    total_duration_ms = Column(Integer, nullable=False, default=0)
    results = Column(JSON, nullable=False, default=list)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_sync_logs_started_at", "started_at"),)
