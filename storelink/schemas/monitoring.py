"""
schemas/monitoring.py — Integration monitoring snapshots

MetricsSnapshot, HealthStatus and TrendReport are returned by
services/monitoring_service.py. Every field has a zero/empty default so an
empty or unreadable log still yields a well-formed object.

Called by: services/monitoring_service.py, routers/monitoring.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

HealthLevel = Literal["healthy", "warning", "critical"]
DirectionTrend = Literal["improving", "stable", "declining"]
VolumeTrend = Literal["increasing", "stable", "decreasing"]


# ── Metrics ─────────────────────────────────────────────────────────────


class HourlyBucket(BaseModel):
    hour: str
    total: int = 0
    success: int = 0
    failure: int = 0
    warning: int = 0


class RecentError(BaseModel):
    id: str
    operation: str
    error_message: str | None = None
    created_at: datetime
    execution_time_ms: int | None = None


class MetricsSnapshot(BaseModel):
    total_operations: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    warning_operations: int = 0
    success_rate: float = 0.0
    error_rate: float = 0.0
    avg_execution_time: float = 0.0
    max_execution_time: int = 0
    min_execution_time: int = 0
    operations_by_type: dict[str, int] = Field(default_factory=dict)
    operations_by_hour: list[HourlyBucket] = Field(default_factory=list)
    recent_errors: list[RecentError] = Field(default_factory=list)


# ── Health ──────────────────────────────────────────────────────────────


class HealthMetrics(BaseModel):
    success_rate_24h: float = 0.0
    error_rate_24h: float = 0.0
    avg_response_time_24h: float = 0.0
    failed_jobs_24h: int = 0
    last_successful_operation: datetime | None = None
    last_failed_operation: datetime | None = None


class HealthStatus(BaseModel):
    status: HealthLevel = "healthy"
    issues: list[str] = Field(default_factory=list)
    metrics: HealthMetrics = Field(default_factory=HealthMetrics)
    recommendations: list[str] = Field(default_factory=list)


# ── Trends ──────────────────────────────────────────────────────────────


class DailyStat(BaseModel):
    date: str
    total_operations: int = 0
    success_rate: float = 0.0
    avg_execution_time: float = 0.0
    error_count: int = 0


class TrendSummary(BaseModel):
    success_rate_trend: DirectionTrend = "stable"
    response_time_trend: DirectionTrend = "stable"
    volume_trend: VolumeTrend = "stable"


class TrendReport(BaseModel):
    daily_stats: list[DailyStat] = Field(default_factory=list)
    trends: TrendSummary = Field(default_factory=TrendSummary)


# ── Alerts ──────────────────────────────────────────────────────────────


class AlertOut(BaseModel):
    id: str
    store_id: str
    integration_type: str
    operation: str
    level: str
    type: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# ── Requests ────────────────────────────────────────────────────────────


class MonitoringAction(BaseModel):
    action: Literal["trigger-health-check", "retry-failed-jobs", "cleanup-old-jobs"]
    integration_type: str | None = None
    store_id: str | None = None
    job_ids: list[str] | None = None
    retry_all: bool = False
    older_than_days: int = Field(default=30, ge=1, le=3650)
