"""Health classification — pure function of a 24h metrics snapshot.

The only wall-clock input is has_recent_activity, which the caller computes.
Every triggered condition contributes one issue and one recommendation; the
final status is the most severe one triggered.
"""

from ..config import settings
from ..schemas.monitoring import MetricsSnapshot

_SEVERITY = {"healthy": 0, "warning": 1, "critical": 2}


def _escalate(current: str, level: str) -> str:
    return level if _SEVERITY[level] > _SEVERITY[current] else current


def classify_health(
    metrics: MetricsSnapshot, has_recent_activity: bool
) -> tuple[str, list[str], list[str]]:
    """Return (status, issues, recommendations)."""
    status = "healthy"
    issues: list[str] = []
    recommendations: list[str] = []

    if metrics.error_rate > settings.alert_error_rate_threshold:
        issues.append(f"High error rate: {metrics.error_rate * 100:.1f}%")
        recommendations.append("Investigate recent errors and fix underlying issues")
        status = _escalate(status, "warning")
        if metrics.error_rate > settings.health_critical_error_rate:
            status = _escalate(status, "critical")

    if metrics.avg_execution_time > settings.health_slow_response_ms:
        issues.append(f"Slow response time: {metrics.avg_execution_time:.0f}ms")
        recommendations.append("Review integration performance and optimize API calls")
        status = _escalate(status, "warning")

    # A rate of 0 over zero operations is a default, not a measurement
    if metrics.total_operations > 0 and metrics.success_rate < settings.health_min_success_rate:
        issues.append(f"Low success rate: {metrics.success_rate * 100:.1f}%")
        recommendations.append("Immediate attention required - multiple operations failing")
        status = _escalate(status, "critical")

    if not has_recent_activity:
        issues.append("No recent integration activity detected")
        recommendations.append("Verify integration is active and configured correctly")
        status = _escalate(status, "warning")

    return status, issues, recommendations
