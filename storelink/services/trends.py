"""Trend math for daily integration stats.

Slopes are ordinary least squares against the day index 0..n-1.
"""

from ..schemas.monitoring import DailyStat, TrendSummary

MIN_POINTS = 3
SUCCESS_RATE_THRESHOLD = 0.01  # per day
RESPONSE_TIME_THRESHOLD = 100  # ms per day
VOLUME_THRESHOLD = 1  # operations per day


def calculate_slope(values: list[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_xx = sum(i * i for i in range(n))
    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denom


def calculate_trends(daily_stats: list[DailyStat]) -> TrendSummary:
    """Classify direction of success rate, response time and volume."""
    if len(daily_stats) < MIN_POINTS:
        return TrendSummary()

    success_slope = calculate_slope([d.success_rate for d in daily_stats])
    time_slope = calculate_slope([d.avg_execution_time for d in daily_stats])
    volume_slope = calculate_slope([float(d.total_operations) for d in daily_stats])

    if success_slope > SUCCESS_RATE_THRESHOLD:
        success_trend = "improving"
    elif success_slope < -SUCCESS_RATE_THRESHOLD:
        success_trend = "declining"
    else:
        success_trend = "stable"

    # Falling execution time is an improvement
    if time_slope < -RESPONSE_TIME_THRESHOLD:
        time_trend = "improving"
    elif time_slope > RESPONSE_TIME_THRESHOLD:
        time_trend = "declining"
    else:
        time_trend = "stable"

    if volume_slope > VOLUME_THRESHOLD:
        volume_trend = "increasing"
    elif volume_slope < -VOLUME_THRESHOLD:
        volume_trend = "decreasing"
    else:
        volume_trend = "stable"

    return TrendSummary(
        success_rate_trend=success_trend,
        response_time_trend=time_trend,
        volume_trend=volume_trend,
    )
