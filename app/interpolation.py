"""
Tide height between extrema.

Heights are linearly interpolated between the two samples that bracket the
requested instant. Real tide curves are not linear between high and low
water, but the provider only publishes the extrema, and linear
interpolation is exact at those points and never overshoots them.

Outside the fetched window nothing is extrapolated: queries before the
first or after the last sample return None.
"""
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import numpy as np

from .tide_series import TideSeries

ALLOWED_INTERVALS = (15, 30, 60)


def height_at(series: TideSeries, instant: datetime) -> Optional[float]:
    """
    Estimate the tide height at an instant.

    Args:
        series: Tide samples
        instant: Query time. A naive datetime is read in the series' timezone.

    Returns:
        Height in the series' units, or None if the series is empty or the
        instant falls outside [first, last]
    """
    if series.is_empty():
        return None

    instant = series.to_utc(instant)
    times = series.timestamps()
    if instant < times[0] or instant > times[-1]:
        return None

    # Index of the latest sample at or before the instant
    idx = bisect_right(times, instant) - 1
    before = series[idx]
    if before.timestamp == instant:
        return before.height

    after = series[idx + 1]
    fraction = (instant - before.timestamp) / (after.timestamp - before.timestamp)
    return before.height + fraction * (after.height - before.height)


def sample_curve(series: TideSeries, interval_minutes: int = 30) -> List[Tuple[datetime, float]]:
    """
    Sample the interpolated curve at a fixed interval.

    The first and last samples are always included, so the curve spans the
    whole series even when the span is not a multiple of the interval.

    Args:
        series: Tide samples
        interval_minutes: Spacing between samples (15, 30, or 60 minutes)

    Returns:
        List of (instant, height) tuples in time order
    """
    if interval_minutes not in ALLOWED_INTERVALS:
        raise ValueError("interval_minutes must be 15, 30, or 60")

    if series.count() < 2:
        return [(p.timestamp, p.height) for p in series]

    first = series.first().timestamp
    last = series.last().timestamp
    step = timedelta(minutes=interval_minutes)

    instants = []
    current = first
    while current < last:
        instants.append(current)
        current += step
    instants.append(last)

    # Seconds from the first sample; np.interp is exact at the sample points
    sample_x = np.array([(t - first).total_seconds() for t in series.timestamps()])
    sample_y = np.array(list(series.heights()))
    query_x = np.array([(t - first).total_seconds() for t in instants])
    heights = np.interp(query_x, sample_x, sample_y)

    return [(t, float(h)) for t, h in zip(instants, heights)]
