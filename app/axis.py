"""
Axis scales for tide charts.

Derives tick values and labels for the height (value) axis and the time
axis from a TideSeries, plus the normalize() primitive that maps a domain
value into [0, 1] for plotting. Renderers only need these results; nothing
here depends on a drawing toolkit.
"""
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import List, Sequence, Tuple

import numpy as np

from .tide_series import TideSeries

DEFAULT_TICK_COUNT = 4


@dataclass(frozen=True)
class Scale:
    """Domain bounds and tick positions of one axis."""
    domain_min: float
    domain_max: float
    ticks: Tuple[float, ...]


def normalize(value: float, lo: float, hi: float) -> float:
    """
    Map value from [lo, hi] into [0, 1].

    A degenerate range (lo == hi) maps everything to 0.5. Values outside
    the range are clamped.
    """
    if hi == lo:
        return 0.5
    fraction = (value - lo) / (hi - lo)
    return min(1.0, max(0.0, fraction))


def normalize_time(instant: datetime, start: datetime, end: datetime) -> float:
    """normalize() for instants, e.g. to place the 'now' marker on the x axis."""
    return normalize(instant.timestamp(), start.timestamp(), end.timestamp())


def value_ticks(series: TideSeries, count: int = DEFAULT_TICK_COUNT) -> List[float]:
    """
    Evenly spaced height ticks, top to bottom.

    Args:
        series: Tide samples
        count: Number of intervals; count + 1 ticks are returned

    Returns:
        Ticks from the maximum height down to the minimum, inclusive.
        Empty for an empty series.
    """
    if series.is_empty() or count < 1:
        return []

    hi = series.max_height()
    lo = series.min_height()
    if hi == lo:
        return [hi] * (count + 1)

    return [float(v) for v in np.linspace(hi, lo, count + 1)]


def time_ticks(series: TideSeries, count: int = DEFAULT_TICK_COUNT) -> List[datetime]:
    """
    Evenly spaced instants from the first to the last sample, inclusive.

    Needs at least two samples; otherwise returns an empty list.
    """
    if series.count() < 2 or count < 1:
        return []

    start = series.first().timestamp
    end = series.last().timestamp
    span = end - start
    ticks = [start + span * i / count for i in range(count)]
    ticks.append(end)
    return ticks


def value_scale(series: TideSeries, count: int = DEFAULT_TICK_COUNT) -> Scale:
    ticks = value_ticks(series, count)
    if not ticks:
        return Scale(0.0, 0.0, ())
    return Scale(domain_min=series.min_height(), domain_max=series.max_height(), ticks=tuple(ticks))


def time_scale(series: TideSeries, count: int = DEFAULT_TICK_COUNT) -> Scale:
    """Time axis scale in POSIX seconds."""
    ticks = time_ticks(series, count)
    if not ticks:
        return Scale(0.0, 0.0, ())
    return Scale(
        domain_min=ticks[0].timestamp(),
        domain_max=ticks[-1].timestamp(),
        ticks=tuple(t.timestamp() for t in ticks),
    )


def value_labels(ticks: Sequence[float]) -> List[str]:
    return [f"{v:.1f}" for v in ticks]


def time_labels(ticks: Sequence[datetime], tz: tzinfo = timezone.utc) -> List[str]:
    """Two-line labels such as 'Jun 15\\n04:30', in the display timezone."""
    labels = []
    for tick in ticks:
        local = tick.astimezone(tz)
        labels.append(f"{local:%b} {local.day}\n{local:%H:%M}")
    return labels
