"""
Tide Series - immutable, time-ordered high/low tide samples.

A TideSeries is built once per fetch from the provider's raw prediction
points and never changes afterwards; a new fetch simply produces a new
series. Parsing is best effort:

- a point whose timestamp cannot be read is dropped and counted
- a point whose height cannot be read keeps a height of 0.0 by default
  (HeightPolicy.ZERO), or is dropped with HeightPolicy.DROP
- a missing or unrecognised type code becomes TideKind.UNKNOWN

Raw timestamps carry no offset ("YYYY-MM-DD HH:MM"), so the timezone they
were requested in must be passed explicitly. Timestamps are stored in UTC,
so comparisons and differences measure elapsed time even across daylight
saving changes; the series keeps that timezone for reading naive queries.
"""
import logging
import math
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M'

RawPoint = Sequence[Optional[str]]


class TideKind(str, Enum):
    """Classification of a tide sample."""
    HIGH = "high"
    LOW = "low"
    UNKNOWN = "unknown"


class HeightPolicy(str, Enum):
    """
    What to do with a point whose height cannot be parsed.

    - ZERO: keep the point with a height of 0.0 (matches earlier output)
    - DROP: discard the point like a bad timestamp
    """
    ZERO = "zero"
    DROP = "drop"


def parse_kind(code: Optional[str]) -> TideKind:
    """Map a provider type code ('H' or 'L') to a TideKind."""
    if not isinstance(code, str):
        return TideKind.UNKNOWN
    code = code.strip().upper()
    if code == 'H':
        return TideKind.HIGH
    if code == 'L':
        return TideKind.LOW
    return TideKind.UNKNOWN


def _parse_height(raw: Optional[str]) -> Optional[float]:
    try:
        height = float(raw)
    except (TypeError, ValueError):
        return None
    return height if math.isfinite(height) else None


@dataclass(frozen=True)
class TideExtremum:
    """A single predicted tide sample."""
    timestamp: datetime
    height: float
    kind: TideKind = TideKind.UNKNOWN

    @property
    def is_extreme(self) -> bool:
        """True for classified high or low tides."""
        return self.kind is not TideKind.UNKNOWN


class TideSeries:
    """
    Ordered collection of tide samples.

    Points are sorted ascending by timestamp and no two share a timestamp.
    The series may be empty.
    """

    def __init__(
        self,
        points: Iterable[TideExtremum] = (),
        tz: tzinfo = timezone.utc,
        parse_skipped: int = 0,
        heights_defaulted: int = 0,
    ):
        normalized = []
        for point in points:
            if point.timestamp.tzinfo is None:
                raise ValueError(f"Tide timestamp {point.timestamp} has no timezone")
            # Stored in UTC so arithmetic is in elapsed time, not wall-clock time
            normalized.append(replace(point, timestamp=point.timestamp.astimezone(timezone.utc)))

        ordered = sorted(normalized, key=lambda p: p.timestamp)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.timestamp == cur.timestamp:
                raise ValueError(f"Duplicate tide timestamp {cur.timestamp.isoformat()}")

        self._points: Tuple[TideExtremum, ...] = tuple(ordered)
        self._times: Tuple[datetime, ...] = tuple(p.timestamp for p in ordered)
        self.tz = tz
        self.parse_skipped = parse_skipped
        self.heights_defaulted = heights_defaulted

    @classmethod
    def empty(cls, tz: tzinfo = timezone.utc) -> "TideSeries":
        """Series standing in for 'no raw data available'."""
        return cls((), tz=tz)

    @classmethod
    def from_raw(
        cls,
        points: Iterable[RawPoint],
        tz: tzinfo = timezone.utc,
        height_policy: HeightPolicy = HeightPolicy.ZERO,
    ) -> "TideSeries":
        """
        Parse raw provider points into a series.

        Args:
            points: Iterable of (timestamp, height, type) tuples, e.g.
                ("2024-06-15 04:12", "1.532", "H"). The type is optional.
            tz: Timezone the raw timestamps are expressed in
            height_policy: Handling of unparsable heights

        Returns:
            TideSeries sorted by time, with parse_skipped and
            heights_defaulted counts filled in
        """
        parsed = {}
        skipped = 0
        defaulted = 0

        for point in points:
            try:
                raw_time, raw_height, *rest = point
                timestamp = (
                    datetime.strptime(raw_time.strip(), TIMESTAMP_FORMAT)
                    .replace(tzinfo=tz)
                    .astimezone(timezone.utc)
                )
            except (TypeError, ValueError, AttributeError):
                skipped += 1
                continue

            height = _parse_height(raw_height)
            if height is None:
                defaulted += 1
                if height_policy == HeightPolicy.DROP:
                    skipped += 1
                    continue
                height = 0.0

            if timestamp in parsed:
                # First occurrence wins
                skipped += 1
                continue

            kind = parse_kind(rest[0] if rest else None)
            parsed[timestamp] = TideExtremum(timestamp=timestamp, height=height, kind=kind)

        if skipped:
            logger.warning(f"Skipped {skipped} malformed tide point(s)")
        if defaulted:
            logger.warning(f"{defaulted} tide point(s) had an unreadable height (policy: {height_policy.value})")

        return cls(parsed.values(), tz=tz, parse_skipped=skipped, heights_defaulted=defaulted)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[TideExtremum]:
        return iter(self._points)

    def __getitem__(self, index):
        return self._points[index]

    def __repr__(self) -> str:
        if not self._points:
            return "TideSeries(empty)"
        return (f"TideSeries({len(self._points)} points, "
                f"{self._points[0].timestamp.isoformat()} .. {self._points[-1].timestamp.isoformat()})")

    def to_utc(self, instant: datetime) -> datetime:
        """Convert a query instant to UTC; a naive instant is read in the series' timezone."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        return instant.astimezone(timezone.utc)

    def count(self) -> int:
        return len(self._points)

    def is_empty(self) -> bool:
        return not self._points

    def first(self) -> Optional[TideExtremum]:
        return self._points[0] if self._points else None

    def last(self) -> Optional[TideExtremum]:
        return self._points[-1] if self._points else None

    def heights(self) -> Iterator[float]:
        return (p.height for p in self._points)

    def timestamps(self) -> Tuple[datetime, ...]:
        return self._times

    def min_height(self) -> Optional[float]:
        return min(self.heights(), default=None)

    def max_height(self) -> Optional[float]:
        return max(self.heights(), default=None)

    def extremes(self) -> List[TideExtremum]:
        """High and low tides only, for summaries."""
        return [p for p in self._points if p.is_extreme]

    def highs(self) -> List[TideExtremum]:
        return [p for p in self._points if p.kind is TideKind.HIGH]

    def lows(self) -> List[TideExtremum]:
        return [p for p in self._points if p.kind is TideKind.LOW]

    def window(self, start: datetime, end: datetime) -> "TideSeries":
        """
        Points with start <= timestamp <= end, as a new series.

        Naive bounds are read in the series' timezone. Parse counts are not
        carried over.
        """
        lo = bisect_left(self._times, self.to_utc(start))
        hi = bisect_right(self._times, self.to_utc(end))
        return TideSeries(self._points[lo:hi], tz=self.tz)
