"""
Station Resolver - pick the reference tide station for a location.

Given a target coordinate and the provider's station catalog, the resolver
filters out structurally invalid entries, scores the rest by great-circle
distance and returns the closest station inside a search radius.

Selection is deterministic: equal distances are broken by catalog order,
so the first listed station wins.

The catalog itself is owned by the caller. StationCatalog is a small
memoizing wrapper around a loader function that guarantees the upstream
catalog is fetched at most once per process.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .geo import Coordinate, haversine_km

logger = logging.getLogger(__name__)

DEFAULT_MAX_RADIUS_KM = 100.0

# NOAA CO-OPS station ids are 7 characters long
DEFAULT_MAX_ID_LENGTH = 7


@dataclass(frozen=True)
class Station:
    """A tide station from the provider catalog."""
    id: str
    name: str
    coordinate: Coordinate

    @classmethod
    def from_record(cls, record: Mapping) -> "Station":
        """
        Build a station from a raw catalog record.

        Args:
            record: Mapping with 'id', 'name', 'lat' and 'lng' keys

        Returns:
            Station instance

        Raises:
            KeyError: If a required key is missing
            ValueError: If lat/lng are not valid coordinates
            TypeError: If lat/lng are not numeric
        """
        return cls(
            id=str(record['id'] or '').strip(),
            name=str(record.get('name') or '').strip(),
            coordinate=Coordinate(float(record['lat']), float(record['lng'])),
        )


@dataclass(frozen=True)
class NotFound:
    """No usable station within the search radius of the target."""
    target: Coordinate
    max_radius_km: float

    @property
    def message(self) -> str:
        return (
            f"No tide stations found within {self.max_radius_km:g}km of "
            f"{self.target.latitude}, {self.target.longitude}. "
            "Please try a different location closer to the coast."
        )


def is_valid_station(station: Station, max_id_length: int = DEFAULT_MAX_ID_LENGTH) -> bool:
    """Check that a catalog entry can be used as a reference station."""
    if not station.id or len(station.id) > max_id_length:
        return False
    return not station.coordinate.is_placeholder


def nearest_stations(
    target: Coordinate,
    candidates: Sequence[Station],
    max_radius_km: float = DEFAULT_MAX_RADIUS_KM,
    max_id_length: int = DEFAULT_MAX_ID_LENGTH,
    limit: Optional[int] = None,
) -> List[Tuple[Station, float]]:
    """
    Rank usable stations around a target by distance.

    Args:
        target: Location to search around
        candidates: Station catalog, in provider order
        max_radius_km: Stations at or beyond this distance are excluded
        max_id_length: Longest acceptable station id
        limit: Optional maximum number of results

    Returns:
        List of (station, distance_km) tuples, closest first. Stations at
        the same distance keep their catalog order.
    """
    valid = [s for s in candidates if is_valid_station(s, max_id_length)]
    if not valid:
        return []

    lats = np.array([s.coordinate.latitude for s in valid])
    lons = np.array([s.coordinate.longitude for s in valid])
    distances = haversine_km(target.latitude, target.longitude, lats, lons)

    # Stable sort keeps catalog order for ties
    order = np.argsort(distances, kind='stable')
    ranked = [(valid[i], float(distances[i])) for i in order if distances[i] < max_radius_km]

    if limit is not None:
        ranked = ranked[:limit]
    return ranked


def resolve(
    target: Coordinate,
    candidates: Sequence[Station],
    max_radius_km: float = DEFAULT_MAX_RADIUS_KM,
    max_id_length: int = DEFAULT_MAX_ID_LENGTH,
) -> Union[Station, NotFound]:
    """
    Select the closest usable station to a target.

    Args:
        target: Location to resolve
        candidates: Station catalog, in provider order
        max_radius_km: Search radius in kilometers
        max_id_length: Longest acceptable station id

    Returns:
        The closest Station, or NotFound when none is within the radius
    """
    ranked = nearest_stations(target, candidates, max_radius_km, max_id_length, limit=1)
    if not ranked:
        return NotFound(target=target, max_radius_km=max_radius_km)
    return ranked[0][0]


class StationCatalog:
    """
    Process-lifetime cache for the station catalog.

    The loader runs at most once successfully; concurrent first callers
    block on the same lock and all receive the single result. A loader
    returning None signals an upstream failure and is not cached.
    """

    def __init__(self, loader: Callable[[], Optional[Sequence[Station]]]):
        self._loader = loader
        self._stations: Optional[Tuple[Station, ...]] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._stations is not None

    def get(self) -> Tuple[Station, ...]:
        """Return the cached catalog, loading it on first use."""
        if self._stations is not None:
            return self._stations

        with self._lock:
            if self._stations is None:
                stations = self._loader()
                if stations is None:
                    logger.error("Station catalog unavailable, will retry on next request")
                    return ()
                self._stations = tuple(stations)
                logger.info(f"Loaded {len(self._stations)} tide stations")
            return self._stations
