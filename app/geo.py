"""
Geodesic helpers for station lookup.

Great-circle distances use the haversine formula on a spherical earth
(radius 6371 km). The atan2 form is used instead of arccos so that results
stay accurate for both very close and nearly antipodal points.
"""
import math
from dataclasses import dataclass
from typing import Union

import numpy as np

EARTH_RADIUS_KM = 6371.0

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 latitude/longitude pair in degrees."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError(f"Coordinate must be finite, got ({self.latitude}, {self.longitude})")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude {self.latitude} outside [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude {self.longitude} outside [-180, 180]")

    @property
    def is_placeholder(self) -> bool:
        """True for (0, 0), which upstream catalogs use for a missing position."""
        return self.latitude == 0.0 and self.longitude == 0.0


def haversine_km(lat1: ArrayLike, lon1: ArrayLike, lat2: ArrayLike, lon2: ArrayLike) -> ArrayLike:
    """
    Great-circle distance in kilometers (vectorized).

    Any argument may be a numpy array; the usual broadcasting rules apply.

    Args:
        lat1: Latitude of the first point(s) in degrees
        lon1: Longitude of the first point(s) in degrees
        lat2: Latitude of the second point(s) in degrees
        lon2: Longitude of the second point(s) in degrees

    Returns:
        Distance(s) in kilometers
    """
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    # abs() keeps the result bit-for-bit symmetric in its arguments
    dphi = np.radians(np.abs(np.subtract(lat2, lat1)))
    dlambda = np.radians(np.abs(np.subtract(lon2, lon1)))

    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlambda / 2) ** 2
    # Rounding can push a a hair outside [0, 1] near the antipode
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    return float(haversine_km(a.latitude, a.longitude, b.latitude, b.longitude))
