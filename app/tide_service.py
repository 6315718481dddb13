"""
Tide Service - nearest-station tide predictions for any coastal location.

This module ties the pieces together:

1. resolve the nearest NOAA station for a latitude/longitude
2. fetch the station's high/low predictions for the requested window
3. parse them into a TideSeries
4. answer height queries and derive chart axes from that series

All time-dependent methods take the current instant as an argument instead
of reading the clock, so results are reproducible. Output datetimes are
rendered in the station's local timezone (auto-detected from coordinates).
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from timezonefinder import TimezoneFinder

from .axis import DEFAULT_TICK_COUNT, time_labels, time_ticks, value_labels, value_ticks
from .config import Settings
from .geo import Coordinate, distance_km
from .interpolation import height_at, sample_curve
from .noaa_client import NOAAClient
from .station_resolver import NotFound, Station, StationCatalog, nearest_stations, resolve
from .tide_series import TideExtremum, TideSeries

logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084


class StationCatalogUnavailable(Exception):
    """The station catalog could not be fetched from the provider."""

    def __init__(self):
        super().__init__("Tide station catalog is temporarily unavailable. Please try again later.")


class TideDataUnavailable(Exception):
    """The provider returned no usable predictions for a station."""

    def __init__(self, station: Station):
        self.station = station
        super().__init__(f"No tide data available for station {station.id} ({station.name})")


def _height_fields(height_m: float) -> Dict:
    return {
        'height_m': round(height_m, 3),
        'height_ft': round(height_m * METERS_TO_FEET, 3),
    }


class TideService:
    """
    Service for nearest-station tide predictions.

    The station catalog is fetched once per service instance and reused for
    the life of the process.
    """

    def __init__(
        self,
        client: Optional[NOAAClient] = None,
        settings: Optional[Settings] = None,
        catalog: Optional[StationCatalog] = None,
    ):
        """
        Initialize the tide service.

        Args:
            client: Upstream client (defaults to a NOAAClient)
            settings: Service settings (defaults to Settings.from_env())
            catalog: Station catalog cache (defaults to one backed by the client)
        """
        self.settings = settings or Settings.from_env()
        self.client = client or NOAAClient(self.settings)
        self.catalog = catalog or StationCatalog(self.client.fetch_stations)

        # Cache TimezoneFinder instance (loads data on first use)
        self._tz_finder = TimezoneFinder()

    def _get_timezone(self, lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
        """
        Get timezone for coordinates, with auto-detection if not specified.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            timezone_str: Optional timezone string (e.g., 'America/Los_Angeles')

        Returns:
            ZoneInfo object for the timezone
        """
        if timezone_str is None:
            timezone_str = self._tz_finder.timezone_at(lat=lat, lng=lon)
            if timezone_str is None:
                timezone_str = 'UTC'
        try:
            return ZoneInfo(timezone_str)
        except (ValueError, KeyError):
            return ZoneInfo('UTC')

    def _stations(self) -> Tuple[Station, ...]:
        stations = self.catalog.get()
        if not self.catalog.loaded:
            raise StationCatalogUnavailable()
        return stations

    def find_station(
        self,
        lat: float,
        lon: float,
        max_radius_km: Optional[float] = None,
    ) -> Union[Tuple[Station, float], NotFound]:
        """
        Find the nearest usable station.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            max_radius_km: Search radius (defaults to the configured radius)

        Returns:
            (station, distance_km), or NotFound

        Raises:
            StationCatalogUnavailable: If the station catalog could not be fetched
        """
        target = Coordinate(lat, lon)
        radius = self.settings.max_station_radius_km if max_radius_km is None else max_radius_km

        station = resolve(
            target,
            self._stations(),
            max_radius_km=radius,
            max_id_length=self.settings.station_id_max_length,
        )
        if isinstance(station, NotFound):
            logger.info(f"No station within {radius:g}km of ({lat}, {lon})")
            return station

        distance = distance_km(target, station.coordinate)
        logger.info(f"Found nearest station: {station.name} ({station.id}) - {distance:.2f}km away")
        return station, distance

    def get_series(self, station: Station, start_date: date, days: int = 1) -> TideSeries:
        """
        Fetch and parse predictions for a station.

        Args:
            station: Station to fetch
            start_date: First day of the window (GMT)
            days: Number of days after start_date to include

        Returns:
            TideSeries in UTC; empty if the provider had no data
        """
        if days < 1:
            raise ValueError("days must be at least 1")

        raw = self.client.fetch_predictions(station.id, start_date, start_date + timedelta(days=days))
        if raw is None:
            return TideSeries.empty()

        return TideSeries.from_raw(raw, tz=timezone.utc, height_policy=self.settings.height_policy)

    def _format_point(self, point: TideExtremum, tz: ZoneInfo) -> Dict:
        return {
            'type': point.kind.value,
            'datetime': point.timestamp.astimezone(tz).isoformat(),
            **_height_fields(point.height),
        }

    def get_tides(
        self,
        lat: float,
        lon: float,
        now: datetime,
        days: int = 1,
        start_date: Optional[date] = None,
        interval_minutes: Optional[int] = None,
        tick_count: int = DEFAULT_TICK_COUNT,
        timezone_str: Optional[str] = None,
    ) -> Union[Dict, NotFound]:
        """
        Build the tide report for a location.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            now: Current instant (timezone-aware), used for the default
                start date and the current height
            days: Number of days to fetch
            start_date: Optional first day (GMT). Defaults to the date of now.
            interval_minutes: If given (15, 30, or 60), include the sampled curve
            tick_count: Number of axis intervals
            timezone_str: Display timezone, or None to detect from the station

        Returns:
            Report dictionary with keys:
            - station: id, name, lat, lon, distance_km
            - timezone: display timezone name
            - datum: vertical datum of the heights
            - tides: high/low events (type, datetime, height_m, height_ft)
            - current: height at now, or None outside the fetched window
            - axis: value/time ticks and labels
            - curve: sampled heights (only when interval_minutes is given)
            - parse_skipped / heights_defaulted: parse diagnostics
            or NotFound when no station is close enough.

        Raises:
            StationCatalogUnavailable: If the station catalog could not be fetched
            TideDataUnavailable: If the provider returned no predictions
        """
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        found = self.find_station(lat, lon)
        if isinstance(found, NotFound):
            return found
        station, distance = found

        if start_date is None:
            start_date = now.astimezone(timezone.utc).date()

        series = self.get_series(station, start_date, days)
        if series.is_empty():
            raise TideDataUnavailable(station)

        tz = self._get_timezone(station.coordinate.latitude, station.coordinate.longitude, timezone_str)

        current = height_at(series, now)
        v_ticks = value_ticks(series, tick_count)
        t_ticks = time_ticks(series, tick_count)

        report = {
            'station': {
                'id': station.id,
                'name': station.name,
                'lat': station.coordinate.latitude,
                'lon': station.coordinate.longitude,
                'distance_km': round(distance, 3),
            },
            'timezone': str(tz),
            'datum': self.settings.noaa_datum.lower(),
            'tides': [self._format_point(p, tz) for p in series.extremes()],
            'current': None if current is None else {
                'datetime': now.astimezone(tz).replace(microsecond=0).isoformat(),
                **_height_fields(current),
            },
            'axis': {
                'value_ticks': [round(v, 3) for v in v_ticks],
                'value_labels': value_labels(v_ticks),
                'time_ticks': [t.astimezone(tz).isoformat() for t in t_ticks],
                'time_labels': time_labels(t_ticks, tz),
            },
            'parse_skipped': series.parse_skipped,
            'heights_defaulted': series.heights_defaulted,
        }

        if interval_minutes is not None:
            report['curve'] = [
                {'datetime': t.astimezone(tz).isoformat(), **_height_fields(h)}
                for t, h in sample_curve(series, interval_minutes)
            ]

        return report

    def get_height(self, lat: float, lon: float, at: datetime) -> Union[Optional[float], NotFound]:
        """
        Tide height at one instant for a location.

        The window fetched is the GMT day of `at` plus the next day.

        Returns:
            Height in meters, None if `at` is outside the fetched predictions,
            or NotFound when no station is close enough.

        Raises:
            TideDataUnavailable: If the provider returned no predictions
        """
        if at.tzinfo is None:
            raise ValueError("at must be timezone-aware")

        found = self.find_station(lat, lon)
        if isinstance(found, NotFound):
            return found
        station, _ = found

        # Start a day early so instants just after midnight GMT are bracketed
        start = at.astimezone(timezone.utc).date() - timedelta(days=1)
        series = self.get_series(station, start, days=2)
        if series.is_empty():
            raise TideDataUnavailable(station)

        return height_at(series, at)

    def list_stations(self, lat: float, lon: float, limit: int = 5,
                      max_radius_km: Optional[float] = None) -> List[Dict]:
        """Closest usable stations around a location, nearest first."""
        radius = self.settings.max_station_radius_km if max_radius_km is None else max_radius_km
        ranked = nearest_stations(
            Coordinate(lat, lon),
            self._stations(),
            max_radius_km=radius,
            max_id_length=self.settings.station_id_max_length,
            limit=limit,
        )
        return [
            {
                'id': s.id,
                'name': s.name,
                'lat': s.coordinate.latitude,
                'lon': s.coordinate.longitude,
                'distance_km': round(d, 3),
            }
            for s, d in ranked
        ]
