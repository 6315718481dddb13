"""
NOAA CO-OPS client.

Thin transport layer for the two upstream calls the service needs:

- the station catalog (metadata API, water level stations)
- high/low tide predictions for one station (data getter, interval=hilo)

Failures are logged and reported as None ("no raw data available"); the
caller decides what an empty result means. Predictions are always requested
in GMT so raw timestamps have a known, fixed offset.
"""
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from datetime import date
from typing import Any, List, Optional, Tuple

from .config import Settings
from .station_resolver import Station

logger = logging.getLogger(__name__)

NO_PREDICTIONS_MESSAGE = "No Predictions data was found"

DATE_FORMAT = '%Y%m%d'


def safe_read_response(response, max_size: int) -> bytes:
    """
    Safely read HTTP response with size limit to prevent memory exhaustion.

    Args:
        response: urllib response object
        max_size: Maximum allowed response size in bytes

    Returns:
        Response body as bytes

    Raises:
        ValueError: If response exceeds size limit
    """
    content_length = response.headers.get('Content-Length')
    if content_length and int(content_length) > max_size:
        raise ValueError(f"Response too large: {content_length} bytes (max: {max_size})")

    # Read one extra byte to detect overflow
    data = response.read(max_size + 1)
    if len(data) > max_size:
        raise ValueError(f"Response exceeded size limit of {max_size} bytes")

    return data


class NOAAClient:
    """Client for the NOAA Tides & Currents APIs."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def _get_json(self, url: str, params: dict) -> Any:
        full_url = f"{url}?{urllib.parse.urlencode(params)}"
        logger.debug(f"Requesting {full_url}")
        with urllib.request.urlopen(full_url, timeout=self.settings.api_timeout_seconds) as response:
            return json.loads(safe_read_response(response, self.settings.max_response_size).decode())

    def fetch_stations(self) -> Optional[List[Station]]:
        """
        Fetch the water level station catalog.

        Returns:
            List of stations in provider order, or None if the request failed.
            Records that cannot be parsed are skipped.
        """
        params = {'type': 'waterlevels', 'units': 'metric'}
        try:
            data = self._get_json(self.settings.noaa_stations_url, params)
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.warning(f"NOAA station catalog fetch failed: {e}")
            return None

        records = data.get('stations') if isinstance(data, dict) else None
        if not isinstance(records, list):
            logger.warning("NOAA station catalog response has no 'stations' list")
            return None

        stations = []
        bad_records = 0
        for record in records:
            try:
                stations.append(Station.from_record(record))
            except (KeyError, TypeError, ValueError, AttributeError):
                bad_records += 1

        if bad_records:
            logger.warning(f"Skipped {bad_records} malformed station record(s)")
        return stations

    def fetch_predictions(
        self,
        station_id: str,
        begin: date,
        end: date,
    ) -> Optional[List[Tuple[Optional[str], Optional[str], Optional[str]]]]:
        """
        Fetch high/low tide predictions for a station.

        Args:
            station_id: NOAA station ID (e.g., '9414290' for San Francisco)
            begin: First day to fetch (GMT)
            end: Last day to fetch (GMT), inclusive

        Returns:
            List of raw (timestamp, height, type) tuples with timestamps in
            GMT and heights in meters, [] if the station has no predictions,
            or None if the request failed.
        """
        params = {
            'product': 'predictions',
            'application': self.settings.application,
            'begin_date': begin.strftime(DATE_FORMAT),
            'end_date': end.strftime(DATE_FORMAT),
            'datum': self.settings.noaa_datum,
            'station': station_id,
            'time_zone': 'gmt',
            'units': 'metric',
            'interval': 'hilo',
            'format': 'json',
        }
        try:
            data = self._get_json(self.settings.noaa_data_url, params)
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.warning(f"NOAA prediction fetch failed for station {station_id}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Unexpected NOAA prediction payload for station {station_id}")
            return None

        if 'error' in data:
            error = data['error']
            message = error.get('message', '') if isinstance(error, dict) else str(error or '')
            if NO_PREDICTIONS_MESSAGE in message:
                return []
            logger.warning(f"NOAA error for station {station_id}: {message or 'unknown error'}")
            return None

        entries = data.get('predictions') or []
        return [
            (entry.get('t'), entry.get('v'), entry.get('type'))
            for entry in entries
            if isinstance(entry, dict)
        ]
