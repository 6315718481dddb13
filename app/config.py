"""
Service configuration.

Values come from environment variables (a local .env file is loaded if
present). Provider-specific thresholds live here rather than as literals
in the algorithms so the resolver can be pointed at other data providers.
"""
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .tide_series import HeightPolicy

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()

NOAA_DATA_URL = "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter"
NOAA_STATIONS_URL = "https://api.tidesandcurrents.noaa.gov/mdapi/prod/webapi/stations.json"


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Ignoring invalid {key}={value!r}")
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring invalid {key}={value!r}")
    return default


def _get_height_policy(key: str, default: HeightPolicy) -> HeightPolicy:
    value = os.environ.get(key)
    if value is not None:
        try:
            return HeightPolicy(value.strip().lower())
        except ValueError:
            logger.warning(f"Ignoring invalid {key}={value!r}")
    return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the tide service."""

    # Station resolution
    max_station_radius_km: float = 100.0
    station_id_max_length: int = 7

    # Series parsing
    height_policy: HeightPolicy = HeightPolicy.ZERO

    # Upstream provider
    noaa_data_url: str = NOAA_DATA_URL
    noaa_stations_url: str = NOAA_STATIONS_URL
    noaa_datum: str = "MLLW"
    application: str = "TideTimes"
    api_timeout_seconds: int = 10
    max_response_size: int = 5 * 1024 * 1024

    # HTTP surface
    rate_limit: str = "60/minute"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            max_station_radius_km=_get_float_env('TIDES_MAX_STATION_RADIUS_KM', cls.max_station_radius_km),
            station_id_max_length=_get_int_env('TIDES_STATION_ID_MAX_LENGTH', cls.station_id_max_length),
            height_policy=_get_height_policy('TIDES_HEIGHT_POLICY', cls.height_policy),
            noaa_data_url=os.environ.get('TIDES_NOAA_DATA_URL', cls.noaa_data_url),
            noaa_stations_url=os.environ.get('TIDES_NOAA_STATIONS_URL', cls.noaa_stations_url),
            noaa_datum=os.environ.get('TIDES_NOAA_DATUM', cls.noaa_datum),
            application=os.environ.get('TIDES_APPLICATION', cls.application),
            api_timeout_seconds=_get_int_env('TIDES_API_TIMEOUT', cls.api_timeout_seconds),
            max_response_size=_get_int_env('TIDES_MAX_RESPONSE_SIZE', cls.max_response_size),
            rate_limit=os.environ.get('TIDES_RATE_LIMIT', cls.rate_limit),
        )
