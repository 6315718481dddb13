import logging
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

from .config import Settings
from .station_resolver import NotFound
from .tide_service import StationCatalogUnavailable, TideDataUnavailable, TideService


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Tide Times API",
    description="Nearest-station tide predictions and tide curves using NOAA CO-OPS",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
settings = Settings.from_env()
tide_service = TideService(settings=settings)


def _parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 instant; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    instant = datetime.fromisoformat(value)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def _internal_error(where: str) -> HTTPException:
    error_id = uuid.uuid4().hex[:8]
    logger.exception(f"Error {error_id} in {where}")
    return HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/stations/nearest")
@limiter.limit(settings.rate_limit)
async def get_nearest_station(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    max_radius_km: Optional[float] = Query(
        None, gt=0, le=1000, description="Search radius in km. Defaults to the configured radius."
    ),
):
    """
    Find the tide station used for a location.

    Returns 404 when no station lies within the search radius, which is
    normal for inland or remote locations.
    """
    try:
        found = tide_service.find_station(lat, lon, max_radius_km=max_radius_km)
        if isinstance(found, NotFound):
            raise HTTPException(404, detail=found.message)

        station, distance = found
        return {
            "id": station.id,
            "name": station.name,
            "lat": station.coordinate.latitude,
            "lon": station.coordinate.longitude,
            "distance_km": round(distance, 3),
        }
    except StationCatalogUnavailable as e:
        raise HTTPException(503, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_nearest_station")


@app.get("/api/v1/stations/nearby")
@limiter.limit(settings.rate_limit)
async def get_nearby_stations(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    limit: int = Query(5, ge=1, le=50, description="Maximum number of stations"),
    max_radius_km: Optional[float] = Query(None, gt=0, le=1000, description="Search radius in km"),
):
    """List usable stations around a location, nearest first."""
    try:
        return tide_service.list_stations(lat, lon, limit=limit, max_radius_km=max_radius_km)
    except StationCatalogUnavailable as e:
        raise HTTPException(503, detail=str(e))
    except Exception:
        raise _internal_error("get_nearby_stations")


@app.get("/api/v1/tides")
@limiter.limit(settings.rate_limit)
async def get_tides(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    days: int = Query(1, ge=1, le=7, description="Number of days after the start date to fetch"),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD, GMT). If not provided, current date is used.",
    ),
    interval: Optional[Literal["15", "30", "60"]] = Query(
        None,
        description="Optional interval in minutes (15, 30, or 60). If provided, the interpolated curve is included.",
    ),
    ticks: int = Query(4, ge=1, le=12, description="Number of axis intervals"),
    tz: Optional[str] = Query(
        None,
        alias="timezone",
        description="Display timezone (e.g. 'America/Los_Angeles'). Detected from the station if omitted.",
    ),
):
    """
    Get tide predictions for a location.

    Resolves the nearest NOAA station, then returns its high/low tides,
    the interpolated height right now, and ticks/labels for charting.

    If `interval` is specified (15, 30, or 60 minutes), a `curve` of
    linearly interpolated heights at that spacing is added.
    """
    try:
        start_date = None
        if date:
            try:
                start_date = datetime.fromisoformat(date).date()
            except ValueError:
                raise HTTPException(
                    400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)"
                )

        report = tide_service.get_tides(
            lat=lat,
            lon=lon,
            now=datetime.now(timezone.utc),
            days=days,
            start_date=start_date,
            interval_minutes=int(interval) if interval else None,
            tick_count=ticks,
            timezone_str=tz,
        )
        if isinstance(report, NotFound):
            raise HTTPException(404, detail=report.message)
        return report
    except StationCatalogUnavailable as e:
        raise HTTPException(503, detail=str(e))
    except TideDataUnavailable as e:
        raise HTTPException(502, detail=str(e))
    except ValueError as e:
        raise HTTPException(400, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_tides")


@app.get("/api/v1/tides/height")
@limiter.limit(settings.rate_limit)
async def get_tide_height(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude in degrees"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude in degrees"),
    at: str = Query(..., description="Instant in ISO 8601 format. Naive values are taken as UTC."),
):
    """
    Get the interpolated tide height at one instant.

    `height_m` is null when the instant falls outside the predictions the
    provider returned.
    """
    try:
        try:
            instant = _parse_instant(at)
        except ValueError:
            raise HTTPException(400, "Invalid datetime format. Please use ISO 8601 format")

        height = tide_service.get_height(lat, lon, instant)
        if isinstance(height, NotFound):
            raise HTTPException(404, detail=height.message)
        return {
            "datetime": instant.isoformat(),
            "height_m": None if height is None else round(height, 3),
        }
    except StationCatalogUnavailable as e:
        raise HTTPException(503, detail=str(e))
    except TideDataUnavailable as e:
        raise HTTPException(502, detail=str(e))
    except HTTPException:
        raise
    except Exception:
        raise _internal_error("get_tide_height")


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "provider": "NOAA CO-OPS",
        "stations_loaded": tide_service.catalog.loaded,
    }
