"""Configuration for StopTrack."""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("GTFS_STATIC_URL", "GTFS_REALTIME_URL")


@dataclass
class TrackerConfig:
    """Upstream URLs and tuning knobs for a TransitTracker."""
    static_gtfs_url: str
    trip_updates_url: str
    vehicle_positions_url: Optional[str] = None
    alerts_url: Optional[str] = None
    request_timeout: int = 10  # Seconds per upstream HTTP call
    realtime_cache_ttl: int = 0  # Seconds; 0 disables the feed cache
    max_cache_size: int = 10
    max_arrivals_per_route: int = 5
    default_nearby_radius: int = 500  # Meters
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.vehicle_positions_url:
            self.vehicle_positions_url = derive_feed_url(self.trip_updates_url, "vehiclepositions.pb")
        if not self.alerts_url:
            self.alerts_url = derive_feed_url(self.trip_updates_url, "alerts.pb")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TrackerConfig":
        """
        Build a config from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigurationError: If GTFS_STATIC_URL or GTFS_REALTIME_URL is unset.
        """
        env = os.environ if environ is None else environ

        missing = [key for key in REQUIRED_ENV_VARS if not env.get(key)]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            static_gtfs_url=env["GTFS_STATIC_URL"],
            trip_updates_url=env["GTFS_REALTIME_URL"],
            vehicle_positions_url=env.get("GTFS_VEHICLE_POSITIONS_URL") or None,
            alerts_url=env.get("GTFS_ALERTS_URL") or None,
            request_timeout=_parse_int(env.get("GTFS_REQUEST_TIMEOUT"), 10),
            realtime_cache_ttl=_parse_int(env.get("GTFS_REALTIME_CACHE_TTL"), 0),
            max_cache_size=_parse_int(env.get("MAX_CACHE_SIZE"), 10),
            max_arrivals_per_route=_parse_int(env.get("MAX_ARRIVALS_PER_ROUTE"), 5),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def derive_feed_url(trip_updates_url: str, feed_name: str) -> str:
    """
    Derive a sibling feed URL from the trip-updates URL.

    The final path segment is replaced and the query string is kept, so
    ".../tripupdates.pb?operatorIds=48" becomes ".../alerts.pb?operatorIds=48".
    """
    parts = urlsplit(trip_updates_url)
    base_path = parts.path.rsplit("/", 1)[0]
    return urlunsplit((parts.scheme, parts.netloc, f"{base_path}/{feed_name}", parts.query, parts.fragment))


def _parse_int(value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer setting {value!r}, using {default}")
        return default
