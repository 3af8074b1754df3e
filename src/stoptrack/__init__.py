"""StopTrack - GTFS static and realtime arrivals for a transit agency."""

__version__ = "0.1.0"

from .models import (
    Route,
    Trip,
    Stop,
    StopTime,
    NearbyStop,
    RouteWithStops,
    TripDetails,
    VehiclePosition,
    ServiceAlert,
    BusArrival,
    BusDeparture,
)
from .exceptions import (
    StopTrackError,
    ConfigurationError,
    FetchError,
    ArchiveError,
    MissingTableError,
    FeedUnavailableError,
    FeedFetchError,
    FeedDecodeError,
)
from .config import TrackerConfig
from .gtfs_loader import GTFSCatalog
from .feed_client import FeedClient, CachedFeedClient
from .arrivals import ArrivalEngine
from .tracker import TransitTracker

__all__ = [
    "TransitTracker",
    "TrackerConfig",
    "GTFSCatalog",
    "FeedClient",
    "CachedFeedClient",
    "ArrivalEngine",
    "Route",
    "Trip",
    "Stop",
    "StopTime",
    "NearbyStop",
    "RouteWithStops",
    "TripDetails",
    "VehiclePosition",
    "ServiceAlert",
    "BusArrival",
    "BusDeparture",
    "StopTrackError",
    "ConfigurationError",
    "FetchError",
    "ArchiveError",
    "MissingTableError",
    "FeedUnavailableError",
    "FeedFetchError",
    "FeedDecodeError",
]
