"""Data models for StopTrack."""

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_ROUTE_COLOR = "000000"  # Black
DEFAULT_ROUTE_TEXT_COLOR = "FFFFFF"  # White


@dataclass(frozen=True)
class Route:
    """Represents a transit route (a named line)."""
    route_id: str
    short_name: str
    long_name: str
    route_color: str = DEFAULT_ROUTE_COLOR
    route_text_color: str = DEFAULT_ROUTE_TEXT_COLOR
    synthesized: bool = False  # True for fallback routes not present in routes.txt

    @classmethod
    def fallback(cls, route_id: str) -> "Route":
        """Build a minimal route for an id that routes.txt does not know."""
        short_name = route_id.split("-")[0]
        return cls(
            route_id=route_id,
            short_name=short_name or route_id,
            long_name=route_id,
            synthesized=True,
        )


@dataclass(frozen=True)
class Trip:
    """Represents one scheduled run of a route."""
    trip_id: str
    route_id: str
    trip_headsign: str


@dataclass(frozen=True)
class Stop:
    """Represents a physical boarding location."""
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float
    stop_desc: Optional[str] = None
    stop_code: Optional[str] = None


@dataclass(frozen=True)
class StopTime:
    """Scheduled arrival/departure of one trip at one stop."""
    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_time: str  # "HH:MM:SS", hours may exceed 23
    departure_time: str


@dataclass(frozen=True)
class NearbyStop:
    """A stop paired with its distance from a search point."""
    stop: Stop
    distance: int  # Meters


@dataclass(frozen=True)
class RouteWithStops:
    route: Route
    stops: List[Stop]


@dataclass(frozen=True)
class TripDetails:
    trip: Trip
    route: Route
    stop_times: List[StopTime]


@dataclass
class StopTimeUpdate:
    """Realtime prediction for one stop of a trip."""
    stop_id: str
    arrival_time: Optional[int] = None  # Unix timestamp
    departure_time: Optional[int] = None
    delay: Optional[int] = None  # Seconds
    uncertainty: Optional[int] = None
    schedule_relationship: Optional[str] = None


@dataclass
class TripUpdate:
    """Realtime predictions for a trip's remaining stops."""
    trip_id: str
    route_id: str
    stop_time_updates: List[StopTimeUpdate] = field(default_factory=list)


@dataclass
class VehiclePosition:
    """Represents a live GPS fix for a vehicle."""
    vehicle_id: str
    route_id: str
    latitude: float
    longitude: float
    timestamp: int
    trip_id: Optional[str] = None
    bearing: Optional[float] = None
    speed: Optional[float] = None
    occupancy_status: Optional[str] = None
    congestion_level: Optional[str] = None


@dataclass
class ActivePeriod:
    start: Optional[int] = None  # Open-ended when None
    end: Optional[int] = None


@dataclass
class InformedEntity:
    route_id: Optional[str] = None
    stop_id: Optional[str] = None
    agency_id: Optional[str] = None


@dataclass
class ServiceAlert:
    """Represents a service disruption notice."""
    alert_id: str
    header_text: str
    description_text: str
    severity: Optional[str] = None
    effect: Optional[str] = None
    active_periods: List[ActivePeriod] = field(default_factory=list)
    informed_entities: List[InformedEntity] = field(default_factory=list)

    def affects(self, route_id: Optional[str] = None, stop_id: Optional[str] = None) -> bool:
        """Check whether any informed entity matches the route or stop."""
        for informed in self.informed_entities:
            if route_id and informed.route_id == route_id:
                return True
            if stop_id and informed.stop_id == stop_id:
                return True
        return False


@dataclass
class ArrivalTime:
    """A single predicted arrival at a stop."""
    time: int  # Unix timestamp
    headsign: str
    minutes_until_arrival: int
    delay_seconds: int
    is_realtime: bool
    status: str  # e.g., "Arriving", "Due", "Delayed", "Early", "7 min"
    trip_id: Optional[str] = None
    uncertainty: Optional[int] = None


@dataclass
class BusArrival:
    """Upcoming realtime arrivals at a stop for one route."""
    stop_id: str
    route_id: str
    route_short_name: str
    route_long_name: str
    route_color: str
    route_text_color: str
    trip_headsign: str
    arrival_times: List[ArrivalTime]


@dataclass
class DepartureTime:
    """A single scheduled departure from a stop."""
    time: int  # Unix timestamp
    headsign: str
    minutes_until_departure: int
    status: str  # e.g., "Departing", "Due", "12 min"
    trip_id: Optional[str] = None
    is_scheduled: bool = True


@dataclass
class BusDeparture:
    """Upcoming scheduled departures from a stop for one route."""
    stop_id: str
    route_id: str
    route_short_name: str
    route_long_name: str
    route_color: str
    route_text_color: str
    trip_headsign: str
    departure_times: List[DepartureTime]
