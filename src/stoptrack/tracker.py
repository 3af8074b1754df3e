"""Main StopTrack query façade."""

import logging
from typing import List, Optional

from .arrivals import ArrivalEngine
from .config import TrackerConfig
from .feed_client import CachedFeedClient, FeedClient
from .geo import nearby_stops
from .gtfs_loader import GTFSCatalog
from .models import (
    BusArrival,
    BusDeparture,
    NearbyStop,
    Route,
    RouteWithStops,
    ServiceAlert,
    Stop,
    TripDetails,
    VehiclePosition,
)

logger = logging.getLogger(__name__)


class TransitTracker:
    """
    Answers stop, route, arrival and alert queries for one transit agency.

    This class provides methods to:
    - Browse stops, routes and trips from the static GTFS catalog
    - Search stops by name or by distance from a point
    - Get realtime arrivals and scheduled departures per stop
    - Get live vehicle positions and service alerts

    Unknown IDs return None or an empty list. Realtime queries raise
    FeedUnavailableError when a feed cannot be fetched or decoded.
    """

    def __init__(
        self,
        config: TrackerConfig,
        load_gtfs: bool = True,
        catalog: Optional[GTFSCatalog] = None,
        feed_client=None,
    ):
        """
        Initialize the tracker.

        Args:
            config: Upstream URLs and tuning settings.
            load_gtfs: If True, download and load the static bundle on init. If False,
                      the catalog must be loaded manually before static queries return data.
            catalog: Optional pre-built catalog (defaults to a new GTFSCatalog).
            feed_client: Optional realtime client (defaults to a FeedClient, wrapped in a
                        CachedFeedClient when config.realtime_cache_ttl > 0).
        """
        self.config = config
        self.catalog = catalog or GTFSCatalog(config.static_gtfs_url, timeout=config.request_timeout)

        if feed_client is None:
            feed_client = FeedClient(timeout=config.request_timeout)
            if config.realtime_cache_ttl > 0:
                feed_client = CachedFeedClient(
                    feed_client, ttl=config.realtime_cache_ttl, max_size=config.max_cache_size
                )
        self.feed_client = feed_client

        self.arrival_engine = ArrivalEngine(self.catalog, self.feed_client, config.trip_updates_url)

        if load_gtfs:
            try:
                self.catalog.load()
            except Exception as e:
                logger.error(f"Failed to load GTFS from URL: {e}")
                raise

    def refresh_static_data(self) -> None:
        """Reload the static bundle; queries keep the old data until the new one is complete."""
        self.catalog.load()

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        return self.catalog.get_stop(stop_id)

    def find_stops_by_name(self, name: str) -> List[Stop]:
        """
        Find all stops matching a name (partial match).

        Args:
            name: Stop name or partial name.

        Returns:
            List of matching Stop objects.
        """
        return self.catalog.find_stops_by_name(name)

    def get_all_routes(self) -> List[Route]:
        return list(self.catalog.routes.values())

    def get_route(self, route_id: str) -> Optional[Route]:
        return self.catalog.get_route(route_id)

    def get_or_create_route(self, route_id: str) -> Route:
        return self.catalog.get_or_create_route(route_id)

    def get_route_with_stops(self, route_id: str) -> Optional[RouteWithStops]:
        """
        Get a route with the stops its trips visit.

        Stop IDs that no longer resolve in the stop index are left out.
        """
        route = self.catalog.get_route(route_id)
        if route is None:
            return None

        stops = []
        for stop_id in self.catalog.get_route_stop_ids(route_id):
            stop = self.catalog.get_stop(stop_id)
            if stop is not None:
                stops.append(stop)

        return RouteWithStops(route=route, stops=stops)

    def get_trip_details(self, trip_id: str) -> Optional[TripDetails]:
        """
        Get a trip with its route and ordered stop times.

        A trip whose route_id is missing from routes.txt gets a synthesized
        fallback route that is not stored in the catalog.
        """
        trip = self.catalog.get_trip(trip_id)
        if trip is None:
            return None

        return TripDetails(
            trip=trip,
            route=self.catalog.get_route(trip.route_id) or Route.fallback(trip.route_id),
            stop_times=list(self.catalog.get_stop_times(trip_id)),
        )

    def get_nearby_stops(self, latitude: float, longitude: float, radius_meters: Optional[float] = None) -> List[NearbyStop]:
        """
        Get stops within a radius of a point, closest first.

        Args:
            latitude: Latitude in degrees (validated by the caller).
            longitude: Longitude in degrees (validated by the caller).
            radius_meters: Search radius. Defaults to config.default_nearby_radius.
        """
        if radius_meters is None:
            radius_meters = self.config.default_nearby_radius
        return nearby_stops(self.catalog.stops.values(), latitude, longitude, radius_meters)

    def get_vehicle_positions(self, route_id: Optional[str] = None) -> List[VehiclePosition]:
        """
        Get live vehicle positions, optionally only those serving a route.

        Raises:
            FeedUnavailableError: If the vehicle-positions feed is unavailable.
        """
        logger.info(f"Fetching vehicle positions from: {self.config.vehicle_positions_url}")
        vehicles = self.feed_client.fetch_vehicle_positions(self.config.vehicle_positions_url)

        if route_id:
            vehicles = [vehicle for vehicle in vehicles if vehicle.route_id == route_id]

        return vehicles

    def get_service_alerts(self, route_id: Optional[str] = None, stop_id: Optional[str] = None) -> List[ServiceAlert]:
        """
        Get service alerts, optionally only those informing a route or stop.

        With no filter every alert is returned.

        Raises:
            FeedUnavailableError: If the alerts feed is unavailable.
        """
        logger.info(f"Fetching service alerts from: {self.config.alerts_url}")
        alerts = self.feed_client.fetch_alerts(self.config.alerts_url)

        if route_id or stop_id:
            alerts = [alert for alert in alerts if alert.affects(route_id=route_id, stop_id=stop_id)]

        return alerts

    def get_next_arrivals(
        self, stop_id: str, route_id: Optional[str] = None, max_per_route: Optional[int] = None
    ) -> List[BusArrival]:
        """Get realtime arrivals at a stop, grouped by route."""
        if max_per_route is None:
            max_per_route = self.config.max_arrivals_per_route
        return self.arrival_engine.get_next_arrivals(stop_id, route_id, max_per_route)

    def get_live_arrivals_for_route(self, stop_id: str, route_id: str) -> List[BusArrival]:
        return self.arrival_engine.get_live_arrivals_for_route(stop_id, route_id)

    def get_next_arrival_for_route(self, stop_id: str, route_id: str) -> Optional[BusArrival]:
        return self.arrival_engine.get_next_arrival_for_route(stop_id, route_id)

    def get_scheduled_departures(
        self, stop_id: str, route_id: Optional[str] = None, max_per_route: Optional[int] = None
    ) -> List[BusDeparture]:
        """Get scheduled departures from a stop, grouped by route."""
        if max_per_route is None:
            max_per_route = self.config.max_arrivals_per_route
        return self.arrival_engine.get_scheduled_departures(stop_id, route_id, max_per_route)

    def get_scheduled_departures_for_route(self, stop_id: str, route_id: str) -> List[BusDeparture]:
        return self.arrival_engine.get_scheduled_departures_for_route(stop_id, route_id)

    def get_next_scheduled_departure_for_route(self, stop_id: str, route_id: str) -> Optional[BusDeparture]:
        return self.arrival_engine.get_next_scheduled_departure_for_route(stop_id, route_id)

    def cleanup(self) -> None:
        """Release resources and clear caches."""
        if isinstance(self.feed_client, CachedFeedClient):
            self.feed_client.clear_cache()
        logger.info("Cleaned up tracker resources")
