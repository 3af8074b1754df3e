"""Arrival and departure computation for a stop."""

import logging
import time
from datetime import datetime, time as dtime, timedelta
from typing import Dict, List, Optional, Tuple

from .gtfs_loader import GTFSCatalog
from .models import (
    ArrivalTime,
    BusArrival,
    BusDeparture,
    DepartureTime,
    StopTimeUpdate,
)

logger = logging.getLogger(__name__)

ARRIVAL_WINDOW_SECONDS = 2 * 60 * 60  # Realtime predictions further out are ignored
DEPARTURE_WINDOW_SECONDS = 24 * 60 * 60

DEFAULT_MAX_PER_ROUTE = 5
ROUTE_MAX_PER_ROUTE = 10


def get_arrival_status(minutes_until: int, delay_seconds: int) -> str:
    """
    Classify a realtime arrival for display.

    Rules are checked in order, so an imminent arrival reads "Arriving" or
    "Due" regardless of its delay.
    """
    if minutes_until <= 1:
        return "Arriving"
    if minutes_until <= 2:
        return "Due"
    if delay_seconds > 300:
        return "Delayed"
    if delay_seconds < -60:
        return "Early"
    return f"{minutes_until} min"


def get_departure_status(minutes_until: int) -> str:
    """Classify a scheduled departure for display."""
    if minutes_until <= 1:
        return "Departing"
    if minutes_until <= 2:
        return "Due"
    return f"{minutes_until} min"


def parse_gtfs_time(time_str: str, reference: datetime) -> int:
    """
    Convert a GTFS "HH:MM:SS" time to a Unix timestamp on the reference's local day.

    Hours of 24 or more roll over into the following day (e.g. "25:15:00" is
    01:15 tomorrow).

    Raises:
        ValueError: If time_str is not three colon-separated integers.
        OverflowError: If the hours push the result past the datetime range.
    """
    hours, minutes, seconds = (int(part) for part in time_str.split(":"))

    day = datetime.combine(reference.date(), dtime.min)
    if hours >= 24:
        day += timedelta(days=1)
        hours -= 24

    return int((day + timedelta(hours=hours, minutes=minutes, seconds=seconds)).timestamp())


class ArrivalEngine:
    """
    Joins realtime trip updates or scheduled stop times against a stop.

    Every call is independent: live arrivals re-fetch the trip-updates feed,
    scheduled departures only read the static catalog.
    """

    def __init__(self, catalog: GTFSCatalog, feed_client, trip_updates_url: str):
        """
        Initialize the engine.

        Args:
            catalog: Loaded static GTFS catalog.
            feed_client: FeedClient (or CachedFeedClient) used for trip updates.
            trip_updates_url: URL of the GTFS-Realtime trip-updates feed.
        """
        self.catalog = catalog
        self.feed_client = feed_client
        self.trip_updates_url = trip_updates_url

    def get_next_arrivals(
        self,
        stop_id: str,
        route_filter: Optional[str] = None,
        max_per_route: int = DEFAULT_MAX_PER_ROUTE,
        now: Optional[float] = None,
    ) -> List[BusArrival]:
        """
        Get realtime arrivals at a stop, grouped by route.

        Args:
            stop_id: GTFS stop ID.
            route_filter: Only include this route when given.
            max_per_route: Maximum arrivals kept per route.
            now: Unix time to compute against. Defaults to the current time.

        Returns:
            One BusArrival per route with upcoming arrivals in the next two hours.

        Raises:
            FeedUnavailableError: If the trip-updates feed cannot be fetched or decoded.
        """
        current_time = int(time.time()) if now is None else int(now)
        logger.info(f"Fetching arrivals for stop ID: {stop_id}{f', route: {route_filter}' if route_filter else ''}")

        trip_updates = self.feed_client.fetch_trip_updates(self.trip_updates_url)

        arrivals: Dict[str, List[Tuple[int, str, StopTimeUpdate]]] = {}
        matching_updates = 0
        for trip_update in trip_updates:
            if not trip_update.trip_id or not trip_update.route_id:
                continue
            if route_filter and trip_update.route_id != route_filter:
                continue

            for update in trip_update.stop_time_updates:
                if update.stop_id != stop_id or not update.arrival_time:
                    continue

                if current_time < update.arrival_time < current_time + ARRIVAL_WINDOW_SECONDS:
                    arrivals.setdefault(trip_update.route_id, []).append(
                        (update.arrival_time, trip_update.trip_id, update)
                    )
                    matching_updates += 1

        logger.debug(f"Found {matching_updates} matching updates for stop {stop_id}")

        results: List[BusArrival] = []
        for route_id, route_arrivals in arrivals.items():
            route = self.catalog.get_route(route_id)
            if route is None:
                logger.warning(f"No route details found for route ID: {route_id}")
                continue

            kept = sorted(route_arrivals, key=lambda arrival: arrival[0])[:max_per_route]
            if not kept:
                continue

            arrival_times = []
            for arrival_time, trip_id, update in kept:
                trip = self.catalog.get_trip(trip_id)
                minutes_until = (arrival_time - current_time) // 60
                delay = update.delay or 0

                arrival_times.append(
                    ArrivalTime(
                        time=arrival_time,
                        headsign=trip.trip_headsign if trip else "",
                        minutes_until_arrival=minutes_until,
                        delay_seconds=delay,
                        is_realtime=update.schedule_relationship != "SCHEDULED",
                        status=get_arrival_status(minutes_until, delay),
                        trip_id=trip_id,
                        uncertainty=update.uncertainty,
                    )
                )

            results.append(
                BusArrival(
                    stop_id=stop_id,
                    route_id=route_id,
                    route_short_name=route.short_name,
                    route_long_name=route.long_name,
                    route_color=route.route_color,
                    route_text_color=route.route_text_color,
                    trip_headsign=arrival_times[0].headsign,
                    arrival_times=arrival_times,
                )
            )

        return results

    def get_live_arrivals_for_route(
        self, stop_id: str, route_id: str, now: Optional[float] = None
    ) -> List[BusArrival]:
        return self.get_next_arrivals(stop_id, route_id, ROUTE_MAX_PER_ROUTE, now)

    def get_next_arrival_for_route(
        self, stop_id: str, route_id: str, now: Optional[float] = None
    ) -> Optional[BusArrival]:
        arrivals = self.get_next_arrivals(stop_id, route_id, 1, now)
        return arrivals[0] if arrivals else None

    def get_scheduled_departures(
        self,
        stop_id: str,
        route_filter: Optional[str] = None,
        max_per_route: int = DEFAULT_MAX_PER_ROUTE,
        now: Optional[float] = None,
    ) -> List[BusDeparture]:
        """
        Get scheduled departures from a stop within the next 24 hours.

        Times are anchored to today's local date with no service-calendar
        filtering, so every trip counts regardless of its day of validity.
        Trips sharing a departure instant on the same route collapse to one.

        Args:
            stop_id: GTFS stop ID.
            route_filter: Only include this route when given.
            max_per_route: Maximum departures kept per route.
            now: Unix time to compute against. Defaults to the current time.

        Returns:
            One BusDeparture per route with upcoming departures.
        """
        current_time = int(time.time()) if now is None else int(now)
        reference = datetime.fromtimestamp(current_time)
        logger.info(
            f"Fetching scheduled departures for stop ID: {stop_id}"
            f"{f', route: {route_filter}' if route_filter else ''}"
        )

        departures: Dict[str, List[Tuple[int, str]]] = {}
        for trip_id, stop_times in self.catalog.stop_times.items():
            trip = self.catalog.get_trip(trip_id)
            if trip is None:
                continue
            if route_filter and trip.route_id != route_filter:
                continue

            stop_time = next((st for st in stop_times if st.stop_id == stop_id), None)
            if stop_time is None:
                continue

            try:
                departure_time = parse_gtfs_time(stop_time.departure_time, reference)
            except (ValueError, OverflowError):
                logger.debug(f"Skipping trip {trip_id}: malformed departure time {stop_time.departure_time!r}")
                continue

            if current_time < departure_time < current_time + DEPARTURE_WINDOW_SECONDS:
                departures.setdefault(trip.route_id, []).append((departure_time, trip_id))

        results: List[BusDeparture] = []
        for route_id, route_departures in departures.items():
            route = self.catalog.get_route(route_id)
            if route is None:
                logger.warning(f"No route details found for route ID: {route_id}")
                continue

            # Calendar variants and duplicate patterns often share a departure instant
            unique: Dict[int, Tuple[int, str]] = {}
            for departure in route_departures:
                unique.setdefault(departure[0], departure)
            logger.debug(
                f"Route {route_id}: {len(route_departures)} departures, {len(unique)} after deduplication"
            )

            kept = sorted(unique.values(), key=lambda departure: departure[0])[:max_per_route]
            if not kept:
                continue

            departure_times = []
            for departure_time, trip_id in kept:
                trip = self.catalog.get_trip(trip_id)
                minutes_until = (departure_time - current_time) // 60
                departure_times.append(
                    DepartureTime(
                        time=departure_time,
                        headsign=trip.trip_headsign if trip else "",
                        minutes_until_departure=minutes_until,
                        status=get_departure_status(minutes_until),
                        trip_id=trip_id,
                    )
                )

            results.append(
                BusDeparture(
                    stop_id=stop_id,
                    route_id=route_id,
                    route_short_name=route.short_name,
                    route_long_name=route.long_name,
                    route_color=route.route_color,
                    route_text_color=route.route_text_color,
                    trip_headsign=departure_times[0].headsign,
                    departure_times=departure_times,
                )
            )

        return results

    def get_scheduled_departures_for_route(
        self, stop_id: str, route_id: str, now: Optional[float] = None
    ) -> List[BusDeparture]:
        return self.get_scheduled_departures(stop_id, route_id, ROUTE_MAX_PER_ROUTE, now)

    def get_next_scheduled_departure_for_route(
        self, stop_id: str, route_id: str, now: Optional[float] = None
    ) -> Optional[BusDeparture]:
        departures = self.get_scheduled_departures(stop_id, route_id, 1, now)
        return departures[0] if departures else None
