"""GTFS-Realtime feed fetcher and decoder."""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

import requests
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from .exceptions import FeedDecodeError, FeedFetchError
from .models import (
    ActivePeriod,
    InformedEntity,
    ServiceAlert,
    StopTimeUpdate,
    TripUpdate,
    VehiclePosition,
)

logger = logging.getLogger(__name__)

_ScheduleRelationship = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate.ScheduleRelationship
_OccupancyStatus = gtfs_realtime_pb2.VehiclePosition.OccupancyStatus
_CongestionLevel = gtfs_realtime_pb2.VehiclePosition.CongestionLevel
_SeverityLevel = gtfs_realtime_pb2.Alert.SeverityLevel
_Effect = gtfs_realtime_pb2.Alert.Effect


class FeedClient:
    """Fetches GTFS-Realtime feeds and decodes them into StopTrack models."""

    def __init__(self, timeout: int = 10, session: Optional[requests.Session] = None):
        """
        Initialize the feed client.

        Args:
            timeout: Seconds to wait for each feed download.
            session: Optional requests session to reuse connections.
        """
        self.timeout = timeout
        self._session = session

    def fetch_trip_updates(self, feed_url: str) -> List[TripUpdate]:
        """
        Fetch and decode a trip-updates feed.

        Args:
            feed_url: Full URL to the feed.

        Returns:
            One TripUpdate per feed entity carrying a trip_update.

        Raises:
            FeedFetchError: If the feed cannot be downloaded.
            FeedDecodeError: If the payload is not a FeedMessage.
        """
        feed = self._decode(self._fetch_feed(feed_url), feed_url)

        trip_updates: List[TripUpdate] = []
        for entity in feed.entity:
            if not entity.HasField("trip_update"):
                continue

            trip_update = entity.trip_update
            trip_updates.append(
                TripUpdate(
                    trip_id=trip_update.trip.trip_id,
                    route_id=trip_update.trip.route_id,
                    stop_time_updates=[self._parse_stop_time_update(stu) for stu in trip_update.stop_time_update],
                )
            )

        logger.debug(f"Decoded {len(trip_updates)} trip updates from {feed_url}")
        return trip_updates

    def fetch_vehicle_positions(self, feed_url: str) -> List[VehiclePosition]:
        """
        Fetch and decode a vehicle-positions feed.

        Entities without a position are skipped.
        """
        feed = self._decode(self._fetch_feed(feed_url), feed_url)

        vehicles: List[VehiclePosition] = []
        for entity in feed.entity:
            if not entity.HasField("vehicle") or not entity.vehicle.HasField("position"):
                continue

            vehicle = entity.vehicle
            position = vehicle.position
            trip = vehicle.trip

            vehicles.append(
                VehiclePosition(
                    vehicle_id=vehicle.vehicle.id or entity.id,
                    route_id=trip.route_id,
                    trip_id=trip.trip_id or None,
                    latitude=position.latitude,
                    longitude=position.longitude,
                    bearing=position.bearing if position.HasField("bearing") else None,
                    speed=position.speed if position.HasField("speed") else None,
                    timestamp=vehicle.timestamp if vehicle.HasField("timestamp") else int(time.time()),
                    occupancy_status=(
                        _enum_name(_OccupancyStatus, vehicle.occupancy_status)
                        if vehicle.HasField("occupancy_status")
                        else None
                    ),
                    congestion_level=(
                        _enum_name(_CongestionLevel, vehicle.congestion_level)
                        if vehicle.HasField("congestion_level")
                        else None
                    ),
                )
            )

        logger.debug(f"Decoded {len(vehicles)} vehicle positions from {feed_url}")
        return vehicles

    def fetch_alerts(self, feed_url: str) -> List[ServiceAlert]:
        """
        Fetch and decode a service-alerts feed.

        Header and description use the first translation, or "" when none.
        """
        feed = self._decode(self._fetch_feed(feed_url), feed_url)

        alerts: List[ServiceAlert] = []
        for entity in feed.entity:
            if not entity.HasField("alert"):
                continue

            alert = entity.alert
            alerts.append(
                ServiceAlert(
                    alert_id=entity.id,
                    header_text=_first_translation(alert.header_text),
                    description_text=_first_translation(alert.description_text),
                    severity=(
                        _enum_name(_SeverityLevel, alert.severity_level) if alert.HasField("severity_level") else None
                    ),
                    effect=_enum_name(_Effect, alert.effect) if alert.HasField("effect") else None,
                    active_periods=[
                        ActivePeriod(
                            start=period.start if period.HasField("start") else None,
                            end=period.end if period.HasField("end") else None,
                        )
                        for period in alert.active_period
                    ],
                    informed_entities=[
                        InformedEntity(
                            route_id=informed.route_id or None,
                            stop_id=informed.stop_id or None,
                            agency_id=informed.agency_id or None,
                        )
                        for informed in alert.informed_entity
                    ],
                )
            )

        logger.debug(f"Decoded {len(alerts)} alerts from {feed_url}")
        return alerts

    @staticmethod
    def _parse_stop_time_update(stop_time_update) -> StopTimeUpdate:
        arrival = stop_time_update.arrival if stop_time_update.HasField("arrival") else None
        departure = stop_time_update.departure if stop_time_update.HasField("departure") else None

        return StopTimeUpdate(
            stop_id=stop_time_update.stop_id,
            arrival_time=arrival.time if arrival is not None and arrival.HasField("time") else None,
            departure_time=departure.time if departure is not None and departure.HasField("time") else None,
            delay=arrival.delay if arrival is not None and arrival.HasField("delay") else None,
            uncertainty=arrival.uncertainty if arrival is not None and arrival.HasField("uncertainty") else None,
            schedule_relationship=(
                _enum_name(_ScheduleRelationship, stop_time_update.schedule_relationship)
                if stop_time_update.HasField("schedule_relationship")
                else None
            ),
        )

    def _fetch_feed(self, feed_url: str) -> bytes:
        """
        Download a GTFS-Realtime feed.

        Args:
            feed_url: Full URL to the feed.

        Returns:
            Raw protobuf bytes.
        """
        logger.debug(f"Fetching {feed_url}")
        get = self._session.get if self._session is not None else requests.get
        try:
            response = get(feed_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {feed_url}: {e}")
            raise FeedFetchError(feed_url, f"Failed to fetch GTFS-Realtime feed: {e}") from e

        if not response.ok:
            logger.error(f"Failed to fetch {feed_url}: HTTP {response.status_code}")
            raise FeedFetchError(
                feed_url,
                f"Failed to fetch GTFS-Realtime feed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        logger.debug(f"Received feed data of size: {len(response.content)} bytes")
        return response.content

    @staticmethod
    def _decode(feed_data: bytes, feed_url: str) -> gtfs_realtime_pb2.FeedMessage:
        feed = gtfs_realtime_pb2.FeedMessage()
        try:
            feed.ParseFromString(feed_data)
        except DecodeError as e:
            logger.error(f"Failed to decode feed from {feed_url}: {e}")
            raise FeedDecodeError(f"Malformed GTFS-Realtime payload from {feed_url}: {e}") from e

        logger.debug(f"Decoded feed with {len(feed.entity)} entities")
        return feed


class CachedFeedClient:
    """
    TTL cache in front of a FeedClient.

    Decoded entities are cached per (feed kind, URL). Expired entries are
    evicted on each miss and the oldest entry is dropped once max_size is hit.
    """

    def __init__(self, client: FeedClient, ttl: float = 30, max_size: int = 10):
        self.client = client
        self._cache_ttl = ttl
        self._max_cache_size = max_size
        self._cache: Dict[Tuple[str, str], Tuple[list, float]] = {}  # (kind, url) -> (entities, timestamp)
        self._lock = threading.Lock()

    def fetch_trip_updates(self, feed_url: str) -> List[TripUpdate]:
        return self._cached("trip_updates", feed_url, self.client.fetch_trip_updates)

    def fetch_vehicle_positions(self, feed_url: str) -> List[VehiclePosition]:
        return self._cached("vehicle_positions", feed_url, self.client.fetch_vehicle_positions)

    def fetch_alerts(self, feed_url: str) -> List[ServiceAlert]:
        return self._cached("alerts", feed_url, self.client.fetch_alerts)

    def _cached(self, kind: str, feed_url: str, fetch: Callable[[str], list]) -> list:
        key = (kind, feed_url)
        now = time.time()
        with self._lock:
            if key in self._cache:
                entities, timestamp = self._cache[key]
                if now - timestamp < self._cache_ttl:
                    logger.debug(f"Using cached {kind} for {feed_url}")
                    return list(entities)

        # Fetch outside the lock; failures are not cached
        entities = fetch(feed_url)

        with self._lock:
            self._evict_expired_cache(now)
            if len(self._cache) >= self._max_cache_size:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
            self._cache[key] = (entities, now)

        return list(entities)

    def _evict_expired_cache(self, current_time: float) -> None:
        """Remove expired cache entries."""
        expired_keys = [
            key for key, (_, timestamp) in self._cache.items()
            if current_time - timestamp >= self._cache_ttl
        ]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"Evicted {len(expired_keys)} expired cache entries")

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        with self._lock:
            self._cache.clear()


def _enum_name(enum_type, value: int) -> str:
    """Symbolic name of a protobuf enum value, or the number if unknown."""
    try:
        return enum_type.Name(value)
    except ValueError:
        return str(value)


def _first_translation(translated_string) -> str:
    if translated_string.translation:
        return translated_string.translation[0].text
    return ""
