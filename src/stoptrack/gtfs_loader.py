"""GTFS static bundle loader and in-memory catalog."""

import csv
import io
import logging
import math
import zipfile
import zlib
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import requests

from .exceptions import ArchiveError, FetchError, MissingTableError
from .models import Route, Stop, StopTime, Trip, DEFAULT_ROUTE_COLOR, DEFAULT_ROUTE_TEXT_COLOR

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("routes.txt", "trips.txt", "stops.txt")
OPTIONAL_TABLES = ("stop_times.txt",)

# Fixed column contract for the positional tables
ROUTE_MIN_FIELDS = 6  # id, short_name, long_name, _, color, text_color
TRIP_MIN_FIELDS = 4  # route_id, _, trip_id, headsign

STOP_TIME_COLUMNS = ("trip_id", "arrival_time", "departure_time", "stop_id", "stop_sequence")


@dataclass
class _Indexes:
    """One published generation of the catalog's indexes."""
    routes: Dict[str, Route] = field(default_factory=dict)
    trips: Dict[str, Trip] = field(default_factory=dict)
    stops: Dict[str, Stop] = field(default_factory=dict)
    stop_times: Dict[str, Tuple[StopTime, ...]] = field(default_factory=dict)  # trip_id -> ordered
    route_stops: Dict[str, Tuple[str, ...]] = field(default_factory=dict)  # route_id -> stop_ids
    loaded: bool = False


class GTFSCatalog:
    """
    Loads a GTFS static bundle and indexes routes, trips, stops and stop times.

    Indexes are built in full and then published with a single assignment, so
    readers never observe a half-loaded catalog and load() may be called again
    to refresh a running instance. Accessors hand out read-only views.
    """

    def __init__(self, bundle_url: Optional[str] = None, timeout: int = 10):
        """
        Initialize an empty catalog.

        Args:
            bundle_url: Default URL of the GTFS zip used by load().
            timeout: Seconds to wait for the bundle download.
        """
        self.bundle_url = bundle_url
        self.timeout = timeout
        self._indexes = _Indexes()

    def load(self, bundle_url: Optional[str] = None) -> None:
        """
        Download a GTFS zip bundle and load it.

        Args:
            bundle_url: URL of the bundle. Defaults to the URL given at construction.

        Raises:
            FetchError: If the download fails or returns a non-2xx status.
            ArchiveError: If the payload is not a readable zip archive.
            MissingTableError: If routes.txt, trips.txt or stops.txt is absent.
        """
        url = bundle_url or self.bundle_url
        if not url:
            raise ValueError("No GTFS bundle URL configured")

        logger.info(f"Downloading GTFS bundle from {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Failed to fetch GTFS bundle: {e}")
            raise FetchError(url, f"Failed to fetch GTFS bundle: {e}") from e

        if not response.ok:
            raise FetchError(
                url,
                f"Failed to fetch GTFS bundle: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        logger.info(f"Received GTFS bundle of {len(response.content)} bytes")
        self.load_from_bytes(response.content)
        self.bundle_url = url

    def load_from_bytes(self, data: bytes) -> None:
        """Load a GTFS bundle from raw zip bytes."""
        tables: Dict[str, str] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
                # Match on basename so bundles nested in a folder still load
                members = {
                    PurePosixPath(name).name: name
                    for name in zip_file.namelist()
                    if not name.endswith("/")
                }
                for table in REQUIRED_TABLES + OPTIONAL_TABLES:
                    if table in members:
                        tables[table] = zip_file.read(members[table]).decode("utf-8-sig", errors="replace")
        except (zipfile.BadZipFile, zlib.error) as e:
            raise ArchiveError(f"Unreadable GTFS bundle: {e}") from e

        self._load_tables(tables)

    def load_from_directory(self, directory: str) -> None:
        """Load GTFS data from an unpacked bundle on disk."""
        logger.info(f"Loading GTFS data from {directory}")
        base = Path(directory)
        tables: Dict[str, str] = {}
        for table in REQUIRED_TABLES + OPTIONAL_TABLES:
            path = base / table
            if path.is_file():
                tables[table] = path.read_text(encoding="utf-8-sig", errors="replace")

        self._load_tables(tables)

    def _load_tables(self, tables: Mapping[str, str]) -> None:
        """Parse table contents, build every index, then publish them together."""
        for table in REQUIRED_TABLES:
            if table not in tables:
                raise MissingTableError(table)

        routes = self._parse_routes(tables["routes.txt"])
        trips = self._parse_trips(tables["trips.txt"])
        stops = self._parse_stops(tables["stops.txt"])

        if "stop_times.txt" in tables:
            stop_times = self._parse_stop_times(tables["stop_times.txt"])
        else:
            logger.warning("stop_times.txt not found in GTFS bundle, skipping")
            stop_times = {}

        route_stops = self._build_route_stops(trips, stop_times)

        self._indexes = _Indexes(
            routes=routes,
            trips=trips,
            stops=stops,
            stop_times=stop_times,
            route_stops=route_stops,
            loaded=True,
        )
        logger.info(
            f"Loaded {len(routes)} routes, {len(trips)} trips, {len(stops)} stops "
            f"and stop times for {len(stop_times)} trips"
        )

    def _parse_routes(self, csv_content: str) -> Dict[str, Route]:
        """Parse routes.txt by position: id, short_name, long_name, _, color, text_color."""
        routes: Dict[str, Route] = {}
        _, rows = _read_table(csv_content)

        for line_num, fields in rows:
            if len(fields) < ROUTE_MIN_FIELDS:
                _warn_short_row("routes.txt", line_num, ROUTE_MIN_FIELDS, len(fields))
                continue

            route_id = _clean(fields[0])
            if not route_id:
                logger.warning(f"Skipping routes.txt line {line_num}: empty route_id")
                continue

            routes[route_id] = Route(
                route_id=route_id,
                short_name=_clean(fields[1]),
                long_name=_clean(fields[2]),
                route_color=_clean(fields[4]) or DEFAULT_ROUTE_COLOR,
                route_text_color=_clean(fields[5]) or DEFAULT_ROUTE_TEXT_COLOR,
            )

        return routes

    def _parse_trips(self, csv_content: str) -> Dict[str, Trip]:
        """Parse trips.txt by position: route_id, _, trip_id, headsign."""
        trips: Dict[str, Trip] = {}
        _, rows = _read_table(csv_content)

        for line_num, fields in rows:
            if len(fields) < TRIP_MIN_FIELDS:
                _warn_short_row("trips.txt", line_num, TRIP_MIN_FIELDS, len(fields))
                continue

            trip_id = _clean(fields[2])
            if not trip_id:
                logger.warning(f"Skipping trips.txt line {line_num}: empty trip_id")
                continue

            trips[trip_id] = Trip(
                trip_id=trip_id,
                route_id=_clean(fields[0]),
                trip_headsign=_clean(fields[3]),
            )

        return trips

    def _parse_stops(self, csv_content: str) -> Dict[str, Stop]:
        """Parse stops.txt, locating columns by header name."""
        stops: Dict[str, Stop] = {}
        header, rows = _read_table(csv_content)

        columns = _column_index(header)
        try:
            id_idx = columns["stop_id"]
            lat_idx = columns["stop_lat"]
            lon_idx = columns["stop_lon"]
        except KeyError as e:
            logger.warning(f"stops.txt is missing column {e}, no stops loaded")
            return stops

        name_idx = columns.get("stop_name")
        desc_idx = columns.get("stop_desc")
        code_idx = columns.get("stop_code")
        min_fields = max(i for i in (id_idx, name_idx, lat_idx, lon_idx) if i is not None) + 1

        for line_num, fields in rows:
            if len(fields) < min_fields:
                _warn_short_row("stops.txt", line_num, min_fields, len(fields))
                continue

            stop_id = _clean(fields[id_idx])
            try:
                stop_lat = float(fields[lat_idx])
                stop_lon = float(fields[lon_idx])
            except ValueError:
                logger.warning(f"Skipping stops.txt line {line_num}: non-numeric coordinates")
                continue

            if not stop_id or math.isnan(stop_lat) or math.isnan(stop_lon):
                logger.warning(f"Skipping stops.txt line {line_num}: missing stop_id or coordinates")
                continue

            stop_name = _clean(fields[name_idx]) if name_idx is not None else ""
            stops[stop_id] = Stop(
                stop_id=stop_id,
                stop_name=stop_name or stop_id,
                stop_lat=stop_lat,
                stop_lon=stop_lon,
                stop_desc=_optional_field(fields, desc_idx),
                stop_code=_optional_field(fields, code_idx),
            )

        return stops

    def _parse_stop_times(self, csv_content: str) -> Dict[str, Tuple[StopTime, ...]]:
        """Parse stop_times.txt into per-trip tuples ordered by stop_sequence."""
        by_trip: Dict[str, List[StopTime]] = {}
        header, rows = _read_table(csv_content)

        columns = _column_index(header)
        missing = [name for name in STOP_TIME_COLUMNS if name not in columns]
        if missing:
            logger.warning(f"stop_times.txt is missing columns {missing}, no stop times loaded")
            return {}

        trip_idx, arrival_idx, departure_idx, stop_idx, sequence_idx = (
            columns[name] for name in STOP_TIME_COLUMNS
        )
        min_fields = max(trip_idx, arrival_idx, departure_idx, stop_idx, sequence_idx) + 1

        for line_num, fields in rows:
            if len(fields) < min_fields:
                _warn_short_row("stop_times.txt", line_num, min_fields, len(fields))
                continue

            trip_id = _clean(fields[trip_idx])
            stop_id = _clean(fields[stop_idx])
            arrival_time = _clean(fields[arrival_idx])
            departure_time = _clean(fields[departure_idx])
            try:
                stop_sequence = int(fields[sequence_idx])
            except ValueError:
                logger.warning(f"Skipping stop_times.txt line {line_num}: non-integer stop_sequence")
                continue

            if not (trip_id and stop_id and arrival_time and departure_time):
                logger.warning(f"Skipping stop_times.txt line {line_num}: missing required value")
                continue

            by_trip.setdefault(trip_id, []).append(
                StopTime(
                    trip_id=trip_id,
                    stop_id=stop_id,
                    stop_sequence=stop_sequence,
                    arrival_time=arrival_time,
                    departure_time=departure_time,
                )
            )

        return {
            trip_id: tuple(sorted(trip_stop_times, key=lambda st: st.stop_sequence))
            for trip_id, trip_stop_times in by_trip.items()
        }

    @staticmethod
    def _build_route_stops(
        trips: Mapping[str, Trip],
        stop_times: Mapping[str, Tuple[StopTime, ...]],
    ) -> Dict[str, Tuple[str, ...]]:
        """Map each route to the stops its trips visit, in first-seen order."""
        route_stops: Dict[str, Dict[str, None]] = {}

        for trip_id, trip in trips.items():
            trip_stop_times = stop_times.get(trip_id)
            if not trip_stop_times:
                continue

            seen = route_stops.setdefault(trip.route_id, {})
            for stop_time in trip_stop_times:
                seen.setdefault(stop_time.stop_id, None)

        logger.debug(f"Built route-stops mapping for {len(route_stops)} routes")
        return {route_id: tuple(stop_ids) for route_id, stop_ids in route_stops.items()}

    @property
    def is_loaded(self) -> bool:
        return self._indexes.loaded

    @property
    def routes(self) -> Mapping[str, Route]:
        return MappingProxyType(self._indexes.routes)

    @property
    def trips(self) -> Mapping[str, Trip]:
        return MappingProxyType(self._indexes.trips)

    @property
    def stops(self) -> Mapping[str, Stop]:
        return MappingProxyType(self._indexes.stops)

    @property
    def stop_times(self) -> Mapping[str, Tuple[StopTime, ...]]:
        return MappingProxyType(self._indexes.stop_times)

    def get_route(self, route_id: str) -> Optional[Route]:
        return self._indexes.routes.get(route_id)

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self._indexes.trips.get(trip_id)

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        return self._indexes.stops.get(stop_id)

    def get_stop_times(self, trip_id: str) -> Tuple[StopTime, ...]:
        """Get a trip's stop times ordered by stop_sequence (empty if unknown)."""
        return self._indexes.stop_times.get(trip_id, ())

    def get_route_stop_ids(self, route_id: str) -> Tuple[str, ...]:
        """Get stop IDs visited by a route in first-seen order."""
        return self._indexes.route_stops.get(route_id, ())

    def get_or_create_route(self, route_id: str) -> Route:
        """
        Get a route, synthesizing a fallback entry for unknown IDs.

        The fallback is flagged as synthesized and stored by publishing a new
        snapshot of the indexes; views handed out earlier never change.
        """
        indexes = self._indexes
        route = indexes.routes.get(route_id)
        if route is None:
            route = Route.fallback(route_id)
            self._indexes = replace(indexes, routes={**indexes.routes, route_id: route})
            logger.info(f"Created fallback route entry for ID: {route_id}")
        return route

    def find_stops_by_name(self, name: str) -> List[Stop]:
        """Find stops by name (case-insensitive partial match)."""
        name_lower = name.lower()
        return [stop for stop in self._indexes.stops.values() if name_lower in stop.stop_name.lower()]

    def clear(self) -> None:
        """Drop all loaded data to free memory."""
        self._indexes = _Indexes()
        logger.info("Cleared GTFS data from memory")


def _read_table(csv_content: str) -> Tuple[List[str], Iterator[Tuple[int, List[str]]]]:
    """
    Split a GTFS table into its header and an iterator of (line_num, fields).

    Each physical line is tokenised on its own, so an unbalanced quote only
    affects its own row. Blank lines are dropped.
    """
    lines = csv_content.lstrip("\ufeff").splitlines()
    if not lines:
        return [], iter(())
    header = [column.strip() for column in _split_line(lines[0]) or []]

    def rows() -> Iterator[Tuple[int, List[str]]]:
        for line_num, line in enumerate(lines[1:], start=2):
            fields = _split_line(line)
            if fields is None:
                logger.warning(f"Skipping line {line_num}: unparseable CSV")
                continue
            if not any(value.strip() for value in fields):
                continue
            yield line_num, fields

    return header, rows()


def _split_line(line: str) -> Optional[List[str]]:
    try:
        return next(csv.reader([line]), [])
    except csv.Error:
        return None


def _column_index(header: List[str]) -> Dict[str, int]:
    # First occurrence wins for duplicated column names
    index: Dict[str, int] = {}
    for position, name in enumerate(header):
        index.setdefault(name, position)
    return index


def _clean(value: str) -> str:
    """Trim whitespace and surrounding quote characters."""
    return value.strip().strip('"').strip()


def _optional_field(fields: List[str], index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(fields):
        return None
    return _clean(fields[index]) or None


def _warn_short_row(table: str, line_num: int, expected: int, actual: int) -> None:
    logger.warning(f"Skipping {table} line {line_num}: expected at least {expected} fields, got {actual}")
