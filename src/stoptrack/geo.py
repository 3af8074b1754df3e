"""Great-circle distance and nearby-stop search."""

import math
from typing import Iterable, List

from .models import NearbyStop, Stop

EARTH_RADIUS_METERS = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two latitude/longitude pairs."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def nearby_stops(stops: Iterable[Stop], latitude: float, longitude: float, radius_meters: float) -> List[NearbyStop]:
    """
    Find stops within a radius of a point.

    This is a linear scan over every stop, which is fine for the low thousands
    of stops a single agency publishes but has no spatial index behind it.
    Coordinates are assumed to be validated by the caller.

    Args:
        stops: Stops to search.
        latitude: Search point latitude in degrees.
        longitude: Search point longitude in degrees.
        radius_meters: Inclusive search radius.

    Returns:
        NearbyStop entries sorted by ascending distance, distance rounded to the meter.
    """
    if radius_meters <= 0:
        return []

    matches = []
    for stop in stops:
        distance = haversine_distance(latitude, longitude, stop.stop_lat, stop.stop_lon)
        if distance <= radius_meters:
            matches.append((distance, stop))

    matches.sort(key=lambda match: match[0])
    return [NearbyStop(stop=stop, distance=int(math.floor(distance + 0.5))) for distance, stop in matches]
