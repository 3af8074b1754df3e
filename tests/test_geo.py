"""Tests for haversine distance and nearby-stop search."""

import unittest
from pathlib import Path
import sys

# Add src to path so we can import stoptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stoptrack.geo import haversine_distance, nearby_stops
from stoptrack.models import Stop


class TestHaversine(unittest.TestCase):

    def test_zero_distance(self):
        self.assertEqual(haversine_distance(48.4262, -123.3656, 48.4262, -123.3656), 0)

    def test_one_degree_of_longitude_at_equator(self):
        """Test against the arc length of one degree on a 6,371 km sphere."""
        self.assertAlmostEqual(haversine_distance(0, 0, 0, 1), 111194.93, delta=0.5)

    def test_symmetric(self):
        forward = haversine_distance(48.4262, -123.3656, 49.2827, -123.1207)
        backward = haversine_distance(49.2827, -123.1207, 48.4262, -123.3656)
        self.assertAlmostEqual(forward, backward, places=6)


class TestNearbyStops(unittest.TestCase):

    def setUp(self):
        self.origin = (48.4262, -123.3656)
        self.stops = [
            Stop(stop_id="FAR", stop_name="Far", stop_lat=48.4400, stop_lon=-123.3656),
            Stop(stop_id="HERE", stop_name="Here", stop_lat=48.4262, stop_lon=-123.3656),
            Stop(stop_id="NEAR", stop_name="Near", stop_lat=48.4280, stop_lon=-123.3656),
        ]

    def test_only_stops_within_radius_sorted(self):
        """Test results are within the radius and ordered closest first."""
        results = nearby_stops(self.stops, *self.origin, radius_meters=500)

        self.assertEqual([result.stop.stop_id for result in results], ["HERE", "NEAR"])
        distances = [result.distance for result in results]
        self.assertEqual(distances, sorted(distances))
        for result in results:
            self.assertLessEqual(
                haversine_distance(*self.origin, result.stop.stop_lat, result.stop.stop_lon), 500
            )

    def test_distance_rounded_to_meter(self):
        results = nearby_stops(self.stops, *self.origin, radius_meters=5000)

        self.assertEqual(results[0].distance, 0)
        self.assertIsInstance(results[1].distance, int)
        self.assertAlmostEqual(results[1].distance, 200, delta=1)

    def test_radius_boundary_is_inclusive(self):
        exact = haversine_distance(*self.origin, 48.4280, -123.3656)
        results = nearby_stops(self.stops, *self.origin, radius_meters=exact)

        self.assertIn("NEAR", [result.stop.stop_id for result in results])

    def test_non_positive_radius_is_empty(self):
        self.assertEqual(nearby_stops(self.stops, *self.origin, radius_meters=0), [])
        self.assertEqual(nearby_stops(self.stops, *self.origin, radius_meters=-10), [])


if __name__ == "__main__":
    unittest.main()
