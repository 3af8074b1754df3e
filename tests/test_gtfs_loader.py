"""Tests for GTFSCatalog."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import sys

import requests

# Add src to path so we can import stoptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from stoptrack.exceptions import ArchiveError, FetchError, MissingTableError
from stoptrack.gtfs_loader import GTFSCatalog
from gtfs_fixtures import ALL_TABLES, ROUTES_TXT, STOPS_TXT, TRIPS_TXT, build_bundle, mock_response


class TestTableParsing(unittest.TestCase):
    """Test parsing of individual GTFS tables."""

    def setUp(self):
        self.catalog = GTFSCatalog()

    def test_parse_routes_positional(self):
        """Test routes.txt columns are read by position with default colors."""
        routes = self.catalog._parse_routes(ROUTES_TXT)

        self.assertEqual(set(routes), {"1", "2"})
        self.assertEqual(routes["1"].long_name, "University/Downtown")
        self.assertEqual(routes["1"].route_color, "FF0000")
        self.assertEqual(routes["2"].route_color, "000000")
        self.assertEqual(routes["2"].route_text_color, "FFFFFF")
        self.assertFalse(routes["1"].synthesized)

    def test_parse_routes_skips_short_and_blank_rows(self):
        """Test rows with too few fields are skipped, not fatal."""
        csv_data = "route_id,short,long,desc,color,text\n\n7,7,Short row\n8,8,Full,,00FF00,000000\n"
        with self.assertLogs("stoptrack.gtfs_loader", level="WARNING"):
            routes = self.catalog._parse_routes(csv_data)

        self.assertEqual(list(routes), ["8"])

    def test_parse_trips(self):
        """Test trips.txt columns are read by position."""
        trips = self.catalog._parse_trips(TRIPS_TXT)

        self.assertEqual(trips["T1"].route_id, "1")
        self.assertEqual(trips["T2"].trip_headsign, "Downtown Express")
        self.assertEqual(trips["T4"].route_id, "9")

    def test_parse_stops_by_header(self):
        """Test stops.txt columns are located by name and bad coordinates skipped."""
        stops = self.catalog._parse_stops(STOPS_TXT)

        self.assertIn("12345", stops)
        self.assertNotIn("BAD", stops)
        stop = stops["12345"]
        self.assertEqual(stop.stop_name, "Douglas St at View St")
        self.assertEqual(stop.stop_code, "12345")
        self.assertAlmostEqual(stop.stop_lat, 48.4262, places=4)
        self.assertIsNone(stops["S100"].stop_desc)

    def test_parse_stops_keeps_quoted_commas(self):
        """Test a quoted field containing a comma stays one field."""
        stops = self.catalog._parse_stops(STOPS_TXT)
        self.assertEqual(stops["12345"].stop_desc, "Near corner, northbound")

    def test_parse_stops_unbalanced_quote_stays_on_its_line(self):
        """Test an unterminated quote skips only its own row."""
        csv_data = (
            "stop_id,stop_code,stop_name,stop_desc,stop_lat,stop_lon\n"
            'A,,"Broken name,,48.1,-123.1\n'
            "B,,Fort St,,48.2,-123.2\n"
            "C,,Cook St,,48.3,-123.3\n"
        )
        with self.assertLogs("stoptrack.gtfs_loader", level="WARNING") as logs:
            stops = self.catalog._parse_stops(csv_data)

        self.assertEqual(sorted(stops), ["B", "C"])
        self.assertEqual(stops["C"].stop_name, "Cook St")
        self.assertIn("line 2", logs.output[0])

    def test_parse_stops_reordered_columns(self):
        """Test header-driven parsing copes with a different column order."""
        csv_data = 'stop_lat,stop_lon,stop_id,stop_name\n48.1,-123.1,X1,"Quoted Name"\n'
        stops = self.catalog._parse_stops(csv_data)

        self.assertEqual(stops["X1"].stop_name, "Quoted Name")
        self.assertEqual(stops["X1"].stop_lon, -123.1)

    def test_parse_stop_times_sorted_by_sequence(self):
        """Test stop times are grouped per trip and ordered by stop_sequence."""
        stop_times = self.catalog._parse_stop_times(ALL_TABLES["stop_times.txt"])

        sequences = [st.stop_sequence for st in stop_times["T1"]]
        self.assertEqual(sequences, [1, 2, 3, 4])
        self.assertEqual(stop_times["T1"][0].stop_id, "S100")

    def test_parse_stop_times_skips_bad_sequence(self):
        """Test a non-integer stop_sequence skips only that row."""
        csv_data = (
            "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
            "T1,10:00:00,10:00:00,S1,first\n"
            "T1,10:05:00,10:05:00,S2,2\n"
        )
        with self.assertLogs("stoptrack.gtfs_loader", level="WARNING"):
            stop_times = self.catalog._parse_stop_times(csv_data)

        self.assertEqual([st.stop_id for st in stop_times["T1"]], ["S2"])


class TestCatalogLoading(unittest.TestCase):
    """Test loading whole bundles."""

    @patch("stoptrack.gtfs_loader.requests.get")
    def test_load_from_url(self, mock_get):
        """Test downloading and indexing a bundle."""
        mock_get.return_value = mock_response(build_bundle())

        catalog = GTFSCatalog("http://test/gtfs.zip")
        catalog.load()

        mock_get.assert_called_once_with("http://test/gtfs.zip", timeout=10)
        self.assertTrue(catalog.is_loaded)
        self.assertEqual(len(catalog.routes), 2)
        self.assertEqual(len(catalog.trips), 4)
        self.assertEqual(len(catalog.stops), 3)

    @patch("stoptrack.gtfs_loader.requests.get")
    def test_load_non_2xx_raises_fetch_error(self, mock_get):
        """Test a non-2xx response fails with FetchError."""
        mock_get.return_value = mock_response(b"", status_code=404, reason="Not Found")

        catalog = GTFSCatalog("http://test/gtfs.zip")
        with self.assertRaises(FetchError) as context:
            catalog.load()

        self.assertEqual(context.exception.status_code, 404)
        self.assertFalse(catalog.is_loaded)

    @patch("stoptrack.gtfs_loader.requests.get")
    def test_load_network_error_raises_fetch_error(self, mock_get):
        """Test transport failures are wrapped in FetchError."""
        mock_get.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(FetchError):
            GTFSCatalog("http://test/gtfs.zip").load()

    def test_load_corrupt_archive(self):
        """Test a payload that is not a zip fails with ArchiveError."""
        with self.assertRaises(ArchiveError):
            GTFSCatalog().load_from_bytes(b"definitely not a zip file")

    def test_load_missing_mandatory_table(self):
        """Test a bundle without trips.txt fails with MissingTableError."""
        tables = {"routes.txt": ROUTES_TXT, "stops.txt": STOPS_TXT}

        with self.assertRaises(MissingTableError) as context:
            GTFSCatalog().load_from_bytes(build_bundle(tables))

        self.assertEqual(context.exception.table, "trips.txt")

    def test_load_without_stop_times(self):
        """Test stop_times.txt is optional."""
        tables = {"routes.txt": ROUTES_TXT, "trips.txt": TRIPS_TXT, "stops.txt": STOPS_TXT}

        catalog = GTFSCatalog()
        with self.assertLogs("stoptrack.gtfs_loader", level="WARNING"):
            catalog.load_from_bytes(build_bundle(tables))

        self.assertTrue(catalog.is_loaded)
        self.assertEqual(len(catalog.stop_times), 0)
        self.assertEqual(catalog.get_route_stop_ids("1"), ())

    def test_load_nested_bundle(self):
        """Test tables inside a folder in the zip are found."""
        catalog = GTFSCatalog()
        catalog.load_from_bytes(build_bundle(prefix="google_transit/"))

        self.assertIn("S100", catalog.stops)

    def test_load_from_directory(self):
        """Test loading an unpacked bundle from disk."""
        with tempfile.TemporaryDirectory() as directory:
            for name, content in ALL_TABLES.items():
                Path(directory, name).write_text(content, encoding="utf-8")

            catalog = GTFSCatalog()
            catalog.load_from_directory(directory)

        self.assertIn("T3", catalog.trips)

    def test_failed_reload_keeps_previous_data(self):
        """Test a failing load leaves the published indexes untouched."""
        catalog = GTFSCatalog()
        catalog.load_from_bytes(build_bundle())

        with self.assertRaises(MissingTableError):
            catalog.load_from_bytes(build_bundle({"routes.txt": ROUTES_TXT}))

        self.assertEqual(len(catalog.stops), 3)


class TestCatalogIndexes(unittest.TestCase):
    """Test the catalog's derived indexes and accessors."""

    def setUp(self):
        self.catalog = GTFSCatalog()
        self.catalog.load_from_bytes(build_bundle())

    def test_route_stops_first_seen_order(self):
        """Test route stops accumulate unique stops in first-seen order."""
        self.assertEqual(self.catalog.get_route_stop_ids("1"), ("S100", "S200", "12345", "GHOST"))
        self.assertEqual(self.catalog.get_route_stop_ids("2"), ("S100",))
        self.assertEqual(self.catalog.get_route_stop_ids("unknown"), ())

    def test_views_are_read_only(self):
        """Test exposed indexes cannot be mutated."""
        with self.assertRaises(TypeError):
            self.catalog.routes["X"] = None
        with self.assertRaises(TypeError):
            self.catalog.stops["X"] = None

    def test_get_or_create_route_existing(self):
        """Test known routes are returned as loaded."""
        route = self.catalog.get_or_create_route("1")
        self.assertFalse(route.synthesized)
        self.assertEqual(route.short_name, "1")

    def test_get_or_create_route_synthesizes(self):
        """Test unknown routes get a stored fallback entry."""
        route = self.catalog.get_or_create_route("42-EXP")

        self.assertTrue(route.synthesized)
        self.assertEqual(route.short_name, "42")
        self.assertEqual(route.long_name, "42-EXP")
        self.assertEqual(route.route_color, "000000")
        self.assertEqual(route.route_text_color, "FFFFFF")
        self.assertIs(self.catalog.get_route("42-EXP"), route)

    def test_get_or_create_route_leaves_earlier_views(self):
        """Test a synthesized route does not appear in views taken before it."""
        routes_before = self.catalog.routes

        self.catalog.get_or_create_route("42-EXP")

        self.assertNotIn("42-EXP", routes_before)
        self.assertEqual(len(routes_before), 2)
        self.assertIn("42-EXP", self.catalog.routes)

    def test_find_stops_by_name(self):
        """Test finding stops by partial name match."""
        results = self.catalog.find_stops_by_name("st")
        self.assertEqual(len(results), 3)

        results = self.catalog.find_stops_by_name("Government")
        self.assertEqual([stop.stop_id for stop in results], ["S100"])

    def test_clear(self):
        """Test clearing drops every index."""
        self.catalog.clear()

        self.assertFalse(self.catalog.is_loaded)
        self.assertIsNone(self.catalog.get_stop("S100"))


if __name__ == "__main__":
    unittest.main()
