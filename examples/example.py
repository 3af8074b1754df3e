"""Example usage of TransitTracker."""

import logging
import sys
from datetime import datetime
from pathlib import Path

# Add src to path so we can import stoptrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stoptrack import ConfigurationError, FeedUnavailableError, StopTrackError, TrackerConfig, TransitTracker

logger = logging.getLogger(__name__)


def print_stop_data(tracker: TransitTracker, stop_input: str):
    """
    Display arrivals, departures and alerts for a stop.

    Args:
        tracker: Loaded tracker.
        stop_input: Stop ID (e.g., "100123") or part of a stop name.
    """
    stop = tracker.get_stop(stop_input)
    if stop is None:
        matching = tracker.find_stops_by_name(stop_input)
        if not matching:
            print(f"No stop found matching '{stop_input}'")
            return
        stop = matching[0]

    print(f"\n{'='*70}")
    print(f"Stop: {stop.stop_name} (ID: {stop.stop_id})")
    print(f"Updated: {datetime.now().strftime('%H:%M:%S')}")
    print(f"{'='*70}\n")

    print("LIVE ARRIVALS:")
    print("-" * 70)
    try:
        arrivals = tracker.get_next_arrivals(stop.stop_id)
    except FeedUnavailableError as e:
        print(f"  Realtime feed unavailable: {e}")
        arrivals = []

    if arrivals:
        for arrival in arrivals:
            print(f"\nRoute {arrival.route_short_name} - {arrival.route_long_name}:")
            for arrival_time in arrival.arrival_times:
                print(f"  {arrival_time.status:>10} → {arrival_time.headsign}")
    else:
        print("  No live arrivals")

    print("\nSCHEDULED DEPARTURES:")
    print("-" * 70)
    departures = tracker.get_scheduled_departures(stop.stop_id)
    if departures:
        for departure in departures:
            times = ", ".join(t.status for t in departure.departure_times)
            print(f"  Route {departure.route_short_name}: {times}")
    else:
        print("  No scheduled departures in the next 24 hours")

    print("\nSERVICE ALERTS:")
    print("-" * 70)
    try:
        alerts = tracker.get_service_alerts(stop_id=stop.stop_id)
    except FeedUnavailableError as e:
        print(f"  Alerts feed unavailable: {e}")
        alerts = []

    if alerts:
        for alert in alerts:
            print(f"\n[{alert.severity or 'UNKNOWN'}] {alert.header_text}")
            if alert.description_text:
                print(f"  {alert.description_text}")
    else:
        print("  No service alerts")

    print("\nNEARBY STOPS:")
    print("-" * 70)
    nearby_stops = [
        nearby for nearby in tracker.get_nearby_stops(stop.stop_lat, stop.stop_lon)
        if nearby.stop.stop_id != stop.stop_id
    ]
    for nearby in nearby_stops[:5]:
        print(f"  {nearby.distance:4d} m  {nearby.stop.stop_name} ({nearby.stop.stop_id})")

    print("\n" + "=" * 70 + "\n")


def main():
    try:
        config = TrackerConfig.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}")
        print("Set GTFS_STATIC_URL and GTFS_REALTIME_URL, e.g.:")
        print("  export GTFS_STATIC_URL=https://bct.tmix.se/Tmix.Cap.TdExport.WebApi/gtfs/?operatorIds=48")
        print("  export GTFS_REALTIME_URL=https://bct.tmix.se/gtfs-realtime/tripupdates.pb?operatorIds=48")
        sys.exit(1)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        print("Loading GTFS data... (this may take a minute)")
        tracker = TransitTracker(config)
    except StopTrackError as e:
        logger.error(f"Failed to load GTFS data: {e}")
        sys.exit(1)

    if len(sys.argv) > 1:
        print_stop_data(tracker, " ".join(sys.argv[1:]))
        return

    print("Enter a stop ID or name to see arrivals (type 'quit' to exit)\n")
    while True:
        try:
            user_input = input("Enter stop (or 'quit'): ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if user_input.lower() in ["quit", "q", "exit"]:
            print("Goodbye!")
            break
        if user_input:
            print_stop_data(tracker, user_input)


if __name__ == "__main__":
    main()
