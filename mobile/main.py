"""Headless host for the tracking engine.

Run:
    python -m mobile track --owner alice --interval 30
    python -m mobile history --date 2024-06-01
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .config import get_config
from .errors import SyncError
from .location import LocationProvider, LocationUnavailable, ManualLocationProvider
from .models import LocationSample, utc_timestamp
from .reconciler import HistoryResult
from .tracker import LocationTracker


logger = logging.getLogger("mobile")


def configure_logging(cfg) -> None:
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(module)s: %(message)s')
    root = logging.getLogger("mobile")
    root.setLevel(logging.DEBUG if cfg.DEBUG else logging.INFO)

    if cfg.DATA_DIR:
        os.makedirs(cfg.DATA_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(cfg.DATA_DIR, cfg.LOG_FILE), maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if cfg.DEBUG:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)


def _print_history(result: HistoryResult) -> None:
    if result.error is not None:
        print(f"Error fetching location history: {result.error} (showing cached data)", file=sys.stderr)
    if result.is_empty:
        print("No locations found")
        return
    for r in result.records:
        link = r.maps_url or "no fix"
        print(f"{r.inserted_at}  {r.owner_identity:<20} {r.latitude:.6f}, {r.longitude:.6f}  {link}")


def _manual_provider(args: argparse.Namespace) -> Optional[ManualLocationProvider]:
    if args.lat is None or args.lon is None:
        return None
    return ManualLocationProvider(fixed_position=(args.lat, args.lon))


def _cmd_track(tracker: LocationTracker, args: argparse.Namespace,
               manual: Optional[ManualLocationProvider]) -> int:
    done = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: done.set())
    signal.signal(signal.SIGTERM, lambda *_: done.set())

    try:
        if args.owner:
            tracker.start_tracking(args.owner, args.interval)
        elif not tracker.resume():
            print("No tracking session to resume, pass --owner", file=sys.stderr)
            return 2
    except (ValueError, PermissionError, LocationUnavailable) as exc:
        print(f"Could not start tracking: {exc}", file=sys.stderr)
        return 1

    print(f"Tracking {tracker.scheduler.owner_identity} every {tracker.scheduler.interval_minutes} minutes. Ctrl+C to stop.")
    while not done.wait(1.0):
        if not tracker.is_tracking():
            print("Tracking halted", file=sys.stderr)
            return 1
        if manual is not None:
            manual.push(args.lat, args.lon)
    tracker.stop_tracking()
    return 0


def _cmd_history(tracker: LocationTracker, args: argparse.Namespace) -> int:
    result = tracker.get_history(args.owner, args.date, refresh=not args.offline)
    _print_history(result)
    return 1 if result.error is not None else 0


def _cmd_send_test(tracker: LocationTracker, args: argparse.Namespace) -> int:
    sample = LocationSample(args.lat, args.lon, utc_timestamp())
    try:
        ack = tracker.send_test_location(args.owner, sample).result()
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except SyncError as exc:
        print(f"Failed to send test location: {exc}", file=sys.stderr)
        return 1
    print(f"Test location sent successfully! Lat: {args.lat:.6f}, Lng: {args.lon:.6f} (status {ack.status_code})")
    return 0


def _cmd_status(tracker: LocationTracker, args: argparse.Namespace) -> int:
    session = tracker.session
    if session is None:
        print("No tracking session")
        return 0
    state = "active" if session.is_active else "stopped"
    print(f"{session.owner_identity}: every {session.interval_minutes} minutes ({state})")
    print(f"{len(tracker.cache)} cached locations")
    return 0


def _cmd_clear_cache(tracker: LocationTracker, args: argparse.Namespace) -> int:
    tracker.cache.clear()
    print("Cache cleared")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="locationtracker", description="Periodic location tracking and history sync")
    p.add_argument("--env", default=None, help="Config name: development, production, testing")
    sub = p.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Run the tracking loop in the foreground")
    track.add_argument("--owner", help="Trackie name (omit to resume the saved session)")
    track.add_argument("--interval", type=int, default=60, help="Minutes between submissions")
    track.add_argument("--lat", type=float, help="Fixed latitude when GPS is unavailable")
    track.add_argument("--lon", type=float, help="Fixed longitude when GPS is unavailable")

    history = sub.add_parser("history", help="Show merged location history")
    history.add_argument("--owner", help="Only fetch records for this trackie")
    history.add_argument("--date", help="Only show records from this day (YYYY-MM-DD)")
    history.add_argument("--offline", action="store_true", help="Use cached records only")

    test = sub.add_parser("send-test", help="Send one location right now")
    test.add_argument("--owner", required=True)
    test.add_argument("--lat", type=float, required=True)
    test.add_argument("--lon", type=float, required=True)

    sub.add_parser("status", help="Show the saved tracking session")
    sub.add_parser("clear-cache", help="Drop cached location history")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = get_config(args.env)
    configure_logging(cfg)

    manual = _manual_provider(args) if args.command == "track" else None
    provider: Optional[LocationProvider] = manual
    tracker = LocationTracker.from_config(cfg, location_provider=provider)
    try:
        if args.command == "track":
            return _cmd_track(tracker, args, manual)
        if args.command == "history":
            return _cmd_history(tracker, args)
        if args.command == "send-test":
            return _cmd_send_test(tracker, args)
        if args.command == "status":
            return _cmd_status(tracker, args)
        return _cmd_clear_cache(tracker, args)
    finally:
        tracker.shutdown()
