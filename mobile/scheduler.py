"""Fixed-interval location submission loop.

One scheduler drives one tracking session: it keeps the freshest fix from
the location provider and, on every tick, hands it to the sync client. The
timer runs on its own daemon thread; submissions run on the sync client's
worker pool so neither the timer nor the location callbacks ever block on
the network.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from .errors import InvalidIntervalError, SyncError
from .location import LocationProvider, LocationUnavailable
from .models import LocationRecord, LocationSample
from .sync_client import Ack, RemoteSyncClient


logger = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 720

ErrorSink = Callable[[SyncError], None]
HaltCallback = Callable[[str], None]


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def validate_interval(interval_minutes: int,
                      minimum: int = MIN_INTERVAL_MINUTES,
                      maximum: int = MAX_INTERVAL_MINUTES) -> int:
    if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
        raise InvalidIntervalError(f"interval must be an integer number of minutes, got {interval_minutes!r}")
    if not minimum <= interval_minutes <= maximum:
        raise InvalidIntervalError(
            f"interval must be between {minimum} and {maximum} minutes, got {interval_minutes}"
        )
    return interval_minutes


def _log_sync_error(error: SyncError) -> None:
    logger.warning("Location submission failed (%s): %s", type(error).__name__, error)


class TrackingScheduler:
    """Runs the periodic submission loop for a single owner and interval."""

    def __init__(
        self,
        location_provider: LocationProvider,
        sync_client: RemoteSyncClient,
        *,
        on_error: Optional[ErrorSink] = None,
        on_halt: Optional[HaltCallback] = None,
        min_interval: int = MIN_INTERVAL_MINUTES,
        max_interval: int = MAX_INTERVAL_MINUTES,
        seconds_per_minute: float = 60.0,
    ) -> None:
        self._provider = location_provider
        self._client = sync_client
        self._on_error = on_error or _log_sync_error
        self._on_halt = on_halt
        self._min_interval = min_interval
        self._max_interval = max_interval
        self._seconds_per_minute = seconds_per_minute

        self._lock = threading.RLock()
        self._state = SchedulerState.STOPPED
        self._owner: Optional[str] = None
        self._interval_minutes: Optional[int] = None
        self._latest: Optional[LocationSample] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in (SchedulerState.STARTING, SchedulerState.RUNNING)

    @property
    def owner_identity(self) -> Optional[str]:
        return self._owner

    @property
    def interval_minutes(self) -> Optional[int]:
        return self._interval_minutes

    @property
    def latest_sample(self) -> Optional[LocationSample]:
        return self._latest

    def start(self, owner_identity: str, interval_minutes: int) -> None:
        """Begin tracking ``owner_identity`` every ``interval_minutes``.

        An already running session is stopped first.

        Raises:
            InvalidIntervalError: If the interval is out of bounds.
            PermissionError: If the location capability is not granted.
            LocationUnavailable: If the platform has no location source.
        """
        validate_interval(interval_minutes, self._min_interval, self._max_interval)
        with self._lock:
            if self._state is not SchedulerState.STOPPED:
                logger.info("Replacing active tracking session for %s", self._owner)
                self.stop()

            self._state = SchedulerState.STARTING
            self._owner = owner_identity
            self._interval_minutes = interval_minutes
            self._latest = None
            self._stop_event = threading.Event()
            try:
                self._provider.start(self._on_location, self._on_permission_lost)
            except (PermissionError, LocationUnavailable):
                self._state = SchedulerState.STOPPED
                raise

            self.tick()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="location-tracking", daemon=True
            )
            self._state = SchedulerState.RUNNING
            self._thread.start()
        logger.info(
            "Location tracking started for %s with interval: %s minutes", owner_identity, interval_minutes
        )

    def stop(self) -> None:
        """Cancel the timer and release the location subscription.

        Safe to call when already stopped. In-flight submissions are left to
        finish on their own.
        """
        with self._lock:
            if self._state in (SchedulerState.STOPPED, SchedulerState.STOPPING):
                return
            self._state = SchedulerState.STOPPING
            self._stop_event.set()
            self._provider.stop()
            thread = self._thread
            self._thread = None
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=5.0)
            self._latest = None
            self._state = SchedulerState.STOPPED
        logger.info("Location tracking stopped")

    def tick(self) -> Optional["Future[Ack]"]:
        """Submit the freshest fix, if there is one.

        Returns the pending submission, or ``None`` when the tick was skipped.
        """
        if not self.is_running:
            logger.debug("Tracking is stopped, skipping this tick")
            return None
        sample = self._latest
        owner = self._owner
        if sample is None or owner is None:
            logger.warning("No location available, skipping this tick")
            return None
        record = LocationRecord.from_sample(sample, owner)
        future = self._client.submit_async(record)
        future.add_done_callback(self._on_submitted)
        return future

    def _run(self, stop_event: threading.Event) -> None:
        interval_seconds = (self._interval_minutes or self._min_interval) * self._seconds_per_minute
        while not stop_event.wait(interval_seconds):
            try:
                self.tick()
            except RuntimeError:
                # Executor already shut down during teardown.
                logger.debug("Tick dropped, sync workers unavailable")
                break
            except Exception:
                logger.exception("Tick failed, waiting for the next one")

    def _on_location(self, sample: LocationSample) -> None:
        self._latest = sample
        logger.debug("Location updated: %s, %s", sample.latitude, sample.longitude)

    def _on_permission_lost(self) -> None:
        logger.error("Location permission lost, stopping tracking session")
        owner = self._owner
        self.stop()
        if self._on_halt is not None:
            self._on_halt(owner or "")

    def _on_submitted(self, future: "Future[Ack]") -> None:
        error = future.exception()
        if error is None:
            return
        if isinstance(error, SyncError):
            self._on_error(error)
        else:
            logger.error("Unexpected error during location submission", exc_info=error)
