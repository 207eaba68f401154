"""Control surface the host application talks to.

Wires the cache, sync client, scheduler and reconciler together and keeps
the persisted tracking session in step with the scheduler.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future
from typing import Optional

from .cache import OfflineCache
from .config import Config, load_overrides
from .errors import NoFixAvailable
from .identity import IdentityProvider, ServerIdentity
from .location import LocationProvider, PlyerLocationProvider
from .models import LocationRecord, LocationSample
from .reconciler import HistoryReconciler, HistoryResult
from .scheduler import ErrorSink, TrackingScheduler
from .session import SessionStore, TrackingSession
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .sync_client import Ack, RemoteSyncClient


logger = logging.getLogger(__name__)


def validate_owner(owner_identity: Optional[str], max_length: int = Config.MAX_OWNER_LENGTH) -> str:
    name = (owner_identity or "").strip()
    if not name:
        raise ValueError("Please enter a trackie name")
    if len(name) > max_length:
        raise ValueError(f"Trackie name must be at most {max_length} characters")
    return name


class LocationTracker:
    """Start/stop tracking and read the merged location history."""

    def __init__(
        self,
        store: KeyValueStore,
        sync_client: RemoteSyncClient,
        location_provider: LocationProvider,
        *,
        cfg=Config,
        on_error: Optional[ErrorSink] = None,
        seconds_per_minute: float = 60.0,
    ) -> None:
        self._cfg = cfg
        self._client = sync_client
        self._sessions = SessionStore(store, cfg.DEFAULT_INTERVAL_MINUTES)
        self.cache = OfflineCache(store)
        self.reconciler = HistoryReconciler(sync_client, self.cache)
        self.scheduler = TrackingScheduler(
            location_provider,
            sync_client,
            on_error=on_error,
            on_halt=self._on_halt,
            min_interval=cfg.MIN_INTERVAL_MINUTES,
            max_interval=cfg.MAX_INTERVAL_MINUTES,
            seconds_per_minute=seconds_per_minute,
        )

    @classmethod
    def from_config(
        cls,
        cfg=Config,
        *,
        location_provider: Optional[LocationProvider] = None,
        identity: Optional[IdentityProvider] = None,
        on_error: Optional[ErrorSink] = None,
    ) -> "LocationTracker":
        overrides = load_overrides(cfg.DATA_DIR)
        if cfg.DATA_DIR:
            store: KeyValueStore = JsonFileStore(os.path.join(cfg.DATA_DIR, cfg.PREFERENCES_FILE))
        else:
            store = MemoryStore()

        base_url = (overrides.get("server_base_url") or cfg.BASE_URL).rstrip("/")
        if identity is None:
            identity = ServerIdentity(
                base_url,
                overrides.get("username") or cfg.USERNAME,
                overrides.get("password") or cfg.PASSWORD,
                store,
                timeout=cfg.REQUEST_TIMEOUT_SECONDS,
            )
        client = RemoteSyncClient(
            base_url, identity, timeout=cfg.REQUEST_TIMEOUT_SECONDS, max_workers=cfg.SYNC_WORKERS
        )
        if location_provider is None:
            location_provider = PlyerLocationProvider(cfg.LOCATION_MIN_TIME_MS, cfg.LOCATION_MIN_DISTANCE_M)
        return cls(store, client, location_provider, cfg=cfg, on_error=on_error)

    @property
    def session(self) -> Optional[TrackingSession]:
        return self._sessions.load()

    def start_tracking(self, owner_identity: str, interval_minutes: int) -> None:
        owner = validate_owner(owner_identity, self._cfg.MAX_OWNER_LENGTH)
        self.scheduler.start(owner, interval_minutes)
        self._sessions.save(TrackingSession(owner, interval_minutes, True))

    def stop_tracking(self) -> None:
        self.scheduler.stop()
        self._sessions.set_active(False)

    def is_tracking(self) -> bool:
        return self.scheduler.is_running

    def resume(self) -> bool:
        """Re-arm a session that was active when the process last exited."""
        session = self._sessions.load()
        if session is None or not session.is_active or self.scheduler.is_running:
            return False
        logger.info("Resuming tracking session for %s", session.owner_identity)
        self.scheduler.start(session.owner_identity, session.interval_minutes)
        return True

    def get_history(self, owner_identity: Optional[str] = None, date: Optional[str] = None,
                    refresh: bool = True) -> HistoryResult:
        if refresh:
            result = self.reconciler.load(owner_identity)
        else:
            result = HistoryResult(records=self.reconciler.cached())
        return result.filtered(date)

    def send_test_location(self, owner_identity: Optional[str] = None,
                           sample: Optional[LocationSample] = None) -> "Future[Ack]":
        """Submit one fix outside the regular schedule.

        Uses ``sample`` when given, otherwise the latest fix seen by the
        scheduler.

        Raises:
            NoFixAvailable: If no fix has been received yet.
        """
        owner = owner_identity or self.scheduler.owner_identity
        owner = validate_owner(owner, self._cfg.MAX_OWNER_LENGTH)
        sample = sample or self.scheduler.latest_sample
        if sample is None:
            raise NoFixAvailable("Unable to get current location. Please try again.")
        return self._client.submit_async(LocationRecord.from_sample(sample, owner))

    def shutdown(self) -> None:
        self.scheduler.stop()
        self._client.close()

    def _on_halt(self, owner_identity: str) -> None:
        logger.warning("Tracking for %s halted, waiting for the user to restart it", owner_identity)
        self._sessions.set_active(False)
