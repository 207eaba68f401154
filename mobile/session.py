"""Persisted tracking session preferences."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .storage import KeyValueStore


PREF_TRACKIE_NAME = "trackie_name"
PREF_TIME_INTERVAL = "time_interval"
PREF_TRACKING_STATUS = "tracking_status"


@dataclass(frozen=True)
class TrackingSession:
    owner_identity: str
    interval_minutes: int
    is_active: bool


class SessionStore:
    """Reads and writes the tracking session flags.

    The stored flag only says tracking *should* run; the host re-arms the
    scheduler after a restart.
    """

    def __init__(self, store: KeyValueStore, default_interval: int = 60) -> None:
        self._store = store
        self._default_interval = default_interval

    def load(self) -> Optional[TrackingSession]:
        owner = self._store.get(PREF_TRACKIE_NAME)
        if not owner:
            return None
        try:
            interval = int(self._store.get(PREF_TIME_INTERVAL) or self._default_interval)
        except ValueError:
            interval = self._default_interval
        active = self._store.get(PREF_TRACKING_STATUS) == "true"
        return TrackingSession(owner, interval, active)

    def save(self, session: TrackingSession) -> None:
        self._store.put(PREF_TRACKIE_NAME, session.owner_identity)
        self._store.put(PREF_TIME_INTERVAL, str(session.interval_minutes))
        self._store.put(PREF_TRACKING_STATUS, "true" if session.is_active else "false")

    def set_active(self, active: bool) -> None:
        self._store.put(PREF_TRACKING_STATUS, "true" if active else "false")

    def clear(self) -> None:
        for key in (PREF_TRACKIE_NAME, PREF_TIME_INTERVAL, PREF_TRACKING_STATUS):
            self._store.remove(key)
