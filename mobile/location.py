"""Location providers feeding samples to the tracking scheduler.

Providers deliver fixes through ``on_location(sample)`` on whatever thread
the platform uses, and report a revoked location capability through
``on_permission_lost()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple

from plyer import gps as plyer_gps
from plyer.utils import platform

from .models import LocationSample, utc_timestamp


logger = logging.getLogger(__name__)

LocationCallback = Callable[[LocationSample], None]
PermissionLostCallback = Callable[[], None]


class LocationUnavailable(RuntimeError):
    """The platform cannot deliver location updates."""


class LocationProvider:
    """Interface for a source of periodic location fixes."""

    def start(self, on_location: LocationCallback,
              on_permission_lost: Optional[PermissionLostCallback] = None) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


def _android_permission_granted() -> bool:
    # Only importable inside a python-for-android build.
    from android.permissions import Permission, check_permission, request_permissions  # type: ignore

    wanted = [Permission.ACCESS_FINE_LOCATION, Permission.ACCESS_COARSE_LOCATION]
    missing = [p for p in wanted if not check_permission(p)]
    if missing:
        request_permissions(missing)
        return False
    return True


class PlyerLocationProvider(LocationProvider):
    """Device GPS through :mod:`plyer`.

    A ``provider-disabled`` status from the platform means the location
    capability went away mid-session and is reported as permission loss.
    """

    def __init__(self, min_time_ms: int = 10000, min_distance_m: float = 10.0) -> None:
        self._min_time_ms = min_time_ms
        self._min_distance_m = min_distance_m
        self._on_location: Optional[LocationCallback] = None
        self._on_permission_lost: Optional[PermissionLostCallback] = None
        self._active = False

    def start(self, on_location: LocationCallback,
              on_permission_lost: Optional[PermissionLostCallback] = None) -> None:
        if platform == "android" and not _android_permission_granted():
            raise PermissionError("Location permission is required for this app.")
        self._on_location = on_location
        self._on_permission_lost = on_permission_lost
        try:
            plyer_gps.configure(on_location=self._handle_location, on_status=self._handle_status)
            plyer_gps.start(minTime=self._min_time_ms, minDistance=self._min_distance_m)
        except NotImplementedError as exc:
            raise LocationUnavailable(f"GPS is not available on {platform}") from exc
        self._active = True
        logger.info("GPS updates started (minTime=%sms)", self._min_time_ms)

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            plyer_gps.stop()
        except NotImplementedError:
            pass
        logger.info("GPS updates stopped")

    def _handle_location(self, **kwargs) -> None:
        # kwargs vary by platform; normalize common fields
        lat = kwargs.get("lat", kwargs.get("latitude"))
        lon = kwargs.get("lon", kwargs.get("longitude"))
        if lat is None or lon is None or self._on_location is None:
            return
        try:
            sample = LocationSample(float(lat), float(lon), utc_timestamp())
        except (TypeError, ValueError):
            logger.debug("Ignoring invalid fix %r", kwargs)
            return
        self._on_location(sample)

    def _handle_status(self, status_type, status) -> None:
        logger.debug("GPS status %s: %s", status_type, status)
        if status_type == "provider-disabled" and self._active and self._on_permission_lost:
            self._on_permission_lost()


class ManualLocationProvider(LocationProvider):
    """Samples pushed by the host, e.g. a fixed position on a desktop.

    With ``fixed_position`` a fix is delivered as soon as updates start.
    """

    def __init__(self, fixed_position: Optional[Tuple[float, float]] = None) -> None:
        self._fixed_position = fixed_position
        self._lock = threading.Lock()
        self._on_location: Optional[LocationCallback] = None
        self._on_permission_lost: Optional[PermissionLostCallback] = None

    @property
    def active(self) -> bool:
        return self._on_location is not None

    def start(self, on_location: LocationCallback,
              on_permission_lost: Optional[PermissionLostCallback] = None) -> None:
        with self._lock:
            self._on_location = on_location
            self._on_permission_lost = on_permission_lost
        if self._fixed_position is not None:
            self.push(*self._fixed_position)

    def stop(self) -> None:
        with self._lock:
            self._on_location = None
            self._on_permission_lost = None

    def push(self, latitude: float, longitude: float, timestamp: Optional[str] = None) -> None:
        with self._lock:
            callback = self._on_location
        if callback is not None:
            callback(LocationSample(latitude, longitude, timestamp or utc_timestamp()))

    def revoke(self) -> None:
        """Simulate the user revoking the location permission."""
        with self._lock:
            callback = self._on_permission_lost
        if callback is not None:
            callback()
