"""On-device location tracking and history sync."""

from .tracker import LocationTracker

__all__ = ["LocationTracker"]
