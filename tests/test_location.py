"""Tests for the location providers."""
from __future__ import annotations

from unittest.mock import Mock, patch

import pytest

from mobile.location import LocationUnavailable, ManualLocationProvider, PlyerLocationProvider


@pytest.fixture
def gps():
    with patch("mobile.location.platform", "linux"), patch("mobile.location.plyer_gps") as fake:
        yield fake


class TestPlyerLocationProvider:
    def test_start_configures_gps(self, gps):
        provider = PlyerLocationProvider(min_time_ms=5000, min_distance_m=2.0)
        provider.start(Mock())
        gps.configure.assert_called_once()
        gps.start.assert_called_once_with(minTime=5000, minDistance=2.0)

    def test_unsupported_platform(self, gps):
        gps.configure.side_effect = NotImplementedError()
        with pytest.raises(LocationUnavailable):
            PlyerLocationProvider().start(Mock())

    @pytest.mark.parametrize("kwargs", [
        {"lat": 37.7749, "lon": -122.4194},
        {"latitude": "37.7749", "longitude": "-122.4194", "speed": 0},
    ])
    def test_fix_is_normalized(self, gps, kwargs):
        on_location = Mock()
        provider = PlyerLocationProvider()
        provider.start(on_location)
        on_location_cb = gps.configure.call_args.kwargs["on_location"]
        on_location_cb(**kwargs)

        (sample,), _ = on_location.call_args
        assert (sample.latitude, sample.longitude) == (37.7749, -122.4194)
        assert len(sample.timestamp) == 19

    def test_incomplete_fix_ignored(self, gps):
        on_location = Mock()
        PlyerLocationProvider().start(on_location)
        gps.configure.call_args.kwargs["on_location"](lat=1.0)
        on_location.assert_not_called()

    def test_provider_disabled_reports_permission_loss(self, gps):
        lost = Mock()
        PlyerLocationProvider().start(Mock(), lost)
        gps.configure.call_args.kwargs["on_status"]("provider-disabled", "gps")
        lost.assert_called_once_with()

    def test_stop(self, gps):
        provider = PlyerLocationProvider()
        provider.start(Mock())
        provider.stop()
        provider.stop()
        gps.stop.assert_called_once_with()


class TestManualLocationProvider:
    def test_push_before_start_is_dropped(self):
        provider = ManualLocationProvider()
        provider.push(1.0, 2.0)
        assert not provider.active

    def test_fixed_position_delivered_on_start(self):
        on_location = Mock()
        ManualLocationProvider(fixed_position=(1.0, 2.0)).start(on_location)
        (sample,), _ = on_location.call_args
        assert (sample.latitude, sample.longitude) == (1.0, 2.0)

    def test_stop_detaches_callbacks(self):
        on_location, lost = Mock(), Mock()
        provider = ManualLocationProvider()
        provider.start(on_location, lost)
        provider.stop()
        provider.push(1.0, 2.0)
        provider.revoke()
        on_location.assert_not_called()
        lost.assert_not_called()
