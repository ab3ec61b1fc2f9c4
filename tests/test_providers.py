"""
Unit tests for location providers.
"""
from datetime import timedelta
from unittest.mock import Mock

import pytest
from src.fogmap.location import AccuracyMode, ProviderSignal
from src.fogmap.providers import (
    WALK_START_LAT,
    WALK_START_LON,
    PushLocationProvider,
    SimulatedWalkProvider,
)


@pytest.mark.unit
class TestPushLocationProvider:
    """Test suite for the push-fed provider."""

    def test_push_reaches_subscriber(self):
        provider = PushLocationProvider()
        on_fix = Mock()
        provider.subscribe(on_fix, Mock())
        position = Mock()

        provider.push(position)

        on_fix.assert_called_once_with(position)

    def test_push_returns_whether_accepted(self):
        provider = PushLocationProvider()
        assert provider.push(Mock()) is False

        provider.subscribe(Mock(return_value=False), Mock())
        assert provider.push(Mock()) is False

        provider.subscribe(Mock(return_value=True), Mock())
        assert provider.push(Mock()) is True

    def test_unsubscribe_stops_delivery(self):
        provider = PushLocationProvider()
        on_fix = Mock()
        handle = provider.subscribe(on_fix, Mock())
        provider.unsubscribe(handle)
        provider.push(Mock())

        on_fix.assert_not_called()
        assert not provider.has_subscribers

    def test_handles_are_unique(self):
        provider = PushLocationProvider()
        assert provider.subscribe(Mock(), Mock()) != provider.subscribe(Mock(), Mock())
        assert provider.subscribe_count == 2

    def test_signal_reaches_subscriber(self):
        provider = PushLocationProvider()
        on_signal = Mock()
        provider.subscribe(Mock(), on_signal)
        provider.signal(ProviderSignal.LOCATION_UNKNOWN)
        on_signal.assert_called_once_with(ProviderSignal.LOCATION_UNKNOWN)

    def test_accuracy_mode(self):
        provider = PushLocationProvider()
        provider.set_accuracy_mode(AccuracyMode.COARSE)
        assert provider.accuracy_mode == AccuracyMode.COARSE

    def test_services_disabled(self):
        assert PushLocationProvider(services_enabled=False).services_enabled() is False


@pytest.mark.unit
class TestSimulatedWalkProvider:
    """Test suite for the demo walk."""

    def test_walk_starts_at_default(self):
        provider = SimulatedWalkProvider()
        position = provider.tick()
        assert position.latitude == WALK_START_LAT
        assert position.longitude == WALK_START_LON
        assert position.horizontal_accuracy_m == 5.0

    def test_walk_steps_diagonally(self):
        provider = SimulatedWalkProvider(start_lat=0.0, start_lon=0.0, step_degrees=0.001)
        provider.tick()
        second = provider.tick()
        assert second.latitude == pytest.approx(0.001)
        assert second.longitude == pytest.approx(0.001)

    def test_timestamps_advance_by_interval(self):
        provider = SimulatedWalkProvider(interval=timedelta(seconds=2))
        first = provider.tick()
        second = provider.tick()
        assert second.timestamp - first.timestamp == timedelta(seconds=2)

    def test_tick_pushes_to_subscribers(self):
        provider = SimulatedWalkProvider()
        on_fix = Mock()
        provider.subscribe(on_fix, Mock())
        position = provider.tick()
        on_fix.assert_called_once_with(position)

    def test_rewind(self):
        provider = SimulatedWalkProvider()
        first = provider.tick()
        provider.tick()
        provider.rewind()
        assert provider.tick().latitude == first.latitude
