"""
Unit tests for observer channels.
"""
import pytest
from src.fogmap.channels import Channel


@pytest.mark.unit
class TestChannel:
    """Test suite for Channel subscribe/publish/cancel."""

    def test_publish_reaches_all_subscribers(self):
        channel = Channel("test")
        a, b = [], []
        channel.subscribe(a.append)
        channel.subscribe(b.append)

        channel.publish(1)

        assert a == [1]
        assert b == [1]
        assert len(channel) == 2

    def test_cancel_stops_delivery(self):
        channel = Channel("test")
        received = []
        subscription = channel.subscribe(received.append)
        subscription.cancel()
        channel.publish(1)

        assert received == []
        assert len(channel) == 0

    def test_cancel_is_idempotent(self):
        channel = Channel("test")
        subscription = channel.subscribe(lambda value: None)
        subscription.cancel()
        subscription.cancel()
        assert subscription.active is False

    def test_failing_subscriber_does_not_block_others(self):
        """Test an exception in one callback is contained."""
        channel = Channel("test")
        received = []

        def broken(value):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.publish("x")

        assert received == ["x"]

    def test_cancel_during_publish(self):
        """Test a subscriber cancelled by an earlier one is skipped."""
        channel = Channel("test")
        received = []
        second = None

        def first(value):
            second.cancel()

        channel.subscribe(first)
        second = channel.subscribe(received.append)
        channel.publish(1)

        assert received == []
