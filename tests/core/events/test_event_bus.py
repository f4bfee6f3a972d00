"""
Tests for the DomainEventBus.
"""

import asyncio
from unittest.mock import Mock, patch

import pytest

from share_mounter.core.events.domain_event import DomainEvent
from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.events.share_events import (
    NetworkReachabilityChangedEvent,
    ShareStatusChangedEvent,
)
from share_mounter.models import MountStatus


@pytest.mark.asyncio
async def test_subscribe_and_publish():
    bus = DomainEventBus()
    handler_mock = Mock()

    async def async_handler(event: DomainEvent):
        handler_mock(event)

    await bus.subscribe(NetworkReachabilityChangedEvent, async_handler)

    event = NetworkReachabilityChangedEvent(is_usable=True, connection_kind="ipv4")
    await bus.publish(event)

    handler_mock.assert_called_once_with(event)


@pytest.mark.asyncio
async def test_publish_to_correct_handlers_only():
    bus = DomainEventBus()
    status_mock = Mock()
    network_mock = Mock()

    async def status_handler(event):
        status_mock(event)

    async def network_handler(event):
        network_mock(event)

    await bus.subscribe(ShareStatusChangedEvent, status_handler)
    await bus.subscribe(NetworkReachabilityChangedEvent, network_handler)

    event = ShareStatusChangedEvent(
        share_id="1",
        resource_uri="smb://srv/finance",
        old_status=MountStatus.UNDEFINED,
        new_status=MountStatus.QUEUED,
    )
    await bus.publish(event)

    status_mock.assert_called_once_with(event)
    network_mock.assert_not_called()


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = DomainEventBus()
    handler_mock = Mock()

    async def handler(event):
        handler_mock(event)

    await bus.subscribe(DomainEvent, handler)
    assert await bus.unsubscribe(DomainEvent, handler) is True
    assert await bus.unsubscribe(DomainEvent, handler) is False

    await bus.publish(DomainEvent())
    handler_mock.assert_not_called()


@pytest.mark.asyncio
async def test_publish_with_no_subscribers():
    bus = DomainEventBus()
    await bus.publish(DomainEvent())


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    bus = DomainEventBus()
    success_mock = Mock()

    async def success_handler(event):
        await asyncio.sleep(0.01)
        success_mock(event)

    async def failing_handler(event):
        raise ValueError("Handler failed intentionally")

    await bus.subscribe(DomainEvent, failing_handler)
    await bus.subscribe(DomainEvent, success_handler)

    event = DomainEvent()
    with patch("logging.error") as mock_log_error:
        await bus.publish(event)

        success_mock.assert_called_once_with(event)
        mock_log_error.assert_called_once()
        log_args, _ = mock_log_error.call_args
        assert "Unhandled exception in handler 'failing_handler'" in log_args[0]
        assert "Handler failed intentionally" in log_args[0]


@pytest.mark.asyncio
async def test_publish_nowait_and_drain():
    bus = DomainEventBus()
    received = []

    async def slow_handler(event):
        await asyncio.sleep(0.01)
        received.append(event)

    await bus.subscribe(DomainEvent, slow_handler)

    bus.publish_nowait(DomainEvent())
    bus.publish_nowait(DomainEvent())
    assert received == []

    await bus.drain()
    assert len(received) == 2


def test_events_are_frozen():
    event = NetworkReachabilityChangedEvent(is_usable=False, connection_kind="none")
    with pytest.raises(Exception):
        event.is_usable = True
    assert event.event_name == "NetworkReachabilityChangedEvent"
