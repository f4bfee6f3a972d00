import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.events.share_events import NetworkReachabilityChangedEvent
from share_mounter.models import ReconcileReport, TriggerKind
from share_mounter.services.mount_orchestrator import MountOrchestrator
from share_mounter.services.mount_triggers import MountTriggerService


@pytest.fixture
def orchestrator():
    mock = Mock(spec=MountOrchestrator)
    mock.reconcile = AsyncMock(side_effect=lambda share_id=None, trigger=TriggerKind.AUTOMATIC: ReconcileReport(trigger=trigger))
    mock.unmount = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def event_bus():
    return DomainEventBus()


@pytest.fixture
def triggers(settings, orchestrator, event_bus):
    settings.mount_trigger_interval_seconds = 3600
    return MountTriggerService(settings, orchestrator, event_bus)


@pytest.mark.asyncio
async def test_network_returning_triggers_user_mount(triggers, orchestrator, event_bus):
    await triggers.start()
    try:
        await event_bus.publish(NetworkReachabilityChangedEvent(is_usable=True, connection_kind="ipv4"))
        await asyncio.sleep(0.01)

        orchestrator.reconcile.assert_awaited_once_with(trigger=TriggerKind.USER_TRIGGERED)
    finally:
        await triggers.stop()


@pytest.mark.asyncio
async def test_network_loss_does_not_mount(triggers, orchestrator, event_bus):
    await triggers.start()
    try:
        await event_bus.publish(NetworkReachabilityChangedEvent(is_usable=False, connection_kind="none"))
        await asyncio.sleep(0.01)

        orchestrator.reconcile.assert_not_called()
    finally:
        await triggers.stop()


@pytest.mark.asyncio
async def test_stop_unsubscribes(triggers, orchestrator, event_bus):
    await triggers.start()
    await triggers.stop()

    await event_bus.publish(NetworkReachabilityChangedEvent(is_usable=True, connection_kind="ipv4"))
    await asyncio.sleep(0.01)

    orchestrator.reconcile.assert_not_called()


@pytest.mark.asyncio
async def test_trigger_unmount_all(triggers, orchestrator):
    await triggers.trigger_unmount_all()
    orchestrator.unmount.assert_awaited_once_with(user_triggered=True)


@pytest.mark.asyncio
async def test_failed_triggered_operation_is_logged(triggers, orchestrator):
    orchestrator.reconcile.side_effect = RuntimeError("boom")

    await triggers.trigger_mount_all()

    orchestrator.reconcile.assert_awaited_once_with(trigger=TriggerKind.USER_TRIGGERED)


@pytest.mark.asyncio
async def test_timer_runs_automatic_cycles(settings, orchestrator, event_bus):
    settings.mount_trigger_interval_seconds = 0.01
    triggers = MountTriggerService(settings, orchestrator, event_bus)

    await triggers.start()
    await asyncio.sleep(0.05)
    await triggers.stop()

    assert orchestrator.reconcile.await_count >= 2
    orchestrator.reconcile.assert_awaited_with(trigger=TriggerKind.AUTOMATIC)
