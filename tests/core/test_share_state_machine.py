import asyncio
from unittest.mock import Mock

import pytest
import pytest_asyncio

from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.events.share_events import ShareStatusChangedEvent
from share_mounter.core.exceptions import InvalidIndexError, InvalidTransitionError
from share_mounter.core.share_registry import ShareRegistry
from share_mounter.core.share_state_machine import ShareStateMachine
from share_mounter.models import MountErrorKind, MountStatus, Share


@pytest.fixture
def registry() -> ShareRegistry:
    return ShareRegistry()


@pytest.fixture
def mock_event_bus() -> Mock:
    return Mock(spec=DomainEventBus)


@pytest.fixture
def state_machine(registry, mock_event_bus) -> ShareStateMachine:
    return ShareStateMachine(registry=registry, event_bus=mock_event_bus)


@pytest_asyncio.fixture
async def share(registry) -> Share:
    share = Share(resource_uri="smb://srv/finance")
    await registry.add(share)
    return share


@pytest.mark.asyncio
async def test_valid_transition_publishes_event(state_machine, registry, mock_event_bus, share):
    updated = await state_machine.transition(share_id=share.id, new_status=MountStatus.QUEUED)

    assert updated.status == MountStatus.QUEUED
    assert (await registry.get(share.id)).status == MountStatus.QUEUED

    mock_event_bus.publish_nowait.assert_called_once()
    event = mock_event_bus.publish_nowait.call_args[0][0]
    assert isinstance(event, ShareStatusChangedEvent)
    assert event.share_id == share.id
    assert event.old_status == MountStatus.UNDEFINED
    assert event.new_status == MountStatus.QUEUED


@pytest.mark.asyncio
async def test_mounted_requires_mount_point(state_machine, share):
    with pytest.raises(ValueError):
        await state_machine.transition(share_id=share.id, new_status=MountStatus.MOUNTED)


@pytest.mark.asyncio
async def test_mount_point_set_only_while_mounted(state_machine, registry, share):
    await state_machine.transition(
        share_id=share.id, new_status=MountStatus.MOUNTED, actual_mount_point="/tmp/finance"
    )
    assert (await registry.get(share.id)).actual_mount_point == "/tmp/finance"

    await state_machine.transition(share_id=share.id, new_status=MountStatus.UNMOUNTED)
    stored = await registry.get(share.id)
    assert stored.status == MountStatus.UNMOUNTED
    assert stored.actual_mount_point is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "cool_down", [MountStatus.ERROR_ON_MOUNT, MountStatus.UNREACHABLE, MountStatus.USER_UNMOUNTED]
)
async def test_cool_down_states_only_leave_through_reset(state_machine, registry, mock_event_bus, share, cool_down):
    await state_machine.transition(
        share_id=share.id, new_status=MountStatus.MOUNTED, actual_mount_point="/tmp/finance"
    )
    await state_machine.transition(share_id=share.id, new_status=cool_down)
    mock_event_bus.reset_mock()

    with pytest.raises(InvalidTransitionError) as e:
        await state_machine.transition(share_id=share.id, new_status=MountStatus.QUEUED)

    assert cool_down.value in str(e.value)
    assert (await registry.get(share.id)).status == cool_down
    mock_event_bus.publish_nowait.assert_not_called()

    await state_machine.reset(share.id)
    assert (await registry.get(share.id)).status == MountStatus.UNDEFINED


@pytest.mark.asyncio
async def test_queued_cannot_be_queued_again(state_machine, share):
    await state_machine.transition(share_id=share.id, new_status=MountStatus.QUEUED)
    # same status is a no-op, not an error
    await state_machine.transition(share_id=share.id, new_status=MountStatus.QUEUED)
    assert not state_machine.is_allowed(MountStatus.QUEUED, MountStatus.QUEUED)
    assert state_machine.is_allowed(MountStatus.QUEUED, MountStatus.UNREACHABLE)


@pytest.mark.asyncio
async def test_error_is_recorded_and_cleared(state_machine, registry, share):
    await state_machine.transition(
        share_id=share.id,
        new_status=MountStatus.INVALID_CREDENTIALS,
        error_message="Authentication error",
        error_kind=MountErrorKind.AUTHENTICATION_FAILED,
    )
    stored = await registry.get(share.id)
    assert stored.error_message == "Authentication error"
    assert stored.last_error_kind == MountErrorKind.AUTHENTICATION_FAILED

    await state_machine.reset(share.id)
    stored = await registry.get(share.id)
    assert stored.error_message is None
    assert stored.last_error_kind is None


@pytest.mark.asyncio
async def test_no_op_transition_publishes_nothing(state_machine, mock_event_bus, share):
    await state_machine.reset(share.id)
    await asyncio.sleep(0)
    mock_event_bus.publish_nowait.assert_not_called()


@pytest.mark.asyncio
async def test_remount_updates_path_without_event(state_machine, registry, mock_event_bus, share):
    await state_machine.transition(
        share_id=share.id, new_status=MountStatus.MOUNTED, actual_mount_point="/Volumes/finance"
    )
    mock_event_bus.reset_mock()

    await state_machine.transition(
        share_id=share.id, new_status=MountStatus.MOUNTED, actual_mount_point="/Volumes/finance-1"
    )
    assert (await registry.get(share.id)).actual_mount_point == "/Volumes/finance-1"
    mock_event_bus.publish_nowait.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_share(state_machine):
    with pytest.raises(InvalidIndexError):
        await state_machine.transition(share_id="missing", new_status=MountStatus.QUEUED)
