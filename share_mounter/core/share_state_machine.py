import logging
from typing import Dict, FrozenSet, Optional

from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.events.share_events import ShareStatusChangedEvent
from share_mounter.core.exceptions import InvalidTransitionError
from share_mounter.core.share_registry import ShareRegistry
from share_mounter.models import MountErrorKind, MountStatus, Share

# Every state a single mount attempt can end in
ATTEMPT_OUTCOMES: FrozenSet[MountStatus] = frozenset(
    {
        MountStatus.QUEUED,
        MountStatus.MOUNTED,
        MountStatus.ERROR_ON_MOUNT,
        MountStatus.UNREACHABLE,
        MountStatus.INVALID_CREDENTIALS,
        MountStatus.OBSTRUCTING_DIRECTORY,
    }
)


class ShareStateMachine:
    """
    Gatekeeper for every share status change.

    This is the ONLY class that:
    1. Validates a status transition.
    2. Changes Share.status and Share.actual_mount_point.
    3. Writes the change to the ShareRegistry.
    4. Publishes ShareStatusChangedEvent.

    It also owns the invariant that actual_mount_point is set exactly when
    the status is MOUNTED.
    """

    def __init__(self, registry: ShareRegistry, event_bus: DomainEventBus):
        self._registry = registry
        self._event_bus = event_bus

        # Cool-down states only leave through an explicit reset
        self._transitions: Dict[MountStatus, FrozenSet[MountStatus]] = {
            MountStatus.UNDEFINED: ATTEMPT_OUTCOMES,
            MountStatus.UNMOUNTED: ATTEMPT_OUTCOMES | {MountStatus.UNDEFINED},
            MountStatus.INVALID_CREDENTIALS: ATTEMPT_OUTCOMES | {MountStatus.UNDEFINED},
            MountStatus.OBSTRUCTING_DIRECTORY: ATTEMPT_OUTCOMES | {MountStatus.UNDEFINED},
            MountStatus.QUEUED: (ATTEMPT_OUTCOMES - {MountStatus.QUEUED}) | {MountStatus.UNDEFINED},
            MountStatus.MOUNTED: ATTEMPT_OUTCOMES
            | {MountStatus.UNMOUNTED, MountStatus.USER_UNMOUNTED, MountStatus.UNDEFINED},
            MountStatus.ERROR_ON_MOUNT: frozenset({MountStatus.UNDEFINED}),
            MountStatus.UNREACHABLE: frozenset({MountStatus.UNDEFINED}),
            MountStatus.USER_UNMOUNTED: frozenset({MountStatus.UNDEFINED}),
        }
        logging.info(f"ShareStateMachine initialized with {len(self._transitions)} transition rules")

    def is_allowed(self, old_status: MountStatus, new_status: MountStatus) -> bool:
        return new_status in self._transitions.get(old_status, frozenset())

    async def transition(
        self,
        *,
        share_id: str,
        new_status: MountStatus,
        actual_mount_point: Optional[str] = None,
        error_message: Optional[str] = None,
        error_kind: Optional[MountErrorKind] = None,
    ) -> Share:
        """
        Apply a status transition atomically and announce it.

        Usage:
            await state_machine.transition(
                share_id=share.id,
                new_status=MountStatus.MOUNTED,
                actual_mount_point="/Volumes/finance",
            )

        Raises:
            InvalidTransitionError: the transition is not allowed.
            InvalidIndexError: the share is not in the registry.
            ValueError: MOUNTED without a mount point.
        """
        if new_status == MountStatus.MOUNTED and not actual_mount_point:
            raise ValueError("Transition to mounted requires actual_mount_point")

        seen: Dict[str, MountStatus] = {}

        def apply(share: Share) -> None:
            old_status = share.status
            seen["old"] = old_status
            if new_status == old_status:
                if new_status == MountStatus.MOUNTED:
                    share.actual_mount_point = actual_mount_point
                return
            if not self.is_allowed(old_status, new_status):
                raise InvalidTransitionError(share.resource_uri, old_status.value, new_status.value)

            share.status = new_status
            share.actual_mount_point = actual_mount_point if new_status == MountStatus.MOUNTED else None
            # Old errors never survive a transition unless restated
            share.error_message = error_message
            share.last_error_kind = error_kind

        updated = await self._registry.update(share_id, apply)
        old_status = seen["old"]

        if old_status != new_status:
            logging.info(f"Transition: {updated.resource_uri} | {old_status.value} -> {new_status.value}")
            self._event_bus.publish_nowait(
                ShareStatusChangedEvent(
                    share_id=updated.id,
                    resource_uri=updated.resource_uri,
                    old_status=old_status,
                    new_status=new_status,
                    actual_mount_point=updated.actual_mount_point,
                    error_kind=error_kind,
                )
            )
        return updated

    async def reset(self, share_id: str) -> Share:
        """Return a share to UNDEFINED so the next attempt is not cooled down."""
        return await self.transition(share_id=share_id, new_status=MountStatus.UNDEFINED)
