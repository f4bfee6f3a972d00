"""
Mount Orchestrator

Drives every share through its mount lifecycle: reconcile (mount) and
unmount for one share or all of them, configuration changes, and the
bookkeeping around concurrent attempts.

Concurrency model:
- one asyncio task per share, joined with gather
- a newer all-share reconcile cancels the running one
- registry locks are only held for in-memory transitions
- every attempt claims its target path while it creates, mounts or
  removes it; the sweeper leaves claimed paths alone
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Set

import aiofiles.os

from .cleanup_sweeper import CleanupSweeper
from .mount_point_resolver import MountPointResolver, parse_host
from .network_mount.base_mounter import BaseMounter
from .network_mount.mount_table import find_mount_at, find_mount_of, source_matches
from .reachability.host_probe import HostProbe
from .reachability.reachability_monitor import ReachabilityMonitor
from ..config import Settings
from ..core.error_taxonomy import MountErrorTaxonomy
from ..core.events.event_bus import DomainEventBus
from ..core.events.share_events import AuthenticationRequiredEvent
from ..core.exceptions import (
    CannotDetermineMountComponentError,
    InvalidIndexError,
    InvalidTransitionError,
    ManagedShareError,
    MountBaseDirectoryError,
)
from ..core.share_registry import ShareRegistry
from ..core.share_state_machine import ShareStateMachine
from ..models import (
    COOL_DOWN_STATES,
    AuthKind,
    MountEntry,
    MountErrorKind,
    MountOptions,
    MountOutcome,
    MountStatus,
    ReconcileReport,
    ResolvedTarget,
    Share,
    ShareDefinition,
    SweepReport,
    TargetState,
    TriggerKind,
    UnmountResult,
)

PersistenceCallback = Callable[[List[Share]], Awaitable[None]]

EDITABLE_FIELDS = frozenset({"resource_uri", "auth_kind", "credential_ref", "mount_point_name"})

# Changing these moves the share to a different mount
LOCATION_FIELDS = ("resource_uri", "mount_point_name")


class MountOrchestrator:
    def __init__(
        self,
        settings: Settings,
        registry: ShareRegistry,
        state_machine: ShareStateMachine,
        resolver: MountPointResolver,
        sweeper: CleanupSweeper,
        mount_provider: BaseMounter,
        taxonomy: MountErrorTaxonomy,
        reachability_monitor: ReachabilityMonitor,
        host_probe: HostProbe,
        event_bus: DomainEventBus,
        persistence_callback: Optional[PersistenceCallback] = None,
    ):
        self._settings = settings
        self._registry = registry
        self._state_machine = state_machine
        self._resolver = resolver
        self._sweeper = sweeper
        self._mount_provider = mount_provider
        self._taxonomy = taxonomy
        self._reachability = reachability_monitor
        self._host_probe = host_probe
        self._event_bus = event_bus
        self._persistence_callback = persistence_callback

        self._batch_task: Optional[asyncio.Task] = None
        self._claims: Set[str] = set()

        logging.info(
            f"MountOrchestrator initialized - base directory {self.base_directory}, "
            f"provider {mount_provider.platform_name()}"
        )

    @property
    def base_directory(self) -> str:
        return self._settings.base_directory

    @property
    def claimed_paths(self) -> FrozenSet[str]:
        return frozenset(self._claims)

    async def shares(self) -> List[Share]:
        return await self._registry.all()

    # ---------------------------------------------------------------- mount

    async def reconcile(
        self, share_id: Optional[str] = None, trigger: TriggerKind = TriggerKind.AUTOMATIC
    ) -> ReconcileReport:
        """
        Mount one share (share_id) or every registered share.

        Never raises for mount failures: each share ends in a status that
        describes what went wrong. A caller whose all-share batch is
        cancelled by a newer one gets a report with superseded=True.
        """
        report = ReconcileReport(trigger=trigger, share_id=share_id)

        if not self._reachability.is_network_usable:
            logging.info(f"Network not usable, skipping {trigger.value} mount cycle")
            report.skipped_no_network = True
            return report

        if share_id is not None:
            outcome = await self._reconcile_single(share_id, trigger)
            if outcome is not None:
                report.outcomes.append(outcome)
            return report

        await self._cancel_running_batch()

        batch = asyncio.create_task(self._run_batch(trigger))
        self._batch_task = batch
        try:
            report.outcomes = await batch
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logging.info("Mount batch superseded by a newer one")
            report.superseded = True
        return report

    async def _reconcile_single(self, share_id: str, trigger: TriggerKind) -> Optional[MountOutcome]:
        share = await self._registry.get(share_id)
        if share is None:
            logging.warning(f"Cannot mount unknown share id {share_id}")
            return None

        if share.status != MountStatus.MOUNTED:
            await self._state_machine.reset(share_id)

        shares = await self._registry.all()
        collisions = self._resolver.find_name_collisions(shares, self.base_directory)
        mount_table = await self._read_mount_table()

        share = await self._registry.get(share_id)
        if share is None:
            return None
        outcome = await self._attempt(share, trigger, collisions.get(share_id), mount_table)
        await self._persist()
        return outcome

    async def _run_batch(self, trigger: TriggerKind) -> List[MountOutcome]:
        shares = await self._registry.all()
        logging.info(f"Starting {trigger.value} mount cycle for {len(shares)} share(s)")

        await self.sweep(shares)

        if trigger == TriggerKind.USER_TRIGGERED:
            for share in shares:
                if share.status not in (MountStatus.UNDEFINED, MountStatus.MOUNTED):
                    await self._state_machine.reset(share.id)
            shares = await self._registry.all()

        mount_table = await self._read_mount_table()
        collisions = self._resolver.find_name_collisions(shares, self.base_directory)

        outcomes = await asyncio.gather(
            *(self._attempt(share, trigger, collisions.get(share.id), mount_table) for share in shares)
        )

        mounted = sum(1 for o in outcomes if o.status == MountStatus.MOUNTED)
        logging.info(f"Mount cycle finished: {mounted}/{len(outcomes)} share(s) mounted")
        await self._persist()
        return list(outcomes)

    async def _attempt(
        self,
        share: Share,
        trigger: TriggerKind,
        collision_owner: Optional[str],
        mount_table: List[MountEntry],
    ) -> MountOutcome:
        if trigger == TriggerKind.AUTOMATIC and share.status in COOL_DOWN_STATES:
            logging.debug(f"Skipping {share.resource_uri}: {share.status.value}")
            return self._outcome(share, skipped=True)

        try:
            return await self._mount_share(share, collision_owner, mount_table)
        except asyncio.CancelledError:
            await self._reset_if_queued(share.id)
            raise
        except Exception as e:
            logging.error(f"Unexpected error mounting {share.resource_uri}: {e}", exc_info=True)
            await self._reset_if_queued(share.id)
            current = await self._registry.get(share.id)
            return self._outcome(current or share, message=str(e))

    async def _mount_share(
        self, share: Share, collision_owner: Optional[str], mount_table: List[MountEntry]
    ) -> MountOutcome:
        if parse_host(share.resource_uri) is None:
            return await self._finish(share, MountErrorKind.MALFORMED_RESOURCE)

        if share.status == MountStatus.MOUNTED and self._still_mounted(share, mount_table):
            logging.debug(f"{share.resource_uri} still mounted at {share.actual_mount_point}")
            return await self._finish(share, None, mount_point=share.actual_mount_point)

        if not await self._host_probe.is_reachable(share.resource_uri):
            return await self._finish(share, MountErrorKind.HOST_UNREACHABLE)

        if collision_owner is not None:
            return await self._finish(share, MountErrorKind.DUPLICATE_NAME)

        try:
            target = await self._resolver.resolve(share, self.base_directory, mount_table)
        except CannotDetermineMountComponentError as e:
            logging.error(str(e))
            return await self._finish(share, MountErrorKind.MALFORMED_RESOURCE)

        if target.state == TargetState.ALREADY_MOUNTED:
            logging.info(f"{share.resource_uri} already mounted at {target.mount_path}")
            return await self._finish(share, None, mount_point=target.mount_path)

        if target.state == TargetState.OBSTRUCTING_DIRECTORY or (
            target.state == TargetState.OBSTRUCTING_MOUNT and not target.provider_owned
        ):
            logging.warning(f"Mount point {target.mount_path} for {share.resource_uri} is obstructed")
            return await self._finish(share, MountErrorKind.LOCAL_OBSTRUCTION)

        if not self._claim(target.mount_path):
            logging.info(f"{target.mount_path} is busy with another attempt, skipping {share.resource_uri}")
            current = await self._registry.get(share.id)
            return self._outcome(current or share, skipped=True)

        try:
            return await self._mount_at(share, target)
        finally:
            self._release(target.mount_path)

    async def _mount_at(self, share: Share, target: ResolvedTarget) -> MountOutcome:
        if target.state == TargetState.RECLAIMABLE:
            logging.info(f"Reclaiming leftover directory {target.mount_path}")
            if not await self._sweeper.remove_mount_directory(target.mount_path):
                return await self._finish(share, MountErrorKind.LOCAL_OBSTRUCTION)

        await self._state_machine.transition(share_id=share.id, new_status=MountStatus.QUEUED)

        created = False
        if not target.provider_owned:
            try:
                await aiofiles.os.makedirs(target.mount_path)
                created = True
            except PermissionError as e:
                logging.error(f"Cannot create mount directory {target.mount_path}: {e}")
                return await self._finish(share, MountErrorKind.PERMISSION_DENIED)
            except OSError as e:
                logging.error(f"Cannot create mount directory {target.mount_path}: {e}")
                return await self._finish(share, MountErrorKind.LOCAL_OBSTRUCTION)

        raw_code: Optional[int] = None
        try:
            raw_code = await asyncio.wait_for(
                self._mount_provider.mount(
                    share.resource_uri,
                    target.working_path,
                    share.credential_ref,
                    self._mount_options(share, target),
                ),
                timeout=self._settings.mount_timeout_seconds,
            )
            kind = self._taxonomy.classify(raw_code)
        except asyncio.TimeoutError:
            logging.warning(
                f"Mount of {share.resource_uri} timed out after {self._settings.mount_timeout_seconds}s"
            )
            kind = MountErrorKind.HOST_UNREACHABLE
        except asyncio.CancelledError:
            if created:
                await self._sweeper.remove_mount_directory(target.mount_path)
            raise
        except Exception as e:
            logging.error(f"Mount provider failed for {share.resource_uri}: {e}")
            kind = MountErrorKind.UNKNOWN_PROVIDER_CODE

        if self._taxonomy.is_success(kind):
            mount_point = target.mount_path
            if target.provider_owned:
                mount_point = await self._lookup_mount_point(share, target)
            return await self._finish(share, kind, mount_point=mount_point)

        if created:
            await self._sweeper.remove_mount_directory(target.mount_path)
        return await self._finish(share, kind, raw_code=raw_code)

    async def _finish(
        self,
        share: Share,
        kind: Optional[MountErrorKind],
        mount_point: Optional[str] = None,
        raw_code: Optional[int] = None,
    ) -> MountOutcome:
        """Write the result of an attempt back through the state machine."""
        success = self._taxonomy.is_success(kind)
        status = self._taxonomy.status_for(kind)
        message = None if success else self._taxonomy.describe(kind, raw_code)

        try:
            updated = await self._state_machine.transition(
                share_id=share.id,
                new_status=status,
                actual_mount_point=mount_point if status == MountStatus.MOUNTED else None,
                error_message=message,
                error_kind=None if success else kind,
            )
        except (InvalidTransitionError, InvalidIndexError) as e:
            # Share was changed or removed while the attempt ran
            logging.warning(f"Could not record mount result for {share.resource_uri}: {e}")
            current = await self._registry.get(share.id)
            return self._outcome(current or share, error_kind=None if success else kind, message=message)

        if kind == MountErrorKind.AUTHENTICATION_FAILED:
            self._event_bus.publish_nowait(
                AuthenticationRequiredEvent(
                    share_id=share.id,
                    resource_uri=share.resource_uri,
                    auth_kind=share.auth_kind,
                )
            )

        if success:
            logging.info(f"Mounted {share.resource_uri} at {updated.actual_mount_point}")
        else:
            logging.warning(f"Mount of {share.resource_uri} failed: {message}")

        return self._outcome(updated, error_kind=None if success else kind, message=message)

    async def _lookup_mount_point(self, share: Share, target: ResolvedTarget) -> str:
        """Where the OS actually put the share inside its own namespace."""
        entry = find_mount_of(await self._read_mount_table(), share.resource_uri, under=target.working_path)
        return entry.mount_point if entry else target.mount_path

    @staticmethod
    def _still_mounted(share: Share, mount_table: List[MountEntry]) -> bool:
        if not share.actual_mount_point:
            return False
        entry = find_mount_at(mount_table, share.actual_mount_point)
        return entry is not None and source_matches(share.resource_uri, entry.source)

    @staticmethod
    def _mount_options(share: Share, target: ResolvedTarget) -> MountOptions:
        return MountOptions(
            guest=share.auth_kind == AuthKind.GUEST,
            mount_at_dir=not target.provider_owned,
        )

    # -------------------------------------------------------------- unmount

    async def unmount(self, share_id: Optional[str] = None, user_triggered: bool = False) -> List[MountOutcome]:
        """
        Unmount one share or every mounted share.

        Success leaves the share userUnmounted (user) or unmounted; a failed
        unmount resets it to undefined. The mount point is cleared either way.
        """
        if share_id is None:
            await self._cancel_running_batch()
            shares = await self._registry.all()
        else:
            share = await self._registry.get(share_id)
            if share is None:
                logging.warning(f"Cannot unmount unknown share id {share_id}")
                return []
            shares = [share]

        mounted = [s for s in shares if s.actual_mount_point]
        logging.info(f"Unmounting {len(mounted)} share(s){' (user)' if user_triggered else ''}")
        outcomes = await asyncio.gather(*(self._unmount_share(s, user_triggered) for s in mounted))

        if share_id is None:
            await self.sweep()
        await self._persist()
        return list(outcomes)

    async def _unmount_share(self, share: Share, user_triggered: bool) -> MountOutcome:
        path = share.actual_mount_point
        claimed = self._claim(path)
        try:
            try:
                result = await asyncio.wait_for(
                    self._mount_provider.unmount(path),
                    timeout=self._settings.unmount_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logging.error(f"Unmount of {path} timed out")
                result = UnmountResult.failure(MountErrorKind.UNMOUNT_FAILED)
            except Exception as e:
                logging.error(f"Unmount of {path} failed: {e}")
                result = UnmountResult.failure(MountErrorKind.UNMOUNT_FAILED)

            if result.success:
                new_status = MountStatus.USER_UNMOUNTED if user_triggered else MountStatus.UNMOUNTED
                kind = None
                message = None
            else:
                new_status = MountStatus.UNDEFINED
                kind = result.error_kind or MountErrorKind.UNMOUNT_FAILED
                message = self._taxonomy.describe(kind)

            try:
                updated = await self._state_machine.transition(
                    share_id=share.id, new_status=new_status, error_message=message, error_kind=kind
                )
            except (InvalidTransitionError, InvalidIndexError) as e:
                logging.warning(f"Could not record unmount of {share.resource_uri}: {e}")
                return self._outcome(share, error_kind=kind, message=message)
            return self._outcome(updated, error_kind=kind, message=message)
        finally:
            if claimed:
                self._release(path)

    # ---------------------------------------------------------------- sweep

    async def sweep(self, shares: Optional[List[Share]] = None) -> SweepReport:
        """Clean the base directory; never raises."""
        if shares is None:
            shares = await self._registry.all()
        try:
            return await self._sweeper.sweep(self.base_directory, shares, self.claimed_paths)
        except Exception as e:
            logging.error(f"Cleanup of {self.base_directory} failed: {e}")
            return SweepReport(skipped=True)

    async def prepare_base_directory(self) -> str:
        """
        Create the base mount directory.

        Raises:
            MountBaseDirectoryError: it cannot be created.
        """
        base = self.base_directory
        if self._resolver.is_provider_owned(base):
            return base
        try:
            await aiofiles.os.makedirs(base, exist_ok=True)
        except OSError as e:
            raise MountBaseDirectoryError(base, str(e)) from e
        if not await aiofiles.os.path.isdir(base):
            raise MountBaseDirectoryError(base, "not a directory")
        logging.info(f"Mount base directory ready: {base}")
        return base

    # -------------------------------------------------------- configuration

    async def add_share(self, share: Share) -> bool:
        added = await self._registry.add(share)
        if added:
            logging.info(f"Added share {share.resource_uri}")
            await self._persist()
        return added

    async def remove_share(self, share_id: str, user_initiated: bool = True) -> bool:
        """
        Unmount (if mounted) and remove a share.

        Raises:
            ManagedShareError: a user tries to remove a managed share.
        """
        removed = await self._remove_share(share_id, user_initiated)
        if removed:
            await self._persist()
        return removed

    async def update_share_definition(self, share_id: str, **changes) -> Share:
        """
        Change the user-editable fields of a share.

        Raises:
            ValueError: unknown field, invalid value or duplicate resource_uri.
            InvalidIndexError: unknown share.
            ManagedShareError: the share is managed.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        share = await self._registry.get(share_id)
        if share is None:
            raise InvalidIndexError(share_id)
        if share.managed:
            raise ManagedShareError(share.resource_uri)

        updated = await self._apply_definition(share, changes)
        await self._persist()
        return updated

    async def apply_managed_configuration(self, definitions: List[ShareDefinition]) -> None:
        """
        Bring managed shares in line with central configuration: new ones
        are added, changed ones updated, vanished ones unmounted and removed.
        A user share with the same resource_uri becomes managed.
        """
        desired: Dict[str, ShareDefinition] = {d.resource_uri: d for d in definitions}

        for share in await self._registry.all():
            if share.managed and share.resource_uri not in desired:
                logging.info(f"Managed share {share.resource_uri} no longer configured, removing")
                await self._remove_share(share.id, user_initiated=False)

        for definition in desired.values():
            existing = await self._registry.get_by_resource_uri(definition.resource_uri)
            if existing is None:
                await self._registry.add(Share(**definition.model_dump(), managed=True))
                logging.info(f"Added managed share {definition.resource_uri}")
                continue
            changes = {
                field: value
                for field, value in definition.model_dump().items()
                if getattr(existing, field) != value
            }
            if changes:
                existing = await self._apply_definition(existing, changes)
            if not existing.managed:
                await self._registry.update(existing.id, lambda s: setattr(s, "managed", True))

        await self._persist()

    async def _remove_share(self, share_id: str, user_initiated: bool) -> bool:
        share = await self._registry.get(share_id)
        if share is None:
            return False
        if share.managed and user_initiated:
            raise ManagedShareError(share.resource_uri)

        if share.actual_mount_point:
            await self.unmount(share_id)

        removed = await self._registry.remove(share_id)
        if removed:
            logging.info(f"Removed share {share.resource_uri}")
        return removed

    async def _apply_definition(self, share: Share, changes: Dict) -> Share:
        new_uri = changes.get("resource_uri")
        if new_uri and new_uri != share.resource_uri:
            other = await self._registry.get_by_resource_uri(new_uri)
            if other is not None:
                raise ValueError(f"Share {new_uri} is already configured")

        moves = any(field in changes and changes[field] != getattr(share, field) for field in LOCATION_FIELDS)
        if moves and share.actual_mount_point:
            await self.unmount(share.id)

        def apply(s: Share) -> None:
            for field, value in changes.items():
                setattr(s, field, value)

        updated = await self._registry.update(share.id, apply)
        logging.info(f"Updated share {updated.resource_uri}: {', '.join(sorted(changes))}")
        return updated

    # ------------------------------------------------------------- helpers

    async def _cancel_running_batch(self) -> None:
        """
        Cancel the running batch and wait for it to wind down.

        Returns once no batch is running; nothing is awaited after the last
        check, so the caller starts its batch before anyone else can.
        """
        while self._batch_task is not None and not self._batch_task.done():
            previous = self._batch_task
            logging.info("Cancelling running mount batch")
            previous.cancel()
            await asyncio.wait({previous})

    async def _reset_if_queued(self, share_id: str) -> None:
        try:
            share = await self._registry.get(share_id)
            if share is not None and share.status == MountStatus.QUEUED:
                await self._state_machine.reset(share_id)
        except Exception as e:
            logging.error(f"Could not reset interrupted attempt for share {share_id}: {e}")

    async def _read_mount_table(self) -> List[MountEntry]:
        try:
            return await self._mount_provider.list_mounts()
        except Exception as e:
            logging.error(f"Could not read mount table: {e}")
            return []

    def _claim(self, path: str) -> bool:
        key = os.path.normpath(path)
        if key in self._claims:
            return False
        self._claims.add(key)
        return True

    def _release(self, path: str) -> None:
        self._claims.discard(os.path.normpath(path))

    async def _persist(self) -> None:
        if self._persistence_callback is None:
            return
        try:
            await self._persistence_callback(await self._registry.all())
        except Exception as e:
            logging.error(f"Persisting share configuration failed: {e}")

    @staticmethod
    def _outcome(
        share: Share,
        skipped: bool = False,
        error_kind: Optional[MountErrorKind] = None,
        message: Optional[str] = None,
    ) -> MountOutcome:
        return MountOutcome(
            share_id=share.id,
            resource_uri=share.resource_uri,
            status=share.status,
            mount_point=share.actual_mount_point,
            error_kind=error_kind,
            skipped=skipped,
            message=message,
        )
