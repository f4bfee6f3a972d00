"""
Mount-Point Resolver

Turns a share and a base directory into the local path it will be mounted
at, and classifies whatever already occupies that path.
"""

import logging
import os
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional
from urllib.parse import unquote, urlsplit

import aiofiles.os

from .network_mount.base_mounter import BaseMounter
from .network_mount.mount_table import find_mount_at, find_mount_of, source_matches
from ..config import Settings
from ..core.exceptions import CannotDetermineMountComponentError
from ..models import MountEntry, MountStatus, ResolvedTarget, Share, TargetState

HIDDEN_SHARE_MARKER = "$"


def parse_host(resource_uri: str) -> Optional[str]:
    """Host of a resource URI, or None when the URI is not usable."""
    try:
        parts = urlsplit(resource_uri)
        if not parts.scheme:
            return None
        return parts.hostname or None
    except ValueError:
        return None


def export_name(resource_uri: str) -> str:
    """
    Last path segment of the URI, else the host.

    Raises:
        CannotDetermineMountComponentError: neither is present.
    """
    try:
        parts = urlsplit(resource_uri)
    except ValueError:
        raise CannotDetermineMountComponentError(resource_uri)

    segments = [unquote(s) for s in parts.path.split("/") if s]
    if segments:
        name = segments[-1]
    elif parts.hostname:
        name = parts.hostname
    else:
        raise CannotDetermineMountComponentError(resource_uri)

    # "Finance$" is a hidden SMB share; the marker stays in the URI only
    if name.endswith(HIDDEN_SHARE_MARKER):
        name = name.rstrip(HIDDEN_SHARE_MARKER)
    if not name:
        raise CannotDetermineMountComponentError(resource_uri)
    return name.replace("/", ":")


def effective_mount_point_name(share: Share, provider_owned: bool = False) -> str:
    """Configured mount_point_name, else derived from the URI. The OS ignores it in /Volumes."""
    if share.mount_point_name and not provider_owned:
        name = share.mount_point_name
        if name.endswith(HIDDEN_SHARE_MARKER):
            name = name.rstrip(HIDDEN_SHARE_MARKER) or name
        return name
    return export_name(share.resource_uri)


class MountPointResolver:
    """Pure path computation plus an on-disk classification of the target."""

    def __init__(self, settings: Settings, mount_provider: BaseMounter):
        self._settings = settings
        self._mount_provider = mount_provider

    def is_provider_owned(self, base_directory: str) -> bool:
        return os.path.normpath(base_directory) == os.path.normpath(self._settings.system_mount_root)

    def is_inside_system_root(self, path: str) -> bool:
        root = os.path.normpath(self._settings.system_mount_root)
        normalized = os.path.normpath(path)
        return normalized == root or normalized.startswith(root.rstrip("/") + "/")

    def target_path(self, share: Share, base_directory: str) -> str:
        provider_owned = self.is_provider_owned(base_directory)
        return os.path.join(base_directory, effective_mount_point_name(share, provider_owned))

    async def resolve(
        self,
        share: Share,
        base_directory: Optional[str] = None,
        mount_table: Optional[List[MountEntry]] = None,
    ) -> ResolvedTarget:
        """
        Compute the target of a share and classify what is on disk there.

        Raises:
            CannotDetermineMountComponentError: URI has no path segment and no host.
        """
        base_directory = base_directory or self._settings.base_directory
        provider_owned = self.is_provider_owned(base_directory)
        display_name = effective_mount_point_name(share, provider_owned)
        mount_path = os.path.join(base_directory, display_name)

        if mount_table is None:
            mount_table = await self._mount_provider.list_mounts()

        target = ResolvedTarget(
            share_id=share.id,
            mount_path=mount_path,
            working_path=base_directory if provider_owned else mount_path,
            display_name=display_name,
            provider_owned=provider_owned,
        )
        target.state = await self._classify(share, target, mount_table)
        if target.state == TargetState.ALREADY_MOUNTED and provider_owned:
            existing = find_mount_of(mount_table, share.resource_uri, under=base_directory)
            if existing is not None:
                target.mount_path = existing.mount_point

        logging.debug(f"Resolved {share.resource_uri} -> {target.mount_path} ({target.state.value})")
        return target

    async def _classify(self, share: Share, target: ResolvedTarget, mount_table: List[MountEntry]) -> TargetState:
        # The OS may have put the share at "name-1" in its own namespace
        if target.provider_owned and find_mount_of(mount_table, share.resource_uri, under=target.working_path):
            return TargetState.ALREADY_MOUNTED

        entry = find_mount_at(mount_table, target.mount_path)
        if entry is not None:
            if source_matches(share.resource_uri, entry.source):
                return TargetState.ALREADY_MOUNTED
            return TargetState.OBSTRUCTING_MOUNT

        if not (
            await aiofiles.os.path.exists(target.mount_path)
            or await aiofiles.os.path.islink(target.mount_path)
        ):
            return TargetState.FRESH

        if target.provider_owned or self.is_inside_system_root(target.mount_path):
            return TargetState.OBSTRUCTING_DIRECTORY

        if await aiofiles.os.path.islink(target.mount_path) or not await aiofiles.os.path.isdir(target.mount_path):
            return TargetState.OBSTRUCTING_DIRECTORY

        if await self.holds_only_junk(target.mount_path):
            return TargetState.RECLAIMABLE
        return TargetState.OBSTRUCTING_DIRECTORY

    async def holds_only_junk(self, directory: str) -> bool:
        """True for an empty directory or one holding only files_to_delete."""
        try:
            entries = await aiofiles.os.listdir(directory)
        except OSError as e:
            logging.debug(f"Cannot list {directory}: {e}")
            return False
        junk = set(self._settings.files_to_delete)
        return all(name in junk for name in entries)

    def find_name_collisions(
        self, shares: Iterable[Share], base_directory: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Detect registered shares that resolve to the same target path.

        Returns a mapping of colliding share id -> owning share id. The owner
        of a path is the share currently mounted there, else the earliest
        registered one. Paths compare case-insensitively, like the default
        macOS filesystem.
        """
        base_directory = base_directory or self._settings.base_directory
        groups: "OrderedDict[str, List[Share]]" = OrderedDict()

        for share in shares:
            try:
                path = self.target_path(share, base_directory)
            except CannotDetermineMountComponentError:
                continue
            groups.setdefault(os.path.normpath(path).casefold(), []).append(share)

        collisions: Dict[str, str] = {}
        for path_key, members in groups.items():
            if len(members) < 2:
                continue
            owner = next(
                (
                    s
                    for s in members
                    if s.status == MountStatus.MOUNTED
                    and s.actual_mount_point
                    and os.path.normpath(s.actual_mount_point).casefold() == path_key
                ),
                members[0],
            )
            for member in members:
                if member.id != owner.id:
                    collisions[member.id] = owner.id
            logging.warning(
                f"Mount point name collision at {path_key}: {owner.resource_uri} owns it, "
                f"{len(members) - 1} other share(s) blocked"
            )
        return collisions
