"""
Cleanup Sweeper - keeps the base mount directory free of leftovers.

Removes junk files and empty directories left behind by earlier mounts and
unmounts stray "name-N" duplicates of registered shares.
"""

import logging
import os
import re
from typing import AbstractSet, Iterable, List, Optional

import aiofiles.os

from .mount_point_resolver import MountPointResolver
from .network_mount.base_mounter import BaseMounter
from .network_mount.mount_table import find_mount_at, is_inside_network_mount
from ..config import Settings
from ..core.exceptions import CannotDetermineMountComponentError
from ..models import MountEntry, Share, SweepReport

_DUPLICATE_SUFFIX = re.compile(r"^(?P<name>.+)-(?P<number>\d+)$")


class CleanupSweeper:
    def __init__(self, settings: Settings, mount_provider: BaseMounter, resolver: MountPointResolver):
        self._settings = settings
        self._mount_provider = mount_provider
        self._resolver = resolver

    async def sweep(
        self,
        base_directory: Optional[str],
        known_shares: Iterable[Share],
        busy_paths: AbstractSet[str] = frozenset(),
    ) -> SweepReport:
        """
        One pass over the immediate children of base_directory.

        Per-item failures are logged and skipped, so a sweep never raises
        for a single bad entry and running it twice changes nothing more.
        """
        base_directory = base_directory or self._settings.base_directory
        report = SweepReport()

        if not await aiofiles.os.path.isdir(base_directory):
            logging.debug(f"Base directory {base_directory} does not exist, nothing to sweep")
            return report

        mount_table = await self._mount_provider.list_mounts()
        if find_mount_at(mount_table, base_directory) or is_inside_network_mount(mount_table, base_directory):
            logging.warning(f"Base directory {base_directory} is on a mounted volume, skipping cleanup")
            report.skipped = True
            return report

        shares = list(known_shares)
        known_names = self._known_names(shares, base_directory)
        mounted_paths = {os.path.normpath(s.actual_mount_point) for s in shares if s.actual_mount_point}
        busy = {os.path.normpath(p) for p in busy_paths}

        try:
            children = sorted(await aiofiles.os.listdir(base_directory))
        except OSError as e:
            logging.error(f"Cannot list base directory {base_directory}: {e}")
            return report

        for child in children:
            path = os.path.join(base_directory, child)
            if os.path.normpath(path) in busy:
                logging.debug(f"Skipping {path}: claimed by a running mount attempt")
                continue
            try:
                if find_mount_at(mount_table, path) is not None:
                    await self._check_duplicate_mount(path, child, known_names, mounted_paths, report)
                elif self._settings.cleanup_location_directory:
                    await self._clean_entry(path, child, report)
            except Exception as e:
                logging.error(f"Error cleaning up {path}: {e}")

        if report.removed_directories or report.removed_files or report.unmounted_duplicates:
            logging.info(
                f"Cleanup of {base_directory}: {len(report.removed_files)} file(s), "
                f"{len(report.removed_directories)} directorie(s) removed, "
                f"{len(report.unmounted_duplicates)} duplicate mount(s) unmounted"
            )
        return report

    def _known_names(self, shares: List[Share], base_directory: str) -> AbstractSet[str]:
        names = set()
        for share in shares:
            try:
                names.add(os.path.basename(self._resolver.target_path(share, base_directory)).casefold())
            except CannotDetermineMountComponentError:
                continue
        return names

    async def _check_duplicate_mount(
        self,
        path: str,
        name: str,
        known_names: AbstractSet[str],
        mounted_paths: AbstractSet[str],
        report: SweepReport,
    ) -> None:
        match = _DUPLICATE_SUFFIX.match(name)
        if match is None or match.group("name").casefold() not in known_names:
            return
        if name.casefold() in known_names or os.path.normpath(path) in mounted_paths:
            return

        logging.info(f"Unmounting stray duplicate mount {path}")
        result = await self._mount_provider.unmount(path)
        if result.success:
            report.unmounted_duplicates.append(path)
        else:
            logging.warning(f"Could not unmount duplicate {path}: {result.error_kind}")

    async def _clean_entry(self, path: str, name: str, report: SweepReport) -> None:
        if self._resolver.is_inside_system_root(path):
            return

        if await aiofiles.os.path.islink(path):
            return

        if await aiofiles.os.path.isfile(path):
            if name in self._settings.files_to_delete:
                await aiofiles.os.remove(path)
                report.removed_files.append(path)
            return

        if not await aiofiles.os.path.isdir(path):
            return

        for entry in await aiofiles.os.listdir(path):
            if entry in self._settings.files_to_delete:
                junk = os.path.join(path, entry)
                if await aiofiles.os.path.isfile(junk):
                    await aiofiles.os.remove(junk)
                    report.removed_files.append(junk)

        if not await aiofiles.os.listdir(path):
            await aiofiles.os.rmdir(path)
            report.removed_directories.append(path)
            logging.debug(f"Removed empty directory {path}")

    async def remove_mount_directory(self, path: str) -> bool:
        """
        Remove a directory a mount attempt created or reclaims: junk files
        first, then the directory itself if empty. Refuses anything inside
        the system mount root.
        """
        if self._resolver.is_inside_system_root(path):
            logging.warning(f"Refusing to remove {path} inside {self._settings.system_mount_root}")
            return False
        try:
            mount_table: List[MountEntry] = await self._mount_provider.list_mounts()
            if find_mount_at(mount_table, path) is not None:
                logging.warning(f"Refusing to remove {path}: it is a mount point")
                return False
            for entry in await aiofiles.os.listdir(path):
                if entry in self._settings.files_to_delete:
                    await aiofiles.os.remove(os.path.join(path, entry))
            await aiofiles.os.rmdir(path)
            logging.debug(f"Removed mount directory {path}")
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logging.warning(f"Could not remove mount directory {path}: {e}")
            return False
