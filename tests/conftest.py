"""
Pytest configuration and shared fixtures.

FakeMountProvider stands in for the OS: it records every call, keeps an
in-memory mount table and can be told to fail or hang per resource URI.
"""

import asyncio
import logging
import os
from types import SimpleNamespace
from typing import Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock

import pytest

from share_mounter.config import Settings
from share_mounter.core.error_taxonomy import MountErrorTaxonomy
from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.share_registry import ShareRegistry
from share_mounter.core.share_state_machine import ShareStateMachine
from share_mounter.dependencies import reset_singletons
from share_mounter.models import MountEntry, MountOptions, UnmountResult
from share_mounter.services.cleanup_sweeper import CleanupSweeper
from share_mounter.services.mount_orchestrator import MountOrchestrator
from share_mounter.services.mount_point_resolver import MountPointResolver, export_name
from share_mounter.services.network_mount.base_mounter import BaseMounter
from share_mounter.services.network_mount.mount_table import same_path
from share_mounter.services.reachability import HostProbe, ReachabilityMonitor

logging.disable(logging.CRITICAL)


class FakeMountProvider(BaseMounter):
    def __init__(self):
        super().__init__()
        self.mounts: List[MountEntry] = []
        self.mount_calls: List[Tuple[str, str, Optional[str], MountOptions]] = []
        self.unmount_calls: List[str] = []
        self.results: Dict[str, int] = {}  # resource_uri -> raw code
        self.hanging: Set[str] = set()  # resource_uris that never answer
        self.delay = 0.0
        self.unmount_results: Dict[str, UnmountResult] = {}

    async def mount(self, resource_uri, target_path, credential_ref, options) -> int:
        self.mount_calls.append((resource_uri, target_path, credential_ref, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if resource_uri in self.hanging:
            await asyncio.Event().wait()

        code = self.results.get(resource_uri, 0)
        if code == 0:
            if options.mount_at_dir:
                mount_point = target_path
            else:
                mount_point = os.path.join(target_path, export_name(resource_uri))
            self.mounts.append(MountEntry(mount_point=mount_point, source=resource_uri, fs_type="smbfs"))
        return code

    async def unmount(self, path: str) -> UnmountResult:
        self.unmount_calls.append(path)
        result = self.unmount_results.get(path, UnmountResult.ok())
        if result.success:
            self.mounts = [m for m in self.mounts if not same_path(m.mount_point, path)]
        return result

    async def list_mounts(self) -> List[MountEntry]:
        return list(self.mounts)

    def platform_name(self) -> str:
        return "Fake"

    def mount_calls_for(self, resource_uri: str) -> int:
        return sum(1 for call in self.mount_calls if call[0] == resource_uri)


@pytest.fixture(autouse=True)
def clean_singletons():
    """Reset singletons before and after every test."""
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        mount_base_directory=str(tmp_path / "Networkshares"),
        system_mount_root=str(tmp_path / "Volumes"),
        log_file_path=str(tmp_path / "logs" / "share_mounter.log"),
        mount_timeout_seconds=0.2,
        unmount_timeout_seconds=0.2,
        enable_signal_triggers=False,
    )


@pytest.fixture
def fake_provider() -> FakeMountProvider:
    return FakeMountProvider()


@pytest.fixture
def engine(settings, fake_provider):
    """A fully wired MountOrchestrator on top of the fake provider."""
    event_bus = DomainEventBus()
    registry = ShareRegistry()
    state_machine = ShareStateMachine(registry=registry, event_bus=event_bus)
    resolver = MountPointResolver(settings, fake_provider)
    sweeper = CleanupSweeper(settings, fake_provider, resolver)
    monitor = ReachabilityMonitor(settings, event_bus, probe=AsyncMock(return_value=(True, "ipv4")))
    host_probe = AsyncMock(spec=HostProbe)
    host_probe.is_reachable.return_value = True
    persistence = AsyncMock()

    orchestrator = MountOrchestrator(
        settings=settings,
        registry=registry,
        state_machine=state_machine,
        resolver=resolver,
        sweeper=sweeper,
        mount_provider=fake_provider,
        taxonomy=MountErrorTaxonomy(fake_provider.error_codes),
        reachability_monitor=monitor,
        host_probe=host_probe,
        event_bus=event_bus,
        persistence_callback=persistence,
    )
    os.makedirs(settings.base_directory, exist_ok=True)
    return SimpleNamespace(
        settings=settings,
        provider=fake_provider,
        event_bus=event_bus,
        registry=registry,
        state_machine=state_machine,
        resolver=resolver,
        sweeper=sweeper,
        monitor=monitor,
        host_probe=host_probe,
        persistence=persistence,
        orchestrator=orchestrator,
    )
