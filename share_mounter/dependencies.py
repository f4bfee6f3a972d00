from functools import lru_cache
from typing import Any, Dict

from share_mounter.core.error_taxonomy import MountErrorTaxonomy
from share_mounter.core.events.event_bus import DomainEventBus
from share_mounter.core.share_registry import ShareRegistry
from share_mounter.core.share_state_machine import ShareStateMachine

from .config import Settings
from .services.cleanup_sweeper import CleanupSweeper
from .services.credential_store import CredentialStore, SettingsCredentialStore
from .services.mount_orchestrator import MountOrchestrator
from .services.mount_point_resolver import MountPointResolver
from .services.mount_triggers import MountTriggerService
from .services.network_mount import BaseMounter, PlatformFactory
from .services.reachability import HostProbe, ReachabilityMonitor
from .services.share_config import ShareConfigHandler

# Global singleton instances
_singletons: Dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_event_bus() -> DomainEventBus:
    if "event_bus" not in _singletons:
        _singletons["event_bus"] = DomainEventBus()
    return _singletons["event_bus"]


def get_share_registry() -> ShareRegistry:
    if "share_registry" not in _singletons:
        _singletons["share_registry"] = ShareRegistry()
    return _singletons["share_registry"]


def get_share_state_machine() -> ShareStateMachine:
    if "share_state_machine" not in _singletons:
        _singletons["share_state_machine"] = ShareStateMachine(
            registry=get_share_registry(), event_bus=get_event_bus()
        )
    return _singletons["share_state_machine"]


def get_credential_store() -> CredentialStore:
    if "credential_store" not in _singletons:
        _singletons["credential_store"] = SettingsCredentialStore(get_settings().share_credentials)
    return _singletons["credential_store"]


def get_mount_provider() -> BaseMounter:
    if "mount_provider" not in _singletons:
        _singletons["mount_provider"] = PlatformFactory().create_mounter(
            credential_store=get_credential_store(),
            unmount_timeout=get_settings().unmount_timeout_seconds,
        )
    return _singletons["mount_provider"]


def get_error_taxonomy() -> MountErrorTaxonomy:
    if "error_taxonomy" not in _singletons:
        _singletons["error_taxonomy"] = MountErrorTaxonomy(get_mount_provider().error_codes)
    return _singletons["error_taxonomy"]


def get_mount_point_resolver() -> MountPointResolver:
    if "mount_point_resolver" not in _singletons:
        _singletons["mount_point_resolver"] = MountPointResolver(get_settings(), get_mount_provider())
    return _singletons["mount_point_resolver"]


def get_cleanup_sweeper() -> CleanupSweeper:
    if "cleanup_sweeper" not in _singletons:
        _singletons["cleanup_sweeper"] = CleanupSweeper(
            get_settings(), get_mount_provider(), get_mount_point_resolver()
        )
    return _singletons["cleanup_sweeper"]


def get_reachability_monitor() -> ReachabilityMonitor:
    if "reachability_monitor" not in _singletons:
        _singletons["reachability_monitor"] = ReachabilityMonitor(get_settings(), get_event_bus())
    return _singletons["reachability_monitor"]


def get_host_probe() -> HostProbe:
    if "host_probe" not in _singletons:
        _singletons["host_probe"] = HostProbe(get_settings())
    return _singletons["host_probe"]


def get_mount_orchestrator() -> MountOrchestrator:
    if "mount_orchestrator" not in _singletons:
        _singletons["mount_orchestrator"] = MountOrchestrator(
            settings=get_settings(),
            registry=get_share_registry(),
            state_machine=get_share_state_machine(),
            resolver=get_mount_point_resolver(),
            sweeper=get_cleanup_sweeper(),
            mount_provider=get_mount_provider(),
            taxonomy=get_error_taxonomy(),
            reachability_monitor=get_reachability_monitor(),
            host_probe=get_host_probe(),
            event_bus=get_event_bus(),
        )
    return _singletons["mount_orchestrator"]


def get_share_config_handler() -> ShareConfigHandler:
    if "share_config_handler" not in _singletons:
        _singletons["share_config_handler"] = ShareConfigHandler(get_settings())
    return _singletons["share_config_handler"]


def get_mount_trigger_service() -> MountTriggerService:
    if "mount_trigger_service" not in _singletons:
        _singletons["mount_trigger_service"] = MountTriggerService(
            get_settings(), get_mount_orchestrator(), get_event_bus()
        )
    return _singletons["mount_trigger_service"]


def reset_singletons() -> None:
    global _singletons
    _singletons.clear()
