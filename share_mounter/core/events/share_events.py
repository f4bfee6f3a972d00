"""
Domain events emitted by the mount engine.
"""

from dataclasses import dataclass
from typing import Optional

from share_mounter.core.events.domain_event import DomainEvent
from share_mounter.models import AuthKind, MountErrorKind, MountStatus


@dataclass(frozen=True)
class ShareStatusChangedEvent(DomainEvent):
    """Published by ShareStateMachine after every applied transition."""

    share_id: str
    resource_uri: str
    old_status: MountStatus
    new_status: MountStatus
    actual_mount_point: Optional[str] = None
    error_kind: Optional[MountErrorKind] = None


@dataclass(frozen=True)
class AuthenticationRequiredEvent(DomainEvent):
    """
    Published when a mount fails with an authentication error.

    Remediation differs per auth kind: Kerberos needs a fresh ticket,
    password shares need the user to re-enter credentials.
    """

    share_id: str
    resource_uri: str
    auth_kind: AuthKind


@dataclass(frozen=True)
class NetworkReachabilityChangedEvent(DomainEvent):
    """Published by ReachabilityMonitor when the network becomes (un)usable."""

    is_usable: bool
    connection_kind: str
