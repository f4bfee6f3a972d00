from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MountStatus(str, Enum):
    """
    Mount status for a configured share.

    Normal Workflow: Undefined -> Queued -> Mounted -> Unmounted/UserUnmounted
    Failures: Queued -> ErrorOnMount / Unreachable / InvalidCredentials / ObstructingDirectory
    Reset: any state -> Undefined (user action or network reachability change)
    """

    UNDEFINED = "undefined"  # Initial state, or reset before a fresh attempt
    QUEUED = "queued"  # Mount attempt in flight
    MOUNTED = "mounted"  # Share is bound at actual_mount_point
    UNMOUNTED = "unmounted"  # Unmounted automatically (sleep, shutdown)
    USER_UNMOUNTED = "userUnmounted"  # Unmounted by the user, sticky
    INVALID_CREDENTIALS = "invalidCredentials"  # Authentication failed
    ERROR_ON_MOUNT = "errorOnMount"  # Permanent failure until user retries
    UNREACHABLE = "unreachable"  # Host not reachable
    OBSTRUCTING_DIRECTORY = "obstructingDirectory"  # Something occupies the mount point


# States an automatic cycle must not retry
COOL_DOWN_STATES = frozenset(
    {
        MountStatus.QUEUED,
        MountStatus.ERROR_ON_MOUNT,
        MountStatus.USER_UNMOUNTED,
        MountStatus.UNREACHABLE,
    }
)


class AuthKind(str, Enum):
    KERBEROS = "kerberos"
    PASSWORD = "password"
    GUEST = "guest"


class TriggerKind(str, Enum):
    AUTOMATIC = "automatic"
    USER_TRIGGERED = "userTriggered"


class MountErrorKind(str, Enum):
    """Provider independent classification of mount and unmount failures."""

    MALFORMED_RESOURCE = "malformed_resource"
    HOST_UNREACHABLE = "host_unreachable"
    AUTHENTICATION_FAILED = "authentication_failed"
    RESOURCE_MISSING = "resource_missing"
    PERMISSION_DENIED = "permission_denied"
    LOCAL_OBSTRUCTION = "local_obstruction"
    DUPLICATE_NAME = "duplicate_name"
    ALREADY_BOUND = "already_bound"
    UNKNOWN_PROVIDER_CODE = "unknown_provider_code"
    UNMOUNT_FAILED = "unmount_failed"


class TargetState(str, Enum):
    """On-disk state of a resolved mount target."""

    FRESH = "fresh"
    ALREADY_MOUNTED = "already_mounted"
    OBSTRUCTING_MOUNT = "obstructing_mount"
    OBSTRUCTING_DIRECTORY = "obstructing_directory"
    RECLAIMABLE = "reclaimable"


def is_valid_mount_point_name(name: str) -> bool:
    """Local mount point names must be usable as a single path component."""
    if not name or name.strip() != name:
        return False
    if len(name) > 200:
        return False
    return not any(char == "/" or ord(char) < 32 or ord(char) == 127 for char in name)


class Share(BaseModel):
    """
    A configured remote share the service is responsible for keeping mounted.

    Status and actual_mount_point are only changed through ShareStateMachine.
    """

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Stable opaque identifier",
    )

    resource_uri: str = Field(
        ..., description="Remote resource, e.g. smb://server/export"
    )

    auth_kind: AuthKind = Field(default=AuthKind.KERBEROS)

    credential_ref: Optional[str] = Field(
        default=None,
        description="Reference resolved by the credential store at mount time",
    )

    mount_point_name: Optional[str] = Field(
        default=None,
        description="Local directory name; derived from resource_uri when empty",
    )

    actual_mount_point: Optional[str] = Field(
        default=None, description="Absolute local path while mounted"
    )

    status: MountStatus = Field(default=MountStatus.UNDEFINED)

    managed: bool = Field(
        default=False, description="Sourced from central configuration"
    )

    error_message: Optional[str] = Field(default=None)

    last_error_kind: Optional[MountErrorKind] = Field(default=None)

    model_config = ConfigDict(
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "resource_uri": "smb://fileserver.example.org/finance",
                "auth_kind": "kerberos",
                "mount_point_name": "Finance",
                "actual_mount_point": "/Users/alice/Networkshares/Finance",
                "status": "mounted",
                "managed": True,
            }
        },
    )

    @field_validator("mount_point_name")
    @classmethod
    def _check_mount_point_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if not is_valid_mount_point_name(value):
            raise ValueError(f"Invalid mount point name: {value!r}")
        return value


class ShareDefinition(BaseModel):
    """Share as it appears in configuration (no runtime state)."""

    resource_uri: str
    auth_kind: AuthKind = AuthKind.KERBEROS
    credential_ref: Optional[str] = None
    mount_point_name: Optional[str] = None


class MountOptions(BaseModel):
    """Auth specific options handed to the mount provider."""

    guest: bool = False
    soft_mount: bool = True
    allow_sub_mounts: bool = True
    mount_at_dir: bool = True


class MountEntry(BaseModel):
    """One line of the OS mount table."""

    mount_point: str
    source: str
    fs_type: str = ""


class ResolvedTarget(BaseModel):
    share_id: str
    mount_path: str = Field(
        ..., description="Path where the share is (or will be) bound"
    )
    working_path: str = Field(
        ..., description="Path handed to the mount provider"
    )
    display_name: str
    provider_owned: bool = False
    state: TargetState = TargetState.FRESH


class UnmountResult(BaseModel):
    success: bool
    error_kind: Optional[MountErrorKind] = None

    @classmethod
    def ok(cls) -> "UnmountResult":
        return cls(success=True)

    @classmethod
    def failure(cls, kind: MountErrorKind) -> "UnmountResult":
        return cls(success=False, error_kind=kind)


class MountOutcome(BaseModel):
    share_id: str
    resource_uri: str
    status: MountStatus
    mount_point: Optional[str] = None
    error_kind: Optional[MountErrorKind] = None
    skipped: bool = False
    message: Optional[str] = None


class ReconcileReport(BaseModel):
    trigger: TriggerKind
    share_id: Optional[str] = None
    skipped_no_network: bool = False
    superseded: bool = False
    outcomes: List[MountOutcome] = Field(default_factory=list)


class SweepReport(BaseModel):
    removed_files: List[str] = Field(default_factory=list)
    removed_directories: List[str] = Field(default_factory=list)
    unmounted_duplicates: List[str] = Field(default_factory=list)
    skipped: bool = False
