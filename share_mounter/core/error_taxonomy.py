"""
Mount Error Taxonomy.

Turns provider specific raw return codes into MountErrorKind values, and
MountErrorKind values into the MountStatus a share ends up in. The kinds are
the portable contract; the numbers belong to whatever performs the mount.

Raw codes are POSIX-like. NetFS/mount_smbfs on macOS report BSD errno
numbers, which differ from Linux for the network errors, so both sets are
listed explicitly next to the values of the running platform.
"""

import errno
import logging
from typing import Dict, Mapping, Optional

from share_mounter.models import MountErrorKind, MountStatus

SUCCESS_CODE = 0

# BSD errno values as returned by NetFS on macOS
BSD_ETIMEDOUT = 60
BSD_ECONNREFUSED = 61
BSD_EHOSTDOWN = 64
BSD_EHOSTUNREACH = 65
BSD_ENETUNREACH = 51
BSD_EAUTH = 80

# NetFS "share does not exist" and NT_STATUS_BAD_NETWORK_NAME
NETFS_SHARE_DOES_NOT_EXIST = -6003
NT_STATUS_BAD_NETWORK_NAME = -1073741275


def _default_code_table() -> Dict[int, MountErrorKind]:
    table: Dict[int, MountErrorKind] = {
        BSD_ETIMEDOUT: MountErrorKind.HOST_UNREACHABLE,
        BSD_ECONNREFUSED: MountErrorKind.HOST_UNREACHABLE,
        BSD_EHOSTDOWN: MountErrorKind.HOST_UNREACHABLE,
        BSD_EHOSTUNREACH: MountErrorKind.HOST_UNREACHABLE,
        BSD_ENETUNREACH: MountErrorKind.HOST_UNREACHABLE,
        BSD_EAUTH: MountErrorKind.AUTHENTICATION_FAILED,
        NETFS_SHARE_DOES_NOT_EXIST: MountErrorKind.RESOURCE_MISSING,
        NT_STATUS_BAD_NETWORK_NAME: MountErrorKind.RESOURCE_MISSING,
    }
    # Values of the running platform win over the BSD numbers above
    for name in ("ETIMEDOUT", "EHOSTDOWN", "EHOSTUNREACH", "ENETUNREACH", "ECONNREFUSED"):
        code = getattr(errno, name, None)
        if code is not None:
            table[code] = MountErrorKind.HOST_UNREACHABLE
    key_rejected = getattr(errno, "EKEYREJECTED", None)
    if key_rejected is not None:
        table[key_rejected] = MountErrorKind.AUTHENTICATION_FAILED
    table[errno.ENOENT] = MountErrorKind.RESOURCE_MISSING
    table[errno.EACCES] = MountErrorKind.PERMISSION_DENIED
    table[errno.EEXIST] = MountErrorKind.ALREADY_BOUND
    return table


DEFAULT_CODE_TABLE: Mapping[int, MountErrorKind] = _default_code_table()

STATUS_FOR_KIND: Mapping[MountErrorKind, MountStatus] = {
    MountErrorKind.MALFORMED_RESOURCE: MountStatus.ERROR_ON_MOUNT,
    MountErrorKind.HOST_UNREACHABLE: MountStatus.UNREACHABLE,
    MountErrorKind.AUTHENTICATION_FAILED: MountStatus.INVALID_CREDENTIALS,
    MountErrorKind.RESOURCE_MISSING: MountStatus.ERROR_ON_MOUNT,
    MountErrorKind.PERMISSION_DENIED: MountStatus.ERROR_ON_MOUNT,
    MountErrorKind.LOCAL_OBSTRUCTION: MountStatus.OBSTRUCTING_DIRECTORY,
    MountErrorKind.DUPLICATE_NAME: MountStatus.OBSTRUCTING_DIRECTORY,
    MountErrorKind.ALREADY_BOUND: MountStatus.MOUNTED,
    MountErrorKind.UNKNOWN_PROVIDER_CODE: MountStatus.ERROR_ON_MOUNT,
    MountErrorKind.UNMOUNT_FAILED: MountStatus.UNDEFINED,
}

DESCRIPTIONS: Mapping[MountErrorKind, str] = {
    MountErrorKind.MALFORMED_RESOURCE: "The path to the network share is invalid",
    MountErrorKind.HOST_UNREACHABLE: "Target host is not reachable",
    MountErrorKind.AUTHENTICATION_FAILED: "Authentication error",
    MountErrorKind.RESOURCE_MISSING: "Share does not exist",
    MountErrorKind.PERMISSION_DENIED: "Permission denied",
    MountErrorKind.LOCAL_OBSTRUCTION: "Cannot mount share because of obstructing directory",
    MountErrorKind.DUPLICATE_NAME: "Another share already uses this mount point name",
    MountErrorKind.ALREADY_BOUND: "Share is already mounted",
    MountErrorKind.UNKNOWN_PROVIDER_CODE: "Unknown return code",
    MountErrorKind.UNMOUNT_FAILED: "Cannot unmount share",
}


class MountErrorTaxonomy:
    """
    Classifies raw mount results.

    A mount provider may contribute its own codes through extra_codes;
    those take precedence over the default table.
    """

    def __init__(self, extra_codes: Optional[Mapping[int, MountErrorKind]] = None):
        self._table: Dict[int, MountErrorKind] = dict(DEFAULT_CODE_TABLE)
        if extra_codes:
            self._table.update(extra_codes)

    def classify(self, raw_code: int) -> Optional[MountErrorKind]:
        """
        Returns None for success, ALREADY_BOUND for "already mounted", and
        an error kind for everything else.
        """
        if raw_code == SUCCESS_CODE:
            return None
        kind = self._table.get(raw_code)
        if kind is None:
            logging.warning(f"Unknown mount provider return code: {raw_code}")
            return MountErrorKind.UNKNOWN_PROVIDER_CODE
        return kind

    @staticmethod
    def status_for(kind: Optional[MountErrorKind]) -> MountStatus:
        if kind is None:
            return MountStatus.MOUNTED
        return STATUS_FOR_KIND[kind]

    @staticmethod
    def is_success(kind: Optional[MountErrorKind]) -> bool:
        return kind is None or kind == MountErrorKind.ALREADY_BOUND

    @staticmethod
    def describe(kind: MountErrorKind, raw_code: Optional[int] = None) -> str:
        text = DESCRIPTIONS.get(kind, kind.value)
        return f"{text} (rc={raw_code})" if raw_code is not None else text
