"""Parsing and matching of OS mount table entries."""

import os
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from ...models import MountEntry

NETWORK_FS_TYPES = frozenset(
    {"smbfs", "cifs", "smb3", "nfs", "nfs4", "afpfs", "webdav", "fuse.sshfs"}
)

# "//user@srv/finance on /Volumes/finance (smbfs, nodev, nosuid, mounted by alice)"
_MACOS_MOUNT_LINE = re.compile(r"^(?P<source>.+?) on (?P<mount_point>/.*?) \((?P<fs_type>[^,)]+)")

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _decode_octal(field: str) -> str:
    # /proc/self/mounts escapes space, tab, newline and backslash as \ooo
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_proc_mounts(text: str) -> List[MountEntry]:
    entries = []
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 3:
            continue
        entries.append(
            MountEntry(
                source=_decode_octal(fields[0]),
                mount_point=_decode_octal(fields[1]),
                fs_type=fields[2],
            )
        )
    return entries


def parse_mount_output(text: str) -> List[MountEntry]:
    """Parse the output of the BSD/macOS `mount` command."""
    entries = []
    for line in text.splitlines():
        match = _MACOS_MOUNT_LINE.match(line.strip())
        if match:
            entries.append(
                MountEntry(
                    source=match.group("source"),
                    mount_point=match.group("mount_point"),
                    fs_type=match.group("fs_type").strip(),
                )
            )
    return entries


def normalize_source(source: str) -> Optional[Tuple[str, str]]:
    """
    Reduce a mount source or resource URI to (host, path) for comparison.

    Handles "smb://srv/x", "//user@srv/x", "//;AUTH=x;user@srv/x" and the
    NFS form "srv:/export/x". Host and path are case folded; SMB and AFP
    servers compare names case-insensitively.
    """
    if not source:
        return None

    if "://" in source:
        parts = urlsplit(source)
        host = parts.hostname or ""
        path = parts.path
    elif source.startswith("//"):
        rest = source[2:]
        authority, _, path = rest.partition("/")
        host = authority.rpartition("@")[2]
        host = host.rpartition(":")[0] if ":" in host else host
    elif ":/" in source:
        host, _, path = source.partition(":")
    else:
        return None

    host = host.strip().lower()
    if not host:
        return None
    return host, unquote(path).strip("/").casefold()


def source_matches(resource_uri: str, source: str) -> bool:
    expected = normalize_source(resource_uri)
    return expected is not None and expected == normalize_source(source)


def is_network_mount(entry: MountEntry) -> bool:
    return entry.fs_type.lower() in NETWORK_FS_TYPES


def same_path(a: str, b: str) -> bool:
    return os.path.normpath(a) == os.path.normpath(b)


def find_mount_at(entries: Iterable[MountEntry], path: str) -> Optional[MountEntry]:
    for entry in entries:
        if same_path(entry.mount_point, path):
            return entry
    return None


def find_mount_of(
    entries: Iterable[MountEntry], resource_uri: str, under: Optional[str] = None
) -> Optional[MountEntry]:
    """First mount of resource_uri, optionally restricted to direct children of under."""
    for entry in entries:
        if not source_matches(resource_uri, entry.source):
            continue
        if under is not None and not same_path(os.path.dirname(entry.mount_point), under):
            continue
        return entry
    return None


def is_inside_network_mount(entries: Iterable[MountEntry], path: str) -> bool:
    normalized = os.path.normpath(path)
    for entry in entries:
        if not is_network_mount(entry):
            continue
        mount_point = os.path.normpath(entry.mount_point)
        if normalized.startswith(mount_point.rstrip("/") + "/"):
            return True
    return False
