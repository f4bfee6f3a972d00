"""
Network Mount Module

Mount providers: the only code that actually binds a remote share to a
local path.

Components:
- BaseMounter: provider contract (mount, unmount, list_mounts, error_codes)
- MacOSMounter: mount(8) at a directory, Finder "mount volume" for /Volumes
- LinuxMounter: mount.cifs / mount.nfs, mount table from /proc/self/mounts
- PlatformFactory: platform detection and mounter creation
- mount_table: mount table parsing and source matching
"""

from .base_mounter import BaseMounter
from .platform_factory import PlatformFactory, UnsupportedPlatformError

__all__ = [
    "BaseMounter",
    "PlatformFactory",
    "UnsupportedPlatformError",
]
