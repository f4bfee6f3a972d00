"""Platform Factory - platform detection and mounter creation."""

import logging
import platform
from typing import Optional

from .base_mounter import BaseMounter
from ..credential_store import CredentialStore


class UnsupportedPlatformError(Exception):
    """Raised when platform is not supported for network mounting."""
    pass


class PlatformFactory:
    """Factory for creating platform-specific mount implementations."""

    def detect_platform(self) -> str:
        """Detect current platform. Returns: macos or linux."""
        system = platform.system().lower()

        if system == "darwin":
            return "macos"
        elif system == "linux":
            return "linux"
        else:
            raise UnsupportedPlatformError(f"Platform {system} not supported for network mounting")

    def create_mounter(
        self,
        credential_store: Optional[CredentialStore] = None,
        unmount_timeout: float = 15.0,
    ) -> BaseMounter:
        """Create platform-specific mounter instance."""
        platform_name = self.detect_platform()
        logging.info(f"Detected platform: {platform_name}")

        if platform_name == "macos":
            from .macos_mounter import MacOSMounter
            return MacOSMounter(credential_store, unmount_timeout=unmount_timeout)
        else:
            from .linux_mounter import LinuxMounter
            return LinuxMounter(credential_store, unmount_timeout=unmount_timeout)
