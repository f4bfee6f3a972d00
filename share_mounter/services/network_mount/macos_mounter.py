"""macOS Network Mounter."""

import errno
import logging
from typing import List, Optional
from urllib.parse import quote, urlsplit

from .base_mounter import BaseMounter
from .mount_table import parse_mount_output
from ..credential_store import Credentials
from ...core.error_taxonomy import (
    BSD_EAUTH,
    BSD_EHOSTDOWN,
    BSD_EHOSTUNREACH,
    BSD_ETIMEDOUT,
    NETFS_SHARE_DOES_NOT_EXIST,
)
from ...models import MountEntry, MountErrorKind, MountOptions, UnmountResult

FS_TYPE_FOR_SCHEME = {
    "smb": "smbfs",
    "cifs": "smbfs",
    "afp": "afp",
    "nfs": "nfs",
    "http": "webdav",
    "https": "webdav",
}

# Four-character keychain protocol codes
KEYCHAIN_PROTOCOL_FOR_SCHEME = {
    "smb": "smb ",
    "cifs": "smb ",
    "afp": "afp ",
}

# AppleScript "user canceled"
OSASCRIPT_USER_CANCELED = -128


class MacOSMounter(BaseMounter):
    """
    Mounts with mount(8) at an explicit directory, or with Finder's
    "mount volume" when /Volumes names the mount point itself.
    """

    error_codes = {OSASCRIPT_USER_CANCELED: MountErrorKind.AUTHENTICATION_FAILED}

    stderr_indicators = (
        ("authentication error", BSD_EAUTH),
        ("permission denied", errno.EACCES),
        ("share does not exist", NETFS_SHARE_DOES_NOT_EXIST),
        ("no such file or directory", errno.ENOENT),
        ("file exists", errno.EEXIST),
        ("operation timed out", BSD_ETIMEDOUT),
        ("no route to host", BSD_EHOSTUNREACH),
        ("host is down", BSD_EHOSTDOWN),
    )

    def __init__(self, credential_store=None, unmount_timeout: float = 15.0):
        super().__init__(credential_store)
        self._unmount_timeout = unmount_timeout

    async def mount(
        self,
        resource_uri: str,
        target_path: str,
        credential_ref: Optional[str],
        options: MountOptions,
    ) -> int:
        credentials = await self.resolve_credentials(credential_ref)
        logging.info(f"Attempting macOS mount: {resource_uri} -> {target_path}")

        if options.mount_at_dir:
            if credentials and not options.guest:
                await self._store_in_keychain(resource_uri, credentials)
            cmd = self._mount_command(resource_uri, target_path, credentials, options)
            returncode, _, stderr = await self.run_command(cmd)
        else:
            script = self._mount_volume_script(resource_uri, credentials, options)
            returncode, _, stderr = await self.run_command(["osascript", "-"], input=script)

        if returncode == 0:
            logging.info(f"Successfully mounted {resource_uri}")
            return 0

        code = self.code_from_stderr(stderr, returncode)
        logging.error(f"Mount failed for {resource_uri}: {stderr.strip() or 'Unknown error'} (code {code})")
        return code

    async def unmount(self, path: str) -> UnmountResult:
        try:
            returncode, _, stderr = await self.run_command(["umount", path], timeout=self._unmount_timeout)
        except Exception as e:
            logging.error(f"Exception during unmount of {path}: {e}")
            return UnmountResult.failure(MountErrorKind.UNMOUNT_FAILED)

        if returncode == 0:
            logging.info(f"Unmounted {path}")
            return UnmountResult.ok()
        logging.error(f"Unmount failed for {path}: {stderr.strip()}")
        return UnmountResult.failure(MountErrorKind.UNMOUNT_FAILED)

    async def list_mounts(self) -> List[MountEntry]:
        returncode, stdout, stderr = await self.run_command(["mount"], timeout=10.0)
        if returncode != 0:
            logging.warning(f"Could not read mount table: {stderr.strip()}")
            return []
        return parse_mount_output(stdout)

    def platform_name(self) -> str:
        return "macOS"

    def _mount_command(self, resource_uri, target_path, credentials, options) -> List[str]:
        parts = urlsplit(resource_uri)
        scheme = parts.scheme.lower()
        fs_type = FS_TYPE_FOR_SCHEME.get(scheme, scheme)

        mount_options = ["nodev", "nosuid"]
        if options.soft_mount:
            mount_options.append("soft")
        if not options.allow_sub_mounts:
            mount_options.append("nobrowse")

        if fs_type == "nfs":
            source = f"{parts.hostname}:{parts.path or '/'}"
        elif fs_type == "webdav":
            source = resource_uri
        else:
            if options.guest:
                userinfo = "guest:@"
            elif credentials:
                # password comes from the keychain
                userinfo = f"{quote(credentials.username, safe='')}@"
            else:
                userinfo = ""
            host = parts.hostname or ""
            if parts.port:
                host = f"{host}:{parts.port}"
            source = f"//{userinfo}{host}{parts.path}"

        return ["mount", "-t", fs_type, "-o", ",".join(mount_options), source, target_path]

    async def _store_in_keychain(self, resource_uri: str, credentials: Credentials) -> None:
        """
        Save the password as an internet password in the login keychain,
        where mount_smbfs and mount_afp look it up. security(1) reads the
        command from stdin.
        """
        parts = urlsplit(resource_uri)
        protocol = KEYCHAIN_PROTOCOL_FOR_SCHEME.get(parts.scheme.lower())
        if protocol is None or not parts.hostname:
            return

        command = " ".join(
            [
                "add-internet-password",
                "-U",
                "-a",
                quote_string(credentials.username),
                "-s",
                quote_string(parts.hostname),
                "-r",
                quote_string(protocol),
                "-w",
                quote_string(credentials.password.get_secret_value()),
            ]
        )
        returncode, _, stderr = await self.run_command(["security", "-i"], timeout=10.0, input=command + "\n")
        if returncode != 0:
            logging.warning(f"Could not store credentials for {parts.hostname} in keychain: {stderr.strip()}")

    @staticmethod
    def _mount_volume_script(resource_uri, credentials, options) -> str:
        script = f"mount volume {quote_string(resource_uri)}"
        if options.guest:
            script += ' as user name "guest" with password ""'
        elif credentials:
            user = quote_string(credentials.username)
            password = quote_string(credentials.password.get_secret_value())
            script += f" as user name {user} with password {password}"
        return script + "\n"


def quote_string(value: str) -> str:
    """Double-quoted literal for AppleScript and security(1) command lines."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
