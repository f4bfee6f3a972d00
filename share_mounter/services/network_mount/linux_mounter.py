"""Linux Network Mounter (mount.cifs / mount.nfs / davfs2)."""

import errno
import logging
import os
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import aiofiles

from .base_mounter import BaseMounter
from .mount_table import parse_proc_mounts
from ...models import MountEntry, MountErrorKind, MountOptions, UnmountResult

PROC_MOUNTS = "/proc/self/mounts"

FS_TYPE_FOR_SCHEME = {
    "smb": "cifs",
    "cifs": "cifs",
    "nfs": "nfs",
    "http": "davfs",
    "https": "davfs",
}

AUTH_FAILED_CODE = getattr(errno, "EKEYREJECTED", 129)


class LinuxMounter(BaseMounter):
    """Linux has no provider-owned mount root; every mount goes to an explicit directory."""

    error_codes = {AUTH_FAILED_CODE: MountErrorKind.AUTHENTICATION_FAILED}

    stderr_indicators = (
        ("nt_status_logon_failure", AUTH_FAILED_CODE),
        ("permission denied", errno.EACCES),
        ("no such file or directory", errno.ENOENT),
        ("is busy or already mounted", errno.EEXIST),
        ("already mounted", errno.EEXIST),
        ("connection timed out", errno.ETIMEDOUT),
        ("no route to host", errno.EHOSTUNREACH),
        ("host is down", errno.EHOSTDOWN),
        ("connection refused", errno.ECONNREFUSED),
    )

    def __init__(self, credential_store=None, unmount_timeout: float = 15.0, proc_mounts: str = PROC_MOUNTS):
        super().__init__(credential_store)
        self._unmount_timeout = unmount_timeout
        self._proc_mounts = proc_mounts

    async def mount(
        self,
        resource_uri: str,
        target_path: str,
        credential_ref: Optional[str],
        options: MountOptions,
    ) -> int:
        parts = urlsplit(resource_uri)
        scheme = parts.scheme.lower()
        fs_type = FS_TYPE_FOR_SCHEME.get(scheme)
        if fs_type is None:
            logging.error(f"Unsupported scheme for Linux mount: {resource_uri}")
            return errno.EPROTONOSUPPORT

        credentials = await self.resolve_credentials(credential_ref)
        mount_options: List[str] = []
        env: Optional[Dict[str, str]] = None

        if fs_type == "cifs":
            source = f"//{parts.hostname}{parts.path}"
            if parts.port:
                mount_options.append(f"port={parts.port}")
            if options.guest:
                mount_options.append("guest")
            elif credentials:
                mount_options.append(f"username={credentials.username}")
                # mount.cifs reads the password from PASSWD, keeping it off the command line
                env = {**os.environ, "PASSWD": credentials.password.get_secret_value()}
            else:
                mount_options.append("sec=krb5")
            mount_options.append(f"uid={os.getuid()}")
        elif fs_type == "nfs":
            source = f"{parts.hostname}:{parts.path or '/'}"
            if options.soft_mount:
                mount_options.append("soft")
        else:
            source = resource_uri

        cmd = ["mount", "-t", fs_type]
        if mount_options:
            cmd += ["-o", ",".join(mount_options)]
        cmd += [source, target_path]

        logging.info(f"Attempting Linux mount: {resource_uri} -> {target_path}")
        returncode, _, stderr = await self.run_command(cmd, env=env)

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
        try:
            async with aiofiles.open(self._proc_mounts, "r") as f:
                content = await f.read()
        except OSError as e:
            logging.warning(f"Could not read mount table {self._proc_mounts}: {e}")
            return []
        return parse_proc_mounts(content)

    def platform_name(self) -> str:
        return "Linux"
