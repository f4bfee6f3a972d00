"""Abstract Base Mounter - the contract every mount provider implements."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..credential_store import CredentialStore, Credentials
from ...models import MountEntry, MountErrorKind, MountOptions, UnmountResult

# Generic exit status when a command fails without anything we can classify
GENERIC_FAILURE_CODE = 1


class BaseMounter(ABC):
    """
    Binds remote resources to local paths.

    mount() returns a raw integer code (0 = success) that MountErrorTaxonomy
    classifies; error_codes lets a provider extend the taxonomy with codes
    only it produces.
    """

    error_codes: Mapping[int, MountErrorKind] = {}

    # (substring of stderr, raw code) checked in order
    stderr_indicators: Sequence[Tuple[str, int]] = ()

    def __init__(self, credential_store: Optional[CredentialStore] = None):
        self._credential_store = credential_store

    @abstractmethod
    async def mount(
        self,
        resource_uri: str,
        target_path: str,
        credential_ref: Optional[str],
        options: MountOptions,
    ) -> int:
        """Mount resource_uri at target_path (or inside it when not mounting at dir)."""
        pass

    @abstractmethod
    async def unmount(self, path: str) -> UnmountResult:
        pass

    @abstractmethod
    async def list_mounts(self) -> List[MountEntry]:
        """Current OS mount table."""
        pass

    @abstractmethod
    def platform_name(self) -> str:
        """Get platform name for logging."""
        pass

    async def resolve_credentials(self, credential_ref: Optional[str]) -> Optional[Credentials]:
        if not credential_ref or self._credential_store is None:
            return None
        return await self._credential_store.resolve(credential_ref)

    async def run_command(
        self,
        cmd: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        input: Optional[str] = None,
    ) -> Tuple[int, str, str]:
        """
        Run a command and return (returncode, stdout, stderr).

        input is written to stdin; secrets go there, never on the command line.

        The process is killed when the timeout expires or the calling task
        is cancelled; cancellation is re-raised.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.PIPE if input is not None else None,
            env=env,
        )
        data = input.encode() if input is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(data), timeout=timeout)
        except asyncio.TimeoutError:
            logging.error(f"Command timed out: {cmd[0]}")
            await self._kill(process)
            raise
        except asyncio.CancelledError:
            logging.debug(f"Command cancelled, killing {cmd[0]} (pid {process.pid})")
            await self._kill(process)
            raise

        return (
            process.returncode,
            stdout.decode(errors="replace") if stdout else "",
            stderr.decode(errors="replace") if stderr else "",
        )

    def code_from_stderr(self, stderr: str, returncode: int) -> int:
        """
        Map a failed command to a raw code: "mount error(N)" or a trailing
        "(N)" wins, then the provider's stderr indicators, then the exit status.
        """
        match = re.search(r"error\((-?\d+)\)", stderr) or re.search(r"\((-?\d+)\)\s*$", stderr.strip())
        if match:
            return int(match.group(1))

        lowered = stderr.lower()
        for indicator, code in self.stderr_indicators:
            if indicator.lower() in lowered:
                return code

        return returncode if returncode else GENERIC_FAILURE_CODE

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
