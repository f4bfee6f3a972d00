import asyncio
import logging
from urllib.parse import urlsplit

from ...config import Settings

DEFAULT_PORTS = {
    "smb": 445,
    "cifs": 445,
    "afp": 548,
    "nfs": 2049,
    "http": 80,
    "https": 443,
}


class HostProbe:
    """Checks that the host of a share resolves and, optionally, accepts TCP connections."""

    def __init__(self, settings: Settings):
        self._timeout = settings.reachability_timeout_seconds
        self._check_tcp = settings.reachability_check_tcp

    async def is_reachable(self, resource_uri: str) -> bool:
        try:
            parts = urlsplit(resource_uri)
            host = parts.hostname
            port = parts.port or DEFAULT_PORTS.get(parts.scheme.lower())
        except ValueError as e:
            logging.debug(f"Cannot probe {resource_uri}: {e}")
            return False
        if not host:
            return False

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(loop.getaddrinfo(host, port), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logging.info(f"Host {host} does not resolve: {e or 'timeout'}")
            return False

        if not self._check_tcp or port is None:
            return True

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logging.info(f"Host {host}:{port} not reachable: {e or 'timeout'}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
