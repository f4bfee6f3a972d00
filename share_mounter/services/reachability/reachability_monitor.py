import asyncio
import logging
import socket
from typing import Awaitable, Callable, Optional, Tuple

from ...config import Settings
from ...core.events.event_bus import DomainEventBus
from ...core.events.share_events import NetworkReachabilityChangedEvent

# Documentation ranges; connecting a UDP socket sends nothing, it only selects a route
ROUTE_PROBE_TARGETS = (
    (socket.AF_INET, ("192.0.2.1", 9)),
    (socket.AF_INET6, ("2001:db8::1", 9)),
)

NetworkProbe = Callable[[], Awaitable[Tuple[bool, str]]]


def _probe_routes() -> Tuple[bool, str]:
    for family, address in ROUTE_PROBE_TARGETS:
        try:
            with socket.socket(family, socket.SOCK_DGRAM) as sock:
                sock.connect(address)
                local_ip = sock.getsockname()[0]
        except OSError:
            continue
        if local_ip and not local_ip.startswith(("127.", "::1")):
            return True, "ipv4" if family == socket.AF_INET else "ipv6"
    return False, "none"


async def default_network_probe() -> Tuple[bool, str]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _probe_routes)


class ReachabilityMonitor:
    """
    Polls whether the network is usable at all (a default route with a
    non-loopback address) and publishes NetworkReachabilityChangedEvent on
    every change.

    The network counts as usable until the first check says otherwise.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: DomainEventBus,
        probe: Optional[NetworkProbe] = None,
    ):
        self._settings = settings
        self._event_bus = event_bus
        self._probe = probe or default_network_probe

        self._is_usable = True
        self._connection_kind = "unknown"
        self._is_running = False
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def is_network_usable(self) -> bool:
        return self._is_usable

    @property
    def connection_kind(self) -> str:
        return self._connection_kind

    async def start_monitoring(self) -> None:
        if self._is_running:
            logging.warning("Reachability monitoring already running")
            return

        await self.check_now()
        self._is_running = True
        self._monitor_task = asyncio.create_task(self._monitoring_loop())
        logging.info("Reachability monitoring started")

    async def stop_monitoring(self) -> None:
        if not self._is_running:
            return

        self._is_running = False

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass

        logging.info("Reachability monitoring stopped")

    async def check_now(self) -> bool:
        """Probe once; publishes an event if usability changed."""
        usable, kind = await self._probe()
        changed = usable != self._is_usable
        self._is_usable = usable
        self._connection_kind = kind

        if changed:
            logging.info(f"Network {'usable' if usable else 'not usable'} (connection: {kind})")
            await self._event_bus.publish(
                NetworkReachabilityChangedEvent(is_usable=usable, connection_kind=kind)
            )
        return usable

    async def _monitoring_loop(self) -> None:
        logging.info(
            f"Reachability loop starting - checking every {self._settings.network_check_interval_seconds}s"
        )
        try:
            while self._is_running:
                await asyncio.sleep(self._settings.network_check_interval_seconds)
                try:
                    await self.check_now()
                except Exception as e:
                    logging.error(f"Error in reachability loop: {e}")
        except asyncio.CancelledError:
            logging.debug("Reachability loop cancelled")
