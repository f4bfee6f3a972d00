import asyncio
import logging
import signal
from typing import Awaitable, Optional, Set

from .mount_orchestrator import MountOrchestrator
from ..config import Settings
from ..core.events.event_bus import DomainEventBus
from ..core.events.share_events import NetworkReachabilityChangedEvent
from ..models import TriggerKind


class MountTriggerService:
    """
    Everything that starts a mount cycle besides the HTTP API:
    - a periodic automatic reconcile
    - the network becoming usable again (user-triggered, clears cool-downs)
    - SIGUSR1 (mount all) and SIGUSR2 (unmount all)
    """

    def __init__(self, settings: Settings, orchestrator: MountOrchestrator, event_bus: DomainEventBus):
        self._settings = settings
        self._orchestrator = orchestrator
        self._event_bus = event_bus

        self._is_running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._signals_installed = False

    async def start(self) -> None:
        if self._is_running:
            logging.warning("Mount triggers already running")
            return

        self._is_running = True
        await self._event_bus.subscribe(NetworkReachabilityChangedEvent, self._on_reachability_changed)
        self._timer_task = asyncio.create_task(self._timer_loop())
        if self._settings.enable_signal_triggers:
            self._install_signal_handlers()
        logging.info("Mount triggers started")

    async def stop(self) -> None:
        if not self._is_running:
            return

        self._is_running = False
        await self._event_bus.unsubscribe(NetworkReachabilityChangedEvent, self._on_reachability_changed)
        self._remove_signal_handlers()

        pending = [t for t in (self._timer_task, *self._tasks) if t is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._timer_task = None
        logging.info("Mount triggers stopped")

    def trigger_mount_all(self, trigger: TriggerKind = TriggerKind.USER_TRIGGERED) -> asyncio.Task:
        return self._spawn(self._orchestrator.reconcile(trigger=trigger))

    def trigger_unmount_all(self, user_triggered: bool = True) -> asyncio.Task:
        return self._spawn(self._orchestrator.unmount(user_triggered=user_triggered))

    async def _on_reachability_changed(self, event: NetworkReachabilityChangedEvent) -> None:
        if event.is_usable:
            logging.info(f"Network usable again ({event.connection_kind}), mounting all shares")
            self.trigger_mount_all(TriggerKind.USER_TRIGGERED)
        else:
            logging.info("Network lost, mount attempts paused until it returns")

    async def _timer_loop(self) -> None:
        interval = self._settings.mount_trigger_interval_seconds
        logging.info(f"Mount timer starting - automatic mount cycle every {interval}s")
        try:
            while self._is_running:
                await asyncio.sleep(interval)
                try:
                    await self._orchestrator.reconcile(trigger=TriggerKind.AUTOMATIC)
                except Exception as e:
                    logging.error(f"Error in automatic mount cycle: {e}")
        except asyncio.CancelledError:
            logging.debug("Mount timer cancelled")

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.create_task(self._run_logged(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _run_logged(coro: Awaitable) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"Triggered mount operation failed: {e}", exc_info=True)

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGUSR1, self.trigger_mount_all)
            loop.add_signal_handler(signal.SIGUSR2, self.trigger_unmount_all)
        except (NotImplementedError, AttributeError, RuntimeError) as e:
            logging.warning(f"Signal triggers unavailable: {e}")
            return
        self._signals_installed = True
        logging.info("Signal triggers installed: SIGUSR1 = mount all, SIGUSR2 = unmount all")

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        loop.remove_signal_handler(signal.SIGUSR1)
        loop.remove_signal_handler(signal.SIGUSR2)
        self._signals_installed = False
