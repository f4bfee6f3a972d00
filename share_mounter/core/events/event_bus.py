"""
Asynchronous domain event bus used to announce share state changes.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Set, Type

from share_mounter.core.events.domain_event import DomainEvent

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:
    """
    Mediator between the mount engine and everything that reacts to it
    (trigger service, logging of authentication problems, UI layers).

    A failing handler is logged and never prevents the remaining handlers
    from running, and never propagates into the publisher.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    async def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        async with self._lock:
            self._handlers[event_type].append(handler)
            logging.debug(f"Handler {handler.__name__} subscribed to {event_type.__name__}")

    async def unsubscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> bool:
        async with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    async def publish(self, event: DomainEvent) -> None:
        """
        Deliver an event to every handler subscribed to its exact type and
        wait until all of them have run.
        """
        event_type = type(event)
        async with self._lock:
            handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            logging.debug(f"No handlers for event {event_type.__name__}")
            return

        logging.debug(f"Publishing {event_type.__name__} to {len(handlers)} handler(s)")
        await asyncio.gather(*(self._safe_execute(handler, event) for handler in handlers))

    def publish_nowait(self, event: DomainEvent) -> asyncio.Task:
        """
        Fire-and-forget publish. The task is kept referenced until done so
        it cannot be garbage collected mid-flight.
        """
        task = asyncio.create_task(self.publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all fire-and-forget publications to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _safe_execute(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logging.error(
                f"Unhandled exception in handler '{handler.__name__}' for event "
                f"'{type(event).__name__}': {e}",
                exc_info=True,
            )
