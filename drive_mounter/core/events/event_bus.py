"""
Central domain event bus (Mediator Pattern).
"""
import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Type

from drive_mounter.core.events.domain_event import DomainEvent

# An event handler is an async function that takes a DomainEvent and returns None
EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:
    """
    Asynchronous observer list for domain events.

    A failing handler is logged and never prevents the other handlers for the
    same event from running, and never propagates back to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribes a handler to a specific event type.

        Args:
            event_type: The class of the domain event to subscribe to.
            handler: The asynchronous function to call when the event is published.
        """
        async with self._lock:
            self._handlers[event_type].append(handler)
            logging.debug(f"Handler {handler.__name__} subscribed to {event_type.__name__}")

    async def unsubscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        async with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logging.debug(f"Handler {handler.__name__} unsubscribed from {event_type.__name__}")

    async def publish(self, event: DomainEvent) -> None:
        """
        Publishes a domain event to every handler subscribed to its exact type.

        Handlers run concurrently; the call returns once all of them finished.
        """
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            logging.debug(f"No handlers for event {event_type.__name__}")
            return

        logging.debug(f"Publishing {event_type.__name__} to {len(handlers)} handler(s)")

        await asyncio.gather(*(self._safe_execute(handler, event) for handler in handlers))

    async def _safe_execute(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logging.error(
                f"Unhandled exception in handler '{handler.__name__}' for event "
                f"'{event.event_name}': {e}",
                exc_info=True,
                extra=event.log_extra(),
            )
