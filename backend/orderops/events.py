"""In-process event bus for billing domain events.

Handlers run as detached asyncio tasks: ``publish`` returns immediately and
never waits for subscribers. Call ``drain`` before the process exits so that
pending handlers get to finish.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from orderops.billing.records import Invoice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceCreated:
    """A renewal invoice was created by the cron job."""

    invoice: Invoice

    event_type = "invoice.created"


@dataclass(frozen=True)
class EntitySaved:
    """A record was written through ``OrderRepository.save``."""

    entity: Any

    event_type = "entity.saved"


Handler = Callable[[Any], Awaitable[None]]


class EventBus:
    """Fire-and-forget publish/subscribe keyed by ``event_type``."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: Any) -> None:
        """Schedule every handler subscribed to the event's type."""
        for handler in list(self._handlers.get(event.event_type, [])):
            task = asyncio.create_task(self._run(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for all handlers scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    @staticmethod
    async def _run(handler: Handler, event: Any) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Event handler %r failed for %s", handler, event.event_type)


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Return the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
