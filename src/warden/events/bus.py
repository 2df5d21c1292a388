from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from .models import EVENT_TYPES, Event

log = logging.getLogger("warden.events")

E = TypeVar("E", bound=Event)
Handler = Callable[[E], Awaitable[None]]


class EventBus:
    """Publish/subscribe keyed by event class.

    Handlers for one publish run one after another in subscription order. A failing
    handler is logged and skipped; the rest still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Event], Awaitable[None]]]] = {t: [] for t in EVENT_TYPES}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        if event_type not in self._handlers:
            raise TypeError(f"{event_type!r} is not a known event type")
        self._handlers[event_type].append(handler)  # type: ignore[arg-type]

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> bool:
        handlers = self._handlers.get(event_type, [])
        try:
            handlers.remove(handler)  # type: ignore[arg-type]
        except ValueError:
            return False
        return True

    def handlers_for(self, event_type: type) -> list[Callable[[Event], Awaitable[None]]]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: Event) -> int:
        """Dispatch an event. Returns how many handlers failed."""
        event_type = type(event)
        if event_type not in self._handlers:
            raise TypeError(f"{event_type!r} is not a known event type")

        failed = 0
        for handler in list(self._handlers[event_type]):
            try:
                await handler(event)
            except Exception:
                failed += 1
                log.exception(
                    "Handler %s failed for %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    event_type.__name__,
                )
        return failed
