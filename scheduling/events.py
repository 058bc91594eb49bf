"""
In-process domain events for booking changes.

The scheduling core publishes an event after a booking change has been
committed. Subscribers (e-mail, calendar mirrors...) run fire-and-forget:
their failures are logged and never propagate back into the booking flow.

Usage:
    from scheduling.events import BookingEvent, subscribe

    async def send_confirmation(payload: dict) -> None:
        ...

    subscribe(BookingEvent.CREATED, send_confirmation)
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class BookingEvent(str, Enum):
    """Booking changes that collaborators may react to."""

    CREATED = "booking.created"
    RESCHEDULED = "booking.rescheduled"
    CANCELLED = "booking.cancelled"


_subscribers: dict[BookingEvent, list[EventHandler]] = defaultdict(list)


def subscribe(event: BookingEvent, handler: EventHandler) -> None:
    """Register an async handler for an event."""
    _subscribers[event].append(handler)


def unsubscribe(event: BookingEvent, handler: EventHandler) -> None:
    """Remove a previously registered handler (no-op if absent)."""
    if handler in _subscribers[event]:
        _subscribers[event].remove(handler)


def clear_subscribers() -> None:
    _subscribers.clear()


async def publish(event: BookingEvent, payload: dict[str, Any]) -> int:
    """
    Deliver an event to every subscriber.

    Handler exceptions are logged and swallowed: the booking change has
    already been committed and stands regardless of notification outcome.

    Returns:
        Number of handlers that completed without raising
    """
    delivered = 0
    for handler in list(_subscribers[event]):
        try:
            await handler(payload)
            delivered += 1
        except Exception as e:
            logger.warning(
                f"Subscriber {getattr(handler, '__name__', handler)!r} failed for {event.value}: {e}",
                extra={"appointment_id": payload.get("appointment_id")},
                exc_info=True,
            )

    logger.debug(f"Published {event.value} to {delivered}/{len(_subscribers[event])} subscribers")
    return delivered
