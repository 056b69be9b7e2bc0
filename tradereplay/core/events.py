"""Synchronous in-process event bus for trade lifecycle notifications."""
from typing import Callable, List, Protocol, Union, runtime_checkable

import structlog

from tradereplay.core.models import Trade, TradeEvent, TradeEventType

logger = structlog.get_logger(__name__)


@runtime_checkable
class TradeEventSubscriber(Protocol):
    """Observer interface for trade events."""

    def notify(self, event: TradeEvent) -> None:
        ...


Subscriber = Union[TradeEventSubscriber, Callable[[TradeEvent], None]]


class TradeEventBus:
    """
    Publish/subscribe channel owned by a single broker instance.

    Subscribers are either objects exposing ``notify(event)`` or plain
    callables taking the event. Delivery is synchronous, in registration
    order, on the caller's thread. A subscriber that raises is logged and
    skipped; the remaining subscribers still receive the event and the
    publisher never sees the exception.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a subscriber."""
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove every registration of the subscriber (reference equality)."""
        self._subscribers = [s for s in self._subscribers if s is not subscriber]

    def clear(self) -> None:
        self._subscribers = []

    def publish(self, kind: TradeEventType, trade: Trade) -> TradeEvent:
        """Build an event with a trade snapshot and deliver it."""
        event = TradeEvent(kind=kind, trade=trade.snapshot())
        self.dispatch(event)
        return event

    def dispatch(self, event: TradeEvent) -> None:
        """Deliver an event to all current subscribers."""
        # Iterate over a copy so subscribers may (un)subscribe during delivery
        for subscriber in list(self._subscribers):
            handler = getattr(subscriber, "notify", subscriber)
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "event_bus.subscriber_error",
                    kind=event.kind.value,
                    trade_id=event.trade.id,
                    subscriber=repr(subscriber),
                    error=str(e),
                    exc_info=True,
                )
