"""
Typed publish/subscribe channels.

Subscribers are called synchronously, in registration order. A subscriber
that raises is logged and skipped; the remaining subscribers still run and
the publisher never sees the exception.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger("events")

E = TypeVar("E")


class EventChannel(Generic[E]):
    """A named fan-out point for one event type."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[E], None]] = []

    def subscribe(self, callback: Callable[[E], None]) -> Callable[[], None]:
        """
        Register ``callback``.

        Returns:
            A function that unsubscribes this callback
        """
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[E], None]) -> bool:
        """Remove ``callback``. Returns False if it was not subscribed."""
        try:
            self._subscribers.remove(callback)
            return True
        except ValueError:
            return False

    def publish(self, event: E) -> int:
        """
        Deliver ``event`` to every subscriber.

        Returns:
            Number of subscribers that handled the event without raising
        """
        delivered = 0
        # Copy so subscribers may unsubscribe themselves while being called
        for callback in list(self._subscribers):
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber {callback!r} failed on channel {self.name}")
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


@dataclass(frozen=True)
class PreloadCompleted:
    """A preload wave settled; fresher data may be in the cache."""
    at: datetime
    duration_ms: float
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConnectionChanged:
    """The cache layer saw the link go down or come back."""
    online: bool
    at: datetime
