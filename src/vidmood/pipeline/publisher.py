"""
State Publisher

Current-value streams for pipeline observers. A new subscriber immediately
receives the latest value; later publishes replace it.
"""

from typing import Callable, Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Subscriber = Callable[[T], None]


class StatePublisher(Generic[T]):
    """
    Holds one current value and notifies subscribers when it changes.

    Subscriber failures are logged and never reach the publisher.
    """

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value = initial
        self._subscribers: list[Subscriber] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        self._notify(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            self._notify(callback, value)

    def _notify(self, callback: Subscriber, value: T) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.error(
                "Failed to notify subscriber",
                stream=self.name,
                error=str(e),
            )
