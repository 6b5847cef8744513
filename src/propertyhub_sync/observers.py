"""Listener registration with disposable subscription handles."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``subscribe``; disposing it removes the listener.

    The handle is callable, so ``unsubscribe = publisher.subscribe(cb)``
    followed by ``unsubscribe()`` works, as does ``with`` usage.
    Disposing twice is a no-op.
    """

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose: Callable[[], None] | None = dispose

    @property
    def active(self) -> bool:
        return self._dispose is not None

    def unsubscribe(self) -> None:
        dispose, self._dispose = self._dispose, None
        if dispose is not None:
            dispose()

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class Broadcaster(Generic[T]):
    """Synchronous fan-out of values to registered listeners.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the value.
    """

    def __init__(self, name: str = "broadcaster") -> None:
        self._name = name
        self._listeners: dict[int, Callable[[T], None]] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add(self, listener: Callable[[T], None]) -> Subscription:
        """Register *listener* and return its :class:`Subscription`."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = listener
        return Subscription(lambda: self._remove(token))

    def emit(self, value: T) -> None:
        """Deliver *value* to every listener registered at call time."""
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(value)
            except Exception:
                logger.exception("%s listener %r raised", self._name, listener)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def _remove(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)


__all__ = ["Broadcaster", "Subscription"]
