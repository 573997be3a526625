"""
Observable values for presentation bindings.

The engine publishes its feed and status as independent observables.
Observers are called synchronously, on whatever context calls `set`
(for the engine: its event loop).
"""

import threading
from typing import Callable, Generic, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")
Observer = Callable[[T], None]


class ObservableValue(Generic[T]):
    """A current value plus change notification."""

    def __init__(self, initial: T):
        self._value = initial
        self._observers: list[Observer] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify every observer."""
        with self._lock:
            self._value = value
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(value)
            except Exception as e:
                logger.error("observer_failed", error=str(e))

    def subscribe(self, observer: Observer, emit_current: bool = True) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            A callable that unsubscribes the observer
        """
        with self._lock:
            self._observers.append(observer)
        if emit_current:
            observer(self._value)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe
