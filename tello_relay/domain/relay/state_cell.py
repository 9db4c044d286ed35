"""Observable value cell.

The controller owns a ``ValueCell`` and hands out its read-only ``view()``;
subscribers are called synchronously, in registration order, on every change.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

Subscriber = Callable[[T], None]


class ValueView(Generic[T]):
    """Read-only face of a ``ValueCell``."""

    def __init__(self, cell: ValueCell[T]) -> None:
        self._cell = cell

    @property
    def value(self) -> T:
        return self._cell.value

    def subscribe(self, callback: Subscriber[T]) -> Callable[[], None]:
        return self._cell.subscribe(callback)


class ValueCell(Generic[T]):
    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Subscriber[T]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Store ``value`` and notify subscribers. Returns False if nothing changed."""
        if value == self._value:
            return False
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("State subscriber {} raised", callback)
        return True

    def subscribe(self, callback: Subscriber[T]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def view(self) -> ValueView[T]:
        return ValueView(self)
