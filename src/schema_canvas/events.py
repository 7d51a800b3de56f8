from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class ListenerSet(Generic[T]):
    """Callbacks notified with a value after a state change.

    ``add`` returns a function that unregisters the callback.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[T], None]] = []

    def add(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def notify(self, value: T) -> None:
        # Copy so a callback may unregister itself
        for callback in list(self._callbacks):
            callback(value)

    def __len__(self) -> int:
        return len(self._callbacks)
