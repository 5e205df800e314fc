"""Owned listener subscriptions and a minimal synchronous signal."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Subscription:
    """Handle for an attached listener; ``cancel()`` detaches it exactly once."""

    def __init__(self, on_cancel: Callable[[], None] | None = None) -> None:
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return self._on_cancel is not None

    def cancel(self) -> None:
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()


class Signal(Generic[T]):
    """Fan-out of one payload type to connected listeners."""

    def __init__(self, name: str, logger: logging.Logger | None = None) -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []
        self._logger = logger or logging.getLogger("voice_chat.events")

    def connect(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)

        def _detach() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_detach)

    def emit(self, payload: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception:  # noqa: BLE001
                self._logger.exception("signal_listener_failed", extra={"signal": self._name})

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
