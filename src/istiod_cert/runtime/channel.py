"""
Unbuffered hand-off channel between two threads.

`send` returns only once a receiver has taken the item, so a slow consumer
applies backpressure to the producer. Both ends also watch a stop event so
neither can block past shutdown.
"""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")

_POLL_SECONDS = 0.1


class HandoffChannel(Generic[T]):
    """Rendezvous channel carrying one item at a time."""

    def __init__(self, poll_interval: float = _POLL_SECONDS) -> None:
        self._cond = threading.Condition()
        self._item: T | None = None
        self._offered = 0
        self._taken = 0
        self._poll_interval = poll_interval

    def send(self, item: T, stop: threading.Event) -> bool:
        """
        Offer `item` and block until it is received.

        Returns False, withdrawing the item, if `stop` is set first.
        """
        with self._cond:
            while self._offered != self._taken:
                if stop.is_set():
                    return False
                self._cond.wait(self._poll_interval)

            self._item = item
            self._offered += 1
            ticket = self._offered
            self._cond.notify_all()

            while self._taken < ticket:
                if stop.is_set():
                    self._item = None
                    self._offered -= 1
                    self._cond.notify_all()
                    return False
                self._cond.wait(self._poll_interval)
            return True

    def receive(self, stop: threading.Event) -> T | None:
        """Block until an item is offered; None once `stop` is set."""
        with self._cond:
            while self._offered == self._taken:
                if stop.is_set():
                    return None
                self._cond.wait(self._poll_interval)

            item = self._item
            self._item = None
            self._taken += 1
            self._cond.notify_all()
            return item
