"""Session lifecycle signals.

Observers register a pair of callbacks and get a handle back; the owner of
the hub raises ``suspend()`` / ``resume()`` (HTTP surface, signal handlers).
"""
from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Callable, List

from .logging_utils import log

Callback = Callable[[], None]


@dataclass(frozen=True, eq=False)
class Subscription:
    on_suspended: Callback
    on_resumed: Callback


class SessionEvents:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        self.suspended = False

    def subscribe(self, on_suspended: Callback, on_resumed: Callback) -> Subscription:
        sub = Subscription(on_suspended, on_resumed)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def suspend(self) -> None:
        with self._lock:
            self.suspended = True
            callbacks = [s.on_suspended for s in self._subscriptions]
        self._emit('SessionSuspended', callbacks)

    def resume(self) -> None:
        with self._lock:
            self.suspended = False
            callbacks = [s.on_resumed for s in self._subscriptions]
        self._emit('SessionResumed', callbacks)

    @staticmethod
    def _emit(name: str, callbacks: List[Callback]) -> None:
        for cb in callbacks:
            try:
                cb()
            except Exception as e:
                log(f'{name} handler failed: {e}', 'error')
