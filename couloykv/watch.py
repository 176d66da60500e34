"""Delivery of change events on watched keys."""

from __future__ import annotations

import enum
import queue
import threading
from collections import deque
from dataclasses import dataclass

WATCHER_CAPACITY = 128
_SEND_TIMEOUT = 0.1
_POLL = 0.05
_STOP = object()


class EventType(enum.IntEnum):
    """What happened to a key."""

    PUT = 0
    DEL = 1


@dataclass
class WatchEvent:
    """A change to ``key``; ``value`` is None for deletions."""

    key: str
    value: bytes | None
    event_type: EventType


class Watcher:
    """Receives the events of one key until closed or cancelled."""

    def __init__(
        self, key: str, cancel: threading.Event, capacity: int = WATCHER_CAPACITY
    ) -> None:
        self.key = key
        self.cancel = cancel
        self.capacity = capacity
        self.canceled = False
        self._items: deque = deque()
        self._cond = threading.Condition()

    def _offer(self, event: WatchEvent, timeout: float) -> bool:
        with self._cond:
            ok = self._cond.wait_for(
                lambda: len(self._items) < self.capacity
                or self.canceled
                or self.cancel.is_set(),
                timeout,
            )
            if not ok or self.canceled or self.cancel.is_set():
                return False
            self._items.append(event)
            self._cond.notify_all()
            return True

    def _close(self) -> None:
        with self._cond:
            self.canceled = True
            self._cond.notify_all()

    def get(self, timeout: float | None = None) -> WatchEvent | None:
        """Return the next event, or None once closed and drained.

        Raises TimeoutError if nothing arrives within ``timeout`` seconds.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self.canceled, timeout):
                raise TimeoutError("no watch event")
            if self._items:
                event = self._items.popleft()
                self._cond.notify_all()
                return event
            return None

    def __iter__(self):
        while (event := self.get()) is not None:
            yield event


class WatcherManager:
    """Fans out events to the watchers of each key."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._watchers: dict[str, dict[Watcher, None]] = {}
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    def watch(self, key: str, cancel: threading.Event) -> Watcher:
        """Start watching ``key``; setting ``cancel`` ends the watch."""
        watcher = Watcher(key, cancel)
        with self._lock:
            self._watchers.setdefault(key, {})[watcher] = None
        threading.Thread(
            target=self._close_listener, args=(watcher,), daemon=True
        ).start()
        return watcher

    def _close_listener(self, watcher: Watcher) -> None:
        while not watcher.cancel.wait(_POLL):
            if self._closed.is_set() or watcher.canceled:
                return
        self.unwatch(watcher)

    def unwatch(self, watcher: Watcher) -> None:
        """Close ``watcher`` and forget it."""
        with self._lock:
            watcher._close()
            watchers = self._watchers.get(watcher.key)
            if watchers is None:
                return
            watchers.pop(watcher, None)
            if not watchers:
                del self._watchers[watcher.key]

    def watched(self, key: str) -> bool:
        """Return True while ``key`` has at least one watcher."""
        with self._lock:
            return key in self._watchers

    def notify(self, event: WatchEvent) -> None:
        """Queue ``event`` for delivery."""
        if not self._closed.is_set():
            self._queue.put(event)

    def start(self) -> None:
        """Deliver queued events on the calling thread until ``stop``."""
        while (event := self._queue.get()) is not _STOP:
            with self._lock:
                targets = list(self._watchers.get(event.key, ()))
            for watcher in targets:
                if watcher.canceled:
                    continue
                if not watcher._offer(event, 0):
                    threading.Thread(
                        target=watcher._offer,
                        args=(event, _SEND_TIMEOUT),
                        daemon=True,
                    ).start()

    def stop(self) -> None:
        """Stop delivery and close every watcher."""
        self._queue.put(_STOP)
        self._closed.set()
        with self._lock:
            for watchers in list(self._watchers.values()):
                for watcher in list(watchers):
                    self.unwatch(watcher)