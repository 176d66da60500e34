"""Expiration scheduler that deletes keys once their time has come."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

_log = logging.getLogger(__name__)


@dataclass
class Job:
    """A key due to expire at ``expiration`` (seconds since the epoch)."""

    key: str
    expiration: float


class _TimeHeap:
    """Jobs ordered by expiration; at most one job per key."""

    def __init__(self) -> None:
        self._heap: list = []
        self._jobs: dict[str, Job] = {}
        self._seq = itertools.count()

    def push(self, job: Job) -> None:
        self._jobs[job.key] = job
        heapq.heappush(self._heap, (job.expiration, next(self._seq), job))

    def remove(self, key: str) -> None:
        self._jobs.pop(key, None)

    def get(self, key: str) -> Job | None:
        return self._jobs.get(key)

    def _prune(self) -> None:
        while self._heap:
            job = self._heap[0][2]
            if self._jobs.get(job.key) is job:
                return
            heapq.heappop(self._heap)

    def peek(self) -> Job | None:
        self._prune()
        return self._heap[0][2] if self._heap else None

    def pop(self) -> Job | None:
        self._prune()
        if not self._heap:
            return None
        job = heapq.heappop(self._heap)[2]
        del self._jobs[job.key]
        return job


class TTL:
    """Runs ``deleter(key)`` on its own thread for each job that expires."""

    def __init__(self, deleter: Callable[[str], None]) -> None:
        self._deleter = deleter
        self._cond = threading.Condition()
        self._heap = _TimeHeap()
        self._started = False
        self._stopped = False

    def add(self, job: Job) -> None:
        """Schedule ``job``, replacing any job for the same key."""
        with self._cond:
            self._heap.push(job)
            self._cond.notify_all()

    def delete(self, key: str) -> None:
        """Cancel the expiration of ``key``."""
        with self._cond:
            self._heap.remove(key)
            self._cond.notify_all()

    def is_expired(self, key: str) -> bool:
        """Return True when ``key`` has a job whose time has passed."""
        with self._cond:
            job = self._heap.get(key)
            return job is not None and job.expiration <= time.time()

    def start(self) -> None:
        """Run the scheduler on the calling thread until ``stop`` is called."""
        with self._cond:
            if self._stopped:
                return
            self._started = True
        while (job := self._next_expired()) is not None:
            threading.Thread(
                target=self._run_deleter, args=(job.key,), daemon=True
            ).start()

    def stop(self) -> None:
        """Make ``start`` return."""
        with self._cond:
            self._started = False
            self._stopped = True
            self._cond.notify_all()

    def _next_expired(self) -> Job | None:
        with self._cond:
            while self._started:
                job = self._heap.peek()
                if job is None:
                    self._cond.wait()
                    continue
                remaining = job.expiration - time.time()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                return self._heap.pop()
            return None

    def _run_deleter(self, key: str) -> None:
        try:
            self._deleter(key)
        except Exception as exc:
            _log.error("there is a error occured by deleter: %s", exc)