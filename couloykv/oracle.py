"""Timestamp oracle that orders transactions and detects write conflicts."""

from __future__ import annotations

import enum
import heapq
import threading
import time
from dataclasses import dataclass, field
from typing import Any


class IsolationLevel(enum.IntEnum):
    """How strongly a transaction is isolated from concurrent ones."""

    READ_COMMITTED = 0
    SERIALIZABLE = 1


@dataclass(eq=False)
class TxnState:
    """The part of a transaction the oracle works with.

    ``str_pending_writes`` maps each written string key to its pending write;
    ``hash_pending_writes`` maps each hash key to its written fields.
    """

    isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED
    read_only: bool = False
    start_ts: int = 0
    commit_ts: int = 0
    str_pending_writes: dict = field(default_factory=dict)
    hash_pending_writes: dict = field(default_factory=dict)

    @property
    def has_writes(self) -> bool:
        return bool(self.str_pending_writes) or bool(self.hash_pending_writes)


class Oracle:
    """Hands out transaction timestamps and keeps the records for conflict checks.

    ``lock`` guards the active and committed records: read-committed
    transactions hold it while committing, serializable ones for their whole
    lifetime. The oracle itself does not take it.
    """

    def __init__(self, start_ts: int | None = None) -> None:
        self.lock = threading.RLock()
        self._id_lock = threading.Lock()
        self._txn_id = time.time_ns() if start_ts is None else start_ts
        self._active: list[int] = []
        self._committed: list[TxnState] = []

    @property
    def active_txns(self) -> list[int]:
        """Start timestamps of the active transactions, smallest first."""
        return sorted(self._active)

    @property
    def committed_txns(self) -> tuple[TxnState, ...]:
        """Committed transactions still kept for conflict detection."""
        return tuple(self._committed)

    def next_txn_id(self) -> int:
        """Return a fresh, strictly increasing timestamp."""
        with self._id_lock:
            self._txn_id += 1
            return self._txn_id

    def has_conflict(self, txn: TxnState) -> bool:
        """Return True if a transaction committed after ``txn`` began wrote what it wrote."""
        if not txn.has_writes:
            return False
        for committed in self._committed:
            if committed.commit_ts <= txn.start_ts:
                continue
            if any(key in committed.str_pending_writes for key in txn.str_pending_writes):
                return True
            for key, fields in txn.hash_pending_writes.items():
                other: Any = committed.hash_pending_writes.get(key, {})
                if any(f in other for f in fields):
                    return True
        return False

    def new_begin(self, txn: TxnState) -> None:
        """Give ``txn`` its start timestamp and record it as active."""
        txn.start_ts = self.next_txn_id()
        heapq.heappush(self._active, txn.start_ts)

    def new_commit(self, txn: TxnState) -> None:
        """Give ``txn`` its commit timestamp and move it to the committed records."""
        self.cleanup_committed()
        txn.commit_ts = self.next_txn_id()
        self._committed.append(txn)
        self._remove_active(txn.start_ts)

    def cleanup_committed(self) -> None:
        """Drop committed records older than the oldest active transaction."""
        if not self._active:
            return
        oldest = self._active[0]
        self._committed = [t for t in self._committed if t.commit_ts > oldest]

    def _remove_active(self, start_ts: int) -> bool:
        try:
            self._active.remove(start_ts)
        except ValueError:
            return False
        heapq.heapify(self._active)
        return True