# cluster_engine/recovery/log.py
"""Bounded, time-pruned record of pod relocation attempts."""

from collections import deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Deque, List, Optional

from cluster_engine.core.models import RecoveryOperation, RecoveryStatus, utcnow


class RecoveryLog:
    """
    Append-only log of recovery operations.

    Entries older than the retention window are pruned on read. When more
    than ``max_entries`` are held, the oldest are evicted first.
    """

    def __init__(
        self,
        retention_seconds: float = 300.0,
        max_entries: int = 1000,
        seconds_per_operation: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._entries: Deque[RecoveryOperation] = deque(maxlen=max_entries)
        self._retention = timedelta(seconds=retention_seconds)
        self._seconds_per_operation = seconds_per_operation
        self._clock = clock
        self._lock = Lock()

    def append(self, operation: RecoveryOperation) -> None:
        with self._lock:
            self._entries.append(operation)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop entries past retention. Returns how many were dropped."""
        cutoff = (now or self._clock()) - self._retention
        dropped = 0
        with self._lock:
            # Entries are appended in time order
            while self._entries and self._entries[0].timestamp < cutoff:
                self._entries.popleft()
                dropped += 1
        return dropped

    def recent(self, now: Optional[datetime] = None) -> List[RecoveryOperation]:
        """Operations still inside the retention window, oldest first."""
        self.prune(now)
        with self._lock:
            return list(self._entries)

    def for_node(self, node_id: str) -> List[RecoveryOperation]:
        """Operations that moved pods off ``node_id``."""
        return [op for op in self.recent() if op.from_node == node_id]

    def for_pod(self, pod_id: str) -> List[RecoveryOperation]:
        return [op for op in self.recent() if op.pod_id == pod_id]

    def pending(self) -> List[RecoveryOperation]:
        return [op for op in self.recent() if op.status == RecoveryStatus.PENDING]

    def estimated_remaining_seconds(self) -> int:
        return len(self.pending()) * self._seconds_per_operation

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
