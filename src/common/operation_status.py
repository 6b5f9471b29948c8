"""
Status records for long-running batch operations.

Callers create one registry and own it; entries are polled by operation
id and expire after a TTL. Expiry runs from sweep_expired(), which the
owner's scheduler calls, plus opportunistic eviction of the oldest entry
when the registry is full.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Callable, Dict, List, Optional

from config import settings

logger = logging.getLogger(__name__)


class OperationState(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class OperationStatus:
    operation_id: str
    state: OperationState
    total: int
    processed: int = 0
    message: str = ""
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: float = 0.0
    updated_at: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def progress(self) -> float:
        """Percentage of processed items, 0-100."""
        if self.total <= 0:
            return 100.0 if self.state != OperationState.RUNNING else 0.0
        return min(100.0, self.processed / self.total * 100)


class OperationStatusRegistry:
    """
    Bounded operation id -> status map with TTL eviction.

    Thread-safe. Returned statuses are immutable snapshots.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Lifetime of an entry after its last update.
            max_entries: Capacity; the least recently updated entry is
                evicted when a new operation starts on a full registry.
            clock: Time source, seconds.
        """
        self._ttl_seconds = ttl_seconds or settings.OPERATION_STATUS_TTL_SECONDS
        self._max_entries = max_entries or settings.OPERATION_STATUS_MAX_ENTRIES
        self._clock = clock
        self._entries: "OrderedDict[str, OperationStatus]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start(self, operation_id: str, total: int, message: str = "") -> OperationStatus:
        now = self._clock()
        status = OperationStatus(
            operation_id=operation_id,
            state=OperationState.RUNNING,
            total=total,
            message=message,
            started_at=now,
            updated_at=now,
        )
        with self._lock:
            self._entries.pop(operation_id, None)
            while len(self._entries) >= self._max_entries:
                evicted_id, _ = self._entries.popitem(last=False)
                logger.debug(f"Operation status {evicted_id} evicted (registry full)")
            self._entries[operation_id] = status
        return status

    def update(self, operation_id: str, processed: int, message: Optional[str] = None) -> Optional[OperationStatus]:
        """Record progress; returns None for unknown or expired ids."""
        return self._change(operation_id, processed=processed, message=message)

    def finish(self, operation_id: str, result: Optional[Dict[str, Any]] = None) -> Optional[OperationStatus]:
        return self._change(operation_id, state=OperationState.COMPLETED, result=result, complete=True)

    def fail(self, operation_id: str, error: str) -> Optional[OperationStatus]:
        return self._change(operation_id, state=OperationState.FAILED, error=error)

    def get(self, operation_id: str) -> Optional[OperationStatus]:
        with self._lock:
            status = self._entries.get(operation_id)
            if status is None:
                return None
            if self._is_expired(status, self._clock()):
                del self._entries[operation_id]
                return None
            return status

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        """
        Drop every entry whose TTL has elapsed.

        Returns:
            Ids of the removed operations.
        """
        now = self._clock() if now is None else now
        with self._lock:
            expired = [op_id for op_id, status in self._entries.items() if self._is_expired(status, now)]
            for op_id in expired:
                del self._entries[op_id]
        if expired:
            logger.debug(f"Swept {len(expired)} expired operation status entries")
        return expired

    def _is_expired(self, status: OperationStatus, now: float) -> bool:
        return now - status.updated_at >= self._ttl_seconds

    def _change(
        self,
        operation_id: str,
        state: Optional[OperationState] = None,
        processed: Optional[int] = None,
        message: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        complete: bool = False,
    ) -> Optional[OperationStatus]:
        now = self._clock()
        with self._lock:
            current = self._entries.get(operation_id)
            if current is None or self._is_expired(current, now):
                self._entries.pop(operation_id, None)
                return None

            changes: Dict[str, Any] = {'updated_at': now}
            if state is not None:
                changes['state'] = state
            if processed is not None:
                changes['processed'] = processed
            if complete:
                changes['processed'] = current.total
            if message is not None:
                changes['message'] = message
            if result is not None:
                changes['result'] = result
            if error is not None:
                changes['error'] = error

            status = replace(current, **changes)
            self._entries[operation_id] = status
            self._entries.move_to_end(operation_id)
            return status
