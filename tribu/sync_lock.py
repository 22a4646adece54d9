import threading
from contextlib import contextmanager
from typing import Optional
from datetime import datetime

from tribu.logging_config import get_logger

logger = get_logger(__name__)


class SyncLockBusy(RuntimeError):
    """Raised when a sync lock cannot be acquired."""


class SyncLockManager:
    """
    Named process-wide lock guarding one class of sync operation.

    The outbox tick and ledger writes each get their own manager so they
    never contend with one another.
    """

    def __init__(self, name: str, timeout_seconds: int = 60):
        self.name = name
        self._mutex = threading.Lock()        # held for the whole operation
        self._state_lock = threading.Lock()   # guards the bookkeeping below
        self._current_operation = None
        self._holder_thread_id = None
        self._acquired_at: Optional[datetime] = None
        self._timeout_seconds = timeout_seconds

    def is_locked(self) -> bool:
        """Check if the lock is currently held"""
        return self._mutex.locked()

    def get_current_operation(self) -> Optional[str]:
        """Get the name of the current operation holding the lock"""
        with self._state_lock:
            return self._current_operation

    @contextmanager
    def acquire_sync_lock(self, operation_name: str, timeout_seconds: Optional[int] = None, blocking: bool = True):
        """
        Context manager to acquire the lock.

        Args:
            operation_name: Name of the operation acquiring the lock
            timeout_seconds: How long to wait when blocking (defaults to the manager timeout)
            blocking: When False, fail immediately if another operation holds the lock

        Raises:
            SyncLockBusy: If unable to acquire the lock
        """
        if blocking:
            timeout = timeout_seconds if timeout_seconds is not None else self._timeout_seconds
            acquired = self._mutex.acquire(timeout=timeout)
        else:
            acquired = self._mutex.acquire(blocking=False)

        if not acquired:
            current_op = self.get_current_operation()
            logger.warning(
                f"Lock '{self.name}' already held by '{current_op}'. "
                f"Cannot acquire for '{operation_name}'"
            )
            raise SyncLockBusy(f"'{self.name}' busy: {current_op}")

        with self._state_lock:
            self._current_operation = operation_name
            self._holder_thread_id = threading.get_ident()
            self._acquired_at = datetime.now()
        logger.debug(f"Lock '{self.name}' acquired for operation: {operation_name}")

        try:
            yield
        finally:
            with self._state_lock:
                self._current_operation = None
                self._holder_thread_id = None
                self._acquired_at = None
            self._mutex.release()
            logger.debug(f"Lock '{self.name}' released for operation: {operation_name}")

    def get_status(self) -> dict:
        """Get current status of the lock manager"""
        with self._state_lock:
            acquired_at = self._acquired_at
            holder = self._holder_thread_id
            current_op = self._current_operation
        return {
            "name": self.name,
            "is_locked": self.is_locked(),
            "current_operation": current_op,
            "timestamp": datetime.now().isoformat(),
            "held_by_thread": holder,
            "held_for_seconds": (datetime.now() - acquired_at).total_seconds() if acquired_at else 0,
            "timeout_seconds": self._timeout_seconds,
        }


# Global instances - create once and reuse
tick_lock_manager = SyncLockManager("outbox_tick")
ledger_lock_manager = SyncLockManager("ledger_write", timeout_seconds=30)
