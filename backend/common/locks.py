"""
Per-driver mutual exclusion.

Every mutation of a driver's timeline, and the recomputation it triggers,
runs inside ``driver_locks.hold(driver_id)``. Locks are keyed by driver so
different drivers never wait on each other. The locks are re-entrant so an
inline recomputation can run inside the mutation that triggered it.

This only serializes callers inside one process. Across worker processes
every mutation and recomputation also row-locks the driver's HOS profile
with ``select_for_update``.
"""

import logging
import threading
from contextlib import contextmanager

from django.conf import settings

from .exceptions import StoreTimeout

logger = logging.getLogger(__name__)


class DriverLockRegistry:
    """Registry of re-entrant locks keyed by driver id."""

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def _lock_for(self, driver_id):
        key = str(driver_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, driver_id, timeout=None):
        """
        Hold the driver's lock for the duration of the block.

        Args:
            driver_id: Driver whose timeline is being mutated
            timeout: Seconds to wait, defaults to HOS_STORE_TIMEOUT_SECONDS

        Raises:
            StoreTimeout: If the lock could not be acquired in time
        """
        if timeout is None:
            timeout = settings.HOS_STORE_TIMEOUT_SECONDS

        lock = self._lock_for(driver_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"Timed out after {timeout}s waiting for driver {driver_id} lock")
            raise StoreTimeout(f"Driver {driver_id} is busy; lock not acquired within {timeout}s")
        try:
            yield
        finally:
            lock.release()

    def __len__(self):
        with self._guard:
            return len(self._locks)


driver_locks = DriverLockRegistry()
