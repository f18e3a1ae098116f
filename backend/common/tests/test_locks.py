"""
Tests for per-driver locking.
"""

import threading
import uuid
import pytest

from common.exceptions import StoreTimeout
from common.locks import DriverLockRegistry


class TestDriverLockRegistry:
    """Test per-driver mutual exclusion."""

    def setup_method(self):
        """Set up test fixtures."""
        self.locks = DriverLockRegistry()
        self.driver_id = uuid.uuid4()

    def test_lock_is_reentrant(self):
        with self.locks.hold(self.driver_id, timeout=0.1):
            with self.locks.hold(str(self.driver_id), timeout=0.1):
                pass

        assert len(self.locks) == 1

    def test_busy_driver_times_out(self):
        """Test that a second thread gives up after the timeout."""
        acquired = threading.Event()
        release = threading.Event()

        def hold_lock():
            with self.locks.hold(self.driver_id, timeout=1):
                acquired.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert acquired.wait(5)
            with pytest.raises(StoreTimeout):
                with self.locks.hold(self.driver_id, timeout=0.05):
                    pass
        finally:
            release.set()
            holder.join()

    def test_different_drivers_do_not_block(self):
        acquired = threading.Event()
        release = threading.Event()

        def hold_lock():
            with self.locks.hold(self.driver_id, timeout=1):
                acquired.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert acquired.wait(5)
            with self.locks.hold(uuid.uuid4(), timeout=0.05):
                pass
        finally:
            release.set()
            holder.join()

        assert len(self.locks) == 2
