"""
Tests for the Timeline Store.
"""

import time
import uuid
import pytest
from datetime import timedelta

from django.db import IntegrityError, InterfaceError, OperationalError
from django.utils import timezone

from common.exceptions import ConflictingInterval, StoreTimeout, StoreUnavailable
from duty_timeline.models import DutyInterval
from duty_timeline.services import TimelineStore
from duty_timeline.services.timeline_store import store_errors
from hos_compliance.models import DriverHOSProfile


class TestStoreErrors:
    """Test translation of database errors."""

    def test_lock_timeout_maps_to_store_timeout(self):
        with pytest.raises(StoreTimeout):
            with store_errors("Saving interval"):
                raise OperationalError("database is locked")

    def test_connection_failure_maps_to_store_unavailable(self):
        with pytest.raises(StoreUnavailable):
            with store_errors("Saving interval"):
                raise OperationalError("could not connect to server")
        with pytest.raises(StoreUnavailable):
            with store_errors("Saving interval"):
                raise InterfaceError("connection already closed")

    def test_integrity_error_maps_to_conflict(self):
        with pytest.raises(ConflictingInterval):
            with store_errors("Saving interval"):
                raise IntegrityError("UNIQUE constraint failed")


@pytest.mark.django_db
class TestTimelineStore:
    """Test ORM reads and writes."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = TimelineStore()
        self.driver_id = uuid.uuid4()
        self.start = timezone.now() - timedelta(hours=8)

    def make_interval(self, status, start, end=None):
        return DutyInterval(driver_id=self.driver_id, status=status, start_time=start, end_time=end)

    def test_second_open_interval_rejected_by_constraint(self):
        """Test that the database enforces one open interval per driver."""
        with self.store.atomic():
            self.store.save_interval(self.make_interval("DRIVING", self.start))

            with pytest.raises(ConflictingInterval):
                self.store.save_interval(
                    self.make_interval("OFF_DUTY", self.start + timedelta(hours=1))
                )

        assert self.store.get_open_interval(self.driver_id).status == "DRIVING"

    def test_write_after_deadline_leaves_nothing_behind(self):
        """Test that a timed-out mutation persists no partial interval."""
        with pytest.raises(StoreTimeout):
            with self.store.atomic(timeout=0.01):
                self.store.save_interval(
                    self.make_interval("OFF_DUTY", self.start, self.start + timedelta(hours=1))
                )
                time.sleep(0.05)
                self.store.save_interval(
                    self.make_interval("DRIVING", self.start + timedelta(hours=1))
                )

        assert DutyInterval.objects.filter(driver_id=self.driver_id).count() == 0

    def test_load_intervals_by_range(self):
        with self.store.atomic():
            self.store.save_interval(
                self.make_interval("OFF_DUTY", self.start, self.start + timedelta(hours=2))
            )
            self.store.save_interval(
                self.make_interval("DRIVING", self.start + timedelta(hours=2), self.start + timedelta(hours=5))
            )
            self.store.save_interval(self.make_interval("ON_DUTY_NOT_DRIVING", self.start + timedelta(hours=5)))

        statuses = [
            i.status
            for i in self.store.load_intervals(
                self.driver_id, start=self.start + timedelta(hours=3), end=self.start + timedelta(hours=4)
            )
        ]

        assert statuses == ["DRIVING"]
        assert len(self.store.load_intervals(self.driver_id)) == 3
        assert self.store.get_last_interval(self.driver_id).status == "ON_DUTY_NOT_DRIVING"
        assert self.store.driver_ids() == [self.driver_id]

    def test_lock_driver_creates_and_locks_profile_row(self):
        """Test that the per-driver lock row is created once and reused."""
        with self.store.atomic():
            profile = self.store.lock_driver(self.driver_id)
            again = self.store.lock_driver(self.driver_id)

        assert profile.driver_id == self.driver_id
        assert again.pk == profile.pk
        assert DriverHOSProfile.objects.filter(driver_id=self.driver_id).count() == 1
