"""
Tests for the Duty Status Timeline Service.

Covers live appends, inferred gap filling, superseding amendments and
as-of reconstruction against the database.
"""

import uuid
import pytest
from datetime import datetime, timedelta

from django.utils import timezone

from common.exceptions import (
    AlreadySuperseded,
    ConflictingInterval,
    MissingEditReason,
    OutOfOrderEvent,
)
from duty_timeline.models import DutyInterval
from duty_timeline.services import (
    AmendmentHandlerService,
    DutyStatusTimelineService,
    IntervalAmendment,
)
from duty_timeline.signals import duty_status_changed
from hos_compliance.models import DriverHOSProfile
from hos_compliance.services.rolling_window_calculator import HOSCalculationError

DRIVING = DutyInterval.DutyStatus.DRIVING
ON_DUTY = DutyInterval.DutyStatus.ON_DUTY_NOT_DRIVING
OFF_DUTY = DutyInterval.DutyStatus.OFF_DUTY
SLEEPER = DutyInterval.DutyStatus.SLEEPER_BERTH


@pytest.mark.django_db
class TestAppendStatus:
    """Test live and inferred status changes."""

    def setup_method(self):
        """Set up test fixtures."""
        self.timeline = DutyStatusTimelineService()
        self.driver_id = uuid.uuid4()
        self.start = timezone.now() - timedelta(hours=10)

    def test_first_status_opens_interval(self):
        """Test that the first event opens an interval."""
        interval = self.timeline.append_status(self.driver_id, OFF_DUTY, self.start)

        assert interval.is_open
        assert interval.source == DutyInterval.Source.ELD
        assert DutyInterval.objects.filter(driver_id=self.driver_id).count() == 1

    def test_new_status_closes_open_interval(self):
        """Test that a live event closes the previous interval at its time."""
        first = self.timeline.append_status(self.driver_id, OFF_DUTY, self.start)
        second = self.timeline.append_status(
            self.driver_id, DRIVING, self.start + timedelta(hours=1)
        )

        first.refresh_from_db()
        assert first.end_time == self.start + timedelta(hours=1)
        assert second.is_open
        assert second.start_time == first.end_time

    def test_event_before_open_interval_is_out_of_order(self):
        self.timeline.append_status(self.driver_id, DRIVING, self.start + timedelta(hours=2))

        with pytest.raises(OutOfOrderEvent):
            self.timeline.append_status(
                self.driver_id, ON_DUTY, self.start + timedelta(hours=1)
            )

    def test_repeated_status_is_ignored(self):
        """Test that repeating the current status does not split the interval."""
        first = self.timeline.append_status(self.driver_id, DRIVING, self.start)
        repeated = self.timeline.append_status(
            self.driver_id, DRIVING, self.start + timedelta(hours=1)
        )

        assert repeated.id == first.id
        assert repeated.is_open
        assert DutyInterval.objects.filter(driver_id=self.driver_id).count() == 1

    def test_different_status_at_same_instant_rejected(self):
        self.timeline.append_status(self.driver_id, DRIVING, self.start)

        with pytest.raises(OutOfOrderEvent):
            self.timeline.append_status(self.driver_id, ON_DUTY, self.start)

    def test_open_interval_appearing_during_append_is_conflict(self, monkeypatch):
        """Test that an open interval committed by another worker is not treated as closed."""
        self.timeline.append_status(self.driver_id, DRIVING, self.start)
        monkeypatch.setattr(self.timeline.store, "lock_open_interval", lambda driver_id: None)

        with pytest.raises(ConflictingInterval):
            self.timeline.append_status(
                self.driver_id, OFF_DUTY, self.start + timedelta(hours=1)
            )

        assert DutyInterval.objects.filter(driver_id=self.driver_id).count() == 1

    def test_inferred_status_cannot_override_live_record(self):
        """Test that inferred data never overwrites ELD time."""
        self.timeline.append_status(self.driver_id, DRIVING, self.start)

        with pytest.raises(ConflictingInterval):
            self.timeline.append_status(
                self.driver_id,
                OFF_DUTY,
                self.start + timedelta(hours=1),
                source=DutyInterval.Source.INFERRED,
            )

    def test_inferred_status_fills_gap_up_to_next_record(self):
        """Test that an inferred interval ends where recorded time begins."""
        live = self.timeline.append_status(
            self.driver_id, DRIVING, self.start + timedelta(hours=2)
        )
        filled = self.timeline.append_status(
            self.driver_id, OFF_DUTY, self.start, source=DutyInterval.Source.INFERRED
        )

        assert filled.end_time == live.start_time
        assert filled.source == DutyInterval.Source.INFERRED
        assert filled.notes == "Off Duty inferred to fill unrecorded time"
        assert self.timeline.verify_timeline(self.driver_id)["gaps"] == []

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            self.timeline.append_status(self.driver_id, DRIVING, datetime(2024, 6, 3, 8, 0))

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError):
            self.timeline.append_status(self.driver_id, "YARD_MOVE", self.start)

    def test_metadata_stored_on_interval(self):
        interval = self.timeline.append_status(
            self.driver_id,
            ON_DUTY,
            self.start,
            metadata={"location": "Port of Long Beach Pier J", "odometer": 120345},
        )

        interval.refresh_from_db()
        assert interval.location == "Port of Long Beach Pier J"
        assert interval.odometer == 120345

    def test_change_signal_sent_once_per_new_interval(self):
        """Test that appends announce the written interval."""
        received = []

        def receiver(sender, **kwargs):
            received.append(kwargs)

        duty_status_changed.connect(receiver)
        try:
            interval = self.timeline.append_status(self.driver_id, DRIVING, self.start)
            self.timeline.append_status(self.driver_id, DRIVING, self.start + timedelta(hours=1))
        finally:
            duty_status_changed.disconnect(receiver)

        assert len(received) == 1
        assert received[0]["change"] == "append"
        assert received[0]["intervals"] == [interval]


@pytest.mark.django_db
class TestAmendments:
    """Test superseding amendments."""

    def setup_method(self):
        """Set up test fixtures."""
        self.timeline = DutyStatusTimelineService()
        self.driver_id = uuid.uuid4()
        self.start = timezone.now() - timedelta(hours=10)

    def build_shift(self):
        off = self.timeline.append_status(self.driver_id, OFF_DUTY, self.start)
        driving = self.timeline.append_status(
            self.driver_id, DRIVING, self.start + timedelta(hours=1)
        )
        off.refresh_from_db()
        return off, driving

    def test_amendment_supersedes_original(self):
        """Test that the original stays stored but leaves the active timeline."""
        off, driving = self.build_shift()

        replacement = self.timeline.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Loading at terminal, not driving"
        )

        driving.refresh_from_db()
        assert driving.superseded_at is not None
        assert replacement.supersedes_id == driving.id
        assert replacement.edit_reason == "Loading at terminal, not driving"
        assert replacement.source == DutyInterval.Source.MANUAL
        active = self.timeline.store.load_intervals(self.driver_id)
        assert [i.id for i in active] == [off.id, replacement.id]

    def test_mutations_lock_driver_row(self, monkeypatch):
        """Test that appends and amendments take the database-level driver lock."""
        locked = []
        lock_driver = self.timeline.store.lock_driver

        def recording_lock(driver_id):
            locked.append(driver_id)
            return lock_driver(driver_id)

        monkeypatch.setattr(self.timeline.store, "lock_driver", recording_lock)
        _, driving = self.build_shift()
        self.timeline.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Loading at terminal, not driving"
        )

        assert locked == [self.driver_id] * 3
        assert DriverHOSProfile.objects.filter(driver_id=self.driver_id).exists()

    def test_amendment_requires_edit_reason(self):
        _, driving = self.build_shift()

        with pytest.raises(MissingEditReason):
            self.timeline.amend_interval(driving.id, ON_DUTY, driving.start_time, None, "   ")

    def test_superseded_interval_cannot_be_amended_again(self):
        _, driving = self.build_shift()
        self.timeline.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Wrong status recorded"
        )

        with pytest.raises(AlreadySuperseded):
            self.timeline.amend_interval(
                driving.id, SLEEPER, driving.start_time, None, "Second correction"
            )

    def test_amendment_overlapping_neighbour_rejected(self):
        """Test that a single amendment cannot grow into its neighbour."""
        off, _ = self.build_shift()

        with pytest.raises(ConflictingInterval):
            self.timeline.amend_interval(
                off.id, OFF_DUTY, off.start_time, off.start_time + timedelta(hours=2),
                "Left the yard later",
            )

    def test_amendment_uncovering_time_rejected(self):
        """Test that shrinking an interval cannot leave recorded time uncovered."""
        off, _ = self.build_shift()

        with pytest.raises(ConflictingInterval):
            self.timeline.amend_interval(
                off.id, OFF_DUTY, off.start_time, off.start_time + timedelta(minutes=30),
                "Shorter rest",
            )

    def test_amendment_uncovering_start_of_timeline_rejected(self):
        """Test that moving the first interval's start later cannot drop recorded time."""
        off, _ = self.build_shift()

        with pytest.raises(ConflictingInterval):
            self.timeline.amend_interval(
                off.id, OFF_DUTY, off.start_time + timedelta(minutes=30), off.end_time,
                "Came on later",
            )

        active = self.timeline.store.load_intervals(self.driver_id)
        assert active[0].id == off.id
        assert active[0].start_time == self.start

    def test_amendment_may_extend_start_of_timeline_earlier(self):
        off, _ = self.build_shift()

        replacement = self.timeline.amend_interval(
            off.id, OFF_DUTY, off.start_time - timedelta(hours=1), off.end_time,
            "Off duty since the previous evening",
        )

        active = self.timeline.store.load_intervals(self.driver_id)
        assert active[0].id == replacement.id
        assert active[0].start_time == self.start - timedelta(hours=1)

    def test_batch_amendment_moves_shared_boundary(self):
        """Test that neighbouring intervals can be reshaped together."""
        off, driving = self.build_shift()
        boundary = self.start + timedelta(minutes=90)

        replacements = self.timeline.amend_intervals(
            self.driver_id,
            [
                IntervalAmendment(off.id, OFF_DUTY, off.start_time, boundary),
                IntervalAmendment(driving.id, DRIVING, boundary, None),
            ],
            "ELD clock drift at departure",
        )

        active = self.timeline.store.load_intervals(self.driver_id)
        assert [i.id for i in active] == [r.id for r in replacements]
        assert active[0].end_time == boundary
        assert active[1].start_time == boundary
        assert active[1].is_open

    def test_failed_batch_changes_nothing(self):
        off, driving = self.build_shift()

        with pytest.raises(ConflictingInterval):
            self.timeline.amend_intervals(
                self.driver_id,
                [
                    IntervalAmendment(off.id, OFF_DUTY, off.start_time, self.start + timedelta(hours=3)),
                    IntervalAmendment(driving.id, DRIVING, self.start + timedelta(hours=2), None),
                ],
                "Overlapping correction",
            )

        active = self.timeline.store.load_intervals(self.driver_id)
        assert [i.id for i in active] == [off.id, driving.id]

    def test_duplicate_interval_in_batch_rejected(self):
        off, _ = self.build_shift()

        with pytest.raises(ValueError):
            self.timeline.amend_intervals(
                self.driver_id,
                [
                    IntervalAmendment(off.id, OFF_DUTY, off.start_time, off.end_time),
                    IntervalAmendment(off.id, SLEEPER, off.start_time, off.end_time),
                ],
                "Duplicate",
            )

    def test_reconstruct_returns_timeline_as_recorded_before_amendment(self):
        """Test that the as-of view ignores later amendments."""
        off, driving = self.build_shift()
        before = timezone.now()
        recorded = list(self.timeline.reconstruct_timeline(self.driver_id, before))

        replacement = self.timeline.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Status recorded incorrectly"
        )

        as_recorded = list(self.timeline.reconstruct_timeline(self.driver_id, before))
        current = list(self.timeline.reconstruct_timeline(self.driver_id))
        assert [i.id for i in as_recorded] == [i.id for i in recorded] == [off.id, driving.id]
        assert [i.id for i in current] == [off.id, replacement.id]
        assert as_recorded[1].is_active

    def test_reconstruct_shows_interval_still_open_at_as_of(self):
        """Test that a close recorded after as_of is not visible in the as-of view."""
        off, driving = self.build_shift()
        as_of = timezone.now()
        closed_at = as_of + timedelta(minutes=5)
        self.timeline.append_status(self.driver_id, OFF_DUTY, closed_at)

        as_recorded = list(self.timeline.reconstruct_timeline(self.driver_id, as_of))
        later = list(
            self.timeline.reconstruct_timeline(self.driver_id, closed_at + timedelta(minutes=5))
        )

        assert [(i.id, i.end_time) for i in as_recorded] == [
            (off.id, self.start + timedelta(hours=1)),
            (driving.id, None),
        ]
        assert later[1].id == driving.id
        assert later[1].end_time == closed_at
        assert len(later) == 3

    def test_reconstruct_view_can_be_iterated_twice(self):
        self.build_shift()
        view = self.timeline.reconstruct_timeline(self.driver_id)

        assert [i.id for i in view] == [i.id for i in view]

    def test_verify_timeline_reports_clean_timeline(self):
        _, driving = self.build_shift()

        report = self.timeline.verify_timeline(self.driver_id)

        assert report == {"gaps": [], "overlaps": [], "open_intervals": [driving.id]}


@pytest.mark.django_db
class TestAmendmentHandler:
    """Test the amendment front door."""

    def setup_method(self):
        """Set up test fixtures."""
        self.requests = []
        self.timeline = DutyStatusTimelineService()
        self.handler = AmendmentHandlerService(
            timeline=self.timeline,
            recompute=lambda driver_id, **kwargs: self.requests.append((driver_id, kwargs)),
        )
        self.driver_id = uuid.uuid4()
        self.start = timezone.now() - timedelta(hours=10)

    def test_amendment_requests_one_recompute(self):
        self.timeline.append_status(self.driver_id, OFF_DUTY, self.start)
        driving = self.timeline.append_status(
            self.driver_id, DRIVING, self.start + timedelta(hours=1)
        )

        replacement = self.handler.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Fueling, not driving"
        )

        assert len(self.requests) == 1
        driver_id, kwargs = self.requests[0]
        assert driver_id == driving.driver_id
        assert kwargs["since"] == driving.start_time
        assert kwargs["source_interval_id"] == replacement.id

    def test_rejected_amendment_requests_no_recompute(self):
        driving = self.timeline.append_status(self.driver_id, DRIVING, self.start)

        with pytest.raises(MissingEditReason):
            self.handler.amend_interval(driving.id, ON_DUTY, driving.start_time, None, "")

        assert self.requests == []

    def test_failed_recompute_keeps_committed_amendment(self):
        """Test that a calculation failure after the write does not fail the amendment."""
        def failing_recompute(driver_id, **kwargs):
            raise HOSCalculationError("Availability calculation failed: bad interval")

        handler = AmendmentHandlerService(timeline=self.timeline, recompute=failing_recompute)
        driving = self.timeline.append_status(self.driver_id, DRIVING, self.start)

        replacement = handler.amend_interval(
            driving.id, ON_DUTY, driving.start_time, None, "Fueling, not driving"
        )

        driving.refresh_from_db()
        assert driving.superseded_at is not None
        assert self.timeline.store.get_open_interval(self.driver_id).id == replacement.id

    def test_unknown_interval_raises_does_not_exist(self):
        with pytest.raises(DutyInterval.DoesNotExist):
            self.handler.amend_interval(
                uuid.uuid4(), ON_DUTY, self.start, None, "Correction"
            )

    def test_amendment_history_follows_chain(self):
        """Test that every version of an interval is returned oldest first."""
        original = self.timeline.append_status(self.driver_id, DRIVING, self.start)
        first = self.handler.amend_interval(
            original.id, ON_DUTY, self.start, None, "Was loading"
        )
        second = self.handler.amend_interval(
            first.id, SLEEPER, self.start, None, "Was resting in the cab"
        )

        expected = [original.id, first.id, second.id]
        assert [i.id for i in self.handler.get_amendment_history(original.id)] == expected
        assert [i.id for i in self.handler.get_amendment_history(second.id)] == expected
