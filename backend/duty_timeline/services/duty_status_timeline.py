"""
Duty Status Timeline Service.

Maintains a driver's ordered duty-status timeline. It is the only writer
of DutyInterval records, so every invariant of the timeline is enforced here.

This service handles:
- Live status changes from ELD and manual entry
- Gap filling from inferred sources
- Superseding amendments, singly or as a consistent batch
- As-of reconstruction of the active timeline

Single Responsibility: Duty-status timeline invariants and writes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from django.utils import timezone

from common.exceptions import (
    AlreadySuperseded,
    ConflictingInterval,
    HOSEngineError,
    MissingEditReason,
    OutOfOrderEvent,
)
from common.locks import driver_locks
from ..signals import duty_status_changed
from .timeline_store import TimelineStore

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("location", "latitude", "longitude", "odometer", "notes")


@dataclass
class IntervalAmendment:
    """One replacement inside an amendment batch."""

    original_id: object
    new_status: str
    new_start: datetime
    new_end: Optional[datetime] = None
    source: str = "MANUAL"
    metadata: Dict = field(default_factory=dict)


class TimelineView:
    """
    Lazy, restartable view of a driver's active timeline as of an instant.

    Every iteration queries the store again, so the view can be walked
    more than once.
    """

    def __init__(self, store, driver_id, as_of):
        self.store = store
        self.driver_id = driver_id
        self.as_of = as_of

    def __iter__(self) -> Iterator:
        return iter(self.store.iter_timeline(self.driver_id, self.as_of))

    def __repr__(self):
        return f"<TimelineView driver={self.driver_id} as_of={self.as_of.isoformat()}>"


class DutyStatusTimelineService:
    """
    Service for applying status changes and amendments to a driver's timeline.

    Active intervals for a driver never overlap, leave no uncovered time
    after the first interval, and contain at most one open interval.
    """

    def __init__(self, store: Optional[TimelineStore] = None):
        """Initialize duty status timeline."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.store = store or TimelineStore()

    @property
    def model(self):
        return self.store.model

    def append_status(
        self,
        driver_id,
        status: str,
        at_time: datetime,
        source: str = "ELD",
        metadata: Optional[Dict] = None,
        end_time: Optional[datetime] = None,
        timeout: Optional[float] = None,
    ):
        """
        Record a status change for a driver.

        Live sources (ELD, MANUAL) close the open interval at at_time and
        open a new one. INFERRED sources only fill time no interval covers.

        Args:
            driver_id: Driver identifier
            status: New duty status
            at_time: When the status changed (timezone-aware)
            source: ELD, MANUAL or INFERRED
            metadata: Optional location, latitude, longitude, odometer, notes
            end_time: Optional end for an inferred gap fill
            timeout: Seconds allowed for the lock and the writes

        Returns:
            The interval now describing the driver's status at at_time

        Raises:
            OutOfOrderEvent: If a live event precedes the open interval
            ConflictingInterval: If an inferred event hits covered time
            StoreTimeout / StoreUnavailable: On transient store failures
        """
        self._validate_status(status)
        self._validate_aware(at_time, "at_time")
        if source not in self.model.Source.values:
            raise ValueError(f"Invalid source: {source}")
        if end_time is not None:
            self._validate_aware(end_time, "end_time")
            if end_time <= at_time:
                raise ValueError("end_time must be after at_time")

        try:
            with driver_locks.hold(driver_id, timeout):
                with self.store.atomic(timeout):
                    self.store.lock_driver(driver_id)
                    if source == self.model.Source.INFERRED:
                        interval, created = self._fill_gap(
                            driver_id, status, at_time, end_time, metadata
                        )
                    else:
                        interval, created = self._append_live(
                            driver_id, status, at_time, source, metadata
                        )

                if created:
                    duty_status_changed.send(
                        sender=self.__class__,
                        driver_id=driver_id,
                        intervals=[interval],
                        change="append",
                    )
            return interval

        except HOSEngineError:
            raise
        except self.model.DoesNotExist:
            raise
        except Exception as e:
            self.logger.error(f"Failed to append status for driver {driver_id}: {str(e)}")
            raise DutyTimelineError(f"Failed to append status: {str(e)}")

    def amend_interval(
        self,
        original_id,
        new_status: str,
        new_start: datetime,
        new_end: Optional[datetime],
        edit_reason: str,
        source: str = "MANUAL",
        metadata: Optional[Dict] = None,
        timeout: Optional[float] = None,
    ):
        """
        Replace one active interval with a corrected one.

        Returns:
            The superseding DutyInterval
        """
        original = self.store.get_interval(original_id)
        replacements = self.amend_intervals(
            original.driver_id,
            [
                IntervalAmendment(
                    original_id=original.id,
                    new_status=new_status,
                    new_start=new_start,
                    new_end=new_end,
                    source=source,
                    metadata=metadata or {},
                )
            ],
            edit_reason,
            timeout=timeout,
        )
        return replacements[0]

    def amend_intervals(
        self,
        driver_id,
        amendments: List[IntervalAmendment],
        edit_reason: str,
        timeout: Optional[float] = None,
    ):
        """
        Apply a batch of amendments as one all-or-nothing change.

        The replacements are validated together against the active timeline
        with the originals removed, so neighbours can be reshaped in a
        single call.

        Args:
            driver_id: Driver whose timeline is amended
            amendments: Replacement values
            edit_reason: Justification stored on every replacement
            timeout: Seconds allowed for the lock and the writes

        Returns:
            List of superseding intervals, in the order of ``amendments``

        Raises:
            MissingEditReason: If edit_reason is blank
            AlreadySuperseded: If an original is no longer active
            ConflictingInterval: If the result would overlap or uncover time
        """
        if not edit_reason or not edit_reason.strip():
            raise MissingEditReason("Amendments require a non-empty edit_reason")
        if not amendments:
            raise ValueError("At least one amendment is required")

        for amendment in amendments:
            self._validate_status(amendment.new_status)
            self._validate_aware(amendment.new_start, "new_start")
            if amendment.new_end is not None:
                self._validate_aware(amendment.new_end, "new_end")
                if amendment.new_end <= amendment.new_start:
                    raise ValueError("new_end must be after new_start")

        original_ids = [str(a.original_id) for a in amendments]
        if len(set(original_ids)) != len(original_ids):
            raise ValueError("Each interval may appear only once in an amendment batch")

        try:
            with driver_locks.hold(driver_id, timeout):
                with self.store.atomic(timeout):
                    self.store.lock_driver(driver_id)
                    replacements = self._apply_amendments(driver_id, amendments, edit_reason)

                duty_status_changed.send(
                    sender=self.__class__,
                    driver_id=driver_id,
                    intervals=replacements,
                    change="amend",
                )
            return replacements

        except HOSEngineError:
            raise
        except self.model.DoesNotExist:
            raise
        except Exception as e:
            self.logger.error(f"Failed to amend timeline for driver {driver_id}: {str(e)}")
            raise DutyTimelineError(f"Failed to amend timeline: {str(e)}")

    def reconstruct_timeline(self, driver_id, as_of: Optional[datetime] = None) -> TimelineView:
        """
        Return the driver's active timeline as it was known at as_of.

        Intervals are ascending by start time; only records started, written
        and not yet superseded by as_of are included.
        """
        if as_of is None:
            as_of = timezone.now()
        self._validate_aware(as_of, "as_of")
        return TimelineView(self.store, driver_id, as_of)

    def _append_live(self, driver_id, status, at_time, source, metadata):
        """Close the open interval and open a new one."""
        open_interval = self.store.lock_open_interval(driver_id)

        if open_interval is not None:
            if at_time < open_interval.start_time:
                self.logger.warning(
                    f"Out-of-order {source} event for driver {driver_id}: "
                    f"{at_time.isoformat()} precedes open interval start "
                    f"{open_interval.start_time.isoformat()}"
                )
                raise OutOfOrderEvent(
                    f"Event at {at_time.isoformat()} precedes the current status "
                    f"started at {open_interval.start_time.isoformat()}; submit it as an amendment"
                )

            if open_interval.status == status:
                self.logger.debug(
                    f"Driver {driver_id} already {status} since "
                    f"{open_interval.start_time.isoformat()}, ignoring repeated event"
                )
                return open_interval, False

            if at_time == open_interval.start_time:
                raise OutOfOrderEvent(
                    f"A status change is already recorded at {at_time.isoformat()}; "
                    f"submit the correction as an amendment"
                )

            self.store.close_interval(open_interval, at_time)
            previous_status = open_interval.status
        else:
            last_interval = self.store.get_last_interval(driver_id)
            if last_interval is not None and last_interval.end_time is None:
                raise ConflictingInterval(
                    f"Driver {driver_id} gained an open interval {last_interval.id} while "
                    f"this event was applied; resubmit the event"
                )
            if last_interval is not None and at_time < last_interval.end_time:
                raise OutOfOrderEvent(
                    f"Event at {at_time.isoformat()} precedes the last recorded event "
                    f"at {last_interval.end_time.isoformat()}; submit it as an amendment"
                )
            if last_interval is not None and at_time > last_interval.end_time:
                self.logger.warning(
                    f"Driver {driver_id} has unrecorded time between "
                    f"{last_interval.end_time.isoformat()} and {at_time.isoformat()}"
                )
            previous_status = None

        interval = self.model(
            driver_id=driver_id,
            status=status,
            start_time=at_time,
            source=source,
            **self._metadata_fields(metadata),
        )
        self.store.save_interval(interval)

        self.logger.info(
            f"Status change recorded for driver {driver_id}: {previous_status} -> {status} "
            f"at {at_time.isoformat()} ({source})"
        )
        return interval, True

    def _fill_gap(self, driver_id, status, at_time, end_time, metadata):
        """Record an inferred interval over time no other interval covers."""
        covering = self.store.get_covering_interval(driver_id, at_time)
        if covering is not None:
            raise ConflictingInterval(
                f"Inferred {status} at {at_time.isoformat()} overlaps {covering.source} "
                f"interval {covering.id}; inferred data only fills gaps"
            )

        next_interval = self.store.get_next_interval(driver_id, at_time)
        gap_end = next_interval.start_time if next_interval is not None else None
        if end_time is not None:
            gap_end = min(end_time, gap_end) if gap_end is not None else end_time

        interval = self.model(
            driver_id=driver_id,
            status=status,
            start_time=at_time,
            end_time=gap_end,
            source=self.model.Source.INFERRED,
            **self._metadata_fields(metadata),
        )
        if not interval.notes:
            interval.notes = self._generate_default_notes(status, gap_end)
        self.store.save_interval(interval)

        self.logger.info(
            f"Inferred {status} for driver {driver_id} from {at_time.isoformat()} "
            f"to {gap_end.isoformat() if gap_end else 'open'}"
        )
        return interval, True

    def _apply_amendments(self, driver_id, amendments, edit_reason):
        originals = []
        for amendment in amendments:
            original = self.store.get_interval(amendment.original_id)
            if str(original.driver_id) != str(driver_id):
                raise ConflictingInterval(
                    f"Interval {original.id} belongs to driver {original.driver_id}, not {driver_id}"
                )
            if not original.is_active:
                raise AlreadySuperseded(
                    f"Interval {original.id} was superseded at "
                    f"{original.superseded_at.isoformat()}; amend the active interval instead"
                )
            if (
                amendment.source == self.model.Source.INFERRED
                and original.is_live_source()
            ):
                raise ConflictingInterval(
                    f"Inferred data cannot override {original.source} interval {original.id}"
                )
            originals.append(original)

        active = self.store.load_intervals(driver_id)
        replaced_ids = {original.id for original in originals}
        remaining = [interval for interval in active if interval.id not in replaced_ids]
        proposed = [(a.new_start, a.new_end) for a in amendments]
        self._check_layout(active, remaining, proposed)

        amended_at = timezone.now()
        for original in originals:
            self.store.mark_superseded(original, amended_at)

        replacements = []
        for amendment, original in zip(amendments, originals):
            fields = {name: getattr(original, name) for name in METADATA_FIELDS}
            fields.update(self._metadata_fields(amendment.metadata))
            replacement = self.model(
                driver_id=original.driver_id,
                status=amendment.new_status,
                start_time=amendment.new_start,
                end_time=amendment.new_end,
                source=amendment.source,
                edit_reason=edit_reason.strip(),
                supersedes=original,
                created_at=amended_at,
                **fields,
            )
            self.store.save_interval(replacement)
            replacements.append(replacement)

            self.logger.info(
                f"Interval {original.id} ({original.status} {original.get_time_range_display()}) "
                f"superseded by {replacement.id} ({replacement.status} "
                f"{replacement.get_time_range_display()}) for driver {driver_id}"
            )

        return replacements

    def _check_layout(self, active, remaining, proposed):
        """
        Validate the timeline that would result from an amendment batch.

        Raises:
            ConflictingInterval: On overlaps, an open interval that is not
                last, or time the current timeline covers becoming uncovered
        """
        spans = [(i.start_time, i.end_time) for i in remaining] + list(proposed)
        spans.sort(key=lambda span: span[0])

        if spans and active:
            first_start = spans[0][0]
            recorded_from = min(interval.start_time for interval in active)
            if recorded_from < first_start and self._covers_any(active, recorded_from, first_start):
                raise ConflictingInterval(
                    f"Amendment would leave {recorded_from.isoformat()} - {first_start.isoformat()} "
                    f"unrecorded; amend neighbouring intervals in the same batch"
                )

        for (start, end), (next_start, next_end) in zip(spans, spans[1:]):
            if end is None or end > next_start:
                raise ConflictingInterval(
                    f"Interval starting {start.isoformat()} would overlap the interval "
                    f"starting {next_start.isoformat()}; amend neighbouring intervals in the same batch"
                )
            if end < next_start and self._covers_any(active, end, next_start):
                raise ConflictingInterval(
                    f"Amendment would leave {end.isoformat()} - {next_start.isoformat()} "
                    f"unrecorded; amend neighbouring intervals in the same batch"
                )

        if spans:
            last_start, last_end = spans[-1]
            if last_end is not None and self._covers_any(active, last_end, None):
                raise ConflictingInterval(
                    f"Amendment would leave time after {last_end.isoformat()} unrecorded"
                )

    def verify_timeline(self, driver_id) -> Dict:
        """
        Check the stored active timeline for integrity problems.

        Overlaps cannot be produced through this service; finding one means
        the store was written around it and needs a compliance reviewer.

        Returns:
            Dict with 'gaps', 'overlaps' and 'open_intervals' lists
        """
        intervals = self.store.load_intervals(driver_id)
        gaps = []
        overlaps = []
        for previous, current in zip(intervals, intervals[1:]):
            if previous.end_time is None or previous.end_time > current.start_time:
                overlaps.append((previous.id, current.id))
            elif previous.end_time < current.start_time:
                gaps.append((previous.end_time, current.start_time))

        open_intervals = [interval.id for interval in intervals if interval.is_open]
        if overlaps or len(open_intervals) > 1:
            self.logger.error(
                f"Timeline for driver {driver_id} is inconsistent: {len(overlaps)} overlaps, "
                f"{len(open_intervals)} open intervals; compliance review required"
            )
        return {"gaps": gaps, "overlaps": overlaps, "open_intervals": open_intervals}

    @staticmethod
    def _covers_any(intervals, start, end):
        """Whether any interval overlaps [start, end); end None means unbounded."""
        for interval in intervals:
            starts_before_end = end is None or interval.start_time < end
            ends_after_start = interval.end_time is None or interval.end_time > start
            if starts_before_end and ends_after_start:
                return True
        return False

    def _validate_status(self, status):
        if status not in self.model.DutyStatus.values:
            raise ValueError(f"Invalid duty status: {status}")

    @staticmethod
    def _validate_aware(value, name):
        if timezone.is_naive(value):
            raise ValueError(f"{name} must be timezone-aware")

    @staticmethod
    def _metadata_fields(metadata):
        metadata = metadata or {}
        return {
            name: metadata[name]
            for name in METADATA_FIELDS
            if metadata.get(name) is not None
        }

    def _generate_default_notes(self, status, gap_end):
        """Generate default remarks for inferred intervals."""
        label = dict(self.model.DutyStatus.choices).get(status, status)
        if gap_end is None:
            return f"{label} inferred, no later records"
        return f"{label} inferred to fill unrecorded time"


class DutyTimelineError(Exception):
    """Custom exception for unexpected duty timeline failures."""
    pass
