"""
Timeline Store Service for duty-status intervals.

Django ORM implementation of the timeline store:
- Ordered reads of a driver's intervals over a time range
- Single-record interval writes inside one atomic scope per mutation
- Supersede bookkeeping for the append-only amendment log
- Translation of database failures into the engine's store errors

Single Responsibility: Persistence of duty intervals
"""

import logging
import time
from contextlib import contextmanager

from django.apps import apps
from django.conf import settings
from django.db import (
    DatabaseError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    connection,
    transaction,
)
from django.db.models import Q

from common.exceptions import ConflictingInterval, StoreTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

TIMEOUT_MARKERS = ("lock", "timeout", "timed out", "canceling statement")


@contextmanager
def store_errors(operation):
    """Translate database exceptions raised inside the block into store errors."""
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"{operation} rejected by integrity constraint: {e}")
        raise ConflictingInterval(f"{operation} conflicts with an existing interval: {e}")
    except OperationalError as e:
        message = str(e).lower()
        if any(marker in message for marker in TIMEOUT_MARKERS):
            logger.error(f"{operation} timed out: {e}")
            raise StoreTimeout(f"{operation} timed out: {e}")
        logger.error(f"{operation} failed, store unavailable: {e}")
        raise StoreUnavailable(f"{operation} failed: {e}")
    except (InterfaceError, DatabaseError) as e:
        logger.error(f"{operation} failed, store unavailable: {e}")
        raise StoreUnavailable(f"{operation} failed: {e}")


class TimelineStore:
    """
    ORM-backed store for DutyInterval records.

    Reads return intervals ordered by start time. Writes are only valid
    inside ``atomic()``; if the block raises, nothing it wrote is kept.
    """

    ITERATOR_CHUNK_SIZE = 500

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._deadline = None

    @property
    def model(self):
        from ..models import DutyInterval
        return DutyInterval

    # ------------------------------------------------------------------
    # Transaction scope
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self, timeout=None):
        """
        Open the atomic write scope for one mutation.

        Args:
            timeout: Seconds the whole mutation may take, defaults to
                HOS_STORE_TIMEOUT_SECONDS

        Raises:
            StoreTimeout: If a write is attempted after the deadline passed
            StoreUnavailable: If the database cannot be reached
        """
        if timeout is None:
            timeout = settings.HOS_STORE_TIMEOUT_SECONDS

        outer_deadline = self._deadline
        self._deadline = time.monotonic() + timeout
        try:
            with store_errors("Timeline transaction"):
                with transaction.atomic():
                    if connection.vendor == "postgresql":
                        with connection.cursor() as cursor:
                            cursor.execute(
                                "SET LOCAL statement_timeout = %s", [int(timeout * 1000)]
                            )
                    yield self
        finally:
            self._deadline = outer_deadline

    def check_deadline(self, operation):
        """Raise StoreTimeout when the current mutation has run out of time."""
        if self._deadline is not None and time.monotonic() > self._deadline:
            self.logger.error(f"{operation} exceeded the store timeout")
            raise StoreTimeout(f"{operation} exceeded the store timeout")

    def lock_driver(self, driver_id):
        """
        Take the database-level lock for one driver until the transaction ends.

        The driver's HOS profile row is the lock, the same row recomputation
        locks, so every mutation of one driver runs alone across worker
        processes. The row is created on first use.
        """
        profile_model = apps.get_model("hos_compliance", "DriverHOSProfile")
        with store_errors("Locking driver"):
            profile, _ = profile_model.objects.get_or_create(driver_id=driver_id)
            return profile_model.objects.select_for_update().get(pk=profile.pk)

    def lock_open_interval(self, driver_id):
        """Row-lock the driver's open interval for the rest of the transaction."""
        with store_errors("Locking open interval"):
            return (
                self.model.objects.select_for_update()
                .filter(driver_id=driver_id, end_time__isnull=True, superseded_at__isnull=True)
                .first()
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _active(self, driver_id):
        return self.model.objects.filter(driver_id=driver_id, superseded_at__isnull=True)

    def load_intervals(self, driver_id, start=None, end=None, include_superseded=False):
        """
        Load a driver's intervals overlapping [start, end], ordered by start time.

        Args:
            driver_id: Driver identifier
            start: Lower bound; intervals ending at or before it are skipped
            end: Upper bound; intervals starting after it are skipped
            include_superseded: Also return replaced records (audit views)

        Returns:
            List of DutyInterval instances
        """
        if include_superseded:
            queryset = self.model.objects.filter(driver_id=driver_id)
        else:
            queryset = self._active(driver_id)

        if start is not None:
            queryset = queryset.filter(Q(end_time__isnull=True) | Q(end_time__gt=start))
        if end is not None:
            queryset = queryset.filter(start_time__lte=end)

        with store_errors("Loading intervals"):
            return list(queryset.order_by("start_time", "created_at"))

    def iter_timeline(self, driver_id, as_of):
        """
        Stream the timeline as it was known at ``as_of``.

        Yields intervals that started at or before as_of, were written at
        or before as_of, and had not been superseded by then. An interval
        closed or superseded after as_of is returned as it stood at as_of:
        still open and still active.
        """
        queryset = (
            self.model.objects.filter(
                driver_id=driver_id,
                start_time__lte=as_of,
                created_at__lte=as_of,
            )
            .filter(Q(superseded_at__isnull=True) | Q(superseded_at__gt=as_of))
            .order_by("start_time")
        )
        with store_errors("Reading timeline"):
            for interval in queryset.iterator(chunk_size=self.ITERATOR_CHUNK_SIZE):
                if interval.end_time is not None and interval.end_time > as_of:
                    interval.end_time = None
                if interval.superseded_at is not None and interval.superseded_at > as_of:
                    interval.superseded_at = None
                yield interval

    def get_interval(self, interval_id):
        """Fetch one interval by id; raises DutyInterval.DoesNotExist."""
        with store_errors("Fetching interval"):
            return self.model.objects.get(pk=interval_id)

    def get_open_interval(self, driver_id):
        """Return the driver's current (open, active) interval, if any."""
        with store_errors("Fetching open interval"):
            return self._active(driver_id).filter(end_time__isnull=True).first()

    def get_last_interval(self, driver_id):
        """Return the driver's latest active interval, open or closed."""
        with store_errors("Fetching last interval"):
            return self._active(driver_id).order_by("-start_time").first()

    def get_covering_interval(self, driver_id, instant):
        """Return the active interval covering instant, if any."""
        with store_errors("Fetching covering interval"):
            return (
                self._active(driver_id)
                .filter(start_time__lte=instant)
                .filter(Q(end_time__isnull=True) | Q(end_time__gt=instant))
                .first()
            )

    def get_next_interval(self, driver_id, instant):
        """Return the first active interval starting after instant, if any."""
        with store_errors("Fetching next interval"):
            return (
                self._active(driver_id)
                .filter(start_time__gt=instant)
                .order_by("start_time")
                .first()
            )

    def driver_ids(self):
        """Return the ids of every driver with at least one interval."""
        with store_errors("Listing drivers"):
            return list(
                self.model.objects.order_by().values_list("driver_id", flat=True).distinct()
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_interval(self, interval):
        """
        Persist one interval.

        Returns:
            The saved DutyInterval

        Raises:
            ConflictingInterval: If a database constraint rejects the row
            StoreTimeout / StoreUnavailable: On transient store failures
        """
        self.check_deadline("Saving interval")
        with store_errors("Saving interval"):
            # Savepoint so a constraint failure leaves the outer transaction usable
            with transaction.atomic():
                interval.save()
        self.logger.debug(
            f"Saved {interval.status} interval {interval.id} for driver {interval.driver_id}"
        )
        return interval

    def close_interval(self, interval, end_time):
        """Set the end time of an open interval."""
        self.check_deadline("Closing interval")
        interval.end_time = end_time
        with store_errors("Closing interval"):
            with transaction.atomic():
                interval.save(update_fields=["end_time"])
        return interval

    def mark_superseded(self, interval, superseded_at):
        """Exclude an interval from the active timeline without deleting it."""
        self.check_deadline("Superseding interval")
        interval.superseded_at = superseded_at
        with store_errors("Superseding interval"):
            with transaction.atomic():
                interval.save(update_fields=["superseded_at"])
        return interval
