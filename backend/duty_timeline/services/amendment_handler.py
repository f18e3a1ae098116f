"""
Amendment Handler Service.

Front door for corrections to a driver's recorded duty statuses.

This service handles:
- Edit-reason enforcement
- Applying single and batch amendments through the duty timeline
- Requesting exactly one recomputation per accepted amendment
- Reading back the full amendment history of an interval

Single Responsibility: Amendment audit trail and recompute triggering.
"""

import logging
from typing import Callable, List, Optional

from common.exceptions import MissingEditReason, StoreError
from common.locks import driver_locks
from .duty_status_timeline import DutyStatusTimelineService, IntervalAmendment

logger = logging.getLogger(__name__)


class AmendmentHandlerService:
    """
    Service for applying audited amendments to duty timelines.

    Originals are never modified beyond being marked superseded, so the
    chain of records for any instant can always be read back.
    """

    def __init__(
        self,
        timeline: Optional[DutyStatusTimelineService] = None,
        recompute: Optional[Callable] = None,
    ):
        """
        Initialize amendment handler.

        Args:
            timeline: Duty timeline service performing the writes
            recompute: Callable(driver_id, since, source_interval_id, timeout)
                requesting recomputation; defaults to the HOS compliance
                recompute coordinator
        """
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.timeline = timeline or DutyStatusTimelineService()
        self._recompute = recompute

    @property
    def recompute(self):
        if self._recompute is None:
            from hos_compliance.services.recompute_coordinator import recompute_coordinator
            self._recompute = recompute_coordinator.enqueue
        return self._recompute

    def amend_interval(
        self,
        original_id,
        new_status: str,
        new_start,
        new_end,
        edit_reason: str,
        source: str = "MANUAL",
        metadata=None,
        timeout: Optional[float] = None,
    ):
        """
        Replace one active interval and recompute the driver's clocks.

        Args:
            original_id: Interval being corrected (must be active)
            new_status: Corrected duty status
            new_start: Corrected start time
            new_end: Corrected end time (None keeps the interval open)
            edit_reason: Required justification
            source: Source of the correction (default MANUAL)
            metadata: Optional location/notes overrides
            timeout: Seconds allowed for the lock and the writes

        Returns:
            The superseding DutyInterval

        Raises:
            MissingEditReason, AlreadySuperseded, ConflictingInterval
        """
        self._require_reason(edit_reason)
        original = self.timeline.store.get_interval(original_id)

        with driver_locks.hold(original.driver_id, timeout):
            replacement = self.timeline.amend_interval(
                original_id,
                new_status,
                new_start,
                new_end,
                edit_reason,
                source=source,
                metadata=metadata,
                timeout=timeout,
            )
            self._request_recompute(
                original.driver_id,
                since=min(original.start_time, replacement.start_time),
                source_interval_id=replacement.id,
                timeout=timeout,
            )

        self.logger.info(
            f"Amendment accepted for driver {original.driver_id}: interval {original.id} "
            f"-> {replacement.id} ({edit_reason.strip()})"
        )
        return replacement

    def amend_batch(
        self,
        driver_id,
        amendments: List[IntervalAmendment],
        edit_reason: str,
        timeout: Optional[float] = None,
    ):
        """
        Apply several amendments as one change and recompute once.

        Returns:
            List of superseding intervals in the order of ``amendments``
        """
        self._require_reason(edit_reason)

        with driver_locks.hold(driver_id, timeout):
            originals = [self.timeline.store.get_interval(a.original_id) for a in amendments]
            replacements = self.timeline.amend_intervals(
                driver_id, amendments, edit_reason, timeout=timeout
            )
            since = min(
                [interval.start_time for interval in originals]
                + [interval.start_time for interval in replacements]
            )
            self._request_recompute(
                driver_id,
                since=since,
                source_interval_id=replacements[0].id,
                timeout=timeout,
            )

        self.logger.info(
            f"Batch amendment of {len(replacements)} interval(s) accepted for driver "
            f"{driver_id} ({edit_reason.strip()})"
        )
        return replacements

    def get_amendment_history(self, interval_id):
        """
        Return every version of an interval, oldest first.

        Follows ``supersedes`` back to the originally recorded interval and
        ``superseded_by`` forward to the active one.
        """
        interval = self.timeline.store.get_interval(interval_id)

        chain = [interval]
        current = interval
        while current.supersedes_id is not None:
            current = current.supersedes
            chain.insert(0, current)

        current = interval
        while True:
            successor = current.superseded_by.order_by("created_at").first()
            if successor is None:
                break
            chain.append(successor)
            current = successor

        return chain

    def _request_recompute(self, driver_id, since, source_interval_id, timeout):
        try:
            self.recompute(
                driver_id,
                since=since,
                source_interval_id=source_interval_id,
                timeout=timeout,
            )
        except StoreError as e:
            # The amendment is committed and the scope stays pending on the
            # driver's profile for the next recompute or sweep
            self.logger.error(
                f"Recompute after amendment for driver {driver_id} failed and remains "
                f"pending: {str(e)}"
            )
        except Exception as e:
            self.logger.exception(
                f"Recompute after amendment for driver {driver_id} raised {e.__class__.__name__} "
                f"and remains pending: {str(e)}"
            )

    @staticmethod
    def _require_reason(edit_reason):
        if not edit_reason or not edit_reason.strip():
            raise MissingEditReason("Amendments require a non-empty edit_reason")
