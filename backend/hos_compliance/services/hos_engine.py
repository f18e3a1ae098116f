"""
HOS Engine Service.

The interface dispatch, ELD ingestion and compliance dashboards call:
- Ingestion: report a status change, amend one or several status changes
- Availability: remaining minutes per clock, can-drive checks,
  drivers available for a job
- Violations: unacknowledged list, acknowledgement
- Daily summary of a driver's home-terminal day

Single Responsibility: Orchestrating the timeline and compliance services.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from django.utils import timezone

from common.locks import driver_locks
from common.validators import validate_timezone_name
from duty_timeline.services import (
    AmendmentHandlerService,
    DutyStatusTimelineService,
    IntervalAmendment,
    TimelineStore,
)
from .compliance_store import ComplianceStore
from .recompute_coordinator import RecomputeCoordinator, recompute_coordinator
from .rolling_window_calculator import (
    Availability,
    HOSRuleSet,
    RollingWindowCalculatorService,
    build_segments,
    floor_minutes,
    local_midnight,
    status_minutes,
)

logger = logging.getLogger(__name__)


class HOSEngineService:
    """
    Service exposing the HOS engine's ingestion, availability and violation APIs.

    Every mutation holds the driver's lock across the timeline write and the
    recomputation it requests.
    """

    def __init__(
        self,
        timeline_store: Optional[TimelineStore] = None,
        compliance_store: Optional[ComplianceStore] = None,
        coordinator: Optional[RecomputeCoordinator] = None,
    ):
        """Initialize the HOS engine."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.timeline_store = timeline_store or TimelineStore()
        self.compliance_store = compliance_store or ComplianceStore()
        self.coordinator = coordinator or recompute_coordinator
        self.timeline = DutyStatusTimelineService(store=self.timeline_store)
        self.amendments = AmendmentHandlerService(
            timeline=self.timeline, recompute=self.coordinator.enqueue
        )
        self.calculator = RollingWindowCalculatorService()

    # ------------------------------------------------------------------
    # Ingestion API
    # ------------------------------------------------------------------

    def report_status_change(
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
        Record a new duty status and refresh the driver's clocks.

        Returns:
            The DutyInterval describing the driver's status at at_time
        """
        with driver_locks.hold(driver_id, timeout):
            interval = self.timeline.append_status(
                driver_id,
                status,
                at_time,
                source=source,
                metadata=metadata,
                end_time=end_time,
                timeout=timeout,
            )
            self.coordinator.enqueue(
                driver_id, since=at_time, source_interval_id=None, timeout=timeout
            )
        return interval

    def amend_status_change(
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
        """Correct one recorded interval; see AmendmentHandlerService.amend_interval."""
        return self.amendments.amend_interval(
            original_id,
            new_status,
            new_start,
            new_end,
            edit_reason,
            source=source,
            metadata=metadata,
            timeout=timeout,
        )

    def amend_status_changes(
        self,
        driver_id,
        amendments: List[IntervalAmendment],
        edit_reason: str,
        timeout: Optional[float] = None,
    ):
        """Correct several neighbouring intervals as one change."""
        return self.amendments.amend_batch(driver_id, amendments, edit_reason, timeout=timeout)

    def reconstruct_timeline(self, driver_id, as_of: Optional[datetime] = None):
        return self.timeline.reconstruct_timeline(driver_id, as_of)

    # ------------------------------------------------------------------
    # Availability API
    # ------------------------------------------------------------------

    def get_availability(self, driver_id, as_of: Optional[datetime] = None) -> Availability:
        """
        Compute remaining drive, duty and cycle minutes as of an instant.

        Args:
            driver_id: Driver identifier
            as_of: Evaluation instant (default: now)

        Returns:
            Availability computed from the active timeline
        """
        as_of = as_of or timezone.now()
        profile = self.compliance_store.get_profile(driver_id)
        rules = HOSRuleSet.for_cycle_rule(profile.cycle_rule)

        intervals = self.timeline_store.load_intervals(
            driver_id, start=self.calculator.history_start(as_of, rules), end=as_of
        )
        return self.calculator.compute_availability(intervals, as_of, profile.home_tz, rules)

    def can_drive(self, driver_id, required_mins: int, as_of: Optional[datetime] = None) -> bool:
        """True iff the driver has at least required_mins left on every clock."""
        if required_mins < 0:
            raise ValueError("required_mins must be non-negative")
        return self.get_availability(driver_id, as_of).can_drive(required_mins)

    def get_available_drivers(self, required_mins: int):
        """
        Drivers whose cached availability covers required_mins.

        Uses the figures stored by the last recomputation, so it stays cheap
        across the whole fleet.
        """
        if required_mins < 0:
            raise ValueError("required_mins must be non-negative")
        return self.compliance_store.profiles_available_for(required_mins)

    def update_profile(self, driver_id, cycle_rule: Optional[str] = None,
                       home_terminal_timezone: Optional[str] = None):
        """Change a driver's cycle rule or home terminal and refresh the clocks."""
        with driver_locks.hold(driver_id):
            profile = self.compliance_store.get_profile(driver_id)
            fields = []
            if cycle_rule is not None:
                HOSRuleSet.for_cycle_rule(cycle_rule)
                profile.cycle_rule = cycle_rule
                fields.append("cycle_rule")
            if home_terminal_timezone is not None:
                validate_timezone_name(home_terminal_timezone)
                profile.home_terminal_timezone = home_terminal_timezone
                fields.append("home_terminal_timezone")
            if fields:
                self.compliance_store.save_profile(profile, fields=fields)
                self.logger.info(f"Updated HOS profile for driver {driver_id}: {', '.join(fields)}")
                self.coordinator.enqueue(driver_id, since=timezone.now())
            profile.refresh_from_db()
            return profile

    # ------------------------------------------------------------------
    # Violation API
    # ------------------------------------------------------------------

    def list_unacknowledged(self, driver_id):
        return self.compliance_store.list_unacknowledged(driver_id)

    def acknowledge(self, violation_id):
        violation = self.compliance_store.acknowledge(violation_id)
        self.logger.info(f"Violation {violation_id} acknowledged")
        return violation

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_daily_summary(self, driver_id, day: date) -> Dict:
        """
        Summarize one home-terminal calendar day for a driver.

        Returns:
            Dict with minutes per duty status, availability at the end of the
            day (or now, for today) and the violations that started that day
        """
        profile = self.compliance_store.get_profile(driver_id)
        rules = HOSRuleSet.for_cycle_rule(profile.cycle_rule)
        home_tz = profile.home_tz

        day_start = local_midnight(day, home_tz)
        now = timezone.now()
        if day_start > now:
            raise ValueError(f"{day.isoformat()} has not started yet")
        day_end = min(local_midnight(day + timedelta(days=1), home_tz), now)

        intervals = self.timeline_store.load_intervals(
            driver_id, start=self.calculator.history_start(day_start, rules), end=day_end
        )
        totals = status_minutes(build_segments(intervals, day_end), day_start, day_end)
        availability = self.calculator.compute_availability(intervals, day_end, home_tz, rules)
        violations = self.compliance_store.violations_between(driver_id, day_start, day_end)

        return {
            "driver_id": str(driver_id),
            "date": day,
            "driving_mins": floor_minutes(totals["DRIVING"]),
            "on_duty_mins": floor_minutes(totals["ON_DUTY_NOT_DRIVING"]),
            "off_duty_mins": floor_minutes(totals["OFF_DUTY"]),
            "sleeper_mins": floor_minutes(totals["SLEEPER_BERTH"]),
            "availability": availability,
            "violations": violations,
        }
