"""
Recompute Coordinator Service.

Schedules and runs the recomputation a timeline change triggers:
- Records the pending scope on the driver's profile row, widening it to
  the union when a newer request arrives first
- Discards jobs whose request was superseded
- Refreshes the cached availability and re-scans for violations
- Annotates stored violations the new scan no longer reproduces

Single Responsibility: Recomputation scheduling and execution.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from common.locks import driver_locks
from duty_timeline.services.timeline_store import TimelineStore
from ..models import ViolationAnnotation
from ..signals import violation_detected
from .compliance_store import ComplianceStore
from .rolling_window_calculator import (
    Availability,
    HOSRuleSet,
    RollingWindowCalculatorService,
    local_midnight,
)
from .violation_detector import ViolationDetectorService

logger = logging.getLogger(__name__)

PROFILE_RECOMPUTE_FIELDS = [
    "available_drive_mins",
    "available_duty_mins",
    "available_cycle_mins",
    "needs_break",
    "mins_until_break",
    "last_hos_update",
    "pending_recompute_since",
    "pending_source_interval_id",
]


@dataclass
class RecomputeResult:
    """Outcome of one recomputation job."""

    driver_id: object
    generation: int
    discarded: bool = False
    availability: Optional[Availability] = None
    scope_start: Optional[datetime] = None
    scope_end: Optional[datetime] = None
    new_violations: List = field(default_factory=list)
    annotated_violations: List = field(default_factory=list)

    def as_dict(self):
        return {
            "driver_id": str(self.driver_id),
            "generation": self.generation,
            "discarded": self.discarded,
            "availability": self.availability.as_dict() if self.availability else None,
            "scope_start": self.scope_start.isoformat() if self.scope_start else None,
            "scope_end": self.scope_end.isoformat() if self.scope_end else None,
            "new_violations": [str(v.id) for v in self.new_violations],
            "annotated_violations": [str(v.id) for v in self.annotated_violations],
        }


class RecomputeCoordinator:
    """
    Service for scheduling and running per-driver recomputation.

    With HOS_RECOMPUTE_ASYNC off the job runs inline, inside the driver's
    lock, as soon as it is requested. With it on the job is sent to Celery
    once the requesting transaction commits.
    """

    def __init__(
        self,
        timeline_store: Optional[TimelineStore] = None,
        compliance_store: Optional[ComplianceStore] = None,
        calculator: Optional[RollingWindowCalculatorService] = None,
        detector: Optional[ViolationDetectorService] = None,
    ):
        """Initialize recompute coordinator."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.timeline_store = timeline_store or TimelineStore()
        self.compliance_store = compliance_store or ComplianceStore()
        self.calculator = calculator or RollingWindowCalculatorService()
        self.detector = detector or ViolationDetectorService()

    def enqueue(self, driver_id, since: datetime, source_interval_id=None, timeout=None):
        """
        Request recomputation of a driver's timeline from since to now.

        Args:
            driver_id: Driver identifier
            since: Earliest instant whose clocks may have changed
            source_interval_id: Interval whose change triggered the request
            timeout: Seconds allowed for the driver lock

        Returns:
            RecomputeResult when run inline, None when dispatched to Celery
        """
        with driver_locks.hold(driver_id, timeout):
            with transaction.atomic():
                profile = self.compliance_store.get_profile(driver_id, lock=True)
                pending = profile.pending_recompute_since
                if pending is None or since < pending:
                    profile.pending_recompute_since = since
                if source_interval_id is not None:
                    profile.pending_source_interval_id = source_interval_id
                profile.recompute_generation += 1
                self.compliance_store.save_profile(
                    profile,
                    fields=[
                        "pending_recompute_since",
                        "pending_source_interval_id",
                        "recompute_generation",
                    ],
                )
                generation = profile.recompute_generation

                self.logger.debug(
                    f"Recompute requested for driver {driver_id} from "
                    f"{profile.pending_recompute_since.isoformat()} (generation {generation})"
                )

                if settings.HOS_RECOMPUTE_ASYNC:
                    from ..tasks import recompute_driver_hos

                    transaction.on_commit(
                        lambda: recompute_driver_hos.delay(str(driver_id), generation)
                    )
                    return None

            return self.run(driver_id, generation, timeout=timeout)

    def run(self, driver_id, generation: Optional[int] = None, now: Optional[datetime] = None,
            timeout=None) -> RecomputeResult:
        """
        Run the pending recomputation for a driver.

        Args:
            driver_id: Driver identifier
            generation: Request version this job was created for; a job
                whose version is no longer current is discarded
            now: Evaluation instant (default: current time)
            timeout: Seconds allowed for the driver lock

        Returns:
            RecomputeResult describing what was refreshed
        """
        with driver_locks.hold(driver_id, timeout):
            with transaction.atomic():
                profile = self.compliance_store.get_profile(driver_id, lock=True)

                if generation is not None and profile.recompute_generation != generation:
                    self.logger.info(
                        f"Discarding stale recompute for driver {driver_id}: generation "
                        f"{generation} superseded by {profile.recompute_generation}"
                    )
                    return RecomputeResult(driver_id=driver_id, generation=generation, discarded=True)

                now = now or timezone.now()
                since = min(profile.pending_recompute_since or now, now)
                source_interval_id = profile.pending_source_interval_id

                rules = HOSRuleSet.for_cycle_rule(profile.cycle_rule)
                home_tz = profile.home_tz
                scope_end = min(now, self.scope_end(since, rules, home_tz))

                intervals = self.timeline_store.load_intervals(
                    driver_id,
                    start=self.calculator.history_start(since, rules),
                    end=now,
                )

                availability = self.calculator.compute_availability(intervals, now, home_tz, rules)

                # A split completed by this change re-bases the current window
                # retroactively, so rescan from where that window opened
                scan_since = since
                if availability.window_start is not None and availability.window_start < since:
                    scan_since = availability.window_start
                findings = self.detector.scan(intervals, scope_end, home_tz, rules, since=scan_since)

                new_violations = []
                for finding in findings:
                    violation, created = self.compliance_store.save_violation(driver_id, finding)
                    if created:
                        new_violations.append(violation)

                annotated = self._annotate_cleared(
                    driver_id, findings, scan_since, scope_end, source_interval_id
                )

                profile.apply_availability(availability)
                profile.pending_recompute_since = None
                profile.pending_source_interval_id = None
                self.compliance_store.save_profile(profile, fields=PROFILE_RECOMPUTE_FIELDS)

            for violation in new_violations:
                self.logger.warning(
                    f"{violation.rule_code} violation for driver {driver_id} from "
                    f"{violation.window_start.isoformat()} ({violation.severity})"
                )
                violation_detected.send(sender=self.__class__, driver_id=driver_id, violation=violation)

            self.logger.info(
                f"Recomputed driver {driver_id} from {since.isoformat()}: drive="
                f"{availability.drive_mins} duty={availability.duty_mins} "
                f"cycle={availability.cycle_mins}, {len(new_violations)} new violation(s)"
            )
            return RecomputeResult(
                driver_id=driver_id,
                generation=profile.recompute_generation,
                availability=availability,
                scope_start=since,
                scope_end=scope_end,
                new_violations=new_violations,
                annotated_violations=annotated,
            )

    @staticmethod
    def scope_end(since: datetime, rules: HOSRuleSet, home_tz) -> datetime:
        """End of the cycle window that starts on since's home-terminal day."""
        local_day = since.astimezone(home_tz).date()
        return local_midnight(local_day + timedelta(days=rules.cycle_days), home_tz)

    def _annotate_cleared(self, driver_id, findings, since, scope_end, source_interval_id):
        """Note stored violations in the scope that the new scan no longer reproduces."""
        reproduced = {finding.key for finding in findings}
        annotated = []

        for violation in self.compliance_store.violations_between(driver_id, since, scope_end):
            if (violation.rule_code, violation.window_start) in reproduced:
                continue
            if source_interval_id is not None:
                note = (
                    f"Condition no longer present after change to interval {source_interval_id}; "
                    f"kept as detected on {violation.detected_at.isoformat()}"
                )
            else:
                note = (
                    f"Condition not reproduced by recomputation from {since.isoformat()}; "
                    f"kept as detected on {violation.detected_at.isoformat()}"
                )
            _, created = self.compliance_store.annotate(
                violation,
                ViolationAnnotation.Kind.CONDITION_CLEARED,
                note,
                source_interval_id=source_interval_id,
            )
            if created:
                self.logger.info(
                    f"Violation {violation.id} ({violation.rule_code}) no longer reproduced "
                    f"for driver {driver_id}; annotated"
                )
                annotated.append(violation)

        return annotated


recompute_coordinator = RecomputeCoordinator()
