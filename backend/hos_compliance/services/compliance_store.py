"""
Compliance Store Service.

Django ORM persistence for the compliance side of the engine:
- Driver HOS profiles, including the row lock that serializes a driver
  across worker processes
- Idempotent violation upserts keyed by (driver_id, rule_code, window_start)
- Acknowledgement and annotation of recorded violations

Single Responsibility: Persistence of profiles and violations.
"""

import logging

from django.db import IntegrityError, transaction

from duty_timeline.services.timeline_store import store_errors
from ..models import DriverHOSProfile, Violation, ViolationAnnotation

logger = logging.getLogger(__name__)


class ComplianceStore:
    """ORM-backed store for DriverHOSProfile, Violation and ViolationAnnotation."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def get_profile(self, driver_id, lock=False):
        """
        Fetch the driver's HOS profile, creating it with defaults on first use.

        Args:
            driver_id: Driver identifier
            lock: Row-lock the profile until the surrounding transaction ends
        """
        with store_errors("Loading HOS profile"):
            profile, created = DriverHOSProfile.objects.get_or_create(driver_id=driver_id)
            if created:
                self.logger.info(
                    f"Created HOS profile for driver {driver_id} "
                    f"({profile.cycle_rule}, {profile.home_terminal_timezone})"
                )
            if lock:
                profile = DriverHOSProfile.objects.select_for_update().get(pk=profile.pk)
            return profile

    def save_profile(self, profile, fields=None):
        with store_errors("Saving HOS profile"):
            profile.save(update_fields=fields)
        return profile

    def profiles_available_for(self, required_mins):
        """Profiles whose cached availability covers required_mins on every clock."""
        with store_errors("Listing available drivers"):
            return list(
                DriverHOSProfile.objects.filter(
                    available_drive_mins__gte=required_mins,
                    available_duty_mins__gte=required_mins,
                    available_cycle_mins__gte=required_mins,
                ).order_by("-available_drive_mins")
            )

    def save_violation(self, driver_id, finding):
        """
        Insert a violation unless one with the same key already exists.

        Returns:
            Tuple (violation, created)
        """
        with store_errors("Saving violation"):
            try:
                with transaction.atomic():
                    return Violation.objects.get_or_create(
                        driver_id=driver_id,
                        rule_code=finding.rule_code,
                        window_start=finding.window_start,
                        defaults={
                            "window_end": finding.window_end,
                            "severity": finding.severity,
                            "description": finding.description[:255],
                            "duration_mins": finding.duration_mins,
                        },
                    )
            except IntegrityError:
                # Inserted concurrently by another worker
                existing = Violation.objects.get(
                    driver_id=driver_id,
                    rule_code=finding.rule_code,
                    window_start=finding.window_start,
                )
                return existing, False

    def get_violation(self, violation_id):
        """Fetch one violation; raises Violation.DoesNotExist."""
        with store_errors("Fetching violation"):
            return Violation.objects.get(pk=violation_id)

    def list_unacknowledged(self, driver_id):
        with store_errors("Listing violations"):
            return list(
                Violation.objects.filter(driver_id=driver_id, acknowledged=False)
                .order_by("window_start")
            )

    def violations_between(self, driver_id, start, end):
        """Violations whose window starts inside [start, end]."""
        with store_errors("Listing violations"):
            return list(
                Violation.objects.filter(
                    driver_id=driver_id,
                    window_start__gte=start,
                    window_start__lte=end,
                ).order_by("window_start")
            )

    def acknowledge(self, violation_id):
        with store_errors("Acknowledging violation"):
            violation = Violation.objects.get(pk=violation_id)
            return violation.acknowledge()

    def annotate(self, violation, kind, note, source_interval_id=None):
        """
        Append an annotation to a violation, once per (kind, source interval).

        Returns:
            Tuple (annotation, created)
        """
        with store_errors("Annotating violation"):
            with transaction.atomic():
                return ViolationAnnotation.objects.get_or_create(
                    violation=violation,
                    kind=kind,
                    source_interval_id=source_interval_id,
                    defaults={"note": note[:255]},
                )
