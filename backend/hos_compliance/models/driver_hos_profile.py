"""
Driver HOS Profile model for HOS compliance tracking.

Contains the DriverHOSProfile model: the per-driver HOS configuration
(home terminal timezone, cycle rule) and the cached availability figures
refreshed by the rolling-window calculator.
"""

import uuid
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import models

from common.validators import (
    validate_cycle_minutes,
    validate_drive_minutes,
    validate_duty_minutes,
    validate_timezone_name,
)


def default_cycle_rule():
    return settings.HOS_DEFAULT_CYCLE_RULE


def default_timezone():
    return settings.HOS_DEFAULT_TIMEZONE


class DriverHOSProfile(models.Model):
    """
    HOS configuration and cached availability for one driver.

    The available_* fields are a cache of the last recomputation, never the
    source of truth; the duty timeline is. They exist so dispatch can filter
    drivers without replaying every timeline.

    Attributes:
        id: UUID primary key
        driver_id: Driver this profile belongs to
        home_terminal_timezone: IANA timezone used for cycle day boundaries
        cycle_rule: 70-hour/8-day or 60-hour/7-day
        available_drive_mins: Cached remaining driving minutes
        available_duty_mins: Cached remaining 14-hour window minutes
        available_cycle_mins: Cached remaining cycle minutes
        needs_break: Whether a 30-minute break is due
        mins_until_break: Driving minutes left before the break is due
        last_hos_update: Instant the cache was computed for
        pending_recompute_since: Scope start of the queued recomputation
        pending_source_interval_id: Interval that triggered it
        recompute_generation: Version of the queued recomputation request
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the HOS profile",
    )

    driver_id = models.UUIDField(
        unique=True,
        help_text="Driver this profile belongs to",
    )

    home_terminal_timezone = models.CharField(
        max_length=64,
        default=default_timezone,
        validators=[validate_timezone_name],
        help_text="IANA timezone of the driver's home terminal (e.g. 'America/Los_Angeles')",
    )

    class CycleRule(models.TextChoices):
        USA_70_8 = "USA_70_8", "70 Hours / 8 Days"
        USA_60_7 = "USA_60_7", "60 Hours / 7 Days"

    cycle_rule = models.CharField(
        max_length=10,
        choices=CycleRule.choices,
        default=default_cycle_rule,
        help_text="Carrier cycle used for the 60/70-hour limit",
    )

    # Cached availability (refreshed by recomputation)
    available_drive_mins = models.PositiveIntegerField(
        default=660,
        validators=[validate_drive_minutes],
        help_text="Remaining driving minutes (max 660)",
    )

    available_duty_mins = models.PositiveIntegerField(
        default=840,
        validators=[validate_duty_minutes],
        help_text="Remaining minutes in the 14-hour window (max 840)",
    )

    available_cycle_mins = models.PositiveIntegerField(
        default=4200,
        validators=[validate_cycle_minutes],
        help_text="Remaining minutes in the 60/70-hour cycle",
    )

    needs_break = models.BooleanField(
        default=False,
        help_text="Whether a 30-minute break is required before driving",
    )

    mins_until_break = models.PositiveIntegerField(
        default=480,
        help_text="Driving minutes left before the 30-minute break is required",
    )

    last_hos_update = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Instant the cached availability was computed for",
    )

    # Pending recomputation scope (shared by every worker process)
    pending_recompute_since = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the timeline range awaiting recomputation",
    )

    pending_source_interval_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Latest interval whose change requested the recomputation",
    )

    recompute_generation = models.PositiveIntegerField(
        default=0,
        help_text="Bumped on every request; a job holding an older value is stale",
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When this profile was created",
    )

    class Meta:
        db_table = "hos_compliance_driver_profile"
        verbose_name = "Driver HOS Profile"
        verbose_name_plural = "Driver HOS Profiles"
        indexes = [
            models.Index(fields=["last_hos_update"], name="hos_profile_last_update_idx"),
        ]

    def __str__(self):
        """Return string representation of the profile."""
        return (
            f"HOS profile for driver {self.driver_id} - "
            f"{self.available_drive_mins}min driving available"
        )

    @property
    def home_tz(self):
        return ZoneInfo(self.home_terminal_timezone)

    def apply_availability(self, availability):
        """Copy a computed Availability into the cached fields (does not save)."""
        self.available_drive_mins = availability.drive_mins
        self.available_duty_mins = availability.duty_mins
        self.available_cycle_mins = availability.cycle_mins
        self.needs_break = availability.needs_break
        self.mins_until_break = availability.mins_until_break
        self.last_hos_update = availability.as_of

