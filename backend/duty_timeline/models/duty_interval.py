"""
Duty Interval model for the driver duty-status timeline.

Contains the DutyInterval model: one contiguous period a driver spent in a
single duty status. Intervals are append-only; corrections are layered on
top through the ``supersedes`` relation and never overwrite history.
"""

import uuid
from django.db import models
from django.db.models import Q
from django.utils import timezone

from common.validators import minutes_between, validate_latitude, validate_longitude


class DutyInterval(models.Model):
    """
    A single duty-status interval in a driver's timeline.

    Active intervals (``superseded_at`` is null) for one driver are ordered
    by start time, never overlap, and at most one of them is open
    (``end_time`` is null). Amendments create a new interval pointing at the
    record it replaces; the replaced record stays for audit.

    Attributes:
        id: UUID primary key
        driver_id: Driver this interval belongs to
        status: Duty status (OFF_DUTY, SLEEPER_BERTH, DRIVING, ON_DUTY_NOT_DRIVING)
        start_time: When this duty status began
        end_time: When it ended (null while it is the current status)
        source: Where the record came from (ELD, MANUAL, INFERRED)
        location: Location description at the status change
        latitude/longitude: GPS coordinates (optional)
        odometer: Vehicle odometer reading at the status change
        notes: Free-form remarks
        edit_reason: Justification recorded on amendments
        supersedes: The interval this record corrects, if any
        superseded_at: When a later amendment replaced this record
        created_at: When this record was written
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the duty interval",
    )

    driver_id = models.UUIDField(
        db_index=True,
        help_text="Driver this interval belongs to",
    )

    # Duty status (matches grid rows on the driver's log)
    class DutyStatus(models.TextChoices):
        OFF_DUTY = "OFF_DUTY", "Off Duty"
        SLEEPER_BERTH = "SLEEPER_BERTH", "Sleeper Berth"
        DRIVING = "DRIVING", "Driving"
        ON_DUTY_NOT_DRIVING = "ON_DUTY_NOT_DRIVING", "On Duty (Not Driving)"

    status = models.CharField(
        max_length=20,
        choices=DutyStatus.choices,
        help_text="Duty status for this time period",
    )

    start_time = models.DateTimeField(help_text="When this duty status period started")

    end_time = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this duty status period ended (null while current)",
    )

    # Record source
    class Source(models.TextChoices):
        ELD = "ELD", "Electronic Logging Device"
        MANUAL = "MANUAL", "Manual Entry"
        INFERRED = "INFERRED", "Inferred (Gap Filling)"

    source = models.CharField(
        max_length=10,
        choices=Source.choices,
        default=Source.ELD,
        help_text="How this record was created",
    )

    # Location information
    location = models.CharField(
        max_length=200,
        blank=True,
        help_text="Location description (e.g., 'Port of Oakland Berth 57')",
    )

    latitude = models.DecimalField(
        max_digits=10,
        decimal_places=7,
        null=True,
        blank=True,
        validators=[validate_latitude],
        help_text="Latitude where duty status changed (-90 to 90)",
    )

    longitude = models.DecimalField(
        max_digits=10,
        decimal_places=7,
        null=True,
        blank=True,
        validators=[validate_longitude],
        help_text="Longitude where duty status changed (-180 to 180)",
    )

    odometer = models.PositiveIntegerField(
        null=True, blank=True, help_text="Vehicle odometer reading at status change"
    )

    notes = models.CharField(
        max_length=200,
        blank=True,
        help_text="Additional remarks for this duty status change",
    )

    # Amendment chain
    edit_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why this interval replaced an earlier record",
    )

    supersedes = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="superseded_by",
        help_text="The interval this record corrects",
    )

    superseded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this record was replaced by an amendment",
    )

    created_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        help_text="When this record was written",
    )

    class Meta:
        db_table = "duty_timeline_interval"
        ordering = ["driver_id", "start_time"]
        verbose_name = "Duty Interval"
        verbose_name_plural = "Duty Intervals"
        indexes = [
            models.Index(fields=["driver_id", "start_time"], name="duty_interval_driver_start_idx"),
            models.Index(fields=["driver_id", "superseded_at"], name="duty_interval_driver_supsd_idx"),
            models.Index(fields=["status"], name="duty_interval_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["driver_id"],
                condition=Q(end_time__isnull=True, superseded_at__isnull=True),
                name="one_open_interval_per_driver",
            ),
            models.CheckConstraint(
                condition=Q(end_time__isnull=True) | Q(end_time__gt=models.F("start_time")),
                name="interval_starts_before_it_ends",
            ),
        ]

    def __str__(self):
        """Return string representation of the duty interval."""
        return f"{self.get_status_display()} {self.get_time_range_display()} ({self.source})"

    def save(self, *args, **kwargs):
        """Override save to validate coordinates and ordering."""
        if self.latitude is not None:
            if not (-90 <= float(self.latitude) <= 90):
                raise ValueError("Latitude must be between -90 and 90 degrees")
        if self.longitude is not None:
            if not (-180 <= float(self.longitude) <= 180):
                raise ValueError("Longitude must be between -180 and 180 degrees")

        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("Start time must be before end time")

        super().save(*args, **kwargs)

    @property
    def is_active(self):
        """Whether this interval is part of the active timeline."""
        return self.superseded_at is None

    @property
    def is_open(self):
        """Whether this interval is the driver's current status."""
        return self.end_time is None

    def duration_minutes(self, as_of=None):
        """Return the interval length in minutes, measuring open intervals up to as_of."""
        end = self.end_time or as_of or timezone.now()
        return max(0.0, minutes_between(self.start_time, end))

    def is_live_source(self):
        """ELD and manual entries are live sources; inferred records only fill gaps."""
        return self.source in [self.Source.ELD, self.Source.MANUAL]

    def get_time_range_display(self):
        """Get formatted time range for display."""
        start = self.start_time.strftime("%Y-%m-%d %H:%M")
        if self.end_time:
            end = self.end_time.strftime("%Y-%m-%d %H:%M")
            return f"{start} - {end}"
        return f"{start} - ongoing"

