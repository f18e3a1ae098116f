"""
Violation model for HOS compliance.

Contains the Violation model: a fact about a past computation recording
that a driver exceeded an HOS limit over a time window. Violations are
never updated except to acknowledge them, and never deleted.
"""

import uuid
from django.db import models
from django.utils import timezone


ACKNOWLEDGEMENT_FIELDS = frozenset({"acknowledged", "acknowledged_at"})


class Violation(models.Model):
    """
    A detected HOS rule violation.

    Detection is idempotent: one record exists per
    (driver_id, rule_code, window_start).

    Attributes:
        id: UUID primary key
        driver_id: Driver who committed the violation
        rule_code: Which limit was exceeded
        window_start: When the limit was first exceeded
        window_end: End of the offending stretch as observed at detection
        detected_at: When the violation was detected
        severity: CRITICAL while driving, WARNING while only on duty
        description: Human-readable explanation
        duration_mins: Length of the offending stretch
        acknowledged: Whether a reviewer acknowledged the violation
        acknowledged_at: When it was acknowledged
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the violation",
    )

    driver_id = models.UUIDField(
        db_index=True,
        help_text="Driver who committed the violation",
    )

    class RuleCode(models.TextChoices):
        DRIVE_11HR = "DRIVE_11HR", "11-Hour Driving Limit"
        DUTY_14HR = "DUTY_14HR", "14-Hour Duty Window"
        BREAK_30MIN = "BREAK_30MIN", "30-Minute Break Required"
        CYCLE_60_70HR = "CYCLE_60_70HR", "60/70-Hour Cycle Limit"

    rule_code = models.CharField(
        max_length=20,
        choices=RuleCode.choices,
        help_text="HOS rule that was violated",
    )

    window_start = models.DateTimeField(help_text="When the limit was first exceeded")

    window_end = models.DateTimeField(help_text="End of the offending stretch at detection time")

    detected_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        help_text="When the violation was detected",
    )

    class Severity(models.TextChoices):
        WARNING = "WARNING", "Warning (On Duty)"
        CRITICAL = "CRITICAL", "Critical (Driving)"

    severity = models.CharField(
        max_length=10,
        choices=Severity.choices,
        help_text="Severity level of the violation",
    )

    description = models.CharField(
        max_length=255,
        help_text="Description of the violation",
    )

    duration_mins = models.PositiveIntegerField(
        default=0,
        help_text="Length of the offending stretch in minutes",
    )

    acknowledged = models.BooleanField(
        default=False,
        help_text="Whether the violation has been acknowledged",
    )

    acknowledged_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the violation was acknowledged",
    )

    class Meta:
        db_table = "hos_compliance_violation"
        ordering = ["-window_start"]
        verbose_name = "Violation"
        verbose_name_plural = "Violations"
        constraints = [
            models.UniqueConstraint(
                fields=["driver_id", "rule_code", "window_start"],
                name="unique_violation_per_rule_window",
            ),
        ]
        indexes = [
            models.Index(fields=["driver_id", "acknowledged"], name="violation_driver_ack_idx"),
            models.Index(fields=["driver_id", "window_start"], name="violation_driver_window_idx"),
            models.Index(fields=["severity"], name="violation_severity_idx"),
        ]

    def __str__(self):
        """Return string representation of the violation."""
        return (
            f"{self.get_rule_code_display()} - {self.get_severity_display()} "
            f"for driver {self.driver_id} at {self.window_start.isoformat()}"
        )

    def save(self, *args, **kwargs):
        """Allow inserts, and updates of the acknowledgement fields only."""
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= ACKNOWLEDGEMENT_FIELDS:
                raise ImmutableViolationError(
                    f"Violation {self.id} is immutable; only acknowledgement may change"
                )
        super().save(*args, **kwargs)

    def acknowledge(self):
        """Mark the violation acknowledged. Acknowledging twice keeps the first timestamp."""
        if self.acknowledged:
            return self
        self.acknowledged = True
        self.acknowledged_at = timezone.now()
        self.save(update_fields=["acknowledged", "acknowledged_at"])
        return self

    def get_recommended_actions(self):
        """Get recommended actions for the driver after this violation."""
        actions = {
            self.RuleCode.CYCLE_60_70HR: [
                "Take 34-hour restart",
                "Wait for hours to roll off the cycle window",
            ],
            self.RuleCode.DUTY_14HR: [
                "Take 10 consecutive hours off duty",
                "Use sleeper berth split if equipped",
            ],
            self.RuleCode.DRIVE_11HR: [
                "Take 10 consecutive hours off duty",
                "Use sleeper berth split if equipped",
            ],
            self.RuleCode.BREAK_30MIN: [
                "Take 30-minute consecutive break",
            ],
        }
        return actions.get(self.rule_code, ["Consult HOS regulations"])


class ImmutableViolationError(Exception):
    """Raised when code tries to change a recorded violation."""
    pass
