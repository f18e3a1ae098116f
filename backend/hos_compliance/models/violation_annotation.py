"""
Violation Annotation model for HOS compliance.

Contains the ViolationAnnotation model: append-only notes attached to a
violation, e.g. when an amendment later removed its underlying condition.
"""

import uuid
from django.db import models
from django.utils import timezone


class ViolationAnnotation(models.Model):
    """
    A note appended to a recorded violation.

    The violation itself stays untouched; the annotation explains what
    later happened to it.

    Attributes:
        id: UUID primary key
        violation: The annotated violation
        kind: What the note records
        note: Human-readable explanation
        source_interval_id: Interval whose change prompted the note
        created_at: When the note was written
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the annotation",
    )

    violation = models.ForeignKey(
        "hos_compliance.Violation",
        on_delete=models.PROTECT,
        related_name="annotations",
        help_text="The violation this note is attached to",
    )

    class Kind(models.TextChoices):
        CONDITION_CLEARED = "CONDITION_CLEARED", "Condition No Longer Present"
        REVIEWER_NOTE = "REVIEWER_NOTE", "Compliance Reviewer Note"

    kind = models.CharField(
        max_length=20,
        choices=Kind.choices,
        help_text="What this annotation records",
    )

    note = models.CharField(
        max_length=255,
        help_text="Explanation of the annotation",
    )

    source_interval_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Interval whose change prompted this annotation",
    )

    created_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        help_text="When the annotation was written",
    )

    class Meta:
        db_table = "hos_compliance_violation_annotation"
        ordering = ["created_at"]
        verbose_name = "Violation Annotation"
        verbose_name_plural = "Violation Annotations"
        constraints = [
            models.UniqueConstraint(
                fields=["violation", "kind", "source_interval_id"],
                name="unique_annotation_per_source",
            ),
        ]

    def __str__(self):
        """Return string representation of the annotation."""
        return f"{self.get_kind_display()} on {self.violation_id}"
