import common.validators
import django.db.models.deletion
import django.utils.timezone
import hos_compliance.models.driver_hos_profile
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DriverHOSProfile",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for the HOS profile",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "driver_id",
                    models.UUIDField(help_text="Driver this profile belongs to", unique=True),
                ),
                (
                    "home_terminal_timezone",
                    models.CharField(
                        default=hos_compliance.models.driver_hos_profile.default_timezone,
                        help_text="IANA timezone of the driver's home terminal (e.g. 'America/Los_Angeles')",
                        max_length=64,
                        validators=[common.validators.validate_timezone_name],
                    ),
                ),
                (
                    "cycle_rule",
                    models.CharField(
                        choices=[("USA_70_8", "70 Hours / 8 Days"), ("USA_60_7", "60 Hours / 7 Days")],
                        default=hos_compliance.models.driver_hos_profile.default_cycle_rule,
                        help_text="Carrier cycle used for the 60/70-hour limit",
                        max_length=10,
                    ),
                ),
                (
                    "available_drive_mins",
                    models.PositiveIntegerField(
                        default=660,
                        help_text="Remaining driving minutes (max 660)",
                        validators=[common.validators.validate_drive_minutes],
                    ),
                ),
                (
                    "available_duty_mins",
                    models.PositiveIntegerField(
                        default=840,
                        help_text="Remaining minutes in the 14-hour window (max 840)",
                        validators=[common.validators.validate_duty_minutes],
                    ),
                ),
                (
                    "available_cycle_mins",
                    models.PositiveIntegerField(
                        default=4200,
                        help_text="Remaining minutes in the 60/70-hour cycle",
                        validators=[common.validators.validate_cycle_minutes],
                    ),
                ),
                (
                    "needs_break",
                    models.BooleanField(
                        default=False,
                        help_text="Whether a 30-minute break is required before driving",
                    ),
                ),
                (
                    "mins_until_break",
                    models.PositiveIntegerField(
                        default=480,
                        help_text="Driving minutes left before the 30-minute break is required",
                    ),
                ),
                (
                    "last_hos_update",
                    models.DateTimeField(
                        blank=True,
                        help_text="Instant the cached availability was computed for",
                        null=True,
                    ),
                ),
                (
                    "pending_recompute_since",
                    models.DateTimeField(
                        blank=True,
                        help_text="Start of the timeline range awaiting recomputation",
                        null=True,
                    ),
                ),
                (
                    "pending_source_interval_id",
                    models.UUIDField(
                        blank=True,
                        help_text="Latest interval whose change requested the recomputation",
                        null=True,
                    ),
                ),
                (
                    "recompute_generation",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Bumped on every request; a job holding an older value is stale",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, help_text="When this profile was created"),
                ),
            ],
            options={
                "verbose_name": "Driver HOS Profile",
                "verbose_name_plural": "Driver HOS Profiles",
                "db_table": "hos_compliance_driver_profile",
                "indexes": [
                    models.Index(fields=["last_hos_update"], name="hos_profile_last_update_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Violation",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for the violation",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "driver_id",
                    models.UUIDField(db_index=True, help_text="Driver who committed the violation"),
                ),
                (
                    "rule_code",
                    models.CharField(
                        choices=[
                            ("DRIVE_11HR", "11-Hour Driving Limit"),
                            ("DUTY_14HR", "14-Hour Duty Window"),
                            ("BREAK_30MIN", "30-Minute Break Required"),
                            ("CYCLE_60_70HR", "60/70-Hour Cycle Limit"),
                        ],
                        help_text="HOS rule that was violated",
                        max_length=20,
                    ),
                ),
                (
                    "window_start",
                    models.DateTimeField(help_text="When the limit was first exceeded"),
                ),
                (
                    "window_end",
                    models.DateTimeField(help_text="End of the offending stretch at detection time"),
                ),
                (
                    "detected_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        editable=False,
                        help_text="When the violation was detected",
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("WARNING", "Warning (On Duty)"), ("CRITICAL", "Critical (Driving)")],
                        help_text="Severity level of the violation",
                        max_length=10,
                    ),
                ),
                (
                    "description",
                    models.CharField(help_text="Description of the violation", max_length=255),
                ),
                (
                    "duration_mins",
                    models.PositiveIntegerField(
                        default=0, help_text="Length of the offending stretch in minutes"
                    ),
                ),
                (
                    "acknowledged",
                    models.BooleanField(
                        default=False, help_text="Whether the violation has been acknowledged"
                    ),
                ),
                (
                    "acknowledged_at",
                    models.DateTimeField(
                        blank=True, help_text="When the violation was acknowledged", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Violation",
                "verbose_name_plural": "Violations",
                "db_table": "hos_compliance_violation",
                "ordering": ["-window_start"],
                "indexes": [
                    models.Index(fields=["driver_id", "acknowledged"], name="violation_driver_ack_idx"),
                    models.Index(fields=["driver_id", "window_start"], name="violation_driver_window_idx"),
                    models.Index(fields=["severity"], name="violation_severity_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("driver_id", "rule_code", "window_start"),
                        name="unique_violation_per_rule_window",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ViolationAnnotation",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for the annotation",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("CONDITION_CLEARED", "Condition No Longer Present"),
                            ("REVIEWER_NOTE", "Compliance Reviewer Note"),
                        ],
                        help_text="What this annotation records",
                        max_length=20,
                    ),
                ),
                (
                    "note",
                    models.CharField(help_text="Explanation of the annotation", max_length=255),
                ),
                (
                    "source_interval_id",
                    models.UUIDField(
                        blank=True,
                        help_text="Interval whose change prompted this annotation",
                        null=True,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        editable=False,
                        help_text="When the annotation was written",
                    ),
                ),
                (
                    "violation",
                    models.ForeignKey(
                        help_text="The violation this note is attached to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="annotations",
                        to="hos_compliance.violation",
                    ),
                ),
            ],
            options={
                "verbose_name": "Violation Annotation",
                "verbose_name_plural": "Violation Annotations",
                "db_table": "hos_compliance_violation_annotation",
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("violation", "kind", "source_interval_id"),
                        name="unique_annotation_per_source",
                    ),
                ],
            },
        ),
    ]
