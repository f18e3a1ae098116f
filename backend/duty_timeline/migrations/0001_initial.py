import common.validators
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DutyInterval",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for the duty interval",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "driver_id",
                    models.UUIDField(db_index=True, help_text="Driver this interval belongs to"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("OFF_DUTY", "Off Duty"),
                            ("SLEEPER_BERTH", "Sleeper Berth"),
                            ("DRIVING", "Driving"),
                            ("ON_DUTY_NOT_DRIVING", "On Duty (Not Driving)"),
                        ],
                        help_text="Duty status for this time period",
                        max_length=20,
                    ),
                ),
                (
                    "start_time",
                    models.DateTimeField(help_text="When this duty status period started"),
                ),
                (
                    "end_time",
                    models.DateTimeField(
                        blank=True,
                        help_text="When this duty status period ended (null while current)",
                        null=True,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("ELD", "Electronic Logging Device"),
                            ("MANUAL", "Manual Entry"),
                            ("INFERRED", "Inferred (Gap Filling)"),
                        ],
                        default="ELD",
                        help_text="How this record was created",
                        max_length=10,
                    ),
                ),
                (
                    "location",
                    models.CharField(
                        blank=True,
                        help_text="Location description (e.g., 'Port of Oakland Berth 57')",
                        max_length=200,
                    ),
                ),
                (
                    "latitude",
                    models.DecimalField(
                        blank=True,
                        decimal_places=7,
                        help_text="Latitude where duty status changed (-90 to 90)",
                        max_digits=10,
                        null=True,
                        validators=[common.validators.validate_latitude],
                    ),
                ),
                (
                    "longitude",
                    models.DecimalField(
                        blank=True,
                        decimal_places=7,
                        help_text="Longitude where duty status changed (-180 to 180)",
                        max_digits=10,
                        null=True,
                        validators=[common.validators.validate_longitude],
                    ),
                ),
                (
                    "odometer",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Vehicle odometer reading at status change",
                        null=True,
                    ),
                ),
                (
                    "notes",
                    models.CharField(
                        blank=True,
                        help_text="Additional remarks for this duty status change",
                        max_length=200,
                    ),
                ),
                (
                    "edit_reason",
                    models.TextField(
                        blank=True,
                        help_text="Why this interval replaced an earlier record",
                        null=True,
                    ),
                ),
                (
                    "superseded_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When this record was replaced by an amendment",
                        null=True,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        editable=False,
                        help_text="When this record was written",
                    ),
                ),
                (
                    "supersedes",
                    models.ForeignKey(
                        blank=True,
                        help_text="The interval this record corrects",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="superseded_by",
                        to="duty_timeline.dutyinterval",
                    ),
                ),
            ],
            options={
                "verbose_name": "Duty Interval",
                "verbose_name_plural": "Duty Intervals",
                "db_table": "duty_timeline_interval",
                "ordering": ["driver_id", "start_time"],
                "indexes": [
                    models.Index(
                        fields=["driver_id", "start_time"], name="duty_interval_driver_start_idx"
                    ),
                    models.Index(
                        fields=["driver_id", "superseded_at"], name="duty_interval_driver_supsd_idx"
                    ),
                    models.Index(fields=["status"], name="duty_interval_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("end_time__isnull", True), ("superseded_at__isnull", True)),
                        fields=("driver_id",),
                        name="one_open_interval_per_driver",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("end_time__isnull", True),
                            ("end_time__gt", models.F("start_time")),
                            _connector="OR",
                        ),
                        name="interval_starts_before_it_ends",
                    ),
                ],
            },
        ),
    ]
