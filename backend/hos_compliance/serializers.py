"""
HOS Compliance API Serializers.

Provides serialization and validation for the availability, violation,
daily summary and driver profile endpoints.
"""

from rest_framework import serializers

from common.validators import format_minutes, validate_timezone_name
from .models import DriverHOSProfile, Violation, ViolationAnnotation


class AvailabilitySerializer(serializers.Serializer):
    """
    Serializer for computed Availability results.

    Remaining minutes per clock plus the break state and the binding
    duty window start.
    """

    as_of = serializers.DateTimeField()
    cycle_rule = serializers.CharField()
    drive_mins = serializers.IntegerField()
    duty_mins = serializers.IntegerField()
    cycle_mins = serializers.IntegerField()
    needs_break = serializers.BooleanField()
    mins_until_break = serializers.IntegerField()
    window_start = serializers.DateTimeField(allow_null=True)
    drive_used_mins = serializers.IntegerField()
    duty_used_mins = serializers.IntegerField()
    cycle_used_mins = serializers.IntegerField()
    display = serializers.SerializerMethodField()

    def get_display(self, obj):
        """Remaining time per clock as HH:MM."""
        return {
            'drive': format_minutes(obj.drive_mins),
            'duty': format_minutes(obj.duty_mins),
            'cycle': format_minutes(obj.cycle_mins),
        }


class ViolationAnnotationSerializer(serializers.ModelSerializer):
    class Meta:
        model = ViolationAnnotation
        fields = ['id', 'kind', 'note', 'source_interval_id', 'created_at']
        read_only_fields = fields


class ViolationSerializer(serializers.ModelSerializer):
    """
    Serializer for Violation model.

    Violations are read-only through the API; only acknowledgement
    changes them, through its own endpoint.
    """

    rule_code_display = serializers.CharField(source='get_rule_code_display', read_only=True)
    severity_display = serializers.CharField(source='get_severity_display', read_only=True)
    recommended_actions = serializers.SerializerMethodField()
    annotations = ViolationAnnotationSerializer(many=True, read_only=True)

    class Meta:
        model = Violation
        fields = [
            'id',
            'driver_id',
            'rule_code',
            'rule_code_display',
            'window_start',
            'window_end',
            'duration_mins',
            'severity',
            'severity_display',
            'description',
            'detected_at',
            'acknowledged',
            'acknowledged_at',
            'recommended_actions',
            'annotations',
        ]
        read_only_fields = fields

    def get_recommended_actions(self, obj):
        return obj.get_recommended_actions()


class DriverHOSProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for DriverHOSProfile model.

    The cached availability fields are refreshed by recomputation only.
    """

    cycle_rule_display = serializers.CharField(source='get_cycle_rule_display', read_only=True)

    class Meta:
        model = DriverHOSProfile
        fields = [
            'driver_id',
            'home_terminal_timezone',
            'cycle_rule',
            'cycle_rule_display',
            'available_drive_mins',
            'available_duty_mins',
            'available_cycle_mins',
            'needs_break',
            'mins_until_break',
            'last_hos_update',
        ]
        read_only_fields = [
            'driver_id',
            'cycle_rule_display',
            'available_drive_mins',
            'available_duty_mins',
            'available_cycle_mins',
            'needs_break',
            'mins_until_break',
            'last_hos_update',
        ]


class ProfileUpdateRequestSerializer(serializers.Serializer):
    """Serializer for cycle rule and home terminal changes."""

    cycle_rule = serializers.ChoiceField(
        choices=DriverHOSProfile.CycleRule.choices,
        required=False,
        help_text="USA_70_8 or USA_60_7"
    )

    home_terminal_timezone = serializers.CharField(
        max_length=64,
        required=False,
        validators=[validate_timezone_name],
        help_text="IANA timezone of the driver's home terminal"
    )

    def validate(self, data):
        if not data:
            raise serializers.ValidationError(
                'Provide cycle_rule or home_terminal_timezone'
            )
        return data


class AvailabilityQuerySerializer(serializers.Serializer):
    as_of = serializers.DateTimeField(required=False)


class RequiredMinutesQuerySerializer(serializers.Serializer):
    required_mins = serializers.IntegerField(
        min_value=0,
        help_text="Minutes of driving the job needs"
    )
    as_of = serializers.DateTimeField(required=False)


class DailySummaryQuerySerializer(serializers.Serializer):
    date = serializers.DateField(help_text="Home-terminal calendar day (YYYY-MM-DD)")


class DailySummarySerializer(serializers.Serializer):
    """
    Serializer for one driver's daily summary.

    Minutes per duty status for the day, availability at the end of the
    day and the violations that started during it.
    """

    driver_id = serializers.UUIDField()
    date = serializers.DateField()
    driving_mins = serializers.IntegerField()
    on_duty_mins = serializers.IntegerField()
    off_duty_mins = serializers.IntegerField()
    sleeper_mins = serializers.IntegerField()
    total_on_duty_display = serializers.SerializerMethodField()
    availability = AvailabilitySerializer()
    violations = ViolationSerializer(many=True)

    def get_total_on_duty_display(self, obj):
        return format_minutes(obj['driving_mins'] + obj['on_duty_mins'])
