"""
Duty Timeline API Serializers.

Provides serialization and validation for the duty timeline endpoints:
status-change ingestion, single and batch amendments, and interval output.
"""

from rest_framework import serializers
from django.utils import timezone

from .models import DutyInterval
from .services.duty_status_timeline import IntervalAmendment, METADATA_FIELDS


class DutyIntervalSerializer(serializers.ModelSerializer):
    """
    Serializer for DutyInterval model.

    Read-only representation of one recorded duty status period,
    including its audit fields.
    """

    status_display = serializers.CharField(source='get_status_display', read_only=True)
    duration_minutes = serializers.SerializerMethodField()
    is_active = serializers.BooleanField(read_only=True)
    supersedes_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DutyInterval
        fields = [
            'id',
            'driver_id',
            'status',
            'status_display',
            'start_time',
            'end_time',
            'duration_minutes',
            'source',
            'location',
            'latitude',
            'longitude',
            'odometer',
            'notes',
            'edit_reason',
            'supersedes_id',
            'superseded_at',
            'is_active',
            'created_at',
        ]
        read_only_fields = fields

    def get_duration_minutes(self, obj):
        """Minutes covered so far; open intervals are measured up to as_of or now."""
        as_of = self.context.get('as_of') or timezone.now()
        return round(obj.duration_minutes(as_of), 2)


class IntervalMetadataSerializer(serializers.Serializer):
    """Optional descriptive fields carried by a status change."""

    location = serializers.CharField(max_length=200, required=False, allow_blank=True)
    latitude = serializers.DecimalField(
        max_digits=10, decimal_places=7, min_value=-90, max_value=90, required=False
    )
    longitude = serializers.DecimalField(
        max_digits=10, decimal_places=7, min_value=-180, max_value=180, required=False
    )
    odometer = serializers.IntegerField(min_value=0, required=False)
    notes = serializers.CharField(max_length=200, required=False, allow_blank=True)


class StatusChangeRequestSerializer(IntervalMetadataSerializer):
    """
    Serializer for status-change ingestion requests.

    ELD and MANUAL events open a new interval at ``at_time``. INFERRED
    events fill an uncovered instant and may carry an explicit ``end_time``.
    """

    status = serializers.ChoiceField(
        choices=DutyInterval.DutyStatus.choices,
        help_text="New duty status"
    )

    at_time = serializers.DateTimeField(
        help_text="When the status changed (ISO 8601 with offset)"
    )

    source = serializers.ChoiceField(
        choices=DutyInterval.Source.choices,
        default=DutyInterval.Source.ELD,
        help_text="Where the event came from"
    )

    end_time = serializers.DateTimeField(
        required=False,
        help_text="End of an inferred gap fill"
    )

    def validate(self, data):
        """Only inferred gap fills may carry an end time."""
        end_time = data.get('end_time')
        if end_time is not None:
            if data['source'] != DutyInterval.Source.INFERRED:
                raise serializers.ValidationError({
                    'end_time': 'Only INFERRED status changes may specify an end time'
                })
            if end_time <= data['at_time']:
                raise serializers.ValidationError({
                    'end_time': 'End time must be after at_time'
                })
        return data

    def get_metadata(self):
        return {
            name: self.validated_data[name]
            for name in METADATA_FIELDS
            if name in self.validated_data
        }


class AmendmentItemSerializer(IntervalMetadataSerializer):
    """One replacement inside an amendment request."""

    new_status = serializers.ChoiceField(choices=DutyInterval.DutyStatus.choices)
    new_start = serializers.DateTimeField()
    new_end = serializers.DateTimeField(required=False, allow_null=True, default=None)
    source = serializers.ChoiceField(
        choices=DutyInterval.Source.choices,
        default=DutyInterval.Source.MANUAL
    )

    def validate(self, data):
        if data.get('new_end') is not None and data['new_end'] <= data['new_start']:
            raise serializers.ValidationError({
                'new_end': 'New end must be after new start'
            })
        return data

    @staticmethod
    def metadata_from(data):
        return {name: data[name] for name in METADATA_FIELDS if name in data}


class AmendmentRequestSerializer(AmendmentItemSerializer):
    """
    Serializer for single-interval amendment requests.

    The edit reason is checked by the amendment handler so that a blank
    reason is reported as a missing edit reason rather than a bad payload.
    """

    edit_reason = serializers.CharField(required=False, allow_blank=True, default='')


class BatchAmendmentItemSerializer(AmendmentItemSerializer):
    original_id = serializers.UUIDField()


class BatchAmendmentRequestSerializer(serializers.Serializer):
    """
    Serializer for batch amendment requests.

    All replacements are validated together and applied as one change.
    """

    edit_reason = serializers.CharField(required=False, allow_blank=True, default='')
    amendments = BatchAmendmentItemSerializer(many=True, allow_empty=False)

    def validate_amendments(self, value):
        original_ids = [item['original_id'] for item in value]
        if len(set(original_ids)) != len(original_ids):
            raise serializers.ValidationError(
                'Each interval may appear only once in an amendment batch'
            )
        return value

    def get_amendments(self):
        return [
            IntervalAmendment(
                original_id=item['original_id'],
                new_status=item['new_status'],
                new_start=item['new_start'],
                new_end=item.get('new_end'),
                source=item['source'],
                metadata=AmendmentItemSerializer.metadata_from(item),
            )
            for item in self.validated_data['amendments']
        ]


class TimelineQuerySerializer(serializers.Serializer):
    """Query parameters for timeline reconstruction."""

    as_of = serializers.DateTimeField(required=False)
