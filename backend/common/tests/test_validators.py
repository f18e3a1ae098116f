"""
Tests for shared validators and time helpers.
"""

import pytest
from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

from django.core.exceptions import ValidationError

from common.validators import (
    format_minutes,
    minutes_between,
    validate_drive_minutes,
    validate_latitude,
    validate_timezone_name,
)

LOS_ANGELES = ZoneInfo("America/Los_Angeles")


class TestValidators:
    """Test field validators."""

    def test_latitude_range(self):
        validate_latitude(33.75)
        with pytest.raises(ValidationError):
            validate_latitude(91)

    def test_drive_minutes_range(self):
        validate_drive_minutes(660)
        with pytest.raises(ValidationError):
            validate_drive_minutes(661)

    def test_timezone_name(self):
        validate_timezone_name("America/Los_Angeles")
        with pytest.raises(ValidationError):
            validate_timezone_name("Pacific/Nowhere")


class TestTimeHelpers:
    """Test minute arithmetic."""

    def test_format_minutes(self):
        assert format_minutes(0) == "00:00"
        assert format_minutes(605) == "10:05"

    def test_minutes_between_mixed_zones(self):
        start = datetime(2024, 6, 3, 7, 0, tzinfo=dt_timezone.utc)
        end = datetime(2024, 6, 3, 1, 0, tzinfo=LOS_ANGELES)

        assert minutes_between(start, end) == 60

    def test_minutes_between_counts_dst_change(self):
        """Test that the spring-forward day is 23 hours long."""
        start = datetime(2024, 3, 10, 0, 0, tzinfo=LOS_ANGELES)
        end = datetime(2024, 3, 11, 0, 0, tzinfo=LOS_ANGELES)

        assert minutes_between(start, end) == 23 * 60
