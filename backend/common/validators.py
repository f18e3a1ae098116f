"""
Common validators and utilities for the drayage HOS engine.

This module contains shared validation logic and utility functions used
across the duty timeline and HOS compliance apps.
"""

from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.core.exceptions import ValidationError
from django.core.validators import BaseValidator


class GPSCoordinateValidator(BaseValidator):
    """
    Validator for GPS coordinates (latitude/longitude).

    Ensures coordinates are within valid ranges:
    - Latitude: -90 to 90 degrees
    - Longitude: -180 to 180 degrees
    """

    def __init__(self, coordinate_type="latitude"):
        self.coordinate_type = coordinate_type

        if coordinate_type == "latitude":
            self.limit_value = (-90, 90)
            self.message = "Latitude must be between -90 and 90 degrees."
        elif coordinate_type == "longitude":
            self.limit_value = (-180, 180)
            self.message = "Longitude must be between -180 and 180 degrees."
        else:
            raise ValueError("coordinate_type must be 'latitude' or 'longitude'")

    def compare(self, value, limit_value):
        min_val, max_val = limit_value
        return not (min_val <= float(value) <= max_val)

    def clean(self, value):
        return float(value)


def validate_latitude(value):
    """Validate latitude coordinate."""
    validator = GPSCoordinateValidator("latitude")
    validator(value)


def validate_longitude(value):
    """Validate longitude coordinate."""
    validator = GPSCoordinateValidator("longitude")
    validator(value)


class MinutesValidator(BaseValidator):
    """
    Validator for available-minutes values in HOS context.

    Ensures minutes are whole, non-negative and never above the
    regulatory ceiling of the clock they describe.
    """

    def __init__(self, max_minutes):
        self.limit_value = max_minutes
        self.message = f"Minutes must be between 0 and {max_minutes}."

    def compare(self, value, limit_value):
        try:
            minutes = int(value)
            return not (0 <= minutes <= limit_value)
        except (ValueError, TypeError):
            return True

    def clean(self, value):
        return value


def validate_drive_minutes(value):
    """Validate available drive minutes (max 11 hours)."""
    validator = MinutesValidator(max_minutes=660)
    validator(value)


def validate_duty_minutes(value):
    """Validate available duty-window minutes (max 14 hours)."""
    validator = MinutesValidator(max_minutes=840)
    validator(value)


def validate_cycle_minutes(value):
    """Validate available cycle minutes (max 70 hours)."""
    validator = MinutesValidator(max_minutes=4200)
    validator(value)


def validate_timezone_name(value):
    """Validate an IANA timezone name such as 'America/Los_Angeles'."""
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ValidationError(f"'{value}' is not a valid IANA timezone name.")


def minutes_between(start, end):
    """
    Return the (possibly fractional) number of minutes from start to end.

    Aware datetimes are compared in UTC; subtracting two datetimes that
    share a zone would measure wall-clock time across DST changes.
    """
    if start.tzinfo is not None and end.tzinfo is not None:
        start = start.astimezone(dt_timezone.utc)
        end = end.astimezone(dt_timezone.utc)
    return (end - start).total_seconds() / 60


def format_minutes(minutes):
    """
    Format a minute count as HH:MM for log remarks and descriptions.
    """
    minutes = int(minutes)
    hours = minutes // 60
    mins = minutes % 60

    return f"{hours:02d}:{mins:02d}"
