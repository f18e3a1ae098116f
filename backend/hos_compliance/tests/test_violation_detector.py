"""
Tests for the Violation Detector Service.
"""

import pytest
from datetime import datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

from duty_timeline.models import DutyInterval
from hos_compliance.services.rolling_window_calculator import HOSRuleSet
from hos_compliance.services.violation_detector import (
    BREAK_30MIN,
    CRITICAL,
    CYCLE_60_70HR,
    DRIVE_11HR,
    DUTY_14HR,
    WARNING,
    ViolationDetectionError,
    ViolationDetectorService,
)

UTC = ZoneInfo("UTC")
BASE = datetime(2024, 6, 3, 0, 0, tzinfo=dt_timezone.utc)

DRIVING = DutyInterval.DutyStatus.DRIVING
ON_DUTY = DutyInterval.DutyStatus.ON_DUTY_NOT_DRIVING
OFF_DUTY = DutyInterval.DutyStatus.OFF_DUTY
SLEEPER = DutyInterval.DutyStatus.SLEEPER_BERTH


def at(hours, minutes=0):
    return BASE + timedelta(hours=hours, minutes=minutes)


def interval(status, start, end=None):
    return DutyInterval(status=status, start_time=start, end_time=end)


class TestViolationDetector:
    """Test violation detection over in-memory timelines."""

    def setup_method(self):
        self.detector = ViolationDetectorService()
        self.twelve_hour_drive = [
            interval(DRIVING, at(0), at(12)),
            interval(OFF_DUTY, at(12)),
        ]

    def test_compliant_shift_has_no_findings(self):
        intervals = [
            interval(DRIVING, at(0), at(4)),
            interval(OFF_DUTY, at(4), at(4, 30)),
            interval(DRIVING, at(4, 30), at(10)),
            interval(OFF_DUTY, at(10)),
        ]

        assert self.detector.scan(intervals, at(20), UTC) == []

    def test_continuous_driving_breaks_drive_and_break_rules(self):
        findings = self.detector.scan(self.twelve_hour_drive, at(13), UTC)

        assert [(f.rule_code, f.window_start) for f in findings] == [
            (BREAK_30MIN, at(8)),
            (DRIVE_11HR, at(11)),
        ]
        drive = findings[1]
        assert drive.window_end == at(12)
        assert drive.duration_mins == 60
        assert drive.severity == CRITICAL

    def test_scan_is_idempotent(self):
        first = self.detector.scan(self.twelve_hour_drive, at(13), UTC)
        second = self.detector.scan(self.twelve_hour_drive, at(13), UTC)

        assert first == second
        assert {f.key for f in first} == {f.key for f in second}

    def test_since_filters_findings_that_ended_before(self):
        assert len(self.detector.scan(self.twelve_hour_drive, at(13), UTC, since=at(12))) == 2
        assert self.detector.scan(self.twelve_hour_drive, at(13), UTC, since=at(12, 1)) == []

    def test_driving_after_fourteen_hour_window(self):
        intervals = [
            interval(ON_DUTY, at(0), at(10)),
            interval(DRIVING, at(10), at(15)),
            interval(OFF_DUTY, at(15)),
        ]
        findings = self.detector.scan(intervals, at(16), UTC)

        assert len(findings) == 1
        assert findings[0].rule_code == DUTY_14HR
        assert findings[0].window_start == at(14)
        assert findings[0].window_end == at(15)
        assert findings[0].severity == CRITICAL

    def test_on_duty_after_window_is_not_a_violation(self):
        intervals = [
            interval(ON_DUTY, at(0), at(10)),
            interval(DRIVING, at(10), at(13)),
            interval(ON_DUTY, at(13), at(16)),
            interval(OFF_DUTY, at(16)),
        ]

        assert self.detector.scan(intervals, at(17), UTC) == []

    def test_sleeper_berth_split_is_compliant(self):
        intervals = [
            interval(ON_DUTY, at(0), at(1)),
            interval(DRIVING, at(1), at(6)),
            interval(SLEEPER, at(6), at(14)),
            interval(DRIVING, at(14), at(19)),
            interval(OFF_DUTY, at(19), at(21)),
            interval(ON_DUTY, at(21)),
        ]

        assert self.detector.scan(intervals, at(22), UTC) == []

    def test_unpaired_sleeper_period_does_not_extend_window(self):
        """Test that a long sleeper period without its partner rest is a plain break."""
        intervals = [
            interval(ON_DUTY, at(0), at(1)),
            interval(DRIVING, at(1), at(6)),
            interval(SLEEPER, at(6), at(14)),
            interval(DRIVING, at(14), at(17)),
            interval(OFF_DUTY, at(17), at(17, 45)),
            interval(DRIVING, at(17, 45), at(19)),
        ]

        findings = self.detector.scan(intervals, at(19), UTC)

        assert [(f.rule_code, f.window_start, f.window_end) for f in findings] == [
            (DUTY_14HR, at(14), at(17)),
            (DUTY_14HR, at(17, 45), at(19)),
        ]

    def test_driving_between_split_halves_cleared_when_pair_completes(self):
        """Test that a 3-hour rest counts as a split half once the 7-hour sleeper follows."""
        intervals = [
            interval(ON_DUTY, at(0), at(1)),
            interval(DRIVING, at(1), at(6)),
            interval(OFF_DUTY, at(6), at(9)),
            interval(DRIVING, at(9), at(15)),
            interval(SLEEPER, at(15)),
        ]

        before_pair = self.detector.scan(intervals, at(16), UTC)
        after_pair = self.detector.scan(intervals, at(22), UTC)

        assert [(f.rule_code, f.window_start) for f in before_pair] == [(DUTY_14HR, at(14))]
        assert after_pair == []

    def test_open_driving_interval_measured_to_scan_end(self):
        findings = self.detector.scan([interval(DRIVING, at(0))], at(11, 30), UTC)
        drive = [f for f in findings if f.rule_code == DRIVE_11HR]

        assert len(drive) == 1
        assert drive[0].window_end == at(11, 30)

    def test_cycle_overrun_while_on_duty_is_warning(self):
        rules = HOSRuleSet.for_cycle_rule("USA_60_7")
        intervals = [
            interval(ON_DUTY, at(24 * day + 6), at(24 * day + 18)) for day in range(5)
        ]
        intervals.append(interval(ON_DUTY, at(24 * 5 + 6), at(24 * 5 + 8)))

        findings = self.detector.scan(intervals, at(24 * 5 + 9), UTC, rules)

        assert len(findings) == 1
        assert findings[0].rule_code == CYCLE_60_70HR
        assert findings[0].severity == WARNING
        assert findings[0].window_start == at(24 * 5 + 6)
        assert findings[0].window_end == at(24 * 5 + 8)

    def test_cycle_overrun_continuing_past_midnight_is_one_finding(self):
        rules = HOSRuleSet.for_cycle_rule("USA_60_7")
        intervals = [
            interval(ON_DUTY, at(24 * day + 6), at(24 * day + 18)) for day in range(5)
        ]
        intervals.append(interval(ON_DUTY, at(24 * 5 + 22), at(24 * 6 + 2)))

        findings = self.detector.scan(intervals, at(24 * 6 + 3), UTC, rules)

        assert len(findings) == 1
        assert findings[0].window_start == at(24 * 5 + 22)
        assert findings[0].window_end == at(24 * 6 + 2)

    def test_bad_interval_data_wrapped(self):
        with pytest.raises(ViolationDetectionError):
            self.detector.scan([object()], at(1), UTC)
