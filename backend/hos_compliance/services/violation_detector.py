"""
Violation Detector Service.

Walks a driver's duty timeline chronologically with the same counters as
the rolling-window calculator and reports every stretch where a clock went
below zero:
- DRIVE_11HR: driving past the 11-hour limit
- DUTY_14HR: driving after the 14-hour window closed
- BREAK_30MIN: driving past 8 hours without a 30-minute break
- CYCLE_60_70HR: on duty past the 60/70-hour cycle limit

Findings are keyed by (rule_code, window_start), so scanning an unchanged
timeline twice yields the same set.

Single Responsibility: Violation detection only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional

from common.validators import format_minutes, minutes_between
from .rolling_window_calculator import (
    HOSRuleSet,
    Segment,
    ShiftClock,
    ShiftSnapshot,
    build_segments,
    cycle_accounting_start,
    floor_minutes,
    next_local_midnight,
    on_duty_minutes,
    rest_periods,
)

logger = logging.getLogger(__name__)

DRIVE_11HR = "DRIVE_11HR"
DUTY_14HR = "DUTY_14HR"
BREAK_30MIN = "BREAK_30MIN"
CYCLE_60_70HR = "CYCLE_60_70HR"

CRITICAL = "CRITICAL"
WARNING = "WARNING"


@dataclass(frozen=True)
class ViolationFinding:
    """One detected violation, before it is persisted."""

    rule_code: str
    window_start: datetime
    window_end: datetime
    severity: str
    description: str

    @property
    def key(self):
        return (self.rule_code, self.window_start)

    @property
    def duration_mins(self) -> int:
        return floor_minutes(minutes_between(self.window_start, self.window_end))


class ViolationDetectorService:
    """
    Service for detecting HOS violations in a duty timeline.

    The scan always walks the full slice it is given, because the clocks at
    any point depend on earlier history, and only reports findings that
    touch the requested range.
    """

    def __init__(self, rules: Optional[HOSRuleSet] = None):
        """Initialize violation detector."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.rules = rules or HOSRuleSet()

    def scan(
        self,
        intervals: Iterable,
        until: datetime,
        home_tz: tzinfo,
        rules: Optional[HOSRuleSet] = None,
        since: Optional[datetime] = None,
    ) -> List[ViolationFinding]:
        """
        Detect violations in a timeline slice.

        Args:
            intervals: Active intervals, including enough history before since
            until: End of the scan; open intervals are measured up to here
            home_tz: Driver's home-terminal timezone
            rules: Ruleset override for this driver
            since: Only report findings that end at or after this instant

        Returns:
            Findings ordered by window start
        """
        rules = rules or self.rules
        try:
            segments = build_segments(intervals, until)
            periods = rest_periods(segments)
            findings: Dict = {}

            clock = ShiftClock(rules)
            driving = []
            for segment in segments:
                pairs_seen = len(clock.split_pairs)
                snapshot = clock.advance(segment)
                if len(clock.split_pairs) > pairs_seen:
                    self._remeasure_split(clock.split_pairs[-1], driving, findings, rules)
                    driving = []
                if snapshot is None:
                    continue
                if segment.is_driving:
                    for finding in self._check_driving(segment, snapshot, rules):
                        findings[finding.key] = finding
                    for finding in self._check_window(segment, snapshot, rules, snapshot.paused_mins):
                        findings[finding.key] = finding
                    driving.append((segment, snapshot))
                for finding in self._check_cycle(segment, segments, periods, rules, home_tz):
                    findings[finding.key] = finding

            pairs_seen = len(clock.split_pairs)
            clock.settle()
            if len(clock.split_pairs) > pairs_seen:
                self._remeasure_split(clock.split_pairs[-1], driving, findings, rules)

            results = sorted(findings.values(), key=lambda f: (f.window_start, f.rule_code))
            if since is not None:
                results = [f for f in results if f.window_end >= since]

            if results:
                self.logger.info(
                    f"Detected {len(results)} violation(s) up to {until.isoformat()}"
                )
            return results

        except Exception as e:
            self.logger.error(f"Violation scan failed: {str(e)}")
            raise ViolationDetectionError(f"Violation scan failed: {str(e)}")

    def _check_driving(self, segment: Segment, snapshot: ShiftSnapshot, rules: HOSRuleSet):
        """Check the 11-hour and 30-minute rules over one driving segment."""
        minutes = segment.minutes

        if snapshot.drive_mins + minutes > rules.drive_limit_mins:
            crossed_at = self._offset(segment.start, rules.drive_limit_mins - snapshot.drive_mins)
            if crossed_at < segment.end:
                yield ViolationFinding(
                    rule_code=DRIVE_11HR,
                    window_start=crossed_at,
                    window_end=segment.end,
                    severity=CRITICAL,
                    description=(
                        f"Drove {format_minutes(_overrun_minutes(crossed_at, segment.end))} "
                        f"beyond the {rules.drive_limit_mins // 60}-hour driving limit"
                    ),
                )

        if snapshot.drive_since_break + minutes > rules.break_after_driving_mins:
            crossed_at = self._offset(
                segment.start, rules.break_after_driving_mins - snapshot.drive_since_break
            )
            if crossed_at < segment.end:
                yield ViolationFinding(
                    rule_code=BREAK_30MIN,
                    window_start=crossed_at,
                    window_end=segment.end,
                    severity=CRITICAL,
                    description=(
                        f"Drove {format_minutes(_overrun_minutes(crossed_at, segment.end))} past "
                        f"{rules.break_after_driving_mins // 60} hours without a "
                        f"{rules.break_min_mins}-minute break"
                    ),
                )

    def _check_window(self, segment: Segment, snapshot: ShiftSnapshot, rules: HOSRuleSet,
                      excluded_mins: float):
        """Check driving past the 14-hour window, less any excluded rest."""
        window_closes = snapshot.window_start + timedelta(
            minutes=rules.duty_window_mins + excluded_mins
        )
        if segment.end > window_closes:
            crossed_at = max(segment.start, window_closes)
            yield ViolationFinding(
                rule_code=DUTY_14HR,
                window_start=crossed_at,
                window_end=segment.end,
                severity=CRITICAL,
                description=(
                    f"Drove {format_minutes(_overrun_minutes(crossed_at, segment.end))} after the "
                    f"{rules.duty_window_mins // 60}-hour window that opened "
                    f"{snapshot.window_start.isoformat()}"
                ),
            )

    def _remeasure_split(self, pair, driving, findings: Dict, rules: HOSRuleSet):
        """
        Re-check driving between the two halves of a completed split.

        Until the second half arrives the first half is an ordinary break.
        Once the pair qualifies, the first half no longer counts against
        the window in which that driving took place.
        """
        first, second = pair
        for segment, snapshot in driving:
            if segment.start < first.end or segment.end > second.start:
                continue

            stale = [
                key for key in findings
                if key[0] == DUTY_14HR and segment.start <= key[1] < segment.end
            ]
            for key in stale:
                del findings[key]

            excluded = snapshot.paused_mins
            if snapshot.paused_until is None or snapshot.paused_until < first.end:
                excluded += first.minutes
            for finding in self._check_window(segment, snapshot, rules, excluded):
                findings[finding.key] = finding

    def _check_cycle(self, segment, segments, periods, rules, home_tz):
        """
        Check the cycle limit over one on-duty segment.

        The segment is split at home-terminal midnights because a day can
        drop out of the trailing window partway through it.
        """
        severity = CRITICAL if segment.is_driving else WARNING
        previous = None
        piece_start = segment.start

        while piece_start < segment.end:
            piece_end = min(segment.end, next_local_midnight(piece_start, home_tz))
            accounting_start = cycle_accounting_start(periods, piece_start, rules, home_tz)
            used = on_duty_minutes(segments, accounting_start, piece_start)
            piece_minutes = minutes_between(piece_start, piece_end)

            if used + piece_minutes > rules.cycle_limit_mins:
                crossed_at = self._offset(piece_start, rules.cycle_limit_mins - used)
                if previous is not None and previous.window_end == crossed_at:
                    # Same overrun continuing past midnight
                    crossed_at = previous.window_start
                elif previous is not None:
                    yield previous
                previous = ViolationFinding(
                    rule_code=CYCLE_60_70HR,
                    window_start=crossed_at,
                    window_end=piece_end,
                    severity=severity,
                    description=(
                        f"On duty {format_minutes(_overrun_minutes(crossed_at, piece_end))} "
                        f"beyond the {rules.cycle_limit_mins // 60}-hour/"
                        f"{rules.cycle_days}-day limit"
                    ),
                )
            elif previous is not None:
                yield previous
                previous = None

            piece_start = piece_end

        if previous is not None:
            yield previous

    @staticmethod
    def _offset(start: datetime, minutes: float) -> datetime:
        return start + timedelta(minutes=max(0.0, minutes))


def _overrun_minutes(start, end):
    return max(0, floor_minutes(minutes_between(start, end)))


class ViolationDetectionError(Exception):
    """Custom exception for violation detection errors."""
    pass
