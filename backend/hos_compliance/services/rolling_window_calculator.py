"""
Rolling Window Calculator Service.

Computes remaining legally available time from a driver's duty timeline
under the FMCSA property-carrying rules, as of any instant.

This service implements:
- 11-hour driving limit within the duty window
- 14-hour duty window with the 7/3 and 8/2 sleeper-berth split
- 30-minute break after 8 cumulative hours of driving
- 60-hour/7-day and 70-hour/8-day cycles with the 34-hour restart

Everything here is a pure function of an already loaded interval list;
nothing touches the database.

Single Responsibility: Rolling-window HOS arithmetic only.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone as dt_timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from common.validators import minutes_between
from duty_timeline.models import DutyInterval

logger = logging.getLogger(__name__)

DutyStatus = DutyInterval.DutyStatus

ON_DUTY_STATUSES = (DutyStatus.DRIVING, DutyStatus.ON_DUTY_NOT_DRIVING)

# Float noise tolerance when flooring minute counts
EPSILON = 1e-6


@dataclass(frozen=True)
class HOSRuleSet:
    """Numeric limits of one HOS ruleset, all in minutes."""

    cycle_rule: str = "USA_70_8"
    drive_limit_mins: int = 660  # 11 hours driving per duty window
    duty_window_mins: int = 840  # 14-hour duty window
    break_after_driving_mins: int = 480  # 30-minute break due after 8 hours driving
    break_min_mins: int = 30
    daily_reset_mins: int = 600  # 10 consecutive hours off duty
    sleeper_long_mins: int = 420  # 7-hour sleeper half of a split
    split_short_mins: int = 120  # 2-hour other half of a split
    cycle_days: int = 8
    cycle_limit_mins: int = 4200  # 70 hours
    restart_mins: int = 2040  # 34-hour restart

    CYCLE_RULES = {
        "USA_70_8": (8, 4200),
        "USA_60_7": (7, 3600),
    }

    @classmethod
    def for_cycle_rule(cls, cycle_rule: str) -> "HOSRuleSet":
        """Build the ruleset for a carrier cycle ('USA_70_8' or 'USA_60_7')."""
        try:
            days, limit = cls.CYCLE_RULES[cycle_rule]
        except KeyError:
            raise ValueError(f"Unknown cycle rule: {cycle_rule}")
        return cls(cycle_rule=cycle_rule, cycle_days=days, cycle_limit_mins=limit)

    def is_split_pair(self, first: "RestPeriod", second: "RestPeriod") -> bool:
        """Whether two rest periods together qualify as a sleeper-berth split."""
        if first.minutes + second.minutes < self.daily_reset_mins:
            return False
        return (
            first.longest_sleeper_mins >= self.sleeper_long_mins
            and second.minutes >= self.split_short_mins
        ) or (
            second.longest_sleeper_mins >= self.sleeper_long_mins
            and first.minutes >= self.split_short_mins
        )


@dataclass(frozen=True)
class Segment:
    """A stretch of one duty status, clipped to the evaluation instant."""

    status: str
    start: datetime
    end: datetime
    inferred_gap: bool = False

    @property
    def minutes(self) -> float:
        return minutes_between(self.start, self.end)

    @property
    def is_driving(self) -> bool:
        return self.status == DutyStatus.DRIVING

    @property
    def is_on_duty(self) -> bool:
        return self.status in ON_DUTY_STATUSES

    @property
    def is_rest(self) -> bool:
        return not self.is_on_duty


@dataclass(frozen=True)
class RestPeriod:
    """Consecutive off-duty/sleeper time merged into one period."""

    start: datetime
    end: datetime
    minutes: float
    longest_sleeper_mins: float


@dataclass(frozen=True)
class ShiftSnapshot:
    """Shift counters as they stood at the start of an on-duty segment."""

    window_start: datetime
    paused_mins: float
    drive_mins: float
    drive_since_break: float
    paused_until: Optional[datetime] = None


@dataclass(frozen=True)
class Availability:
    """Remaining minutes per clock as of one instant."""

    as_of: datetime
    drive_mins: int
    duty_mins: int
    cycle_mins: int
    needs_break: bool = False
    mins_until_break: int = 0
    window_start: Optional[datetime] = None
    drive_used_mins: int = 0
    duty_used_mins: int = 0
    cycle_used_mins: int = 0
    cycle_rule: str = "USA_70_8"

    def can_drive(self, required_mins: int) -> bool:
        """True iff every clock has at least required_mins left."""
        return (
            self.drive_mins >= required_mins
            and self.duty_mins >= required_mins
            and self.cycle_mins >= required_mins
        )

    def as_dict(self) -> Dict:
        return {
            "as_of": self.as_of.isoformat(),
            "drive_mins": self.drive_mins,
            "duty_mins": self.duty_mins,
            "cycle_mins": self.cycle_mins,
            "needs_break": self.needs_break,
            "mins_until_break": self.mins_until_break,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "drive_used_mins": self.drive_used_mins,
            "duty_used_mins": self.duty_used_mins,
            "cycle_used_mins": self.cycle_used_mins,
            "cycle_rule": self.cycle_rule,
        }


@dataclass
class _RestAccumulator:
    start: datetime
    end: Optional[datetime] = None
    minutes: float = 0.0
    sleeper_run: float = 0.0
    longest_sleeper: float = 0.0

    def add(self, segment: Segment):
        self.end = segment.end
        self.minutes += segment.minutes
        if segment.status == DutyStatus.SLEEPER_BERTH:
            self.sleeper_run += segment.minutes
            self.longest_sleeper = max(self.longest_sleeper, self.sleeper_run)
        else:
            self.sleeper_run = 0.0

    def period(self) -> RestPeriod:
        return RestPeriod(self.start, self.end, self.minutes, self.longest_sleeper)


class ShiftClock:
    """
    Running 11-hour, 14-hour and 30-minute counters over a segment walk.

    Feed segments in chronological order through ``advance``; call
    ``settle`` once at the evaluation instant so a rest period still in
    progress counts.
    """

    def __init__(self, rules: HOSRuleSet):
        self.rules = rules
        self.window_start: Optional[datetime] = None
        self.paused_mins = 0.0
        self.drive_mins = 0.0
        self.drive_since_break = 0.0
        self._rest: Optional[_RestAccumulator] = None
        self._split_candidate: Optional[RestPeriod] = None
        self._drive_since_candidate = 0.0
        self._paused_until: Optional[datetime] = None
        self.split_pairs: List[Tuple[RestPeriod, RestPeriod]] = []

    def advance(self, segment: Segment) -> Optional[ShiftSnapshot]:
        """Consume one segment; return the counters at its start if it is on duty."""
        if segment.is_rest:
            if self._rest is None:
                self._rest = _RestAccumulator(start=segment.start)
            self._rest.add(segment)
            return None

        self._close_rest()
        if self.window_start is None:
            self.window_start = segment.start
            self.paused_mins = 0.0
            self._paused_until = None

        snapshot = ShiftSnapshot(
            window_start=self.window_start,
            paused_mins=self.paused_mins,
            drive_mins=self.drive_mins,
            drive_since_break=self.drive_since_break,
            paused_until=self._paused_until,
        )

        if segment.is_driving:
            minutes = segment.minutes
            self.drive_mins += minutes
            self.drive_since_break += minutes
            self._drive_since_candidate += minutes

        return snapshot

    def settle(self):
        """Apply the rest period in progress, if any."""
        self._close_rest()

    def duty_used(self, as_of: datetime) -> float:
        if self.window_start is None:
            return 0.0
        return max(0.0, minutes_between(self.window_start, as_of) - self.paused_mins)

    def _close_rest(self):
        if self._rest is None:
            return
        period = self._rest.period()
        self._rest = None
        self._apply_rest(period)

    def _apply_rest(self, period: RestPeriod):
        rules = self.rules

        if period.minutes >= rules.daily_reset_mins:
            self.window_start = None
            self.paused_mins = 0.0
            self._paused_until = None
            self.drive_mins = 0.0
            self.drive_since_break = 0.0
            self._split_candidate = None
            self._drive_since_candidate = 0.0
            return

        if period.minutes >= rules.break_min_mins:
            self.drive_since_break = 0.0

        # An unpaired rest is only a break; the window keeps running
        if period.minutes >= rules.split_short_mins:
            candidate = self._split_candidate
            if candidate is not None and rules.is_split_pair(candidate, period):
                # Window is recalculated from the end of the first half;
                # the second half does not count against it
                self.window_start = candidate.end
                self.paused_mins = period.minutes
                self._paused_until = period.end
                self.drive_mins = self._drive_since_candidate
                self.split_pairs.append((candidate, period))
            self._split_candidate = period
            self._drive_since_candidate = 0.0


def build_segments(intervals: Iterable, until: datetime) -> List[Segment]:
    """
    Turn active intervals into chronological segments ending no later than until.

    Open intervals run to ``until``. Unrecorded time between intervals is
    treated as off duty.
    """
    ordered = sorted(intervals, key=lambda interval: interval.start_time)
    segments: List[Segment] = []

    for interval in ordered:
        if interval.start_time >= until:
            break
        end = interval.end_time if interval.end_time is not None else until
        end = min(end, until)
        start = interval.start_time
        if segments and start < segments[-1].end:
            start = segments[-1].end
        if end <= start:
            continue
        if segments and start > segments[-1].end:
            segments.append(
                Segment(DutyStatus.OFF_DUTY, segments[-1].end, start, inferred_gap=True)
            )
        segments.append(Segment(interval.status, start, end))

    return segments


def rest_periods(segments: List[Segment]) -> List[RestPeriod]:
    """Merge consecutive rest segments into rest periods."""
    periods = []
    accumulator = None
    for segment in segments:
        if segment.is_rest:
            if accumulator is None:
                accumulator = _RestAccumulator(start=segment.start)
            accumulator.add(segment)
        elif accumulator is not None:
            periods.append(accumulator.period())
            accumulator = None
    if accumulator is not None:
        periods.append(accumulator.period())
    return periods


def on_duty_minutes(segments: List[Segment], start: datetime, end: datetime) -> float:
    """Sum driving and on-duty-not-driving minutes inside [start, end)."""
    total = 0.0
    for segment in segments:
        if not segment.is_on_duty:
            continue
        overlap_start = max(segment.start, start)
        overlap_end = min(segment.end, end)
        if overlap_end > overlap_start:
            total += minutes_between(overlap_start, overlap_end)
    return total


def status_minutes(segments: List[Segment], start: datetime, end: datetime) -> Dict[str, float]:
    """Minutes spent in each duty status inside [start, end)."""
    totals = {status: 0.0 for status in DutyStatus.values}
    for segment in segments:
        overlap_start = max(segment.start, start)
        overlap_end = min(segment.end, end)
        if overlap_end > overlap_start:
            totals[segment.status] += minutes_between(overlap_start, overlap_end)
    return totals


def local_midnight(day, home_tz: tzinfo) -> datetime:
    """Midnight starting ``day`` in the home-terminal timezone, as a UTC instant."""
    return datetime.combine(day, time.min, tzinfo=home_tz).astimezone(dt_timezone.utc)


def next_local_midnight(instant: datetime, home_tz: tzinfo) -> datetime:
    local_day = instant.astimezone(home_tz).date()
    return local_midnight(local_day + timedelta(days=1), home_tz)


def cycle_window_start(instant: datetime, rules: HOSRuleSet, home_tz: tzinfo) -> datetime:
    """First midnight of the trailing 7/8-day cycle that contains instant."""
    local_day = instant.astimezone(home_tz).date()
    return local_midnight(local_day - timedelta(days=rules.cycle_days - 1), home_tz)


def last_restart_end(periods: List[RestPeriod], instant: datetime, rules: HOSRuleSet) -> Optional[datetime]:
    """End of the latest 34-hour restart completed by instant, if any."""
    restarts = [
        period.end
        for period in periods
        if period.minutes >= rules.restart_mins and period.end <= instant
    ]
    return max(restarts) if restarts else None


def cycle_accounting_start(
    periods: List[RestPeriod], instant: datetime, rules: HOSRuleSet, home_tz: tzinfo
) -> datetime:
    """Where cycle accounting starts for instant: the window start or a later restart."""
    start = cycle_window_start(instant, rules, home_tz)
    restart = last_restart_end(periods, instant, rules)
    if restart is not None and restart > start:
        return restart
    return start


def floor_minutes(value: float) -> int:
    return int(math.floor(value + EPSILON))


class RollingWindowCalculatorService:
    """
    Service for computing HOS availability from a duty timeline.

    Given the intervals covering at least the trailing cycle window, returns
    the remaining drive, duty and cycle minutes as of an instant.
    """

    def __init__(self, rules: Optional[HOSRuleSet] = None):
        """Initialize calculator with a ruleset (default 70-hour/8-day)."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.rules = rules or HOSRuleSet()

    def compute_availability(
        self,
        intervals: Iterable,
        as_of: datetime,
        home_tz: tzinfo,
        rules: Optional[HOSRuleSet] = None,
    ) -> Availability:
        """
        Compute remaining minutes on every clock as of an instant.

        Args:
            intervals: Active DutyInterval records (any order)
            as_of: Evaluation instant
            home_tz: Driver's home-terminal timezone (cycle day boundaries)
            rules: Ruleset override for this driver

        Returns:
            Availability with drive/duty/cycle minutes floored at zero
        """
        rules = rules or self.rules
        try:
            segments = build_segments(intervals, as_of)

            clock = ShiftClock(rules)
            for segment in segments:
                clock.advance(segment)
            clock.settle()

            drive_remaining = rules.drive_limit_mins - clock.drive_mins
            duty_used = clock.duty_used(as_of)
            duty_remaining = rules.duty_window_mins - duty_used

            needs_break = clock.drive_since_break >= rules.break_after_driving_mins - EPSILON
            if needs_break:
                drive_remaining = 0

            periods = rest_periods(segments)
            cycle_start = cycle_accounting_start(periods, as_of, rules, home_tz)
            cycle_used = on_duty_minutes(segments, cycle_start, as_of)
            cycle_remaining = rules.cycle_limit_mins - cycle_used

            availability = Availability(
                as_of=as_of,
                drive_mins=self._clamp(drive_remaining, rules.drive_limit_mins),
                duty_mins=self._clamp(duty_remaining, rules.duty_window_mins),
                cycle_mins=self._clamp(cycle_remaining, rules.cycle_limit_mins),
                needs_break=needs_break,
                mins_until_break=self._clamp(
                    rules.break_after_driving_mins - clock.drive_since_break,
                    rules.break_after_driving_mins,
                ),
                window_start=clock.window_start,
                drive_used_mins=floor_minutes(clock.drive_mins),
                duty_used_mins=floor_minutes(duty_used),
                cycle_used_mins=floor_minutes(cycle_used),
                cycle_rule=rules.cycle_rule,
            )

            self.logger.debug(
                f"Availability as of {as_of.isoformat()}: drive={availability.drive_mins} "
                f"duty={availability.duty_mins} cycle={availability.cycle_mins}"
            )
            return availability

        except Exception as e:
            self.logger.error(f"Availability calculation failed: {str(e)}")
            raise HOSCalculationError(f"Availability calculation failed: {str(e)}")

    def history_start(self, since: datetime, rules: Optional[HOSRuleSet] = None) -> datetime:
        """Earliest instant whose intervals can influence the clocks at since."""
        rules = rules or self.rules
        return since - timedelta(days=rules.cycle_days + 1)

    @staticmethod
    def _clamp(value: float, limit: int) -> int:
        return max(0, min(limit, floor_minutes(value)))


class HOSCalculationError(Exception):
    """Custom exception for HOS calculation errors."""
    pass
