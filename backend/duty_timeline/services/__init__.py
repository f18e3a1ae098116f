"""
Duty Timeline Services Package.

This package contains the business logic services for recording and
correcting a driver's duty-status timeline.

Services:
- TimelineStore: ORM persistence of duty intervals
- DutyStatusTimelineService: Timeline invariants, appends and amendments
- AmendmentHandlerService: Audited amendments and recompute triggering
"""

from .timeline_store import TimelineStore
from .duty_status_timeline import DutyStatusTimelineService, IntervalAmendment, TimelineView
from .amendment_handler import AmendmentHandlerService

__all__ = [
    'TimelineStore',
    'DutyStatusTimelineService',
    'IntervalAmendment',
    'TimelineView',
    'AmendmentHandlerService',
]
