"""
Signals sent by the HOS compliance app.

violation_detected kwargs:
    driver_id: Driver the violation belongs to
    violation: The newly created Violation
"""

from django.dispatch import Signal

violation_detected = Signal()
