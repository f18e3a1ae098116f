"""
Signals sent by the duty timeline after a change has been committed.

duty_status_changed kwargs:
    driver_id: Driver whose timeline changed
    intervals: The interval(s) written by the change
    change: 'append' or 'amend'
"""

from django.dispatch import Signal

duty_status_changed = Signal()
