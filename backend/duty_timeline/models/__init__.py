"""
Duty Timeline models package.

This package contains the models for a driver's duty-status timeline,
split into separate files for better modularity.
"""

from .duty_interval import DutyInterval

__all__ = ['DutyInterval']
