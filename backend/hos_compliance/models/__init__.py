"""
HOS Compliance models package.

This package contains all models for HOS compliance tracking,
split into separate files for better modularity.
"""

from .driver_hos_profile import DriverHOSProfile
from .violation import ImmutableViolationError, Violation
from .violation_annotation import ViolationAnnotation

__all__ = ['DriverHOSProfile', 'ImmutableViolationError', 'Violation', 'ViolationAnnotation']
