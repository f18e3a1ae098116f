"""
HOS Compliance Services Package.

This package contains the business logic services for Hours of Service
availability, violation detection and recomputation.

Services:
- RollingWindowCalculatorService: Remaining drive, duty and cycle minutes
- ViolationDetectorService: Scans a timeline for limit overruns
- ComplianceStore: ORM persistence of profiles and violations
- RecomputeCoordinator: Scheduling and running recomputation jobs
- HOSEngineService: Ingestion, availability and violation APIs
"""

from .rolling_window_calculator import Availability, HOSRuleSet, RollingWindowCalculatorService
from .violation_detector import ViolationDetectorService, ViolationFinding
from .compliance_store import ComplianceStore
from .recompute_coordinator import RecomputeCoordinator, RecomputeResult, recompute_coordinator
from .hos_engine import HOSEngineService

__all__ = [
    'Availability',
    'HOSRuleSet',
    'RollingWindowCalculatorService',
    'ViolationDetectorService',
    'ViolationFinding',
    'ComplianceStore',
    'RecomputeCoordinator',
    'RecomputeResult',
    'recompute_coordinator',
    'HOSEngineService',
]
