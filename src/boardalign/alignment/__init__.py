"""Alignment module for boardalign.

This module provides the board alignment engine:
- Transform fitting from fiducial correspondences
- Tolerance validation of fitted transforms
- Travel ordering of fiducials
- The multi-board alignment state machine and its capability protocols
"""

from boardalign.alignment.exceptions import (
    AlignmentError,
    DegenerateGeometryError,
    InsufficientFiducialsError,
    LocateError,
    ToleranceViolationError,
    UserCancelled,
)
from boardalign.alignment.gates import AutoProceedGate, GatePrompt, QueueUserGate
from boardalign.alignment.protocol import (
    FiducialLocator,
    GateDecision,
    MotionController,
    SessionObserver,
    UserGate,
)
from boardalign.alignment.runner import (
    AlignmentConfig,
    AlignmentRunResult,
    AlignmentStateMachine,
    BoardResult,
    BoardStatus,
    LoggingObserver,
)
from boardalign.alignment.session import (
    AlignmentSession,
    AlignmentState,
    BoardSnapshot,
    Transition,
)
from boardalign.alignment.solver import AffineTransformSolver, Residuals
from boardalign.alignment.travel import TravelOptimizer
from boardalign.alignment.validator import (
    Metric,
    MetricViolation,
    Tolerances,
    ToleranceValidator,
    ValidationReport,
)
from boardalign.alignment.worker import MachineTaskQueue

__all__ = [
    "AffineTransformSolver",
    "AlignmentConfig",
    "AlignmentError",
    "AlignmentRunResult",
    "AlignmentSession",
    "AlignmentState",
    "AlignmentStateMachine",
    "AutoProceedGate",
    "BoardResult",
    "BoardSnapshot",
    "BoardStatus",
    "DegenerateGeometryError",
    "FiducialLocator",
    "GateDecision",
    "GatePrompt",
    "InsufficientFiducialsError",
    "LocateError",
    "LoggingObserver",
    "MachineTaskQueue",
    "Metric",
    "MetricViolation",
    "MotionController",
    "QueueUserGate",
    "Residuals",
    "SessionObserver",
    "ToleranceValidator",
    "ToleranceViolationError",
    "Tolerances",
    "Transition",
    "TravelOptimizer",
    "UserCancelled",
    "UserGate",
]
