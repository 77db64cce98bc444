"""CLI runners for solving, ordering and simulation.

This module provides the execution logic for the CLI commands, bridging
the CLI interface to the alignment engine.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, Field

from boardalign.alignment.runner import (
    AlignmentConfig,
    AlignmentRunResult,
    AlignmentStateMachine,
)
from boardalign.alignment.solver import AffineTransformSolver, Residuals
from boardalign.alignment.travel import TravelOptimizer
from boardalign.alignment.validator import (
    Tolerances,
    ToleranceValidator,
    ValidationReport,
)
from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location
from boardalign.job import JobFile
from boardalign.machine.simulated import SimulatedMachine, SimulatedOperatorGate
from boardalign.utils.logging import get_logger

# =============================================================================
# Input files
# =============================================================================


class PairSpec(BaseModel):
    expected: tuple[float, float]
    measured: tuple[float, float]


class PairsFile(BaseModel):
    """Correspondence pairs for ``boardalign solve``."""

    units: LengthUnit = LengthUnit.MILLIMETERS
    pairs: list[PairSpec] = Field(..., min_length=1)


class NamedPoint(BaseModel):
    id: str = Field(..., min_length=1)
    x: float
    y: float


class PointsFile(BaseModel):
    """Points and anchors for ``boardalign order``."""

    units: LengthUnit = LengthUnit.MILLIMETERS
    start: tuple[float, float] = (0.0, 0.0)
    end: tuple[float, float] = (0.0, 0.0)
    points: list[NamedPoint] = Field(default_factory=list)


M = TypeVar("M", bound=BaseModel)


def _read_model(model: type[M], path: Path) -> M:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return model.model_validate_json(path.read_text(encoding="utf-8"))


def _point(units: LengthUnit, xy: tuple[float, float]) -> Location:
    return Location(units=units, x=xy[0], y=xy[1])


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class SolveResult:
    """Result from `boardalign solve`."""

    transform: AffineTransform
    residuals: Residuals
    report: ValidationReport


@dataclass(frozen=True)
class OrderResult:
    """Result from `boardalign order`."""

    order: list[str]
    input_length_mm: float
    optimized_length_mm: float


# =============================================================================
# Runners
# =============================================================================


def run_solve(
    pairs_path: Path,
    *,
    origin_offset_mm: float,
    tolerances: Tolerances,
) -> SolveResult:
    """Fit a transform from a pairs file and validate it."""
    logger = get_logger(__name__)
    spec = _read_model(PairsFile, pairs_path)

    expected = [_point(spec.units, p.expected) for p in spec.pairs]
    measured = [_point(spec.units, p.measured) for p in spec.pairs]

    solver = AffineTransformSolver()
    transform = solver.solve(expected, measured)
    residuals = solver.residuals(transform, expected, measured)
    report = ToleranceValidator(tolerances).validate(transform, origin_offset_mm)

    logger.info(
        "Solved transform",
        pairs=len(spec.pairs),
        rms_mm=residuals.rms,
        passed=report.passed,
    )
    return SolveResult(transform=transform, residuals=residuals, report=report)


def run_order(points_path: Path, *, max_passes: int) -> OrderResult:
    """Optimize the visiting order of a points file."""
    logger = get_logger(__name__)
    spec = _read_model(PointsFile, points_path)

    start = _point(spec.units, spec.start)
    end = _point(spec.units, spec.end)

    def locate(point: NamedPoint) -> Location:
        return Location(units=spec.units, x=point.x, y=point.y)

    optimizer: TravelOptimizer[NamedPoint] = TravelOptimizer(max_passes=max_passes)
    ordered = optimizer.optimize(spec.points, locate, start, end)
    result = OrderResult(
        order=[p.id for p in ordered],
        input_length_mm=optimizer.path_length(spec.points, locate, start, end),
        optimized_length_mm=optimizer.path_length(ordered, locate, start, end),
    )
    logger.info(
        "Ordered points",
        points=len(spec.points),
        input_length_mm=result.input_length_mm,
        optimized_length_mm=result.optimized_length_mm,
    )
    return result


def run_simulation(
    job_path: Path,
    *,
    noise_mm: float,
    seed: int | None,
    tolerances: Tolerances,
    max_passes: int,
) -> AlignmentRunResult:
    """Run the alignment state machine against a simulated machine."""
    logger = get_logger(__name__)
    job = JobFile.load(job_path)
    board_locations = job.build_board_locations()

    machine = SimulatedMachine.from_transforms(
        board_locations,
        job.truth_transforms(),
        start=job.tool_start.to_location().convert_to_units(LengthUnit.MILLIMETERS),
        noise_mm=noise_mm,
        seed=seed,
    )
    state_machine = AlignmentStateMachine(
        board_locations,
        locator=machine,
        motion=machine,
        gate=SimulatedOperatorGate(machine),
        config=AlignmentConfig(tolerances=tolerances, travel_max_passes=max_passes),
    )

    logger.info(
        "Running simulated alignment",
        job=str(job_path),
        boards=len(board_locations),
        noise_mm=noise_mm,
    )
    return asyncio.run(state_machine.run())
