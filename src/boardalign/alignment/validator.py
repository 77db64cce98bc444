"""Tolerance validation for fitted board transforms.

A fitted transform is accepted only when its decomposition and the board
origin movement stay within the configured tolerances:

    |scale_x - 1| <= scaling_tolerance
    |scale_y - 1| <= scaling_tolerance
    |shear_x|     <= shearing_tolerance
    origin offset <= board_location_tolerance

All checks are evaluated, so a failing report lists every violated metric.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from boardalign.alignment.exceptions import ToleranceViolationError
from boardalign.geometry.affine import AffineDecomposition, AffineTransform
from boardalign.geometry.primitives import Length, LengthUnit


class Metric(str, Enum):
    """Checked accuracy metrics."""

    SCALE_X = "scale_x"
    SCALE_Y = "scale_y"
    SHEAR_X = "shear_x"
    ORIGIN_OFFSET = "origin_offset"


class Tolerances(BaseModel, frozen=True):
    """Accuracy bounds for accepting a fitted transform.

    Attributes:
        scaling_tolerance: Max deviation of either scale from 1 (fraction).
        shearing_tolerance: Max absolute shear (fraction).
        board_location_tolerance: Max movement of the board origin.
    """

    scaling_tolerance: float = Field(default=0.05, ge=0.0)
    shearing_tolerance: float = Field(default=0.05, ge=0.0)
    board_location_tolerance: Length = Field(
        default_factory=lambda: Length(value=5.0, units=LengthUnit.MILLIMETERS)
    )

    @property
    def board_location_tolerance_mm(self) -> float:
        return self.board_location_tolerance.convert_to_units(
            LengthUnit.MILLIMETERS
        ).value


class MetricViolation(BaseModel, frozen=True):
    """A single metric outside its accepted range.

    Attributes:
        metric: Which metric was violated.
        measured: Measured value.
        lower: Lower bound of the accepted range.
        upper: Upper bound of the accepted range.
    """

    metric: Metric
    measured: float
    lower: float
    upper: float

    def describe(self) -> str:
        """Human-readable description of the violation."""
        if self.metric is Metric.ORIGIN_OFFSET:
            return (
                f"the board origin moved {self.measured:.4f}mm which is greater "
                f"than the allowed amount of {self.upper:.4f}mm"
            )
        label = {
            Metric.SCALE_X: "x scaling",
            Metric.SCALE_Y: "y scaling",
            Metric.SHEAR_X: "x shearing",
        }[self.metric]
        return (
            f"{label} = {self.measured:.5f} which is outside the expected range "
            f"of [{self.lower:.5f}, {self.upper:.5f}]"
        )


class ValidationReport(BaseModel, frozen=True):
    """Outcome of validating a fitted transform.

    Attributes:
        passed: True when no metric is violated.
        violations: Violated metrics in check order.
        decomposition: Decomposition of the validated transform.
        origin_offset_mm: Board origin movement that was checked.
    """

    passed: bool
    violations: tuple[MetricViolation, ...] = ()
    decomposition: AffineDecomposition
    origin_offset_mm: float

    def violation_for(self, metric: Metric) -> MetricViolation | None:
        """Return the violation for ``metric``, if it was violated."""
        for violation in self.violations:
            if violation.metric is metric:
                return violation
        return None


class ToleranceValidator:
    """Checks fitted transforms against configured tolerances.

    The validator is stateless apart from its tolerances and never mutates
    its inputs.
    """

    def __init__(self, tolerances: Tolerances | None = None) -> None:
        self.tolerances = tolerances or Tolerances()

    def validate(
        self,
        transform: AffineTransform,
        origin_offset: float | Length,
        *,
        strict: bool = False,
        board_location_id: str | None = None,
    ) -> ValidationReport:
        """Validate a transform and the resulting board origin movement.

        Args:
            transform: Candidate design->machine transform.
            origin_offset: Distance between old and new board origin; a plain
                float is taken as millimeters.
            strict: If True, raise ToleranceViolationError on failure.
            board_location_id: Board context for the raised error.

        Returns:
            ValidationReport listing every violated metric.

        Raises:
            ToleranceViolationError: If strict=True and any metric is violated.
        """
        if isinstance(origin_offset, Length):
            offset_mm = origin_offset.convert_to_units(LengthUnit.MILLIMETERS).value
        else:
            offset_mm = float(origin_offset)

        decomposition = transform.decompose()
        tol = self.tolerances
        violations: list[MetricViolation] = []

        scale_lower = 1.0 - tol.scaling_tolerance
        scale_upper = 1.0 + tol.scaling_tolerance
        for metric, value in (
            (Metric.SCALE_X, decomposition.scale_x),
            (Metric.SCALE_Y, decomposition.scale_y),
        ):
            if not scale_lower <= value <= scale_upper:
                violations.append(
                    MetricViolation(
                        metric=metric,
                        measured=value,
                        lower=scale_lower,
                        upper=scale_upper,
                    )
                )

        shear_lower = -tol.shearing_tolerance
        shear_upper = tol.shearing_tolerance
        if not shear_lower <= decomposition.shear_x <= shear_upper:
            violations.append(
                MetricViolation(
                    metric=Metric.SHEAR_X,
                    measured=decomposition.shear_x,
                    lower=shear_lower,
                    upper=shear_upper,
                )
            )

        max_offset = tol.board_location_tolerance_mm
        if offset_mm > max_offset:
            violations.append(
                MetricViolation(
                    metric=Metric.ORIGIN_OFFSET,
                    measured=offset_mm,
                    lower=0.0,
                    upper=max_offset,
                )
            )

        report = ValidationReport(
            passed=not violations,
            violations=tuple(violations),
            decomposition=decomposition,
            origin_offset_mm=offset_mm,
        )
        if strict and not report.passed:
            raise ToleranceViolationError(report, board_location_id)
        return report
