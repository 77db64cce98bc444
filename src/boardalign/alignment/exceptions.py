"""Exceptions raised by the board alignment engine.

Every error surfaces one human-readable cause. Errors raised while a board
is being processed carry the BoardLocation id so that multi-board runs can
report which board failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from boardalign.alignment.validator import MetricViolation, ValidationReport


class AlignmentError(Exception):
    """Base exception for all board alignment errors."""

    def __init__(self, message: str, board_location_id: str | None = None) -> None:
        """Initialize alignment error with optional board context.

        Args:
            message: Human-readable error description.
            board_location_id: BoardLocation being processed, if any.
        """
        self.message = message
        self.board_location_id = board_location_id
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with board context if available."""
        if self.board_location_id:
            return f"{self.message} (board: {self.board_location_id})"
        return self.message


class InsufficientFiducialsError(AlignmentError):
    """Raised when a board has fewer than two eligible fiducials for its side."""

    def __init__(
        self,
        found: int,
        board_location_id: str | None = None,
        *,
        required: int = 2,
    ) -> None:
        self.found = found
        self.required = required
        super().__init__(
            f"Board must have at least {required} enabled fiducials on the "
            f"active side, found {found}",
            board_location_id,
        )


class DegenerateGeometryError(AlignmentError):
    """Raised when correspondences cannot determine a non-singular transform.

    This error is raised when:
    - fewer than two correspondence pairs are given
    - expected points are coincident
    - three or more expected points are collinear
    - the normal-equation matrix cannot be inverted
    """


class LocateError(AlignmentError):
    """Raised when the external fiducial locator fails for a placement."""

    def __init__(
        self,
        message: str,
        board_location_id: str | None = None,
        *,
        placement_id: str | None = None,
    ) -> None:
        self.placement_id = placement_id
        super().__init__(message, board_location_id)

    def _format_message(self) -> str:
        parts = [self.message]
        if self.board_location_id:
            parts.append(f"board={self.board_location_id}")
        if self.placement_id:
            parts.append(f"placement={self.placement_id}")
        if len(parts) == 1:
            return parts[0]
        return f"{parts[0]} ({', '.join(parts[1:])})"


REMEDY_HINT = (
    "double check to ensure you are jogging the camera to the correct placements. "
    "Other potential remedies include setting the initial board X, Y, Z and "
    "rotation; using a different set of placements; or changing the allowable "
    "tolerances (SCALING_TOLERANCE, SHEARING_TOLERANCE, BOARD_LOCATION_TOLERANCE)."
)


class ToleranceViolationError(AlignmentError):
    """Raised when a fitted transform is outside the configured tolerances.

    Attributes:
        report: The full validation report.
        violations: Every violated metric, in check order.
    """

    def __init__(
        self,
        report: ValidationReport,
        board_location_id: str | None = None,
    ) -> None:
        self.report = report
        self.violations: list[MetricViolation] = list(report.violations)
        causes = ", ".join(v.describe() for v in self.violations)
        super().__init__(
            f"Results invalid because {causes}; {REMEDY_HINT}", board_location_id
        )


class UserCancelled(AlignmentError):  # noqa: N818
    """Raised when the operator (or a caller) cancels the alignment.

    Cancellation rolls the current board back and ends the run; it is not
    reported as a failure.
    """

    def __init__(
        self,
        message: str = "Alignment cancelled",
        board_location_id: str | None = None,
    ) -> None:
        super().__init__(message, board_location_id)
