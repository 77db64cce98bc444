"""Per-board alignment session state.

An AlignmentSession exists only while one BoardLocation is being aligned.
It holds the visiting order, the expected/measured correspondences gathered
so far and a snapshot of the board's pre-session location and transform so
that any failure or cancellation can restore it exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import Location
from boardalign.model.board import BoardLocation, Placement


class AlignmentState(str, Enum):
    """States of the alignment state machine."""

    INIT = "init"
    AWAIT_MEASUREMENT = "await_measurement"
    COMPUTE_TRANSFORM = "compute_transform"
    VALIDATE = "validate"
    ADVANCE_BOARD = "advance_board"
    DONE = "done"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class BoardSnapshot:
    """Pre-session location and transform of a BoardLocation."""

    location: Location
    transform: AffineTransform | None

    @classmethod
    def capture(cls, board_location: BoardLocation) -> BoardSnapshot:
        return cls(location=board_location.location, transform=board_location.transform)

    def restore(self, board_location: BoardLocation) -> None:
        board_location.set_location_and_transform(self.location, self.transform)


@dataclass
class AlignmentSession:
    """Transient measurement state for the board being aligned.

    Attributes:
        board_location: Board being aligned.
        board_index: Zero-based position of the board in the run.
        board_count: Number of boards in the run.
        snapshot: Location/transform to restore on rollback.
        placements: Fiducials in visiting order.
        index: Position of the next placement to measure.
        expected: Design-local points (mm, mirrored for bottom side).
        measured: Measured machine points, parallel to ``expected``.
        status: Whether the session is active, committed or rolled back.
    """

    board_location: BoardLocation
    board_index: int
    board_count: int
    snapshot: BoardSnapshot
    placements: list[Placement] = field(default_factory=list)
    index: int = 0
    expected: list[Location] = field(default_factory=list)
    measured: list[Location] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE

    # Filled in once a transform has been fitted
    candidate_transform: AffineTransform | None = None
    candidate_location: Location | None = None
    origin_offset_mm: float | None = None
    residual_rms_mm: float | None = None

    @property
    def progress(self) -> str:
        """Progress label such as ``(Board 2/3)``."""
        return f"(Board {self.board_index + 1}/{self.board_count})"

    @property
    def current_placement(self) -> Placement | None:
        if self.index >= len(self.placements):
            return None
        return self.placements[self.index]

    @property
    def is_complete(self) -> bool:
        return bool(self.placements) and self.index >= len(self.placements)

    def record(self, expected: Location, measured: Location) -> None:
        """Store a correspondence for the current placement and move on."""
        if self.status is not SessionStatus.ACTIVE:
            raise RuntimeError(f"Session is {self.status.value}")
        if self.current_placement is None:
            raise RuntimeError("All placements have already been measured")
        self.expected.append(expected)
        self.measured.append(measured)
        self.index += 1

    def commit(self) -> None:
        self.status = SessionStatus.COMMITTED

    def rollback(self) -> None:
        """Restore the board to its snapshot. Safe to call more than once."""
        if self.status is SessionStatus.ROLLED_BACK:
            return
        self.snapshot.restore(self.board_location)
        self.status = SessionStatus.ROLLED_BACK


class Transition(BaseModel, frozen=True):
    """A recorded state change.

    Attributes:
        board_location_id: Board being processed, None for run-level states.
        source: Previous state (None for the first transition of a run).
        target: New state.
        detail: Optional short note (e.g. the placement being measured).
    """

    board_location_id: str | None = Field(default=None)
    source: AlignmentState | None = Field(default=None)
    target: AlignmentState
    detail: str | None = Field(default=None)
