"""Capability protocols consumed by the alignment state machine.

The state machine never talks to hardware, vision or a UI directly. It is
constructed with objects implementing these protocols:

- FiducialLocator: vision-based fiducial recognition
- MotionController: moving the tooling and reading its position
- UserGate: operator confirmation prompts
- SessionObserver: per-board and per-run notifications

All I/O capabilities are async; observers are plain synchronous callbacks.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from boardalign.alignment.exceptions import AlignmentError
    from boardalign.alignment.runner import AlignmentRunResult, BoardResult
    from boardalign.geometry.primitives import Location
    from boardalign.model.board import BoardLocation, Placement


class GateDecision(str, Enum):
    """Operator answer to a user gate."""

    PROCEED = "proceed"
    CANCEL = "cancel"


class FiducialLocator(Protocol):
    """Locates an automatic fiducial on the machine."""

    async def locate(
        self, board_location: BoardLocation, placement: Placement
    ) -> Location:
        """Find the machine location of ``placement`` on ``board_location``.

        Args:
            board_location: Board being aligned. Its transform is cleared
                while it is being measured, so nominal mapping applies.
            placement: Fiducial placement to find.

        Returns:
            Measured machine location of the fiducial.

        Raises:
            LocateError: If the fiducial could not be found.
        """
        ...


class MotionController(Protocol):
    """Moves the tooling (camera) and reports where it is."""

    async def move_near(self, location: Location) -> None:
        """Move the camera to (or near) ``location`` and wait for completion."""
        ...

    async def current_location(self) -> Location:
        """Return the current camera location in machine coordinates."""
        ...


class UserGate(Protocol):
    """Presents a blocking confirmation prompt to the operator."""

    async def present(
        self,
        title: str,
        instructions: str,
        proceed_label: str,
        allow_proceed: bool = True,
    ) -> GateDecision:
        """Show a prompt and wait for the operator's decision."""
        ...


class SessionObserver(Protocol):
    """Receives alignment progress notifications."""

    def on_board_aligned(self, result: BoardResult) -> None:
        """A board was measured, fitted and validated."""
        ...

    def on_board_failed(
        self, board_location: BoardLocation, error: AlignmentError
    ) -> None:
        """A board failed; it has been (or will be) rolled back."""
        ...

    def on_run_complete(self, result: AlignmentRunResult) -> None:
        """The run finished, successfully or by cancellation."""
        ...
