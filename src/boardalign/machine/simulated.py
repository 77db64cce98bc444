"""Simulated machine backend.

SimulatedMachine plays both the FiducialLocator and the MotionController
roles against a table of *true* machine fiducial locations. It is used by
the ``simulate`` CLI command and by the integration tests.

The truth table is keyed by ``(board_location_id, placement_id)``. It can be
built directly or derived from a known design->machine transform per board
with ``SimulatedMachine.from_transforms``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping

import numpy as np

from boardalign.alignment.exceptions import LocateError
from boardalign.alignment.protocol import GateDecision
from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location
from boardalign.model.board import BoardLocation, Placement

logger = logging.getLogger(__name__)

FiducialKey = tuple[str, str]


class SimulatedMachine:
    """In-memory camera head with optional measurement noise.

    Attributes:
        truth: True machine location (mm) of each fiducial.
        noise_mm: Standard deviation of Gaussian noise added to X and Y of
            every measurement (0 disables noise).
        failing: Fiducials whose locate request fails.
        delay_s: Simulated duration of every operation.
        operations: Log of executed operations, in order.
    """

    def __init__(
        self,
        truth: Mapping[FiducialKey, Location],
        *,
        start: Location | None = None,
        noise_mm: float = 0.0,
        seed: int | None = None,
        failing: Iterable[FiducialKey] = (),
        delay_s: float = 0.0,
    ) -> None:
        if noise_mm < 0:
            raise ValueError(f"noise_mm must be >= 0, got {noise_mm}")
        self.truth = {
            key: location.convert_to_units(LengthUnit.MILLIMETERS)
            for key, location in truth.items()
        }
        self.noise_mm = noise_mm
        self.failing = set(failing)
        self.delay_s = delay_s
        self.operations: list[str] = []
        self._rng = np.random.default_rng(seed)
        self._tool = (start or Location.mm()).convert_to_units(LengthUnit.MILLIMETERS)

    @classmethod
    def from_transforms(
        cls,
        board_locations: Iterable[BoardLocation],
        transforms: Mapping[str, AffineTransform],
        *,
        start: Location | None = None,
        noise_mm: float = 0.0,
        seed: int | None = None,
        failing: Iterable[FiducialKey] = (),
        delay_s: float = 0.0,
    ) -> SimulatedMachine:
        """Build the truth table by mapping fiducials through known transforms.

        Boards without an entry in ``transforms`` use their nominal mapping.
        """
        truth: dict[FiducialKey, Location] = {}
        for board_location in board_locations:
            transform = transforms.get(board_location.id)
            # a detached copy, so that a fitted transform on the board is ignored
            nominal = BoardLocation(
                board_location.id,
                board_location.board,
                board_location.location,
                board_location.side,
            )
            for placement in board_location.board.placements:
                if not placement.type.is_fiducial:
                    continue
                truth[(board_location.id, placement.id)] = (
                    nominal.placement_location(placement.location, transform)
                )
        return cls(
            truth,
            start=start,
            noise_mm=noise_mm,
            seed=seed,
            failing=failing,
            delay_s=delay_s,
        )

    @property
    def tool_location(self) -> Location:
        return self._tool

    async def locate(
        self, board_location: BoardLocation, placement: Placement
    ) -> Location:
        key = (board_location.id, placement.id)
        await self._tick(f"locate {placement.id}")
        if key in self.failing or key not in self.truth:
            raise LocateError(
                f"Unable to locate fiducial {placement.id}",
                board_location.id,
                placement_id=placement.id,
            )
        measured = self._observe(self.truth[key])
        self._tool = measured
        return measured

    async def move_near(self, location: Location) -> None:
        await self._tick(f"move {location}")
        self._tool = location.convert_to_units(LengthUnit.MILLIMETERS)

    async def current_location(self) -> Location:
        return self._tool

    def jog_to_nearest_fiducial(self) -> Location:
        """Center the tool on the true fiducial closest to it (with noise)."""
        if not self.truth:
            return self._tool
        nearest = min(self.truth.values(), key=self._tool.linear_distance_to)
        self._tool = self._observe(nearest)
        self.operations.append(f"jog {self._tool}")
        return self._tool

    def _observe(self, location: Location) -> Location:
        if self.noise_mm == 0.0:
            return location
        dx, dy = self._rng.normal(0.0, self.noise_mm, size=2)
        return location.derive(x=location.x + float(dx), y=location.y + float(dy))

    async def _tick(self, operation: str) -> None:
        self.operations.append(operation)
        logger.debug("Simulated %s", operation)
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)


class SimulatedOperatorGate:
    """UserGate that behaves like an operator centering the camera.

    Before proceeding it jogs the simulated tool onto the nearest true
    fiducial. With ``cancel_at`` set, the gate cancels at that (zero-based)
    prompt instead.
    """

    def __init__(
        self, machine: SimulatedMachine, *, cancel_at: int | None = None
    ) -> None:
        self.machine = machine
        self.cancel_at = cancel_at
        self.titles: list[str] = []

    async def present(
        self,
        title: str,
        instructions: str,
        proceed_label: str,
        allow_proceed: bool = True,
    ) -> GateDecision:
        prompt_index = len(self.titles)
        self.titles.append(title)
        logger.info("%s: %s [%s]", title, instructions, proceed_label)
        if not allow_proceed or prompt_index == self.cancel_at:
            return GateDecision.CANCEL
        self.machine.jog_to_nearest_fiducial()
        return GateDecision.PROCEED
