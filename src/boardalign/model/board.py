"""Board and placement models for boardalign.

A Board is a design: its dimensions and the placements defined relative to
the board origin. A BoardLocation places one Board on the machine: a nominal
origin Location, the side facing the tooling, and optionally a fitted
design->machine AffineTransform.

The transform is only meaningful relative to the Location it was fitted
against, so moving the board (X, Y or rotation) clears it. Callers that
need to set both use ``BoardLocation.set_location_and_transform``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, Field

from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location

logger = logging.getLogger(__name__)


class PlacementType(str, Enum):
    """Kind of placement on a board."""

    FIDUCIAL = "fiducial"
    FIDUCIAL_MANUAL = "fiducial_manual"
    PLACEMENT = "placement"

    @property
    def is_fiducial(self) -> bool:
        """True for both automatically and manually located fiducials."""
        return self in (PlacementType.FIDUCIAL, PlacementType.FIDUCIAL_MANUAL)


class Side(str, Enum):
    """Board face presented to the tooling."""

    TOP = "top"
    BOTTOM = "bottom"


class Placement(BaseModel, frozen=True):
    """A part or fiducial position on a board, in design-local coordinates.

    Attributes:
        id: Reference designator or fiducial name, unique within the board.
        location: Design-local location relative to the board origin.
        type: Placement kind.
        side: Board side the placement sits on.
        enabled: Disabled placements are ignored by every operation.
    """

    id: str = Field(..., min_length=1, description="Placement identifier")
    location: Location = Field(default_factory=Location, description="Design location")
    type: PlacementType = Field(default=PlacementType.PLACEMENT)
    side: Side = Field(default=Side.TOP)
    enabled: bool = Field(default=True)


class Board(BaseModel, frozen=True):
    """A board design: physical dimensions plus an ordered set of placements.

    Attributes:
        name: Board (design file) name.
        dimensions: Board extent; only x (width) and y (height) are used.
        placements: Placements in design order.
    """

    name: str = Field(..., min_length=1)
    dimensions: Location = Field(default_factory=Location)
    placements: tuple[Placement, ...] = Field(default=())

    def fiducials_for(self, side: Side) -> list[Placement]:
        """Enabled fiducials (automatic or manual) on ``side``, in board order."""
        return [
            p
            for p in self.placements
            if p.type.is_fiducial and p.side == side and p.enabled
        ]

    def get_placement(self, placement_id: str) -> Placement:
        """Look up a placement by id.

        Raises:
            KeyError: If no placement has that id.
        """
        for placement in self.placements:
            if placement.id == placement_id:
                return placement
        raise KeyError(f"Board {self.name!r} has no placement {placement_id!r}")


BoardLocationListener = Callable[["BoardLocation", str], None]


class BoardLocation:
    """A Board positioned on the machine.

    Owns the nominal origin ``location``, the ``side`` facing the tooling and
    the optional fitted ``transform``. Listeners registered with
    ``add_listener`` are called with ``(board_location, field_name)`` after
    every change of ``location`` or ``transform``.

    Usage:
        bl = BoardLocation("panel-1", board, Location.mm(100, 50))
        machine = bl.placement_location(board.get_placement("FID1").location)
    """

    def __init__(
        self,
        id: str,  # noqa: A002
        board: Board,
        location: Location | None = None,
        side: Side = Side.TOP,
        *,
        enabled: bool = True,
        transform: AffineTransform | None = None,
    ) -> None:
        self.id = id
        self.board = board
        self.side = side
        self.enabled = enabled
        self._location = location if location is not None else Location()
        self._transform = transform
        self._listeners: list[BoardLocationListener] = []

    # ------------------------------------------------------------------
    # Observed fields
    # ------------------------------------------------------------------

    @property
    def location(self) -> Location:
        """Nominal board origin in machine coordinates."""
        return self._location

    @location.setter
    def location(self, location: Location) -> None:
        old = self._location
        self._location = location
        self._notify("location")

        moved = (
            location.x != old.x
            or location.y != old.y
            or location.rotation != old.rotation
        )
        if moved and self._transform is not None:
            logger.debug("Board %s moved, clearing placement transform", self.id)
            self.transform = None

    @property
    def transform(self) -> AffineTransform | None:
        """Fitted design->machine transform (millimeters), if any."""
        return self._transform

    @transform.setter
    def transform(self, transform: AffineTransform | None) -> None:
        self._transform = transform
        self._notify("transform")

    def set_location_and_transform(
        self, location: Location, transform: AffineTransform | None
    ) -> None:
        """Set origin and transform together.

        Unlike assigning ``location`` and then ``transform``, the transform is
        never observed in a cleared state between the two assignments.
        """
        self._location = location
        self._transform = transform
        self._notify("location")
        self._notify("transform")

    def add_listener(self, listener: BoardLocationListener) -> None:
        """Register a change listener."""
        self._listeners.append(listener)

    def remove_listener(self, listener: BoardLocationListener) -> None:
        """Unregister a change listener (no-op if not registered)."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, field_name: str) -> None:
        for listener in list(self._listeners):
            listener(self, field_name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def fiducials(self) -> list[Placement]:
        """Enabled fiducials on the side this board presents to the tooling."""
        return self.board.fiducials_for(self.side)

    def active_placement_count(self) -> int:
        """Number of enabled standard placements on this board's side."""
        return sum(
            1
            for p in self.board.placements
            if p.side == self.side and p.type is PlacementType.PLACEMENT and p.enabled
        )

    def placement_location(
        self,
        local: Location,
        transform: AffineTransform | None = None,
    ) -> Location:
        """Map a design-local location to machine coordinates.

        With a transform (``transform`` or, if omitted, the board's own), the
        local point is mirrored in X for the bottom side, converted to mm and
        mapped through the transform. Without one, the nominal board location,
        side and width are used.

        Args:
            local: Design-local location (relative to the board origin).
            transform: Explicit transform overriding the board's own.

        Returns:
            Machine location. In millimeters when a transform was applied,
            otherwise in the units of ``local``.
        """
        tx = transform if transform is not None else self._transform
        if tx is not None:
            local_mm = local.convert_to_units(LengthUnit.MILLIMETERS)
            if self.side is Side.BOTTOM:
                local_mm = local_mm.invert(x=True)
            return tx.apply_location(local_mm)

        # The Z of a design-local location is meaningless on the machine
        local = local.derive(z=0.0)
        origin = self._location.convert_to_units(local.units)
        if self.side is Side.BOTTOM:
            width = self.board.dimensions.convert_to_units(local.units).x
            local = local.invert(x=True).add(Location(units=local.units, x=width))
        return local.rotate_xy(origin.rotation).add_with_rotation(origin)

    def __repr__(self) -> str:
        return (
            f"BoardLocation(id={self.id!r}, board={self.board.name!r}, "
            f"location={self._location}, side={self.side.value}, "
            f"transform={'set' if self._transform is not None else 'none'})"
        )

