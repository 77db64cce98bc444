"""JSON job files for the command-line tools.

A job describes board designs, where they sit on the machine and, for
simulation, where their fiducials really are:

    {
      "boards": [
        {"name": "panel", "width": 100, "height": 80, "units": "mm",
         "placements": [
           {"id": "FID1", "x": 5, "y": 5, "type": "fiducial"},
           {"id": "FID2", "x": 95, "y": 75, "type": "fiducial_manual"}
         ]}
      ],
      "board_locations": [
        {"id": "panel-1", "board": "panel", "x": 100, "y": 50, "side": "top"}
      ],
      "tool_start": {"x": 0, "y": 0},
      "truth": {"panel-1": {"tx": 101.2, "ty": 49.5, "rotation": 0.3}}
    }
"""

from __future__ import annotations

from pathlib import Path
from typing import Self

from pydantic import BaseModel, Field, model_validator

from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location
from boardalign.model.board import (
    Board,
    BoardLocation,
    Placement,
    PlacementType,
    Side,
)


class PointSpec(BaseModel):
    """A location in a job file."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rotation: float = 0.0
    units: LengthUnit = LengthUnit.MILLIMETERS

    def to_location(self) -> Location:
        return Location(
            units=self.units,
            x=self.x,
            y=self.y,
            z=self.z,
            rotation=self.rotation,
        )


class PlacementSpec(BaseModel):
    id: str = Field(..., min_length=1)
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    type: PlacementType = PlacementType.PLACEMENT
    side: Side = Side.TOP
    enabled: bool = True


class BoardSpec(BaseModel):
    """A board design. Placement coordinates use the board's units."""

    name: str = Field(..., min_length=1)
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)
    units: LengthUnit = LengthUnit.MILLIMETERS
    placements: list[PlacementSpec] = Field(default_factory=list)

    def to_board(self) -> Board:
        return Board(
            name=self.name,
            dimensions=Location(units=self.units, x=self.width, y=self.height),
            placements=tuple(
                Placement(
                    id=p.id,
                    location=Location(
                        units=self.units, x=p.x, y=p.y, rotation=p.rotation
                    ),
                    type=p.type,
                    side=p.side,
                    enabled=p.enabled,
                )
                for p in self.placements
            ),
        )


class BoardLocationSpec(PointSpec):
    id: str = Field(..., min_length=1)
    board: str = Field(..., min_length=1, description="Name of a board in the job")
    side: Side = Side.TOP
    enabled: bool = True


class TruthSpec(BaseModel):
    """Actual design->machine mapping of a board location (mm).

    Either a full ``matrix`` (2x3 or 3x3) or similarity parameters.
    """

    scale: float = Field(default=1.0, gt=0.0)
    rotation: float = 0.0
    tx: float = 0.0
    ty: float = 0.0
    matrix: list[list[float]] | None = None

    def to_transform(self) -> AffineTransform:
        if self.matrix is not None:
            return AffineTransform.from_matrix(self.matrix)
        return AffineTransform.similarity(self.scale, self.rotation, self.tx, self.ty)


class JobFile(BaseModel):
    """Top-level job file schema."""

    boards: list[BoardSpec] = Field(..., min_length=1)
    board_locations: list[BoardLocationSpec] = Field(..., min_length=1)
    tool_start: PointSpec = Field(default_factory=PointSpec)
    truth: dict[str, TruthSpec] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self) -> Self:
        names = [b.name for b in self.boards]
        if len(set(names)) != len(names):
            raise ValueError("Board names must be unique")
        ids = [bl.id for bl in self.board_locations]
        if len(set(ids)) != len(ids):
            raise ValueError("Board location ids must be unique")
        for bl in self.board_locations:
            if bl.board not in names:
                raise ValueError(
                    f"Board location {bl.id!r} uses unknown board {bl.board!r}"
                )
        unknown = set(self.truth) - set(ids)
        if unknown:
            raise ValueError(
                f"Truth given for unknown board locations: {sorted(unknown)}"
            )
        return self

    @classmethod
    def load(cls, path: Path | str) -> JobFile:
        """Load and validate a job file.

        Raises:
            FileNotFoundError: If the file does not exist.
            pydantic.ValidationError: If the content does not match the schema.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Job file not found: {path}")
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

    def build_board_locations(self) -> list[BoardLocation]:
        """Create the domain BoardLocations described by the job, in order."""
        boards = {spec.name: spec.to_board() for spec in self.boards}
        return [
            BoardLocation(
                spec.id,
                boards[spec.board],
                spec.to_location(),
                spec.side,
                enabled=spec.enabled,
            )
            for spec in self.board_locations
        ]

    def truth_transforms(self) -> dict[str, AffineTransform]:
        return {bl_id: spec.to_transform() for bl_id, spec in self.truth.items()}
