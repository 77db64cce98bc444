"""Geometry primitives for boardalign.

This module provides immutable Pydantic models for lengths and machine /
board locations. A Location is a point (x, y, z) plus a rotation in degrees,
tagged with the length unit its coordinates are expressed in. All operations
return new instances; nothing is mutated in place.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Self

from pydantic import BaseModel, Field


class LengthUnit(str, Enum):
    """Length units understood by the alignment engine."""

    MILLIMETERS = "mm"
    CENTIMETERS = "cm"
    METERS = "m"
    MICRONS = "um"
    INCHES = "in"
    FEET = "ft"
    MILS = "mil"

    @property
    def millimeters(self) -> float:
        """Size of one unit expressed in millimeters."""
        return _MM_PER_UNIT[self]

    @classmethod
    def parse(cls, text: str) -> LengthUnit:
        """Parse a unit from its short symbol or enum name (case-insensitive).

        Raises:
            ValueError: If the text names no known unit.
        """
        key = text.strip().lower()
        for unit in cls:
            if key in (unit.value, unit.name.lower()):
                return unit
        raise ValueError(f"Unknown length unit: {text!r}")


_MM_PER_UNIT: dict[LengthUnit, float] = {
    LengthUnit.MILLIMETERS: 1.0,
    LengthUnit.CENTIMETERS: 10.0,
    LengthUnit.METERS: 1000.0,
    LengthUnit.MICRONS: 0.001,
    LengthUnit.INCHES: 25.4,
    LengthUnit.FEET: 304.8,
    LengthUnit.MILS: 0.0254,
}


def convert_value(value: float, source: LengthUnit, target: LengthUnit) -> float:
    """Convert a scalar length between units."""
    if source is target:
        return value
    return value * source.millimeters / target.millimeters


class Length(BaseModel, frozen=True):
    """A scalar length with its unit.

    Attributes:
        value: Magnitude in `units`.
        units: Unit of `value`.
    """

    value: float = Field(..., description="Magnitude")
    units: LengthUnit = Field(default=LengthUnit.MILLIMETERS, description="Unit")

    def convert_to_units(self, units: LengthUnit) -> Length:
        """Return the same length expressed in another unit."""
        return Length(value=convert_value(self.value, self.units, units), units=units)

    def __str__(self) -> str:
        return f"{self.value:g}{self.units.value}"


class Location(BaseModel, frozen=True):
    """A 3D point with rotation, tagged with a length unit.

    Used both for design-local coordinates (relative to a board origin) and
    for machine coordinates. Rotation is in degrees, counter-clockwise.

    Attributes:
        units: Unit of x, y and z.
        x: X coordinate.
        y: Y coordinate.
        z: Z coordinate.
        rotation: Rotation in degrees.
    """

    units: LengthUnit = Field(default=LengthUnit.MILLIMETERS, description="Length unit")
    x: float = Field(default=0.0, description="X coordinate")
    y: float = Field(default=0.0, description="Y coordinate")
    z: float = Field(default=0.0, description="Z coordinate")
    rotation: float = Field(default=0.0, description="Rotation in degrees")

    @classmethod
    def mm(
        cls, x: float = 0.0, y: float = 0.0, z: float = 0.0, rotation: float = 0.0
    ) -> Self:
        """Create a Location in millimeters."""
        return cls(units=LengthUnit.MILLIMETERS, x=x, y=y, z=z, rotation=rotation)

    def to_xy(self) -> tuple[float, float]:
        """Convert to (x, y) tuple."""
        return (self.x, self.y)

    def convert_to_units(self, units: LengthUnit) -> Location:
        """Return this location expressed in another unit. Rotation is unchanged."""
        if units is self.units:
            return self
        return Location(
            units=units,
            x=convert_value(self.x, self.units, units),
            y=convert_value(self.y, self.units, units),
            z=convert_value(self.z, self.units, units),
            rotation=self.rotation,
        )

    def derive(
        self,
        x: float | None = None,
        y: float | None = None,
        z: float | None = None,
        rotation: float | None = None,
    ) -> Location:
        """Return a copy with any of the given fields replaced."""
        return Location(
            units=self.units,
            x=self.x if x is None else x,
            y=self.y if y is None else y,
            z=self.z if z is None else z,
            rotation=self.rotation if rotation is None else rotation,
        )

    def add(self, other: Location) -> Location:
        """Add x, y and z of another location. Rotation is kept from self."""
        other = other.convert_to_units(self.units)
        return self.derive(x=self.x + other.x, y=self.y + other.y, z=self.z + other.z)

    def subtract(self, other: Location) -> Location:
        """Subtract x, y and z of another location. Rotation is kept from self."""
        other = other.convert_to_units(self.units)
        return self.derive(x=self.x - other.x, y=self.y - other.y, z=self.z - other.z)

    def add_with_rotation(self, other: Location) -> Location:
        """Add all four coordinates of another location, rotation included."""
        return self.add(other).derive(rotation=self.rotation + other.rotation)

    def subtract_with_rotation(self, other: Location) -> Location:
        """Subtract all four coordinates of another location, rotation included."""
        return self.subtract(other).derive(rotation=self.rotation - other.rotation)

    def invert(
        self,
        x: bool = False,
        y: bool = False,
        z: bool = False,
        rotation: bool = False,
    ) -> Location:
        """Negate the selected fields (mirror about the corresponding axis).

        Bottom-side board coordinates are produced with ``invert(x=True)``.
        """
        return self.derive(
            x=-self.x if x else None,
            y=-self.y if y else None,
            z=-self.z if z else None,
            rotation=-self.rotation if rotation else None,
        )

    def rotate_xy(self, angle: float) -> Location:
        """Rotate the XY point about the origin by ``angle`` degrees.

        The rotation field itself is not changed.
        """
        if angle == 0.0:
            return self
        theta = math.radians(angle)
        cos_t = math.cos(theta)
        sin_t = math.sin(theta)
        return self.derive(
            x=self.x * cos_t - self.y * sin_t,
            y=self.x * sin_t + self.y * cos_t,
        )

    def rotate_xy_center(self, center: Location, angle: float) -> Location:
        """Rotate the XY point about ``center`` by ``angle`` degrees."""
        pivot = center.convert_to_units(self.units).derive(z=0.0)
        return self.subtract(pivot).rotate_xy(angle).add(pivot)

    def linear_distance_to(self, other: Location) -> float:
        """XY Euclidean distance to another location, in this location's units."""
        other = other.convert_to_units(self.units)
        return math.hypot(self.x - other.x, self.y - other.y)

    def xyz_distance_to(self, other: Location) -> float:
        """3D Euclidean distance to another location, in this location's units."""
        other = other.convert_to_units(self.units)
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def __str__(self) -> str:
        return (
            f"({self.x:.4f}, {self.y:.4f}, {self.z:.4f}, {self.rotation:.4f}) "
            f"{self.units.value}"
        )
