"""Geometry module for boardalign.

This package provides the coordinate value types shared by the whole
alignment engine.

Key Components:
    - Primitives: LengthUnit, Length and Location (point + rotation + unit)
    - Affine: AffineTransform and its scale/shear/rotation decomposition

Example:
    from boardalign.geometry import AffineTransform, Location

    fiducial = Location.mm(x=50.0, y=0.0)
    board_to_machine = AffineTransform.similarity(1.0, 90.0, tx=10.0, ty=10.0)
    machine = board_to_machine.apply_location(fiducial)  # (10, 60) mm, 90 deg
"""

from boardalign.geometry.affine import (
    AffineDecomposition,
    AffineTransform,
    SingularTransformError,
)
from boardalign.geometry.primitives import Length, LengthUnit, Location, convert_value

__all__ = [
    "AffineDecomposition",
    "AffineTransform",
    "Length",
    "LengthUnit",
    "Location",
    "SingularTransformError",
    "convert_value",
]
