"""2D affine transforms for boardalign.

An AffineTransform maps design-local board coordinates (millimeters) onto
machine coordinates (millimeters):

    x' = m00 * x + m01 * y + m02
    y' = m10 * x + m11 * y + m12

The linear part can be decomposed into scale, shear and rotation for
diagnostics. The decomposition used throughout boardalign is

    A = R(rotation) @ [[scale_x, shear_x * scale_y],
                       [0,       scale_y          ]]

so a pure translation decomposes to scale=(1, 1), shear=0, rotation=0.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Self

import numpy as np
from pydantic import BaseModel, Field

from boardalign.geometry.primitives import LengthUnit, Location

if TYPE_CHECKING:
    import numpy.typing as npt


class SingularTransformError(ValueError):
    """Raised when a transform with a zero determinant must be inverted."""


class AffineDecomposition(BaseModel, frozen=True):
    """Scale, shear, rotation and translation extracted from an AffineTransform.

    Attributes:
        scale_x: Length of the transformed X basis vector.
        scale_y: Signed Y scale (negative when the transform mirrors).
        shear_x: X shear relative to the Y axis (0 for a similarity).
        rotation_deg: Rotation of the transformed X basis vector, degrees.
        translate_x: X translation (mm).
        translate_y: Y translation (mm).
    """

    scale_x: float
    scale_y: float
    shear_x: float
    rotation_deg: float
    translate_x: float
    translate_y: float

    def __str__(self) -> str:
        return (
            f"scale=({self.scale_x:.5f}, {self.scale_y:.5f}), "
            f"shear={self.shear_x:.5f}, rotation={self.rotation_deg:.4f}deg, "
            f"translation=({self.translate_x:.4f}, {self.translate_y:.4f})"
        )


class AffineTransform(BaseModel, frozen=True):
    """Immutable 2D affine transform (2x2 linear part plus translation).

    Attributes:
        m00: Row 0, column 0 of the linear part.
        m01: Row 0, column 1 of the linear part.
        m02: X translation.
        m10: Row 1, column 0 of the linear part.
        m11: Row 1, column 1 of the linear part.
        m12: Y translation.
    """

    m00: float = Field(default=1.0)
    m01: float = Field(default=0.0)
    m02: float = Field(default=0.0)
    m10: float = Field(default=0.0)
    m11: float = Field(default=1.0)
    m12: float = Field(default=0.0)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls) -> Self:
        """Return the identity transform."""
        return cls()

    @classmethod
    def translation(cls, tx: float, ty: float) -> Self:
        """Return a pure translation."""
        return cls(m02=tx, m12=ty)

    @classmethod
    def rotation(cls, degrees: float) -> Self:
        """Return a rotation about the origin, counter-clockwise in degrees."""
        theta = math.radians(degrees)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        return cls(m00=cos_t, m01=-sin_t, m10=sin_t, m11=cos_t)

    @classmethod
    def scaling(cls, sx: float, sy: float) -> Self:
        """Return an axis-aligned scale about the origin."""
        return cls(m00=sx, m11=sy)

    @classmethod
    def similarity(
        cls, scale: float, rotation_deg: float, tx: float = 0.0, ty: float = 0.0
    ) -> Self:
        """Return a similarity transform: uniform scale, rotation, translation."""
        theta = math.radians(rotation_deg)
        a = scale * math.cos(theta)
        b = scale * math.sin(theta)
        return cls(m00=a, m01=-b, m02=tx, m10=b, m11=a, m12=ty)

    @classmethod
    def from_matrix(cls, matrix: npt.ArrayLike) -> Self:
        """Create a transform from a 2x3 or 3x3 matrix.

        Raises:
            ValueError: If the matrix has another shape or a non-affine last row.
        """
        m = np.asarray(matrix, dtype=float)
        if m.shape == (3, 3):
            if not np.allclose(m[2], (0.0, 0.0, 1.0)):
                raise ValueError(f"Not an affine matrix, last row is {m[2].tolist()}")
            m = m[:2]
        if m.shape != (2, 3):
            raise ValueError(f"Expected a 2x3 or 3x3 matrix, got shape {m.shape}")
        return cls(
            m00=float(m[0, 0]),
            m01=float(m[0, 1]),
            m02=float(m[0, 2]),
            m10=float(m[1, 0]),
            m11=float(m[1, 1]),
            m12=float(m[1, 2]),
        )

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def to_matrix(self) -> np.ndarray:
        """Return the homogeneous 3x3 matrix."""
        return np.array(
            [
                [self.m00, self.m01, self.m02],
                [self.m10, self.m11, self.m12],
                [0.0, 0.0, 1.0],
            ],
            dtype=float,
        )

    @property
    def determinant(self) -> float:
        """Determinant of the linear part."""
        return self.m00 * self.m11 - self.m01 * self.m10

    @property
    def rotation_deg(self) -> float:
        """Rotation of the transformed X axis, in degrees."""
        return math.degrees(math.atan2(self.m10, self.m00))

    def apply(self, x: float, y: float) -> tuple[float, float]:
        """Map a point through the transform."""
        return (
            self.m00 * x + self.m01 * y + self.m02,
            self.m10 * x + self.m11 * y + self.m12,
        )

    def apply_location(self, location: Location) -> Location:
        """Map a Location's XY through the transform.

        The transform is expressed in millimeters, so the point is converted
        to mm first and the result converted back to the input's units. The
        transform's rotation is added to the location's rotation; Z is kept.
        """
        local_mm = location.convert_to_units(LengthUnit.MILLIMETERS)
        x, y = self.apply(local_mm.x, local_mm.y)
        mapped = local_mm.derive(
            x=x, y=y, rotation=local_mm.rotation + self.rotation_deg
        )
        return mapped.convert_to_units(location.units)

    def compose(self, other: AffineTransform) -> AffineTransform:
        """Return the transform that applies ``other`` first and then ``self``."""
        return AffineTransform.from_matrix(self.to_matrix() @ other.to_matrix())

    def inverse(self) -> AffineTransform:
        """Return the inverse transform.

        Raises:
            SingularTransformError: If the linear part is not invertible.
        """
        det = self.determinant
        if math.isclose(det, 0.0, abs_tol=1e-15):
            raise SingularTransformError(f"Transform is not invertible (det={det:g})")
        inv00 = self.m11 / det
        inv01 = -self.m01 / det
        inv10 = -self.m10 / det
        inv11 = self.m00 / det
        return AffineTransform(
            m00=inv00,
            m01=inv01,
            m02=-(inv00 * self.m02 + inv01 * self.m12),
            m10=inv10,
            m11=inv11,
            m12=-(inv10 * self.m02 + inv11 * self.m12),
        )

    def decompose(self) -> AffineDecomposition:
        """Split the transform into scale, shear, rotation and translation.

        Returns:
            AffineDecomposition with scale_x, scale_y, shear_x, rotation.

        Raises:
            SingularTransformError: If the transform collapses the plane.
        """
        scale_x = math.hypot(self.m00, self.m10)
        det = self.determinant
        if scale_x == 0.0 or det == 0.0:
            raise SingularTransformError(
                f"Cannot decompose a singular transform (det={det:g})"
            )
        return AffineDecomposition(
            scale_x=scale_x,
            scale_y=det / scale_x,
            shear_x=(self.m00 * self.m01 + self.m10 * self.m11) / det,
            rotation_deg=self.rotation_deg,
            translate_x=self.m02,
            translate_y=self.m12,
        )

    def almost_equals(self, other: AffineTransform, tol: float = 1e-9) -> bool:
        """Compare all six parameters within an absolute tolerance."""
        return bool(
            np.allclose(self.to_matrix(), other.to_matrix(), rtol=0.0, atol=tol)
        )
