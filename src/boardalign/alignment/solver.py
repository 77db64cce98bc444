"""Affine transform fitting from fiducial correspondences.

Given N ordered pairs (expected design-local point, measured machine point),
the solver fits the design->machine AffineTransform:

- N == 2: a similarity transform (uniform scale, rotation, translation) from
  the vector joining the two expected points and the vector joining the two
  measured points.
- N >= 3: the full six-parameter affine transform minimizing
  sum(|T(expected_i) - measured_i|^2), solved from the normal equations on
  centered coordinates.

All computation is done in millimeters.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from boardalign.alignment.exceptions import DegenerateGeometryError
from boardalign.geometry.affine import AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location

logger = logging.getLogger(__name__)

PointLike = Location | tuple[float, float]

# Relative size of the smallest singular value of the centered expected
# points below which they are treated as collinear.
COLLINEARITY_RATIO = 1e-9

# Absolute length (mm) below which two expected points are coincident.
COINCIDENT_EPSILON_MM = 1e-9


@dataclass(frozen=True)
class Residuals:
    """Per-point fit residuals in millimeters.

    Attributes:
        distances: Distance |T(expected_i) - measured_i| for each pair.
    """

    distances: tuple[float, ...]

    @property
    def mean(self) -> float:
        return float(np.mean(self.distances)) if self.distances else 0.0

    @property
    def max(self) -> float:
        return float(np.max(self.distances)) if self.distances else 0.0

    @property
    def rms(self) -> float:
        if not self.distances:
            return 0.0
        return float(np.sqrt(np.mean(np.square(self.distances))))


def _as_array(points: Sequence[PointLike]) -> np.ndarray:
    """Convert Locations (any unit) or (x, y) pairs to an (N, 2) mm array."""
    rows: list[tuple[float, float]] = []
    for point in points:
        if isinstance(point, Location):
            rows.append(point.convert_to_units(LengthUnit.MILLIMETERS).to_xy())
        else:
            rows.append((float(point[0]), float(point[1])))
    return np.asarray(rows, dtype=float).reshape(-1, 2)


class AffineTransformSolver:
    """Fits design->machine transforms from correspondence pairs.

    The solver is stateless and has no side effects.

    Usage:
        solver = AffineTransformSolver()
        tx = solver.solve(expected_locations, measured_locations)
    """

    def solve(
        self,
        expected: Sequence[PointLike],
        measured: Sequence[PointLike],
    ) -> AffineTransform:
        """Fit the transform mapping ``expected`` onto ``measured``.

        Args:
            expected: Design-local points (already mirrored for bottom side).
            measured: Machine points, same order and length as ``expected``.

        Returns:
            The fitted AffineTransform (millimeters).

        Raises:
            ValueError: If the two sequences differ in length.
            DegenerateGeometryError: If fewer than two pairs are given or the
                geometry does not determine a non-singular transform.
        """
        if len(expected) != len(measured):
            raise ValueError(
                f"expected and measured must have the same length "
                f"({len(expected)} != {len(measured)})"
            )
        if len(expected) < 2:
            raise DegenerateGeometryError(
                f"At least 2 correspondence pairs are required, got {len(expected)}"
            )

        src = _as_array(expected)
        dst = _as_array(measured)

        if len(src) == 2:
            transform = self._solve_similarity(src, dst)
        else:
            transform = self._solve_affine(src, dst)

        if not all(math.isfinite(v) for v in transform.to_matrix().ravel()):
            raise DegenerateGeometryError("Fitted transform is not finite")
        if transform.determinant == 0.0:
            raise DegenerateGeometryError("Fitted transform is singular")
        return transform

    def _solve_similarity(self, src: np.ndarray, dst: np.ndarray) -> AffineTransform:
        v_src = src[1] - src[0]
        v_dst = dst[1] - dst[0]

        len_src = float(np.hypot(*v_src))
        len_dst = float(np.hypot(*v_dst))
        if len_src < COINCIDENT_EPSILON_MM:
            raise DegenerateGeometryError("Expected points are coincident")
        if len_dst < COINCIDENT_EPSILON_MM:
            raise DegenerateGeometryError("Measured points are coincident")

        scale = len_dst / len_src
        angle = math.atan2(v_dst[1], v_dst[0]) - math.atan2(v_src[1], v_src[0])
        a = scale * math.cos(angle)
        b = scale * math.sin(angle)

        # translation from the first pair: t = dst0 - R * src0
        tx = dst[0, 0] - (a * src[0, 0] - b * src[0, 1])
        ty = dst[0, 1] - (b * src[0, 0] + a * src[0, 1])
        return AffineTransform(m00=a, m01=-b, m02=tx, m10=b, m11=a, m12=ty)

    def _solve_affine(self, src: np.ndarray, dst: np.ndarray) -> AffineTransform:
        src_center = src.mean(axis=0)
        dst_center = dst.mean(axis=0)
        src_c = src - src_center
        dst_c = dst - dst_center

        singular_values = np.linalg.svd(src_c, compute_uv=False)
        if singular_values[0] < COINCIDENT_EPSILON_MM:
            raise DegenerateGeometryError("Expected points are coincident")
        if singular_values[-1] / singular_values[0] < COLLINEARITY_RATIO:
            raise DegenerateGeometryError("Expected points are collinear")

        # Normal equations (X^T X) A^T = X^T Y on centered coordinates; the
        # translation then follows from the centroids.
        normal = src_c.T @ src_c
        rhs = src_c.T @ dst_c
        try:
            linear = np.linalg.solve(normal, rhs).T
        except np.linalg.LinAlgError as e:
            raise DegenerateGeometryError(
                f"Normal-equation matrix is not invertible: {e}"
            ) from e

        translation = dst_center - linear @ src_center
        return AffineTransform(
            m00=float(linear[0, 0]),
            m01=float(linear[0, 1]),
            m02=float(translation[0]),
            m10=float(linear[1, 0]),
            m11=float(linear[1, 1]),
            m12=float(translation[1]),
        )

    def residuals(
        self,
        transform: AffineTransform,
        expected: Sequence[PointLike],
        measured: Sequence[PointLike],
    ) -> Residuals:
        """Compute per-pair residual distances of a fitted transform."""
        src = _as_array(expected)
        dst = _as_array(measured)
        matrix = transform.to_matrix()
        mapped = src @ matrix[:2, :2].T + matrix[:2, 2]
        distances = np.hypot(*(mapped - dst).T) if len(src) else np.empty(0)
        return Residuals(distances=tuple(float(d) for d in distances))
