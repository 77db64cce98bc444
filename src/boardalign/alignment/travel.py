"""Travel ordering for visiting fiducials.

Orders a set of items so that the open path

    start -> item_1 -> ... -> item_n -> end

is short. The heuristic is deterministic: a nearest-neighbour construction
from the start anchor followed by 2-opt segment reversal passes. 2-opt is
also run on the caller's order, and the shorter of the two results is
returned, so the result is never longer than the input order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import numpy as np

from boardalign.geometry.primitives import LengthUnit, Location

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Improvements smaller than this (mm) are ignored so that floating point
# noise cannot make a pass loop forever.
_MIN_GAIN_MM = 1e-9


def _distance_matrix(points: Sequence[Location]) -> np.ndarray:
    xy = np.asarray(
        [p.convert_to_units(LengthUnit.MILLIMETERS).to_xy() for p in points],
        dtype=float,
    ).reshape(-1, 2)
    delta = xy[:, None, :] - xy[None, :, :]
    return np.hypot(delta[..., 0], delta[..., 1])


def _route_length(dist: np.ndarray, route: Sequence[int]) -> float:
    return float(sum(dist[a, b] for a, b in zip(route, route[1:], strict=False)))


@dataclass
class TravelOptimizer(Generic[T]):
    """Heuristic open-path ordering between fixed start and end anchors.

    Attributes:
        max_passes: Upper bound on 2-opt improvement passes per route.

    Usage:
        optimizer = TravelOptimizer[Placement](max_passes=50)
        ordered = optimizer.optimize(
            fiducials,
            locator=lambda p: board_location.placement_location(p.location),
            start=camera_location,
            end=board_location.location,
        )
    """

    max_passes: int = 50

    def __post_init__(self) -> None:
        if self.max_passes < 0:
            raise ValueError(f"max_passes must be >= 0, got {self.max_passes}")

    def optimize(
        self,
        items: Sequence[T],
        locator: Callable[[T], Location],
        start: Location,
        end: Location,
    ) -> list[T]:
        """Return a visiting order for ``items``.

        Args:
            items: Items to visit; the sequence order is the baseline.
            locator: Maps an item to its (machine) location.
            start: Fixed start anchor (e.g. the current tool location).
            end: Fixed end anchor (e.g. the board origin).

        Returns:
            A permutation of ``items``. Empty and single-item inputs are
            returned unchanged.
        """
        if len(items) <= 1:
            return list(items)

        # Node 0 is the start anchor, nodes 1..n the items, node n+1 the end.
        points = [start, *(locator(item) for item in items), end]
        dist = _distance_matrix(points)
        n = len(items)

        baseline = list(range(n + 2))
        baseline_length = _route_length(dist, baseline)

        nearest = self._improve(dist, self._nearest_neighbour(dist, n))
        from_input = self._improve(dist, baseline)

        best = min(
            (from_input, nearest),
            key=lambda route: _route_length(dist, route),
        )
        best_length = _route_length(dist, best)

        logger.debug(
            "Travel order for %d items: %.3fmm -> %.3fmm",
            n,
            baseline_length,
            best_length,
        )
        return [items[node - 1] for node in best[1:-1]]

    def path_length(
        self,
        items: Sequence[T],
        locator: Callable[[T], Location],
        start: Location,
        end: Location,
    ) -> float:
        """Length (mm) of the open path start -> items (in order) -> end."""
        points = [start, *(locator(item) for item in items), end]
        dist = _distance_matrix(points)
        return _route_length(dist, list(range(len(points))))

    @staticmethod
    def _nearest_neighbour(dist: np.ndarray, n: int) -> list[int]:
        route = [0]
        remaining = list(range(1, n + 1))
        current = 0
        while remaining:
            # min() keeps the first of equal candidates, so ties follow input order
            nxt = min(remaining, key=dist[current].__getitem__)
            remaining.remove(nxt)
            route.append(nxt)
            current = nxt
        route.append(n + 1)
        return route

    def _improve(self, dist: np.ndarray, route: list[int]) -> list[int]:
        """2-opt on the inner nodes; the anchors at both ends stay fixed."""
        route = list(route)
        last_inner = len(route) - 2
        for _ in range(self.max_passes):
            improved = False
            for i in range(1, last_inner):
                for j in range(i + 1, last_inner + 1):
                    a, b = route[i - 1], route[i]
                    c, e = route[j], route[j + 1]
                    gain = dist[a, b] + dist[c, e] - dist[a, c] - dist[b, e]
                    if gain > _MIN_GAIN_MM:
                        route[i : j + 1] = reversed(route[i : j + 1])
                        improved = True
            if not improved:
                break
        return route
