"""Tests for boardalign.cli.runners module."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from boardalign.alignment import BoardStatus, Tolerances
from boardalign.cli.runners import run_order, run_simulation, run_solve
from boardalign.geometry import AffineTransform


def _write(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestRunSolve:
    def test_units_are_converted_to_millimeters(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "pairs.json",
            {
                "units": "cm",
                "pairs": [
                    {"expected": [0, 0], "measured": [1, 0]},
                    {"expected": [5, 0], "measured": [6, 0]},
                ],
            },
        )
        result = run_solve(path, origin_offset_mm=0.0, tolerances=Tolerances())
        assert result.transform.almost_equals(AffineTransform.translation(10.0, 0.0))
        assert result.report.passed

    def test_empty_pairs_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "pairs.json", {"pairs": []})
        with pytest.raises(ValidationError):
            run_solve(path, origin_offset_mm=0.0, tolerances=Tolerances())

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            run_solve(
                tmp_path / "nope.json", origin_offset_mm=0.0, tolerances=Tolerances()
            )


class TestRunOrder:
    def test_never_longer_than_input(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "points.json",
            {
                "start": [0, 0],
                "end": [0, 0],
                "points": [
                    {"id": "A", "x": 100, "y": 100},
                    {"id": "B", "x": 0, "y": 100},
                    {"id": "C", "x": 100, "y": 0},
                ],
            },
        )
        result = run_order(path, max_passes=50)
        assert sorted(result.order) == ["A", "B", "C"]
        assert result.optimized_length_mm <= result.input_length_mm
        assert result.optimized_length_mm == pytest.approx(400.0)


class TestRunSimulation:
    def test_tool_start_in_inches(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "job.json",
            {
                "boards": [
                    {
                        "name": "b",
                        "width": 50,
                        "height": 20,
                        "placements": [
                            {"id": "F1", "x": 0, "y": 0, "type": "fiducial"},
                            {"id": "F2", "x": 50, "y": 0, "type": "fiducial"},
                        ],
                    }
                ],
                "board_locations": [{"id": "b-1", "board": "b", "x": 10, "y": 10}],
                "tool_start": {"x": 1, "y": 1, "units": "in"},
                "truth": {"b-1": {"tx": 11, "ty": 11}},
            },
        )
        result = run_simulation(
            path, noise_mm=0.0, seed=None, tolerances=Tolerances(), max_passes=50
        )
        assert result.success
        board = result.boards[0]
        assert board.status is BoardStatus.ALIGNED
        assert board.origin_offset_mm == pytest.approx(2**0.5)
