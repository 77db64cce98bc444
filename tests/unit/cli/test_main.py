"""Tests for the boardalign CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from boardalign import __version__
from boardalign.cli.main import app
from boardalign.config import settings

runner = CliRunner()


def _write(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def translation_pairs(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "pairs.json",
        {
            "pairs": [
                {"expected": [0, 0], "measured": [1, 1]},
                {"expected": [50, 0], "measured": [51, 1]},
            ]
        },
    )


@pytest.fixture
def scaled_pairs(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "scaled.json",
        {
            "pairs": [
                {"expected": [0, 0], "measured": [0, 0]},
                {"expected": [100, 0], "measured": [110, 0]},
                {"expected": [0, 100], "measured": [0, 100]},
            ]
        },
    )


@pytest.fixture
def job_path(tmp_path: Path) -> Path:
    return _write(
        tmp_path / "job.json",
        {
            "boards": [
                {
                    "name": "panel",
                    "width": 100,
                    "height": 80,
                    "placements": [
                        {"id": "FID1", "x": 5, "y": 5, "type": "fiducial"},
                        {"id": "FID2", "x": 95, "y": 5, "type": "fiducial"},
                        {"id": "FID3", "x": 50, "y": 75, "type": "fiducial_manual"},
                    ],
                }
            ],
            "board_locations": [
                {"id": "panel-1", "board": "panel", "x": 100, "y": 50},
            ],
            "truth": {"panel-1": {"tx": 101.0, "ty": 50.5, "rotation": 0.3}},
        },
    )


# =============================================================================
# Version Command
# =============================================================================


class TestVersionCommand:
    """Tests for `boardalign version`."""

    def test_version_outputs_version_string(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == f"boardalign {__version__}"

    def test_version_json_output(self) -> None:
        result = runner.invoke(app, ["version", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"version": __version__}

    def test_no_command_prints_help(self) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "solve" in result.stdout
        assert "simulate" in result.stdout


# =============================================================================
# Solve Command
# =============================================================================


class TestSolveCommand:
    """Tests for `boardalign solve`."""

    def test_passing_fit(self, translation_pairs: Path) -> None:
        result = runner.invoke(app, ["solve", str(translation_pairs)])
        assert result.exit_code == 0, result.output
        assert "Transform:" in result.stdout
        assert "Validation: PASS" in result.stdout

    def test_failing_fit_lists_violations(self, scaled_pairs: Path) -> None:
        result = runner.invoke(app, ["solve", str(scaled_pairs)])
        assert result.exit_code == 1
        assert "Validation: FAIL" in result.stdout
        assert "x scaling = 1.10000" in result.stdout

    def test_offset_option(self, translation_pairs: Path) -> None:
        result = runner.invoke(
            app, ["solve", str(translation_pairs), "--offset", "14.14"]
        )
        assert result.exit_code == 1
        assert "board origin moved 14.1400mm" in result.stdout

    def test_json_output(self, scaled_pairs: Path) -> None:
        result = runner.invoke(app, ["solve", str(scaled_pairs), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["passed"] is False
        assert data["decomposition"]["scale_x"] == pytest.approx(1.1)
        assert data["transform"]["m00"] == pytest.approx(1.1)
        assert data["residuals"]["rms"] == pytest.approx(0.0, abs=1e-9)
        assert [v["metric"] for v in data["violations"]] == ["scale_x"]
        assert data["violations"][0]["message"].startswith("x scaling")

    def test_degenerate_pairs_report_error(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "bad.json",
            {
                "pairs": [
                    {"expected": [1, 1], "measured": [0, 0]},
                    {"expected": [1, 1], "measured": [5, 5]},
                ]
            },
        )
        result = runner.invoke(app, ["solve", str(path)])
        assert result.exit_code == 1
        assert "Error: Expected points are coincident" in result.output

    def test_degenerate_pairs_json_error(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "bad.json",
            {"pairs": [{"expected": [1, 1], "measured": [0, 0]}]},
        )
        result = runner.invoke(app, ["solve", str(path), "--json"])
        assert result.exit_code == 1
        assert "At least 2" in json.loads(result.stdout)["error"]

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["solve", str(tmp_path / "missing.json")])
        assert result.exit_code != 0

    def test_invalid_tolerance_setting(
        self, translation_pairs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "SCALING_TOLERANCE", -1.0)
        result = runner.invoke(app, ["solve", str(translation_pairs)])
        assert result.exit_code == 1
        assert "SCALING_TOLERANCE is invalid" in result.output


# =============================================================================
# Order Command
# =============================================================================


class TestOrderCommand:
    """Tests for `boardalign order`."""

    def test_orders_points(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "points.json",
            {
                "start": [0, 0],
                "end": [40, 0],
                "points": [
                    {"id": "C", "x": 30, "y": 0},
                    {"id": "A", "x": 10, "y": 0},
                    {"id": "B", "x": 20, "y": 0},
                ],
            },
        )
        result = runner.invoke(app, ["order", str(path), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["order"] == ["A", "B", "C"]
        assert data["optimized_length_mm"] == pytest.approx(40.0)
        assert data["input_length_mm"] == pytest.approx(80.0)

    def test_text_output(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "points.json", {"points": []})
        result = runner.invoke(app, ["order", str(path)])
        assert result.exit_code == 0
        assert "Order: (empty)" in result.stdout
        assert "Path length: 0.000mm -> 0.000mm" in result.stdout


# =============================================================================
# Simulate Command
# =============================================================================


class TestSimulateCommand:
    """Tests for `boardalign simulate`."""

    def test_aligns_job(self, job_path: Path) -> None:
        result = runner.invoke(app, ["simulate", str(job_path)])
        assert result.exit_code == 0, result.output
        assert "panel-1: aligned" in result.stdout
        assert "Success: True" in result.stdout

    def test_json_output(self, job_path: Path) -> None:
        result = runner.invoke(
            app, ["simulate", str(job_path), "--json", "--noise", "0.01", "--seed", "3"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["success"] is True
        board = data["boards"][0]
        assert board["status"] == "aligned"
        assert board["new_location"]["x"] == pytest.approx(101.0, abs=0.1)
        assert data["transitions"][-1]["target"] == "done"

    def test_out_of_tolerance_job_fails(self, tmp_path: Path, job_path: Path) -> None:
        job = json.loads(job_path.read_text(encoding="utf-8"))
        job["truth"]["panel-1"] = {"tx": 110.0, "ty": 60.0}
        path = _write(tmp_path / "far.json", job)

        result = runner.invoke(app, ["simulate", str(path)])

        assert result.exit_code == 1
        assert "panel-1: failed (origin moved 14.1421mm)" in result.stdout
        assert "Success: False" in result.stdout

    def test_negative_noise_rejected(self, job_path: Path) -> None:
        result = runner.invoke(app, ["simulate", str(job_path), "--noise", "-1"])
        assert result.exit_code == 2

    def test_invalid_job_reports_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "job.json", {"boards": []})
        result = runner.invoke(app, ["simulate", str(path), "--json"])
        assert result.exit_code == 1
        assert "error" in json.loads(result.stdout)


class TestVerbosity:
    @pytest.mark.parametrize(
        ("flags", "level"),
        [([], "WARNING"), (["-v"], "INFO"), (["-vv"], "DEBUG")],
    )
    def test_verbose_flags_set_log_level(
        self, translation_pairs: Path, flags: list[str], level: str
    ) -> None:
        with patch("boardalign.cli.main.configure_logging") as mock_configure:
            runner.invoke(app, ["solve", str(translation_pairs), *flags])
        mock_configure.assert_called_once_with(level=level)
