"""Shared pytest fixtures and configuration."""

from collections.abc import Iterator

import pytest

from boardalign.config import Settings
from boardalign.geometry import Location
from boardalign.model import Board, BoardLocation, Placement, PlacementType, Side
from boardalign.utils.logging import clear_correlation_context, configure_logging


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    """Reset correlation context between tests."""
    clear_correlation_context()
    yield
    clear_correlation_context()


@pytest.fixture
def test_settings() -> Settings:
    """Create a Settings instance with test-safe defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
    )


@pytest.fixture
def configure_test_logging() -> Iterator[None]:
    """Configure logging for tests with console output."""
    configure_logging(level="DEBUG", log_format="console")
    yield


@pytest.fixture
def two_fiducial_board() -> Board:
    """A 50x20mm board with manual fiducials at (0,0) and (50,0)."""
    return Board(
        name="two-fid",
        dimensions=Location.mm(50.0, 20.0),
        placements=(
            Placement(
                id="FID1",
                location=Location.mm(0.0, 0.0),
                type=PlacementType.FIDUCIAL_MANUAL,
            ),
            Placement(
                id="FID2",
                location=Location.mm(50.0, 0.0),
                type=PlacementType.FIDUCIAL_MANUAL,
            ),
            Placement(id="R1", location=Location.mm(10.0, 5.0)),
        ),
    )


@pytest.fixture
def panel_board() -> Board:
    """A 100x80mm board with three automatic fiducials per side."""
    placements = []
    for side in (Side.TOP, Side.BOTTOM):
        suffix = "T" if side is Side.TOP else "B"
        for i, (x, y) in enumerate([(5.0, 5.0), (95.0, 5.0), (50.0, 75.0)], start=1):
            placements.append(
                Placement(
                    id=f"FID{i}{suffix}",
                    location=Location.mm(x, y),
                    type=PlacementType.FIDUCIAL,
                    side=side,
                )
            )
    placements.append(Placement(id="U1", location=Location.mm(40.0, 40.0)))
    return Board(
        name="panel",
        dimensions=Location.mm(100.0, 80.0),
        placements=tuple(placements),
    )


@pytest.fixture
def board_location(panel_board: Board) -> BoardLocation:
    """The panel placed at (100, 50) mm, top side up."""
    return BoardLocation("panel-1", panel_board, Location.mm(100.0, 50.0))
