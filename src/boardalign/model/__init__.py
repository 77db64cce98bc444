"""Board model for boardalign: boards, placements and board locations."""

from boardalign.model.board import (
    Board,
    BoardLocation,
    BoardLocationListener,
    Placement,
    PlacementType,
    Side,
)

__all__ = [
    "Board",
    "BoardLocation",
    "BoardLocationListener",
    "Placement",
    "PlacementType",
    "Side",
]
