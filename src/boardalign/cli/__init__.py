"""CLI module for boardalign.

Provides the command-line interface for fitting transforms, ordering
fiducial visits and simulated alignment runs.
"""

from __future__ import annotations

from boardalign.cli.main import app

__all__ = ["app"]
