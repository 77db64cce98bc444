"""Machine backends implementing the alignment capability protocols."""

from boardalign.machine.simulated import (
    FiducialKey,
    SimulatedMachine,
    SimulatedOperatorGate,
)

__all__ = ["FiducialKey", "SimulatedMachine", "SimulatedOperatorGate"]
