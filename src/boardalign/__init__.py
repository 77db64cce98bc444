"""boardalign: fiducial-based board alignment for pick-and-place machines."""

__version__ = "0.3.0"
