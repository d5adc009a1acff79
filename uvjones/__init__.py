"""
UVJONES - MWA visibility preprocessing core

Coordinate frames, UVWs, Jones algebra and the visibility pipeline for the
Murchison Widefield Array:

- Epochs and J2000 <-> apparent frame reduction (ERFA)
- Antenna geometry and per-timestep UVWs
- 2x2 Jones algebra, solution tables and interpolation
- Phase rotation, calibration, averaging and flag propagation of
  visibility blocks, with pluggable format adapters
"""

__version__ = "0.1.0"

from uvjones.errors import (
    UVJonesError,
    FrameError,
    ConfigError,
    SingularMatrixError,
    ShapeMismatchError,
)
from uvjones.coords import Epoch, Direction, Frame, ArrayLayout, LatLngHeight, compute_uvw
from uvjones.jones import Jones
from uvjones.core import VisibilityPipeline, ProcessedBlock

__all__ = [
    "UVJonesError",
    "FrameError",
    "ConfigError",
    "SingularMatrixError",
    "ShapeMismatchError",
    "Epoch",
    "Direction",
    "Frame",
    "ArrayLayout",
    "LatLngHeight",
    "compute_uvw",
    "Jones",
    "VisibilityPipeline",
    "ProcessedBlock",
]
