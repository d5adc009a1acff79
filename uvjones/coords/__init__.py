"""
Coordinates: time, celestial frames, antenna geometry and UVWs.
"""

from uvjones.coords.time import Epoch
from uvjones.coords.frames import (
    Frame,
    Direction,
    HADec,
    LMN,
    FRAME_MODEL,
    ReductionModel,
    PrecessionInfo,
    require_frame,
    to_apparent,
    to_mean,
    local_altaz,
    parallactic_angle,
    get_lmst,
    get_last,
    precess_time,
    zenith_direction,
)
from uvjones.coords.earth import LatLngHeight, Ellipsoid
from uvjones.coords.antenna import (
    AntennaPosition,
    ArrayLayout,
    enu_to_xyz,
    xyz_to_enu,
    local_to_geocentric,
    geocentric_to_local,
)
from uvjones.coords.uvw import (
    Baseline,
    UVW,
    xyz_to_uvw,
    compute_uvw,
    compute_uvws,
    geometric_delays,
    cross_correlation_baselines,
)

__all__ = [
    # Time
    "Epoch",
    # Frames
    "Frame",
    "Direction",
    "HADec",
    "LMN",
    "FRAME_MODEL",
    "ReductionModel",
    "PrecessionInfo",
    "require_frame",
    "to_apparent",
    "to_mean",
    "local_altaz",
    "parallactic_angle",
    "get_lmst",
    "get_last",
    "precess_time",
    "zenith_direction",
    # Earth
    "LatLngHeight",
    "Ellipsoid",
    # Antennas
    "AntennaPosition",
    "ArrayLayout",
    "enu_to_xyz",
    "xyz_to_enu",
    "local_to_geocentric",
    "geocentric_to_local",
    # UVW
    "Baseline",
    "UVW",
    "xyz_to_uvw",
    "compute_uvw",
    "compute_uvws",
    "geometric_delays",
    "cross_correlation_baselines",
]
