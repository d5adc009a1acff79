"""
UVW Engine.

Baseline convention:
    The baseline vector of (ant1, ant2) is position(ant1) - position(ant2),
    as written by the MWA uvfits and MeasurementSet products. Reversing a
    baseline negates its UVW exactly.

UVW frame:
    w towards the phase centre, u east and v north in the sky plane, with
    all coordinates expressed in the J2000 frame (antenna positions are
    precessed to J2000 before projection).
"""

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Sequence

import numpy as np

from uvjones.constants import VEL_C
from uvjones.coords.antenna import ArrayLayout
from uvjones.coords.frames import Direction, HADec, PrecessionInfo, precess_time
from uvjones.coords.time import Epoch


class Baseline(NamedTuple):
    """Ordered antenna pair; the vector is ant1 - ant2."""
    ant1: int
    ant2: int

    def reverse(self) -> "Baseline":
        return Baseline(self.ant2, self.ant1)

    @property
    def is_auto(self) -> bool:
        return self.ant1 == self.ant2


@dataclass(frozen=True)
class UVW:
    """Baseline coordinates (metres unless stated otherwise)."""
    u: float
    v: float
    w: float

    def __neg__(self) -> "UVW":
        return UVW(-self.u, -self.v, -self.w)

    def __add__(self, other: "UVW") -> "UVW":
        return UVW(self.u + other.u, self.v + other.v, self.w + other.w)

    def __sub__(self, other: "UVW") -> "UVW":
        return UVW(self.u - other.u, self.v - other.v, self.w - other.w)

    def __mul__(self, scale: float) -> "UVW":
        return UVW(self.u * scale, self.v * scale, self.w * scale)

    __rmul__ = __mul__

    def __truediv__(self, scale: float) -> "UVW":
        return UVW(self.u / scale, self.v / scale, self.w / scale)

    def to_array(self) -> np.ndarray:
        return np.array([self.u, self.v, self.w], dtype=np.float64)

    def to_wavelengths(self, freq_hz: float) -> "UVW":
        return self * (freq_hz / VEL_C)

    @property
    def delay(self) -> float:
        """Geometric delay (seconds)."""
        return self.w / VEL_C

    @property
    def length(self) -> float:
        return float(np.sqrt(self.u ** 2 + self.v ** 2 + self.w ** 2))


def xyz_to_uvw(xyz: np.ndarray, hadec: HADec) -> np.ndarray:
    """
    Project local equatorial XYZ onto the UVW frame of a phase centre.

    Parameters
    ----------
    xyz : ndarray (..., 3)
        Baseline or antenna vectors
    hadec : HADec
        Phase centre hour angle and declination

    Returns
    -------
    uvw : ndarray (..., 3)
    """
    xyz = np.asarray(xyz, dtype=np.float64)
    s_ha, c_ha = np.sin(hadec.ha), np.cos(hadec.ha)
    s_dec, c_dec = np.sin(hadec.dec), np.cos(hadec.dec)
    x, y, z = xyz[..., 0], xyz[..., 1], xyz[..., 2]

    uvw = np.empty_like(xyz)
    uvw[..., 0] = s_ha * x + c_ha * y
    uvw[..., 1] = -s_dec * c_ha * x + s_dec * s_ha * y + c_dec * z
    uvw[..., 2] = c_dec * c_ha * x - c_dec * s_ha * y + s_dec * z
    return uvw


def cross_correlation_baselines(
    identifiers: Iterable[int],
    autos: bool = False,
) -> List[Baseline]:
    """
    Canonical baseline list in ascending (ant1, ant2) order with ant1 < ant2.
    """
    ids = sorted(identifiers)
    baselines = []
    for i, a in enumerate(ids):
        start = i if autos else i + 1
        for b in ids[start:]:
            baselines.append(Baseline(a, b))
    return baselines


def _baseline_vectors(
    baselines: Sequence[Baseline],
    xyz_precessed: np.ndarray,
    layout: ArrayLayout,
) -> np.ndarray:
    rows1 = layout.rows(b.ant1 for b in baselines)
    rows2 = layout.rows(b.ant2 for b in baselines)
    return xyz_precessed[rows1] - xyz_precessed[rows2]


def compute_uvws(
    baselines: Sequence[Baseline],
    direction: Direction,
    epoch: Epoch,
    layout: ArrayLayout,
    precession: Optional[PrecessionInfo] = None,
) -> np.ndarray:
    """
    UVWs of many baselines at one epoch.

    Parameters
    ----------
    baselines : sequence of Baseline
    direction : Direction
        J2000 phase centre
    epoch : Epoch
    layout : ArrayLayout
    precession : PrecessionInfo, optional
        Reuse precomputed precession for this (direction, epoch)

    Returns
    -------
    uvw : ndarray (n_bl, 3)
        Metres
    """
    if precession is None:
        precession = precess_time(direction, epoch, layout.array_location)
    xyz = precession.precess_xyz(layout.xyz)
    vectors = _baseline_vectors(baselines, xyz, layout)
    return xyz_to_uvw(vectors, precession.hadec_j2000)


def compute_uvw(
    baseline: Baseline,
    direction: Direction,
    epoch: Epoch,
    layout: ArrayLayout,
) -> UVW:
    """UVW (metres) of one baseline towards ``direction`` at ``epoch``."""
    u, v, w = compute_uvws([baseline], direction, epoch, layout)[0]
    return UVW(float(u), float(v), float(w))


def geometric_delays(
    baselines: Sequence[Baseline],
    direction: Direction,
    epoch: Epoch,
    layout: ArrayLayout,
) -> np.ndarray:
    """Geometric delay (seconds) of each baseline."""
    return compute_uvws(baselines, direction, epoch, layout)[:, 2] / VEL_C
