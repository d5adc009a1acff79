"""
Epoch Handling.

An Epoch is an instant on one continuous time scale (TAI). Calendar strings,
GPS seconds and UTC MJDs are only produced or consumed at the boundary.

Sidereal time needs UT1; without IERS tables we use UTC as UT1 (|UT1-UTC|
< 0.9 s), as the MWA metafits LST values do.
"""

import functools
from typing import Iterable, Tuple

import numpy as np
from astropy.time import Time, TimeDelta

_GPS_ZERO = Time(0.0, format="gps", scale="tai")


@functools.total_ordering
class Epoch:
    """
    Immutable instant in time.

    Parameters
    ----------
    time : astropy.time.Time
        Scalar time in any scale; stored in TAI.
    """

    __slots__ = ("_time",)

    def __init__(self, time: Time):
        if not time.isscalar:
            raise ValueError("Epoch requires a scalar astropy Time")
        object.__setattr__(self, "_time", time.tai)

    def __setattr__(self, name, value):
        raise AttributeError("Epoch is immutable")

    # ------------------------------------------------------------------
    # Boundary conversions
    # ------------------------------------------------------------------

    @classmethod
    def from_gps(cls, gps_seconds: float) -> "Epoch":
        """Epoch from GPS seconds (seconds since 1980-01-06 UTC)."""
        return cls(Time(float(gps_seconds), format="gps", scale="tai"))

    @classmethod
    def from_isot(cls, isot: str, scale: str = "utc") -> "Epoch":
        """Epoch from an ISO-8601 calendar string."""
        return cls(Time(isot, format="isot", scale=scale))

    @classmethod
    def from_mjd_utc(cls, mjd: float) -> "Epoch":
        return cls(Time(float(mjd), format="mjd", scale="utc"))

    @classmethod
    def from_mjd_utc_seconds(cls, mjd_seconds: float) -> "Epoch":
        """Epoch from MJD seconds (UTC), the MeasurementSet TIME convention."""
        return cls.from_mjd_utc(mjd_seconds / 86400.0)

    @property
    def time(self) -> Time:
        return self._time

    @property
    def gps_seconds(self) -> float:
        return float(self._time.gps)

    @property
    def mjd_utc(self) -> float:
        return float(self._time.utc.mjd)

    @property
    def mjd_utc_seconds(self) -> float:
        return self.mjd_utc * 86400.0

    @property
    def isot(self) -> str:
        """UTC calendar representation."""
        return self._time.utc.isot

    @property
    def jd_tt(self) -> Tuple[float, float]:
        """Two-part Julian date in TT, as erfa expects."""
        tt = self._time.tt
        return float(tt.jd1), float(tt.jd2)

    @property
    def jd_ut1(self) -> Tuple[float, float]:
        """Two-part Julian date in UT1 (approximated by UTC)."""
        utc = self._time.utc
        return float(utc.jd1), float(utc.jd2)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, seconds: float) -> "Epoch":
        if isinstance(seconds, Epoch):
            return NotImplemented
        return Epoch(self._time + TimeDelta(float(seconds), format="sec"))

    def __sub__(self, other):
        """
        ``epoch - epoch`` gives seconds; ``epoch - seconds`` gives an Epoch.
        """
        if isinstance(other, Epoch):
            return float((self._time - other._time).to_value("s"))
        return Epoch(self._time - TimeDelta(float(other), format="sec"))

    def _key(self) -> int:
        # whole microseconds since the GPS zero point; equality, ordering
        # and hashing all use this one value
        delta = self._time - _GPS_ZERO
        return int(round(delta.jd1 * 86_400e6)) + int(round(delta.jd2 * 86_400e6))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Epoch):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other) -> bool:
        if not isinstance(other, Epoch):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return f"Epoch({self.isot} UTC, gps={self.gps_seconds:.3f})"

    @staticmethod
    def centroid(epochs: Iterable["Epoch"]) -> "Epoch":
        """
        Mean of several epochs.

        Offsets from the first epoch are averaged so that the result does
        not lose precision to large absolute Julian dates.
        """
        epochs = list(epochs)
        if not epochs:
            raise ValueError("centroid of an empty epoch list")
        first = epochs[0]
        offsets = np.array([e - first for e in epochs], dtype=np.float64)
        return first + float(offsets.mean())
