"""
Geodetic Positions.

Array reference locations as (longitude, latitude, height) on a reference
ellipsoid, converted to geocentric (ITRF-like) XYZ with erfa.
"""

from dataclasses import dataclass
from enum import IntEnum

import erfa
import numpy as np

from uvjones.constants import MWA_HEIGHT_M, MWA_LAT_RAD, MWA_LONG_RAD
from uvjones.errors import FrameError


class Ellipsoid(IntEnum):
    """erfa ellipsoid identifiers."""
    WGS84 = 1
    GRS80 = 2
    WGS72 = 3


@dataclass(frozen=True)
class LatLngHeight:
    """
    Geodetic location.

    Attributes
    ----------
    longitude : float
        Longitude (radians, east positive)
    latitude : float
        Geodetic latitude (radians)
    height : float
        Height above the ellipsoid (metres)
    """
    longitude: float
    latitude: float
    height: float

    @classmethod
    def mwa(cls) -> "LatLngHeight":
        return cls(MWA_LONG_RAD, MWA_LAT_RAD, MWA_HEIGHT_M)

    @classmethod
    def from_degrees(cls, longitude_deg: float, latitude_deg: float, height: float) -> "LatLngHeight":
        return cls(np.deg2rad(longitude_deg), np.deg2rad(latitude_deg), height)

    def to_geocentric(self, ellipsoid: Ellipsoid = Ellipsoid.WGS84) -> np.ndarray:
        """
        Geocentric XYZ (metres).

        Returns
        -------
        xyz : ndarray (3,)
        """
        try:
            xyz = erfa.gd2gc(int(ellipsoid), self.longitude, self.latitude, self.height)
        except erfa.ErfaError as e:
            raise FrameError(f"eraGd2gc failed for {self}: {e}") from e
        return np.asarray(xyz, dtype=np.float64)

    @classmethod
    def from_geocentric(
        cls,
        xyz: np.ndarray,
        ellipsoid: Ellipsoid = Ellipsoid.WGS84,
    ) -> "LatLngHeight":
        """Inverse of :meth:`to_geocentric`."""
        try:
            lon, lat, height = erfa.gc2gd(int(ellipsoid), np.asarray(xyz, dtype=np.float64))
        except erfa.ErfaError as e:
            raise FrameError(f"eraGc2gd failed for {xyz}: {e}") from e
        return cls(float(lon), float(lat), float(height))

    def __str__(self) -> str:
        return (
            f"{{ longitude: {np.rad2deg(self.longitude):.4f}°, "
            f"latitude: {np.rad2deg(self.latitude):.4f}°, "
            f"height: {self.height}m }}"
        )
