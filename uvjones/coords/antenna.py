"""
Antenna Geometry.

Antenna positions are stored as local tangent-plane offsets (east, north,
height) from the array reference location.

Frames:
    ENU         east, north, up, metres from the array centre
    XYZ         local equatorial ("geodetic XYZ"): X towards the local
                meridian on the equator, Y east, Z towards the north pole
    geocentric  ITRF-like Earth-centred XYZ
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple, Union

import numpy as np

from uvjones.coords.earth import LatLngHeight
from uvjones.errors import ConfigError


@dataclass(frozen=True)
class AntennaPosition:
    """
    Antenna location in the local tangent plane.

    Attributes
    ----------
    identifier : int
        Stable antenna id
    east, north, height : float
        Offsets from the array reference location (metres)
    flagged : bool
        Antenna is excluded from processing
    """
    identifier: int
    east: float
    north: float
    height: float
    flagged: bool = False

    @property
    def enu(self) -> np.ndarray:
        return np.array([self.east, self.north, self.height], dtype=np.float64)


def enu_to_xyz(enu: np.ndarray, latitude: float) -> np.ndarray:
    """
    Convert ENU offsets to local equatorial XYZ.

    Parameters
    ----------
    enu : ndarray (..., 3)
    latitude : float
        Array latitude (radians)

    Returns
    -------
    xyz : ndarray (..., 3)
    """
    enu = np.asarray(enu, dtype=np.float64)
    s_lat, c_lat = np.sin(latitude), np.cos(latitude)
    e, n, h = enu[..., 0], enu[..., 1], enu[..., 2]
    xyz = np.empty_like(enu)
    xyz[..., 0] = -s_lat * n + c_lat * h
    xyz[..., 1] = e
    xyz[..., 2] = c_lat * n + s_lat * h
    return xyz


def xyz_to_enu(xyz: np.ndarray, latitude: float) -> np.ndarray:
    """Inverse of :func:`enu_to_xyz`."""
    xyz = np.asarray(xyz, dtype=np.float64)
    s_lat, c_lat = np.sin(latitude), np.cos(latitude)
    x, y, z = xyz[..., 0], xyz[..., 1], xyz[..., 2]
    enu = np.empty_like(xyz)
    enu[..., 0] = y
    enu[..., 1] = -s_lat * x + c_lat * z
    enu[..., 2] = c_lat * x + s_lat * z
    return enu


def local_to_geocentric(
    position: Union[AntennaPosition, np.ndarray],
    array_location: LatLngHeight,
) -> np.ndarray:
    """
    Geocentric vector of an antenna.

    Parameters
    ----------
    position : AntennaPosition or ndarray (..., 3)
        ENU offset(s)
    array_location : LatLngHeight
        Array reference location

    Returns
    -------
    geocentric : ndarray (..., 3)
    """
    enu = position.enu if isinstance(position, AntennaPosition) else position
    xyz = enu_to_xyz(enu, array_location.latitude)
    s_lon, c_lon = np.sin(array_location.longitude), np.cos(array_location.longitude)
    centre = array_location.to_geocentric()

    out = np.empty_like(xyz)
    out[..., 0] = c_lon * xyz[..., 0] - s_lon * xyz[..., 1] + centre[0]
    out[..., 1] = s_lon * xyz[..., 0] + c_lon * xyz[..., 1] + centre[1]
    out[..., 2] = xyz[..., 2] + centre[2]
    return out


def geocentric_to_local(
    geocentric: np.ndarray,
    array_location: LatLngHeight,
    identifier: int = 0,
    flagged: bool = False,
) -> AntennaPosition:
    """Inverse of :func:`local_to_geocentric` for a single antenna."""
    d = np.asarray(geocentric, dtype=np.float64) - array_location.to_geocentric()
    s_lon, c_lon = np.sin(array_location.longitude), np.cos(array_location.longitude)
    xyz = np.array([
        c_lon * d[0] + s_lon * d[1],
        -s_lon * d[0] + c_lon * d[1],
        d[2],
    ])
    e, n, h = xyz_to_enu(xyz, array_location.latitude)
    return AntennaPosition(int(identifier), float(e), float(n), float(h), flagged)


class ArrayLayout(Mapping):
    """
    Read-only antenna table for one observation.

    Parameters
    ----------
    antennas : iterable of AntennaPosition
        Antenna table in the adapter's order
    array_location : LatLngHeight
        Array reference location
    """

    def __init__(
        self,
        antennas: Iterable[AntennaPosition],
        array_location: LatLngHeight,
    ):
        antennas = list(antennas)
        if not antennas:
            raise ConfigError("antenna table is empty")

        by_id: Dict[int, AntennaPosition] = {}
        for ant in antennas:
            if ant.identifier in by_id:
                raise ConfigError(f"duplicate antenna identifier {ant.identifier}")
            by_id[ant.identifier] = ant

        self._antennas = MappingProxyType(by_id)
        self._order: Tuple[int, ...] = tuple(a.identifier for a in antennas)
        self._row = MappingProxyType({ant_id: i for i, ant_id in enumerate(self._order)})
        self.array_location = array_location

        enu = np.array([a.enu for a in antennas], dtype=np.float64)
        xyz = enu_to_xyz(enu, array_location.latitude)
        enu.setflags(write=False)
        xyz.setflags(write=False)
        self._enu = enu
        self._xyz = xyz

    @classmethod
    def from_table(
        cls,
        rows: Sequence[Tuple[int, Sequence[float], bool]],
        array_location: LatLngHeight,
    ) -> "ArrayLayout":
        """
        Build from adapter rows of (identifier, (east, north, height), flagged).
        """
        return cls(
            (AntennaPosition(int(i), float(p[0]), float(p[1]), float(p[2]), bool(f))
             for i, p, f in rows),
            array_location,
        )

    def __getitem__(self, identifier: int) -> AntennaPosition:
        try:
            return self._antennas[identifier]
        except KeyError:
            raise ConfigError(f"antenna {identifier} not in antenna table") from None

    def __contains__(self, identifier) -> bool:
        return identifier in self._antennas

    def get(self, identifier, default=None):
        return self._antennas.get(identifier, default)

    def __iter__(self) -> Iterator[int]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def position(self, identifier: int) -> AntennaPosition:
        return self[identifier]

    def row(self, identifier: int) -> int:
        """Row of an antenna in the ``enu``/``xyz`` arrays."""
        try:
            return self._row[identifier]
        except KeyError:
            raise ConfigError(f"antenna {identifier} not in antenna table") from None

    def rows(self, identifiers: Iterable[int]) -> np.ndarray:
        return np.array([self.row(i) for i in identifiers], dtype=np.intp)

    @property
    def identifiers(self) -> Tuple[int, ...]:
        return self._order

    @property
    def flagged_identifiers(self) -> List[int]:
        return [i for i in self._order if self._antennas[i].flagged]

    @property
    def enu(self) -> np.ndarray:
        """(n_ant, 3) read-only ENU offsets."""
        return self._enu

    @property
    def xyz(self) -> np.ndarray:
        """(n_ant, 3) read-only local equatorial XYZ."""
        return self._xyz

    def geocentric(self) -> np.ndarray:
        """(n_ant, 3) geocentric positions."""
        return local_to_geocentric(self._enu, self.array_location)
