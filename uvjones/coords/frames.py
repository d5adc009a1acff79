"""
Celestial Frames.

Directions on the sky tagged with their reference frame, and the
reductions between the mean J2000 frame and the apparent (true equator,
true equinox of date) frame.

Reduction model:
    IAU 2006 precession + IAU 2000A nutation + frame bias, with annual
    aberration and solar light deflection for a geocentric observer
    (erfa.atci13 / erfa.atic13). Right ascensions are moved between the
    CIO and the true equinox with the equation of the origins, so an
    apparent Direction is astropy's TETE.

Every frame change is logged at DEBUG level.
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

import erfa
import numpy as np

from uvjones.constants import FRAME_MODEL_VALID_FROM, FRAME_MODEL_VALID_UNTIL
from uvjones.coords.earth import LatLngHeight
from uvjones.coords.time import Epoch
from uvjones.errors import FrameError

logger = logging.getLogger(__name__)

TAU = 2.0 * np.pi


class Frame(str, Enum):
    """Reference frame of a Direction."""
    J2000 = "j2000"
    APPARENT = "apparent"


# =============================================================================
# Reduction model handle
# =============================================================================

@dataclass(frozen=True)
class ReductionModel:
    """
    Read-only handle on the frame-reduction routines and their validity.

    Created once at import; never mutated.
    """
    name: str
    valid_from: Epoch
    valid_until: Epoch
    precession_nutation: Callable
    mean_sidereal_time: Callable
    apparent_sidereal_time: Callable
    astrometry_context: Callable
    astrometric: Callable
    inverse_astrometric: Callable
    equation_of_origins: Callable

    def check_epoch(self, epoch: Epoch) -> None:
        """Raise FrameError if the epoch is outside the model validity."""
        if not (self.valid_from <= epoch < self.valid_until):
            raise FrameError(
                f"{epoch!r} outside validity of {self.name} "
                f"[{self.valid_from.isot}, {self.valid_until.isot})"
            )

    def matrix(self, epoch: Epoch) -> np.ndarray:
        """
        Bias-precession-nutation matrix at epoch.

        Rotates a J2000 (GCRS) vector into the true frame of date.
        """
        self.check_epoch(epoch)
        return _pnm_cached(self.precession_nutation, *epoch.jd_tt)

    def apparent_place(self, epoch: Epoch, lon: float, lat: float) -> Tuple[float, float]:
        """J2000 (lon, lat) -> apparent (lon, lat) referred to the true equinox."""
        self.check_epoch(epoch)
        ri, di, eo = self.astrometric(lon, lat, 0.0, 0.0, 0.0, 0.0, *epoch.jd_tt)
        return float(erfa.anp(ri - eo)), float(di)

    def mean_place(self, epoch: Epoch, lon: float, lat: float) -> Tuple[float, float]:
        """Inverse of :meth:`apparent_place`."""
        self.check_epoch(epoch)
        jd1, jd2 = epoch.jd_tt
        eo = self.equation_of_origins(jd1, jd2)
        rc, dc, _ = self.inverse_astrometric(erfa.anp(lon + eo), lat, jd1, jd2)
        return float(erfa.anp(rc)), float(dc)

    def aberrate(self, epoch: Epoch, v: np.ndarray) -> np.ndarray:
        """
        Annual aberration of J2000 unit vector(s) for a geocentric observer.

        No precession, nutation or light deflection is applied.
        """
        self.check_epoch(epoch)
        astrom = _astrom_cached(self.astrometry_context, *epoch.jd_tt)
        return erfa.ab(np.asarray(v, dtype=np.float64), astrom["v"], astrom["em"], astrom["bm1"])

    def unaberrate(self, epoch: Epoch, v: np.ndarray) -> np.ndarray:
        """Unit vector(s) whose aberrated place is ``v``."""
        v = np.asarray(v, dtype=np.float64)
        p = v
        # aberration is ~1e-4 rad, so each pass gains four digits
        for _ in range(4):
            p = p + (v - self.aberrate(epoch, p))
            p = p / np.linalg.norm(p, axis=-1, keepdims=True)
        return p


@functools.lru_cache(maxsize=4096)
def _pnm_cached(fn: Callable, jd1: float, jd2: float) -> np.ndarray:
    mat = np.asarray(fn(jd1, jd2), dtype=np.float64)
    mat.setflags(write=False)
    return mat


@functools.lru_cache(maxsize=4096)
def _astrom_cached(fn: Callable, jd1: float, jd2: float) -> np.ndarray:
    astrom, _ = fn(jd1, jd2)
    astrom = np.asarray(astrom)
    astrom.setflags(write=False)
    return astrom


FRAME_MODEL = ReductionModel(
    name="IAU 2006/2000A",
    valid_from=Epoch.from_isot(FRAME_MODEL_VALID_FROM, scale="tt"),
    valid_until=Epoch.from_isot(FRAME_MODEL_VALID_UNTIL, scale="tt"),
    precession_nutation=erfa.pnm06a,
    mean_sidereal_time=erfa.gmst06,
    apparent_sidereal_time=erfa.gst06a,
    astrometry_context=erfa.apci13,
    astrometric=erfa.atci13,
    inverse_astrometric=erfa.atic13,
    equation_of_origins=erfa.eo06a,
)


# =============================================================================
# Directions
# =============================================================================

@dataclass(frozen=True)
class HADec:
    """Hour angle and declination (radians)."""
    ha: float
    dec: float


@dataclass(frozen=True)
class LMN:
    """Direction cosines relative to a phase centre."""
    l: float
    m: float
    n: float

    def dot(self, uvw) -> float:
        """Phase (radians) of this direction for a UVW in wavelengths."""
        return TAU * (uvw.u * self.l + uvw.v * self.m + uvw.w * (self.n - 1.0))


@dataclass(frozen=True)
class Direction:
    """
    Point on the celestial sphere.

    Attributes
    ----------
    lon : float
        Right ascension (radians)
    lat : float
        Declination (radians)
    frame : Frame
        Reference frame of the angles
    epoch : Epoch, optional
        Epoch of the frame; required for APPARENT directions
    """
    lon: float
    lat: float
    frame: Frame = Frame.J2000
    epoch: Optional[Epoch] = None

    def __post_init__(self):
        if self.frame is Frame.APPARENT and self.epoch is None:
            raise FrameError("apparent Direction requires an epoch")
        if not -np.pi / 2 - 1e-12 <= self.lat <= np.pi / 2 + 1e-12:
            raise FrameError(f"declination {self.lat} rad outside [-pi/2, pi/2]")

    @classmethod
    def from_degrees(
        cls,
        ra_deg: float,
        dec_deg: float,
        frame: Frame = Frame.J2000,
        epoch: Optional[Epoch] = None,
    ) -> "Direction":
        return cls(float(np.deg2rad(ra_deg)), float(np.deg2rad(dec_deg)), frame, epoch)

    @property
    def ra(self) -> float:
        return self.lon

    @property
    def dec(self) -> float:
        return self.lat

    def to_unit_vector(self) -> np.ndarray:
        return erfa.s2c(self.lon, self.lat)

    @classmethod
    def from_unit_vector(
        cls,
        v: np.ndarray,
        frame: Frame = Frame.J2000,
        epoch: Optional[Epoch] = None,
    ) -> "Direction":
        lon, lat = erfa.c2s(np.asarray(v, dtype=np.float64))
        return cls(float(erfa.anp(lon)), float(lat), frame, epoch)

    def separation(self, other: "Direction") -> float:
        """Angular separation (radians). Both directions must share a frame."""
        require_frame(other, self.frame)
        return float(erfa.seps(self.lon, self.lat, other.lon, other.lat))

    def to_hadec(self, lst: float) -> HADec:
        return HADec(ha=lst - self.lon, dec=self.lat)

    def to_lmn(self, phase_centre: "Direction") -> LMN:
        """Direction cosines of this direction relative to ``phase_centre``."""
        require_frame(phase_centre, self.frame)
        d_ra = self.lon - phase_centre.lon
        s_d_ra, c_d_ra = np.sin(d_ra), np.cos(d_ra)
        s_dec, c_dec = np.sin(self.lat), np.cos(self.lat)
        pc_s_dec, pc_c_dec = np.sin(phase_centre.lat), np.cos(phase_centre.lat)
        return LMN(
            l=float(c_dec * s_d_ra),
            m=float(s_dec * pc_c_dec - c_dec * pc_s_dec * c_d_ra),
            n=float(s_dec * pc_s_dec + c_dec * pc_c_dec * c_d_ra),
        )

    @staticmethod
    def weighted_average(
        directions: Sequence["Direction"],
        weights: Sequence[float],
    ) -> Optional["Direction"]:
        """
        Weighted mean position, handling RA wrap at 0/360 degrees.

        Returns None for an empty input.
        """
        if not directions:
            return None
        frame = directions[0].frame
        for d in directions:
            require_frame(d, frame)

        ras = np.array([d.lon for d in directions])
        low = np.any((ras >= 0) & (ras < np.pi / 4))
        mid = np.any((ras >= np.pi / 4) & (ras < 3 * np.pi / 4))
        high = np.any((ras >= 3 * np.pi / 4) & (ras < TAU))

        cutoff = 0.0
        if low and high and not mid:
            cutoff = np.pi
        elif low and mid and high:
            logger.warning("Averaging directions that span many right ascensions")

        if cutoff > 0:
            ras = np.where(ras > cutoff, ras - TAU, ras)
        else:
            ras = np.where(ras > TAU, ras - TAU, ras)

        w = np.asarray(weights, dtype=np.float64)
        decs = np.array([d.lat for d in directions])
        ra = float((ras * w).sum() / w.sum())
        if ra < 0:
            ra += TAU
        return Direction(ra, float((decs * w).sum() / w.sum()), frame, directions[0].epoch)

    def __str__(self) -> str:
        return (
            f"({np.rad2deg(self.lon):.4f}°, {np.rad2deg(self.lat):.4f}°) [{self.frame.value}]"
        )


def require_frame(direction: Direction, frame: Frame) -> None:
    """Raise FrameError if ``direction`` is not expressed in ``frame``."""
    if direction.frame is not frame:
        raise FrameError(
            f"Direction {direction} is in frame '{direction.frame.value}', "
            f"expected '{frame.value}'"
        )


# =============================================================================
# Reductions
# =============================================================================

def to_apparent(epoch: Epoch, direction: Direction) -> Direction:
    """
    Convert a mean J2000 direction to the apparent frame of ``epoch``.
    """
    require_frame(direction, Frame.J2000)
    lon, lat = FRAME_MODEL.apparent_place(epoch, direction.lon, direction.lat)
    out = Direction(lon, lat, Frame.APPARENT, epoch)
    logger.debug("to_apparent %s -> %s at %r", direction, out, epoch)
    return out


def to_mean(epoch: Epoch, direction: Direction) -> Direction:
    """
    Convert an apparent direction at ``epoch`` back to mean J2000.
    """
    require_frame(direction, Frame.APPARENT)
    if direction.epoch != epoch:
        raise FrameError(
            f"apparent Direction refers to {direction.epoch!r}, not {epoch!r}"
        )
    lon, lat = FRAME_MODEL.mean_place(epoch, direction.lon, direction.lat)
    out = Direction(lon, lat, Frame.J2000)
    logger.debug("to_mean %s -> %s at %r", direction, out, epoch)
    return out


def get_lmst(epoch: Epoch, longitude: float) -> float:
    """Local mean sidereal time (radians)."""
    FRAME_MODEL.check_epoch(epoch)
    gmst = FRAME_MODEL.mean_sidereal_time(*epoch.jd_ut1, *epoch.jd_tt)
    return float((gmst + longitude) % TAU)


def get_last(epoch: Epoch, longitude: float) -> float:
    """Local apparent sidereal time (radians)."""
    FRAME_MODEL.check_epoch(epoch)
    gast = FRAME_MODEL.apparent_sidereal_time(*epoch.jd_ut1, *epoch.jd_tt)
    return float((gast + longitude) % TAU)


def local_altaz(
    epoch: Epoch,
    direction: Direction,
    observer: LatLngHeight,
) -> Tuple[float, float]:
    """
    Altitude and azimuth of a direction as seen by an observer.

    J2000 directions are first reduced to the apparent frame of ``epoch``.

    Returns
    -------
    altitude, azimuth : float
        Radians; azimuth from north through east.
    """
    if direction.frame is Frame.J2000:
        direction = to_apparent(epoch, direction)
    elif direction.epoch != epoch:
        raise FrameError(
            f"apparent Direction refers to {direction.epoch!r}, not {epoch!r}"
        )
    ha = get_last(epoch, observer.longitude) - direction.lon
    az, el = erfa.hd2ae(ha, direction.lat, observer.latitude)
    return float(el), float(az)


def parallactic_angle(epoch: Epoch, direction: Direction, observer: LatLngHeight) -> float:
    """Parallactic angle (radians) of a direction for an observer."""
    if direction.frame is Frame.J2000:
        direction = to_apparent(epoch, direction)
    ha = get_last(epoch, observer.longitude) - direction.lon
    return float(erfa.hd2pa(ha, direction.lat, observer.latitude))


# =============================================================================
# Precession of array geometry
# =============================================================================

@dataclass(frozen=True)
class PrecessionInfo:
    """
    Geometry needed to express UVWs in the J2000 frame at one epoch.

    Attributes
    ----------
    rotation_matrix : ndarray (3, 3)
        Frame-of-date -> J2000 rotation (transpose of the PN matrix)
    hadec_j2000 : HADec
        Hour angle/declination in J2000 of the aberrated phase centre
    lmst : float
        Local mean sidereal time of the epoch
    lmst_j2000 : float
        LMST precessed to J2000
    array_latitude_j2000 : float
        Array latitude precessed to J2000
    """
    rotation_matrix: np.ndarray
    hadec_j2000: HADec
    lmst: float
    lmst_j2000: float
    array_latitude_j2000: float

    def precess_xyz(self, xyz: np.ndarray) -> np.ndarray:
        """
        Rotate local equatorial XYZ (x towards the meridian) into J2000.

        Parameters
        ----------
        xyz : ndarray (..., 3)

        Returns
        -------
        xyz_j2000 : ndarray (..., 3)
        """
        xyz = np.asarray(xyz, dtype=np.float64)
        sep, cep = np.sin(self.lmst), np.cos(self.lmst)
        s2000, c2000 = np.sin(self.lmst_j2000), np.cos(self.lmst_j2000)

        # frame with x axis at zero RA
        x = cep * xyz[..., 0] - sep * xyz[..., 1]
        y = sep * xyz[..., 0] + cep * xyz[..., 1]
        z = xyz[..., 2]

        r = self.rotation_matrix
        x2 = r[0, 0] * x + r[0, 1] * y + r[0, 2] * z
        y2 = r[1, 0] * x + r[1, 1] * y + r[1, 2] * z
        z2 = r[2, 0] * x + r[2, 1] * y + r[2, 2] * z

        # back to a frame with x at lmst_j2000
        out = np.empty_like(xyz)
        out[..., 0] = c2000 * x2 + s2000 * y2
        out[..., 1] = -s2000 * x2 + c2000 * y2
        out[..., 2] = z2
        return out


def precess_time(
    phase_centre: Direction,
    epoch: Epoch,
    array_location: LatLngHeight,
) -> PrecessionInfo:
    """
    Precession geometry of the array and phase centre at ``epoch``.

    The array zenith (LMST, latitude) is rotated from the frame of date
    into J2000. The phase centre gets annual aberration, and its hour
    angle is then taken against the precessed LMST.
    """
    require_frame(phase_centre, Frame.J2000)
    lmst = get_lmst(epoch, array_location.longitude)
    rotation = np.ascontiguousarray(FRAME_MODEL.matrix(epoch).T)

    zenith = rotation @ erfa.s2c(lmst, array_location.latitude)
    lmst_j2000, lat_j2000 = erfa.c2s(zenith)
    lmst_j2000 = float(erfa.anp(lmst_j2000))

    aberrated = Direction.from_unit_vector(
        FRAME_MODEL.aberrate(epoch, phase_centre.to_unit_vector())
    )
    logger.debug("precess_time aberrated %s -> %s at %r", phase_centre, aberrated, epoch)

    return PrecessionInfo(
        rotation_matrix=rotation,
        hadec_j2000=HADec(
            ha=float(erfa.anp(lmst_j2000 - aberrated.lon)),
            dec=aberrated.lat,
        ),
        lmst=lmst,
        lmst_j2000=lmst_j2000,
        array_latitude_j2000=float(lat_j2000),
    )


def zenith_direction(epoch: Epoch, array_location: LatLngHeight) -> Direction:
    """
    J2000 direction of the array zenith at ``epoch``.

    This is the mean position whose aberrated place is the precessed
    zenith, so ``precess_time`` gives it zero hour angle.
    """
    lmst = get_lmst(epoch, array_location.longitude)
    rotation = FRAME_MODEL.matrix(epoch).T
    v = rotation @ erfa.s2c(lmst, array_location.latitude)
    return Direction.from_unit_vector(FRAME_MODEL.unaberrate(epoch, v), Frame.J2000)
