"""
UVFITS Output.

Random-groups visibility HDU followed by an AIPS AN antenna table, with
the keys MWA tools (cotter, Birli) write. Group parameters are UU, VV, WW
(seconds), BASELINE and DATE (Julian date, zero point at the first
midnight-aligned JD).

Baselines use the miriad encoding, which handles up to 2048 antennas and
reduces to the classic 256 * ant1 + ant2 below 256. Antenna numbers in
the file start at 1.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

import erfa
import numpy as np
from astropy.io import fits

from uvjones import __version__
from uvjones.constants import VEL_C
from uvjones.coords.antenna import ArrayLayout
from uvjones.core.processor import ProcessedBlock
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.io.base import VisWriter, register_writer

logger = logging.getLogger(__name__)

MAX_ANTENNAS = 2048

# blocks hold XX, XY, YX, YY; the STOKES axis (CRVAL3=-5, CDELT3=-1) is XX, YY, XY, YX
UVFITS_POL_ORDER = [0, 3, 1, 2]


def encode_uvfits_baseline(ant1: int, ant2: int) -> int:
    """
    Encode a 1-indexed antenna pair as a uvfits BASELINE value.
    """
    if ant2 > 255:
        return ant1 * 2048 + ant2 + 65_536
    return ant1 * 256 + ant2


def decode_uvfits_baseline(bl: int) -> Tuple[int, int]:
    """Inverse of :func:`encode_uvfits_baseline`."""
    bl = int(bl)
    if bl < 65_536:
        ant2 = bl % 256
        return (bl - ant2) // 256, ant2
    ant2 = (bl - 65_536) % 2048
    return (bl - ant2 - 65_536) // 2048, ant2


def _truncated_date_string(jd_utc: float) -> str:
    """YYYY-MM-DDT00:00:00.0 of the UTC day containing ``jd_utc``."""
    year, month, day, _ = erfa.jd2cal(jd_utc, 0.0)
    return f"{int(year):04d}-{int(month):02d}-{int(day):02d}T00:00:00.0"


@register_writer("uvfits")
class UVFITSWriter(VisWriter):
    """
    Buffer processed blocks and write a UVFITS file on close.

    Parameters
    ----------
    path : str
        Output file (overwritten)
    object_name : str
        OBJECT key
    """

    def __init__(self, path: str, object_name: str = "Undefined"):
        self.path = path
        self.object_name = object_name
        self.layout: Optional[ArrayLayout] = None
        self._blocks: List[ProcessedBlock] = []
        self._closed = False

    def begin(self, layout: ArrayLayout) -> None:
        if len(layout) > MAX_ANTENNAS:
            raise ConfigError(f"uvfits supports at most {MAX_ANTENNAS} antennas, got {len(layout)}")
        self.layout = layout

    def write(self, block: ProcessedBlock) -> None:
        if self._closed:
            raise ValueError(f"write to closed writer for {self.path}")
        if self._blocks and block.vis.shape[1:] != self._blocks[0].vis.shape[1:]:
            raise ShapeMismatchError(
                "vis", (None,) + self._blocks[0].vis.shape[1:], block.vis.shape, "UVFITSWriter.write"
            )
        self._blocks.append(block)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._blocks:
            logger.warning("No blocks written, %s not created", self.path)
            return
        if self.layout is None:
            raise ConfigError("UVFITSWriter needs begin(layout) before close")
        hdul = fits.HDUList([self._groups_hdu(), self._antenna_hdu()])
        hdul.writeto(self.path, overwrite=True)
        logger.info("Wrote %s", self.path)

    # ------------------------------------------------------------------

    def _antenna_number(self, identifier: int) -> int:
        return self.layout.row(identifier) + 1

    def _groups_hdu(self) -> fits.GroupsHDU:
        first = self._blocks[0]
        ctx = first.context
        n_chan = ctx.n_chan
        start_jd = first.context.epochs[0].mjd_utc + 2400000.5
        jd_zero = np.floor(start_jd) + 0.5

        uu, vv, ww, bls, dates, rows = [], [], [], [], [], []
        for block in self._blocks:
            codes = [
                encode_uvfits_baseline(self._antenna_number(b.ant1), self._antenna_number(b.ant2))
                for b in block.context.baselines
            ]
            weights = np.where(block.flagweight.flags, -np.abs(block.flagweight.weights),
                               block.flagweight.weights)
            for t, epoch in enumerate(block.context.epochs):
                jd = epoch.mjd_utc + 2400000.5
                uvw = block.uvws[t] / VEL_C
                uu.append(uvw[:, 0])
                vv.append(uvw[:, 1])
                ww.append(uvw[:, 2])
                bls.append(codes)
                dates.append(np.full(len(codes), jd))
                vis = block.vis.array[t][..., UVFITS_POL_ORDER]
                row = np.empty((len(codes), 1, 1, n_chan, 4, 3), dtype=np.float32)
                row[..., 0] = vis.real[:, np.newaxis, np.newaxis]
                row[..., 1] = vis.imag[:, np.newaxis, np.newaxis]
                row[..., 2] = weights[t][..., UVFITS_POL_ORDER][:, np.newaxis, np.newaxis]
                rows.append(row)

        data = np.concatenate(rows)
        pardata = [
            np.concatenate(uu), np.concatenate(vv), np.concatenate(ww),
            np.concatenate(bls).astype(np.float64), np.concatenate(dates),
        ]
        groups = fits.GroupData(
            data,
            parnames=["UU", "VV", "WW", "BASELINE", "DATE"],
            pardata=pardata,
            bitpix=-32,
            parbscales=[1.0] * 5,
            parbzeros=[0.0, 0.0, 0.0, 0.0, jd_zero],
        )
        hdu = fits.GroupsHDU(groups)
        h = hdu.header
        h["BSCALE"] = 1.0
        h["DATE-OBS"] = _truncated_date_string(start_jd)
        h["CTYPE2"], h["CRVAL2"], h["CRPIX2"], h["CDELT2"] = "COMPLEX", 1.0, 1.0, 1.0
        h["CTYPE3"], h["CRVAL3"], h["CRPIX3"], h["CDELT3"] = "STOKES", -5, 1.0, -1
        centre_chan = n_chan // 2
        h["CTYPE4"], h["CRVAL4"] = "FREQ", float(ctx.frequencies[centre_chan])
        h["CDELT4"], h["CRPIX4"] = float(ctx.channel_width), centre_chan + 1
        h["CTYPE5"], h["CRVAL5"], h["CDELT5"], h["CRPIX5"] = "RA", np.rad2deg(ctx.phase_centre.ra), 1, 1
        h["CTYPE6"], h["CRVAL6"], h["CDELT6"], h["CRPIX6"] = "DEC", np.rad2deg(ctx.phase_centre.dec), 1, 1
        h["OBSRA"] = np.rad2deg(ctx.phase_centre.ra)
        h["OBSDEC"] = np.rad2deg(ctx.phase_centre.dec)
        h["EPOCH"] = 2000.0
        h["OBJECT"] = self.object_name
        h["TELESCOP"] = "MWA"
        h["INSTRUME"] = "MWA"
        h["SOFTWARE"] = "uvjones"
        h["GITLABEL"] = f"v{__version__}"
        h.add_history("AIPS WTSCAL =  1.0")
        h.add_comment(f"Created by uvjones v{__version__} on {datetime.now().isoformat()}")
        return hdu

    def _antenna_hdu(self) -> fits.BinTableHDU:
        layout = self.layout
        n_ant = len(layout)
        names = [f"Tile{ident:03d}" for ident in layout.identifiers]
        cols = [
            fits.Column(name="ANNAME", format="8A", array=names),
            fits.Column(name="STABXYZ", format="3D", unit="METERS", array=np.asarray(layout.xyz)),
            fits.Column(name="NOSTA", format="1J", array=np.arange(1, n_ant + 1)),
            fits.Column(name="MNTSTA", format="1J", array=np.zeros(n_ant)),
            fits.Column(name="STAXOF", format="1E", unit="METERS", array=np.zeros(n_ant)),
            fits.Column(name="POLTYA", format="1A", array=["X"] * n_ant),
            fits.Column(name="POLAA", format="1E", unit="DEGREES", array=np.zeros(n_ant)),
            fits.Column(name="POLCALA", format="3E", array=np.zeros((n_ant, 3))),
            fits.Column(name="POLTYB", format="1A", array=["Y"] * n_ant),
            fits.Column(name="POLAB", format="1E", unit="DEGREES", array=np.full(n_ant, 90.0)),
            fits.Column(name="POLCALB", format="3E", array=np.zeros((n_ant, 3))),
        ]
        hdu = fits.BinTableHDU.from_columns(cols, name="AIPS AN")
        h = hdu.header
        array_xyz = layout.array_location.to_geocentric()
        h["ARRAYX"], h["ARRAYY"], h["ARRAYZ"] = (float(v) for v in array_xyz)
        ctx = self._blocks[0].context
        h["FREQ"] = float(ctx.frequencies[ctx.n_chan // 2])
        h["FRAME"] = "ITRF"
        mjd = np.floor(ctx.epochs[0].mjd_utc)
        h["GSTIA0"] = float(np.rad2deg(erfa.gst06a(2400000.5, mjd, 2400000.5, mjd)))
        h["DEGPDY"] = 3.60985e2
        h["RDATE"] = _truncated_date_string(ctx.epochs[0].mjd_utc + 2400000.5)
        h["POLARX"], h["POLARY"], h["UT1UTC"], h["DATUTC"] = 0.0, 0.0, 0.0, 0.0
        h["TIMSYS"] = "UTC"
        h["TIMESYS"] = "UTC"
        h["ARRNAM"] = "MWA"
        h["NUMORB"] = 0
        h["NOPCAL"] = 3
        h["FREQID"] = -1
        h["IATUTC"] = 33.0
        h["EXTVER"] = 1
        return hdu
