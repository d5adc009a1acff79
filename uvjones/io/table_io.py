"""
HDF5 Jones Tables and Visibility Output.

Jones table structure:
    solutions.h5/
        {term}/                 # e.g. "G", "D", "K"
            jones               # (n_time, n_ant, n_freq, 2, 2) complex
            valid               # (n_time, n_ant, n_freq) bool
            time                # (n_time,) float64 - GPS seconds
            freq                # (n_freq,) float64 - Hz
            antenna             # (n_ant,) antenna identifiers
            attrs:
                created         # ISO timestamp
                metadata        # JSON string

Visibility file structure (HDF5VisWriter):
    output.h5/
        vis                     # (n_time, n_bl, n_chan, 4) complex
        flags                   # (n_time, n_bl, n_chan, 4) bool
        weights                 # (n_time, n_bl, n_chan, 4) float32
        uvw                     # (n_time, n_bl, 3) metres
        time                    # (n_time,) GPS seconds
        freq                    # (n_chan,) Hz
        baselines               # (n_bl, 2) antenna identifiers
        attrs: phase_centre_ra, phase_centre_dec (deg), integration_time,
               channel_width
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import h5py
import numpy as np

from uvjones.coords.time import Epoch
from uvjones.core.calibrate import JonesSolutions
from uvjones.core.processor import ProcessedBlock
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.io.base import VisWriter, register_writer
from uvjones.jones.interpolation import interpolate_jones
from uvjones.jones.operations import jones_multiply

logger = logging.getLogger(__name__)


def save_jones_table(
    filepath: str,
    term: str,
    jones: np.ndarray,
    time: np.ndarray,
    freq: np.ndarray,
    antenna: Optional[np.ndarray] = None,
    valid: Optional[np.ndarray] = None,
    metadata: Optional[Dict] = None,
    overwrite: bool = False,
) -> None:
    """
    Save Jones solutions to an HDF5 table.

    Parameters
    ----------
    filepath : str
        Path to HDF5 file (created or appended to)
    term : str
        Group name, e.g. 'G'
    jones : ndarray
        Either (n_ant, n_freq, 2, 2) for one solution interval or
        (n_time, n_ant, n_freq, 2, 2)
    time : ndarray
        GPS seconds of each solution interval
    freq : ndarray
        Hz
    antenna : ndarray, optional
        Antenna identifiers (default: 0, 1, 2, ...)
    valid : ndarray of bool, optional
        Default: every finite matrix
    metadata : dict, optional
        Stored as JSON
    overwrite : bool
        Replace an existing group of the same name
    """
    jones = np.asarray(jones, dtype=np.complex128)
    time = np.atleast_1d(np.asarray(time, dtype=np.float64))
    freq = np.atleast_1d(np.asarray(freq, dtype=np.float64))

    if jones.ndim == 4:
        jones = jones[np.newaxis]
    if jones.ndim != 5 or jones.shape[-2:] != (2, 2):
        raise ShapeMismatchError("jones", ("n_time", "n_ant", "n_freq", 2, 2), jones.shape, "save_jones_table")

    n_time, n_ant, n_freq = jones.shape[:3]
    if len(time) != n_time:
        raise ShapeMismatchError("time", (n_time,), time.shape, "save_jones_table")
    if len(freq) != n_freq:
        raise ShapeMismatchError("freq", (n_freq,), freq.shape, "save_jones_table")

    if antenna is None:
        antenna = np.arange(n_ant, dtype=np.int32)
    antenna = np.asarray(antenna, dtype=np.int32)
    if antenna.shape != (n_ant,):
        raise ShapeMismatchError("antenna", (n_ant,), antenna.shape, "save_jones_table")

    if valid is None:
        valid = np.isfinite(jones).all(axis=(-2, -1))
    valid = np.broadcast_to(np.asarray(valid, dtype=bool), jones.shape[:3])

    with h5py.File(filepath, "a") as f:
        if term in f:
            if overwrite:
                del f[term]
            else:
                raise ValueError(
                    f"Jones term '{term}' already exists. Use overwrite=True to replace."
                )

        grp = f.create_group(term)
        grp.create_dataset("jones", data=jones, compression="gzip")
        grp.create_dataset("valid", data=valid)
        grp.create_dataset("time", data=time)
        grp.create_dataset("freq", data=freq)
        grp.create_dataset("antenna", data=antenna)
        grp.attrs["created"] = datetime.now().isoformat()
        if metadata:
            grp.attrs["metadata"] = json.dumps(metadata)


def load_jones_table(filepath: str, term: str) -> Dict[str, Any]:
    """
    Load one Jones term.

    Returns
    -------
    data : dict
        jones (n_time, n_ant, n_freq, 2, 2), valid, time, freq, antenna,
        created, metadata
    """
    with h5py.File(filepath, "r") as f:
        if term not in f:
            raise KeyError(f"Jones term '{term}' not found in {filepath}")
        grp = f[term]
        jones = grp["jones"][...]
        data = {
            "jones": jones,
            "valid": grp["valid"][...] if "valid" in grp else np.isfinite(jones).all(axis=(-2, -1)),
            "time": grp["time"][...],
            "freq": grp["freq"][...],
            "antenna": grp["antenna"][...],
            "created": grp.attrs.get("created", ""),
            "metadata": json.loads(grp.attrs["metadata"]) if "metadata" in grp.attrs else {},
        }
    return data


def list_jones_terms(filepath: str) -> List[str]:
    """Names of the Jones terms in a table; empty if the file is absent."""
    if not Path(filepath).exists():
        return []
    with h5py.File(filepath, "r") as f:
        return [name for name in f.keys() if isinstance(f[name], h5py.Group)]


def get_table_info(filepath: str) -> Dict[str, Dict]:
    """Shape and provenance of every term in a table."""
    info = {}
    with h5py.File(filepath, "r") as f:
        for name in f.keys():
            grp = f[name]
            if not isinstance(grp, h5py.Group):
                continue
            shape = grp["jones"].shape
            valid = grp["valid"][...] if "valid" in grp else None
            info[name] = {
                "shape": shape,
                "n_time": shape[0],
                "n_ant": shape[1],
                "n_freq": shape[2],
                "fraction_valid": float(valid.mean()) if valid is not None and valid.size else 1.0,
                "created": grp.attrs.get("created", ""),
            }
    return info


def jones_for_observation(
    filepath: str,
    terms: Sequence[str],
    epochs: Sequence[Epoch],
    freqs: np.ndarray,
    antennas: Sequence[int],
    time_interp: str = "linear",
    freq_interp: str = "linear",
    mode: str = "correct",
) -> JonesSolutions:
    """
    Solutions for a block, built from stored terms.

    Each term is interpolated onto the block's epochs and channels and the
    terms are chained in the order given (first closest to the sky):

        J = J_N @ ... @ J_1

    Antennas absent from a term, and intervals marked invalid in it, are
    invalid in the result.

    Returns
    -------
    JonesSolutions
        (n_time, n_ant, n_chan, 2, 2) solutions
    """
    if not terms:
        raise ConfigError("no Jones terms requested")
    antennas = [int(a) for a in antennas]
    time_dst = np.array([e.gps_seconds for e in epochs], dtype=np.float64)
    freq_dst = np.asarray(freqs, dtype=np.float64)

    shape = (len(time_dst), len(antennas), len(freq_dst))
    total = None
    valid = np.ones(shape, dtype=bool)
    for term in terms:
        data = load_jones_table(filepath, term)
        row = {int(a): i for i, a in enumerate(data["antenna"])}
        present = np.array([a in row for a in antennas])
        rows = np.array([row.get(a, 0) for a in antennas], dtype=np.intp)

        src = data["jones"][:, rows]
        src_valid = data["valid"][:, rows]
        src = np.where(src_valid[..., np.newaxis, np.newaxis], src, np.nan)
        interp = interpolate_jones(
            src, data["time"], data["freq"], time_dst, freq_dst, time_interp, freq_interp
        )
        term_valid = np.isfinite(interp).all(axis=(-2, -1)) & present[np.newaxis, :, np.newaxis]
        valid &= term_valid
        total = interp if total is None else jones_multiply(interp, total)
        logger.debug("Loaded Jones term %s from %s, %d invalid cells", term, filepath,
                     int(np.count_nonzero(~term_valid)))

    return JonesSolutions(total, antennas, valid, mode)


@register_writer("hdf5")
class HDF5VisWriter(VisWriter):
    """
    Append processed blocks to an HDF5 file.

    Parameters
    ----------
    path : str
        Output file (overwritten)
    """

    def __init__(self, path: str):
        self.path = path
        self._file = h5py.File(path, "w")
        self._n_time = 0

    def _create(self, block: ProcessedBlock) -> None:
        _, n_bl, n_chan, n_pol = block.vis.shape
        f = self._file
        f.create_dataset("vis", shape=(0, n_bl, n_chan, n_pol), maxshape=(None, n_bl, n_chan, n_pol),
                         dtype=np.complex64, chunks=True, compression="gzip")
        f.create_dataset("flags", shape=(0, n_bl, n_chan, n_pol), maxshape=(None, n_bl, n_chan, n_pol),
                         dtype=bool, chunks=True, compression="gzip")
        f.create_dataset("weights", shape=(0, n_bl, n_chan, n_pol), maxshape=(None, n_bl, n_chan, n_pol),
                         dtype=np.float32, chunks=True, compression="gzip")
        f.create_dataset("uvw", shape=(0, n_bl, 3), maxshape=(None, n_bl, 3),
                         dtype=np.float64, chunks=True)
        f.create_dataset("time", shape=(0,), maxshape=(None,), dtype=np.float64, chunks=True)

        ctx = block.context
        f.create_dataset("freq", data=ctx.frequencies)
        f.create_dataset("baselines", data=np.array(ctx.baselines, dtype=np.int32).reshape(-1, 2))
        f.attrs["phase_centre_ra"] = np.rad2deg(ctx.phase_centre.ra)
        f.attrs["phase_centre_dec"] = np.rad2deg(ctx.phase_centre.dec)
        f.attrs["integration_time"] = ctx.integration_time
        f.attrs["channel_width"] = ctx.channel_width
        f.attrs["created"] = datetime.now().isoformat()

    def write(self, block: ProcessedBlock) -> None:
        if self._file is None:
            raise ValueError(f"write to closed writer for {self.path}")
        if "vis" not in self._file:
            self._create(block)
        f = self._file
        if block.vis.shape[1:] != f["vis"].shape[1:]:
            raise ShapeMismatchError("vis", (None,) + f["vis"].shape[1:], block.vis.shape, "HDF5VisWriter.write")

        n = block.vis.n_time
        start, stop = self._n_time, self._n_time + n
        for name in ("vis", "flags", "weights", "uvw", "time"):
            f[name].resize(stop, axis=0)
        f["vis"][start:stop] = block.vis.array
        f["flags"][start:stop] = block.flagweight.flags
        f["weights"][start:stop] = block.flagweight.weights
        f["uvw"][start:stop] = block.uvws
        f["time"][start:stop] = [e.gps_seconds for e in block.context.epochs]
        self._n_time = stop

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
