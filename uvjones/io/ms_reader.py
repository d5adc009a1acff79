"""
MeasurementSet Adapters.

Read raw blocks from, and write processed data back into, CASA
MeasurementSets with python-casacore. The main table must hold one row
per (time, baseline) with the same baselines at every timestep, sorted
by TIME (the layout written by the MWA preprocessors).
"""

import logging
from typing import Iterator, List, Optional, Tuple

import numpy as np

from uvjones.constants import N_POL
from uvjones.coords.antenna import geocentric_to_local
from uvjones.coords.earth import LatLngHeight
from uvjones.coords.frames import Direction
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import Baseline
from uvjones.core.block import BlockContext
from uvjones.core.processor import ProcessedBlock
from uvjones.core.selection import VisSelection
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.io.base import AntennaRow, RawBlock, VisReader, VisWriter, register_reader, register_writer
from uvjones.jones.operations import corr_to_jones, jones_to_corr

logger = logging.getLogger(__name__)


def _to_four_pol(data: np.ndarray) -> np.ndarray:
    """(..., n_corr) with n_corr in 1, 2, 4 -> (..., 4) [XX, XY, YX, YY]."""
    if data.shape[-1] == N_POL:
        return data
    return jones_to_corr(corr_to_jones(data))


@register_reader("ms")
class MSVisReader(VisReader):
    """
    Read an MWA MeasurementSet.

    Parameters
    ----------
    path : str
        Path to the MeasurementSet
    data_column : str
        Visibility column to read
    field_id : int
        Row of the FIELD table giving the phase centre
    array_location : LatLngHeight, optional
        Reference for ENU antenna offsets (default: the MWA)
    """

    def __init__(
        self,
        path: str,
        data_column: str = "DATA",
        field_id: int = 0,
        array_location: Optional[LatLngHeight] = None,
    ):
        from casacore.tables import table

        self.path = path
        self.data_column = data_column
        self.field_id = field_id
        self._location = array_location or LatLngHeight.mwa()

        with table(self.path, ack=False) as tb:
            cols = tb.colnames()
            if data_column not in cols:
                raise ConfigError(f"MS missing {data_column} column: {self.path}")
            self._has_flag = "FLAG" in cols
            self._has_weight_spectrum = "WEIGHT_SPECTRUM" in cols
            self._row_times = tb.getcol("TIME")
            self._intervals = tb.getcol("INTERVAL")
            ant1 = tb.getcol("ANTENNA1")
            ant2 = tb.getcol("ANTENNA2")

        self._unique_times = np.unique(self._row_times)
        if len(self._unique_times) == 0:
            raise ConfigError(f"MS has no rows: {self.path}")
        if np.any(np.diff(self._row_times) < 0):
            raise ConfigError(f"MS main table is not sorted by TIME: {self.path}")
        n_rows = len(self._row_times)
        self._n_bl = n_rows // len(self._unique_times)
        if self._n_bl * len(self._unique_times) != n_rows:
            raise ShapeMismatchError(
                "rows", (len(self._unique_times) * self._n_bl,), (n_rows,), "MSVisReader"
            )
        self._baselines = [Baseline(int(a), int(b)) for a, b in zip(ant1[:self._n_bl], ant2[:self._n_bl])]

    def antenna_table(self) -> List[AntennaRow]:
        from casacore.tables import table

        with table(f"{self.path}/ANTENNA", ack=False) as tb:
            positions = tb.getcol("POSITION")
            flag_row = tb.getcol("FLAG_ROW") if "FLAG_ROW" in tb.colnames() else np.zeros(len(positions), bool)

        rows = []
        for i, (xyz, flagged) in enumerate(zip(positions, flag_row)):
            pos = geocentric_to_local(xyz, self._location, identifier=i, flagged=bool(flagged))
            rows.append((i, (pos.east, pos.north, pos.height), pos.flagged))
        return rows

    def array_location(self) -> LatLngHeight:
        return self._location

    def frequencies(self) -> Tuple[np.ndarray, float]:
        from casacore.tables import table

        with table(f"{self.path}/SPECTRAL_WINDOW", ack=False) as tb:
            freqs = tb.getcol("CHAN_FREQ")[0]
            width = tb.getcol("CHAN_WIDTH")[0][0]
        return np.asarray(freqs, dtype=np.float64), float(width)

    def times(self) -> Tuple[List[Epoch], float]:
        epochs = [Epoch.from_mjd_utc_seconds(t) for t in self._unique_times]
        return epochs, float(self._intervals[0])

    def phase_centre(self) -> Direction:
        from casacore.tables import table

        with table(f"{self.path}/FIELD", ack=False) as tb:
            phase_dir = tb.getcol("PHASE_DIR")[self.field_id, 0]
        return Direction(float(phase_dir[0]) % (2 * np.pi), float(phase_dir[1]))

    @property
    def baselines(self) -> List[Baseline]:
        return list(self._baselines)

    def iter_blocks(self, n_times: int, selection: Optional[VisSelection] = None) -> Iterator[RawBlock]:
        from casacore.tables import table

        sel = self.resolve_selection(selection)
        epochs, integration = self.times()
        freqs, width = self.frequencies()
        centre = self.phase_centre()
        n_chan = len(freqs)
        baselines = tuple(sel.select_baselines(self._baselines))
        bl_idx = list(sel.baseline_idxs)
        logger.debug("Reading %s: %s", self.path, sel)

        with table(self.path, ack=False) as tb:
            for sl in sel.timestep_blocks(n_times):
                n_t = sl.stop - sl.start
                row0, nrow = sl.start * self._n_bl, n_t * self._n_bl
                shape = (n_t, self._n_bl, n_chan, N_POL)

                data = _to_four_pol(tb.getcol(self.data_column, startrow=row0, nrow=nrow))
                if self._has_flag:
                    flags = _to_four_pol(tb.getcol("FLAG", startrow=row0, nrow=nrow))
                else:
                    flags = np.zeros(data.shape, dtype=bool)
                if self._has_weight_spectrum:
                    weights = _to_four_pol(tb.getcol("WEIGHT_SPECTRUM", startrow=row0, nrow=nrow))
                else:
                    w = _to_four_pol(tb.getcol("WEIGHT", startrow=row0, nrow=nrow))
                    weights = np.broadcast_to(w[:, np.newaxis, :], data.shape)

                context = BlockContext(
                    epochs=tuple(epochs[sl]),
                    integration_time=integration,
                    frequencies=freqs[sel.chan_slice],
                    channel_width=width,
                    baselines=baselines,
                    phase_centre=centre,
                )
                vis, flagweight = sel.allocate(n_t)
                vis.array[...] = data.reshape(shape)[:, bl_idx, sel.chan_slice]
                flagweight.flags[...] = np.reshape(flags, shape)[:, bl_idx, sel.chan_slice]
                flagweight.weights[...] = np.reshape(np.real(weights), shape)[:, bl_idx, sel.chan_slice]
                yield vis, flagweight, context


@register_writer("ms")
class MSVisWriter(VisWriter):
    """
    Write processed blocks into a column of an existing MeasurementSet.

    The MeasurementSet must have the output grid: the same baselines and
    channels, and one row set per output timestep, in order. Use it with
    an unaveraged pipeline to update the input in place, or with a
    MeasurementSet prepared on the averaged grid.

    Parameters
    ----------
    path : str
    column : str
        Created from the DATA column description if missing
    write_uvw : bool
        Also overwrite the UVW column
    """

    def __init__(self, path: str, column: str = "CORRECTED_DATA", write_uvw: bool = True):
        from casacore.tables import table

        self.path = path
        self.column = column
        self.write_uvw = write_uvw
        self._tb = table(path, readonly=False, ack=False)
        if column not in self._tb.colnames():
            desc = self._tb.getcoldesc("DATA")
            desc["name"] = column
            self._tb.addcols({column: desc})
            logger.info("Added column %s to %s", column, path)
        self._next_row = 0

    def write(self, block: ProcessedBlock) -> None:
        if self._tb is None:
            raise ValueError(f"write to closed writer for {self.path}")
        n_t, n_bl, n_chan, n_pol = block.vis.shape
        nrow = n_t * n_bl
        if self._next_row + nrow > self._tb.nrows():
            raise ShapeMismatchError(
                "rows", (self._tb.nrows(),), (self._next_row + nrow,), "MSVisWriter.write"
            )

        row0 = self._next_row
        self._tb.putcol(self.column, block.vis.array.reshape(nrow, n_chan, n_pol), startrow=row0, nrow=nrow)
        self._tb.putcol("FLAG", block.flagweight.flags.reshape(nrow, n_chan, n_pol), startrow=row0, nrow=nrow)
        if "WEIGHT_SPECTRUM" in self._tb.colnames():
            self._tb.putcol(
                "WEIGHT_SPECTRUM",
                block.flagweight.weights.reshape(nrow, n_chan, n_pol).astype(np.float32),
                startrow=row0, nrow=nrow,
            )
        if self.write_uvw:
            self._tb.putcol("UVW", block.uvws.reshape(nrow, 3), startrow=row0, nrow=nrow)
        self._next_row += nrow

    def close(self) -> None:
        if self._tb is not None:
            self._tb.flush()
            self._tb.close()
            self._tb = None
