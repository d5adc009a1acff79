"""
In-memory adapters.

Wrap numpy arrays as an observation and collect processed blocks in a
list. Used by tests and by callers that already hold their data.
"""

from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from uvjones.constants import N_POL
from uvjones.coords.earth import LatLngHeight
from uvjones.coords.frames import Direction
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import Baseline, cross_correlation_baselines
from uvjones.core.block import BlockContext
from uvjones.core.processor import ProcessedBlock
from uvjones.core.selection import VisSelection
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.io.base import AntennaRow, RawBlock, VisReader, VisWriter, register_reader, register_writer


@register_reader("memory")
class MemoryVisReader(VisReader):
    """
    Observation held in memory.

    Parameters
    ----------
    antennas : list of (identifier, (east, north, height), flagged)
    frequencies : array-like (n_chan,)
        Hz
    channel_width : float
        Hz
    epochs : sequence of Epoch
    integration_time : float
        Seconds
    phase_centre : Direction
    vis : ndarray (n_time, n_baseline, n_chan, 4)
    flags, weights : ndarray, optional
        Same shape as ``vis``; default unflagged with unit weight
    baselines : sequence of (ant1, ant2), optional
        Default: all cross-correlations in ascending order
    array_location : LatLngHeight, optional
        Default: the MWA
    """

    def __init__(
        self,
        antennas: Sequence[AntennaRow],
        frequencies,
        channel_width: float,
        epochs: Sequence[Epoch],
        integration_time: float,
        phase_centre: Direction,
        vis: np.ndarray,
        flags: Optional[np.ndarray] = None,
        weights: Optional[np.ndarray] = None,
        baselines: Optional[Sequence[Tuple[int, int]]] = None,
        array_location: Optional[LatLngHeight] = None,
    ):
        if not antennas:
            raise ConfigError("antenna table is empty")
        self._antennas = list(antennas)
        self._freqs = np.asarray(frequencies, dtype=np.float64)
        if self._freqs.size == 0:
            raise ConfigError("frequency axis is empty")
        self._width = float(channel_width)
        self._epochs = list(epochs)
        self._integration = float(integration_time)
        self._centre = phase_centre
        self._location = array_location or LatLngHeight.mwa()
        if baselines is None:
            baselines = cross_correlation_baselines(a[0] for a in self._antennas)
        self._baselines = [Baseline(*b) for b in baselines]

        expected = (len(self._epochs), len(self._baselines), len(self._freqs), N_POL)
        self._vis = np.asarray(vis)
        if self._vis.shape != expected:
            raise ShapeMismatchError("vis", expected, self._vis.shape, "MemoryVisReader")
        self._flags = np.zeros(expected, dtype=bool) if flags is None else np.asarray(flags, dtype=bool)
        self._weights = np.ones(expected) if weights is None else np.asarray(weights, dtype=np.float64)

    def antenna_table(self) -> List[AntennaRow]:
        return list(self._antennas)

    def array_location(self) -> LatLngHeight:
        return self._location

    def frequencies(self) -> Tuple[np.ndarray, float]:
        return self._freqs.copy(), self._width

    def times(self) -> Tuple[List[Epoch], float]:
        return list(self._epochs), self._integration

    def phase_centre(self) -> Direction:
        return self._centre

    @property
    def baselines(self) -> List[Baseline]:
        return list(self._baselines)

    def iter_blocks(self, n_times: int, selection: Optional[VisSelection] = None) -> Iterator[RawBlock]:
        sel = self.resolve_selection(selection)
        baselines = tuple(sel.select_baselines(self._baselines))
        bl_idx = list(sel.baseline_idxs)
        freqs = self._freqs[sel.chan_slice]
        for sl in sel.timestep_blocks(n_times):
            context = BlockContext(
                epochs=tuple(self._epochs[sl]),
                integration_time=self._integration,
                frequencies=freqs,
                channel_width=self._width,
                baselines=baselines,
                phase_centre=self._centre,
            )
            vis, flagweight = sel.allocate(sl.stop - sl.start)
            vis.array[...] = self._vis[sl][:, bl_idx, sel.chan_slice]
            flagweight.flags[...] = self._flags[sl][:, bl_idx, sel.chan_slice]
            flagweight.weights[...] = self._weights[sl][:, bl_idx, sel.chan_slice]
            yield vis, flagweight, context


@register_writer("memory")
class MemoryVisWriter(VisWriter):
    """Keeps every written block in ``blocks``."""

    def __init__(self):
        self.blocks: List[ProcessedBlock] = []
        self.closed = False

    def write(self, block: ProcessedBlock) -> None:
        if self.closed:
            raise ValueError("write to a closed MemoryVisWriter")
        self.blocks.append(block)

    def close(self) -> None:
        self.closed = True

    def concatenate(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Join written blocks along time.

        Returns
        -------
        vis, flags, weights : ndarray (n_time, n_baseline, n_chan, 4)
        uvws : ndarray (n_time, n_baseline, 3)
        """
        if not self.blocks:
            raise ValueError("no blocks written")
        return (
            np.concatenate([b.vis.array for b in self.blocks]),
            np.concatenate([b.flagweight.flags for b in self.blocks]),
            np.concatenate([b.flagweight.weights for b in self.blocks]),
            np.concatenate([b.uvws for b in self.blocks]),
        )
