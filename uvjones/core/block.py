"""
Visibility Block Data Model.

A block holds every baseline and channel for a contiguous range of
timesteps. Visibilities live in one flat, C-contiguous complex buffer
addressed as

    offset(t, b, f, p) = t * S_t + b * S_b + f * S_f + p

with element strides

    S_f = n_pol
    S_b = n_chan * S_f
    S_t = n_baseline * S_b

Polarisation order is [XX, XY, YX, YY], so the trailing axis reshapes to a
2x2 correlation matrix without copying.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np

from uvjones.constants import N_POL
from uvjones.coords.frames import Direction
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import Baseline
from uvjones.errors import ShapeMismatchError

AXES = ("time", "baseline", "frequency", "polarisation")


@dataclass(frozen=True, eq=False)
class BlockContext:
    """
    Metadata shared by a visibility block and its flag/weight block.

    Attributes
    ----------
    epochs : tuple of Epoch
        Centre of each timestep (n_time)
    integration_time : float
        Seconds per timestep
    frequencies : ndarray (n_chan,)
        Channel centre frequencies (Hz)
    channel_width : float
        Hz
    baselines : tuple of Baseline
        Row order of the baseline axis (n_bl)
    phase_centre : Direction
        Phase centre of the visibilities (J2000)
    """
    epochs: Tuple[Epoch, ...]
    integration_time: float
    frequencies: np.ndarray
    channel_width: float
    baselines: Tuple[Baseline, ...]
    phase_centre: Direction

    def __post_init__(self):
        freqs = np.array(self.frequencies, dtype=np.float64).reshape(-1)
        freqs.setflags(write=False)
        object.__setattr__(self, "frequencies", freqs)
        object.__setattr__(self, "epochs", tuple(self.epochs))
        object.__setattr__(self, "baselines", tuple(Baseline(*b) for b in self.baselines))

    @property
    def n_time(self) -> int:
        return len(self.epochs)

    @property
    def n_baseline(self) -> int:
        return len(self.baselines)

    @property
    def n_chan(self) -> int:
        return len(self.frequencies)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (self.n_time, self.n_baseline, self.n_chan, N_POL)

    def replace(self, **changes) -> "BlockContext":
        return replace(self, **changes)


class VisibilityBlock:
    """
    Complex visibilities of shape (n_time, n_baseline, n_chan, 4).

    Parameters
    ----------
    data : array-like (n_time, n_baseline, n_chan, 4)
        Copied into a new contiguous buffer
    """

    def __init__(self, data):
        data = np.asarray(data)
        if data.ndim != 4 or data.shape[-1] != N_POL:
            raise ShapeMismatchError(
                "data", ("n_time", "n_baseline", "n_chan", N_POL), data.shape, "VisibilityBlock"
            )
        self._shape = tuple(int(n) for n in data.shape)
        self._buffer = np.array(data, dtype=np.complex128, order="C").reshape(-1)

    @classmethod
    def zeros(cls, shape: Tuple[int, int, int, int]) -> "VisibilityBlock":
        return cls(np.zeros(shape, dtype=np.complex128))

    @classmethod
    def from_buffer(cls, buffer: np.ndarray, shape: Tuple[int, int, int, int]) -> "VisibilityBlock":
        """Wrap a flat buffer; the buffer is copied."""
        buffer = np.asarray(buffer)
        if buffer.size != int(np.prod(shape)):
            raise ShapeMismatchError("buffer", (int(np.prod(shape)),), buffer.shape, "from_buffer")
        return cls(buffer.reshape(shape))

    @property
    def buffer(self) -> np.ndarray:
        """Flat contiguous buffer (a view, writes are visible)."""
        return self._buffer

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return self._shape

    @property
    def n_time(self) -> int:
        return self._shape[0]

    @property
    def n_baseline(self) -> int:
        return self._shape[1]

    @property
    def n_chan(self) -> int:
        return self._shape[2]

    @property
    def strides(self) -> Tuple[int, int, int, int]:
        """Element (not byte) strides for (time, baseline, frequency, polarisation)."""
        _, n_bl, n_chan, n_pol = self._shape
        return (n_bl * n_chan * n_pol, n_chan * n_pol, n_pol, 1)

    def index(self, t: int, b: int, f: int, p: int) -> int:
        """Flat buffer offset of one element."""
        for name, i, n in zip(AXES, (t, b, f, p), self._shape):
            if not 0 <= i < n:
                raise IndexError(f"{name} index {i} out of range [0, {n})")
        s_t, s_b, s_f, s_p = self.strides
        return t * s_t + b * s_b + f * s_f + p * s_p

    @property
    def array(self) -> np.ndarray:
        """(n_time, n_baseline, n_chan, 4) view of the buffer."""
        return self._buffer.reshape(self._shape)

    @property
    def jones_view(self) -> np.ndarray:
        """(n_time, n_baseline, n_chan, 2, 2) view of the buffer."""
        return self._buffer.reshape(self._shape[:-1] + (2, 2))

    def copy(self) -> "VisibilityBlock":
        return VisibilityBlock(self.array)

    def partition(self, n_parts: int) -> List[Tuple[slice, np.ndarray]]:
        """
        Split the baseline axis into disjoint contiguous slices.

        Returns
        -------
        parts : list of (slice, ndarray)
            Baseline slice and the matching writable view
        """
        n_parts = max(1, min(n_parts, self.n_baseline))
        bounds = np.linspace(0, self.n_baseline, n_parts + 1).astype(int)
        arr = self.array
        return [
            (slice(int(a), int(b)), arr[:, int(a):int(b)])
            for a, b in zip(bounds[:-1], bounds[1:])
            if b > a
        ]

    def __repr__(self) -> str:
        return f"VisibilityBlock(shape={self._shape})"


@dataclass(eq=False)
class FlagWeightBlock:
    """
    Flags and weights matching a VisibilityBlock element for element.

    A flagged sample contributes nothing to any average, whatever its
    stored weight.
    """
    flags: np.ndarray
    weights: np.ndarray = field(default=None)

    def __post_init__(self):
        self.flags = np.array(self.flags, dtype=bool, order="C")
        if self.weights is None:
            self.weights = np.ones(self.flags.shape, dtype=np.float64)
        else:
            self.weights = np.array(self.weights, dtype=np.float64, order="C")
        if self.weights.shape != self.flags.shape:
            raise ShapeMismatchError("weights", self.flags.shape, self.weights.shape, "FlagWeightBlock")

    @classmethod
    def unflagged(cls, shape: Tuple[int, ...], weight: float = 1.0) -> "FlagWeightBlock":
        return cls(np.zeros(shape, dtype=bool), np.full(shape, weight, dtype=np.float64))

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.flags.shape

    def copy(self) -> "FlagWeightBlock":
        return FlagWeightBlock(self.flags.copy(), self.weights.copy())

    def flagged_cells(self) -> np.ndarray:
        """(n_time, n_baseline, n_chan) mask of cells with any polarisation flagged."""
        return self.flags.any(axis=-1)


def check_shapes(
    vis: VisibilityBlock,
    flagweight: FlagWeightBlock,
    context: Optional[BlockContext] = None,
) -> None:
    """
    Raise ShapeMismatchError unless the visibility, flag/weight block and
    context describe the same (n_time, n_baseline, n_chan, 4) grid.
    """
    if flagweight.flags.shape != vis.shape:
        raise ShapeMismatchError("flags", vis.shape, flagweight.flags.shape, "check_shapes")
    if flagweight.weights.shape != vis.shape:
        raise ShapeMismatchError("weights", vis.shape, flagweight.weights.shape, "check_shapes")
    if context is not None and context.shape != vis.shape:
        raise ShapeMismatchError("context", vis.shape, context.shape, "check_shapes")


def baseline_rows(baselines: Sequence[Baseline], identifiers: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row indices of each baseline's antennas within ``identifiers``.

    Antennas absent from ``identifiers`` map to -1.
    """
    lookup = {ant: i for i, ant in enumerate(identifiers)}
    rows1 = np.array([lookup.get(b.ant1, -1) for b in baselines], dtype=np.intp)
    rows2 = np.array([lookup.get(b.ant2, -1) for b in baselines], dtype=np.intp)
    return rows1, rows2
