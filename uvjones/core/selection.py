"""
Visibility Selection.

Which timesteps, channels and baselines of an observation to read.
Ranges are half-open ``(start, stop)`` indices into the reader's own
axes and baselines are indices into the reader's baseline list. A field
left as None selects the whole axis until the selection is resolved
against a reader.
"""

from dataclasses import dataclass, replace
from typing import Iterator, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from uvjones.constants import N_POL
from uvjones.core.block import FlagWeightBlock, VisibilityBlock
from uvjones.errors import ConfigError, InsufficientMemoryError

T = TypeVar("T")

# complex128 visibility + float64 weight + bool flag per correlation
BYTES_PER_CORRELATION = (
    np.dtype(np.complex128).itemsize + np.dtype(np.float64).itemsize + np.dtype(bool).itemsize
)


def _check_range(value: Optional[Tuple[int, int]], name: str) -> Optional[Tuple[int, int]]:
    if value is None:
        return None
    try:
        start, stop = (int(v) for v in value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be [start, stop], got {value!r}") from None
    if start < 0 or stop <= start:
        raise ConfigError(f"{name} must satisfy 0 <= start < stop, got {value!r}")
    return start, stop


@dataclass(frozen=True)
class VisSelection:
    """
    Subset of an observation.

    Attributes
    ----------
    timestep_range : (int, int), optional
        ``[start, stop)`` timestep indices
    chan_range : (int, int), optional
        ``[start, stop)`` fine channel indices
    baseline_idxs : tuple of int, optional
        Indices into the reader's baseline list, in output order
    """
    timestep_range: Optional[Tuple[int, int]] = None
    chan_range: Optional[Tuple[int, int]] = None
    baseline_idxs: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "timestep_range", _check_range(self.timestep_range, "timestep_range"))
        object.__setattr__(self, "chan_range", _check_range(self.chan_range, "chan_range"))
        if self.baseline_idxs is not None:
            try:
                idxs = tuple(int(i) for i in self.baseline_idxs)
            except (TypeError, ValueError):
                raise ConfigError(f"baseline_idxs must be integers, got {self.baseline_idxs!r}") from None
            if not idxs:
                raise ConfigError("baseline_idxs selects no baselines")
            if min(idxs) < 0:
                raise ConfigError(f"baseline_idxs must be >= 0, got {min(idxs)}")
            if len(set(idxs)) != len(idxs):
                raise ConfigError("baseline_idxs contains duplicates")
            object.__setattr__(self, "baseline_idxs", idxs)

    @classmethod
    def from_coarse_channels(
        cls,
        coarse_chan_range: Tuple[int, int],
        fine_chans_per_coarse: int,
        **kwargs,
    ) -> "VisSelection":
        """Selection of whole coarse channels of ``fine_chans_per_coarse`` each."""
        if fine_chans_per_coarse < 1:
            raise ConfigError(f"fine_chans_per_coarse must be >= 1, got {fine_chans_per_coarse}")
        start, stop = _check_range(coarse_chan_range, "coarse_chan_range")
        return cls(chan_range=(start * fine_chans_per_coarse, stop * fine_chans_per_coarse), **kwargs)

    @property
    def is_resolved(self) -> bool:
        return None not in (self.timestep_range, self.chan_range, self.baseline_idxs)

    def resolve(self, n_time: int, n_chan: int, n_baseline: int) -> "VisSelection":
        """
        Fill unset fields with whole axes and check bounds.

        Raises
        ------
        ConfigError
            If a range or baseline index lies outside the observation
        """
        timesteps = self.timestep_range or (0, n_time)
        chans = self.chan_range or (0, n_chan)
        baselines = self.baseline_idxs or tuple(range(n_baseline))
        if not baselines:
            raise ConfigError("observation has no baselines to select")
        for (start, stop), size, name in ((timesteps, n_time, "timestep_range"), (chans, n_chan, "chan_range")):
            if stop > size:
                raise ConfigError(f"{name} {(start, stop)} exceeds the {size} available")
        if max(baselines) >= n_baseline:
            raise ConfigError(f"baseline index {max(baselines)} exceeds the {n_baseline} available")
        return replace(self, timestep_range=timesteps, chan_range=chans, baseline_idxs=baselines)

    def _require_resolved(self) -> None:
        if not self.is_resolved:
            raise ValueError("selection must be resolved against a reader first")

    @property
    def timestep_slice(self) -> slice:
        self._require_resolved()
        return slice(*self.timestep_range)

    @property
    def chan_slice(self) -> slice:
        self._require_resolved()
        return slice(*self.chan_range)

    @property
    def n_time(self) -> int:
        self._require_resolved()
        return self.timestep_range[1] - self.timestep_range[0]

    @property
    def n_chan(self) -> int:
        self._require_resolved()
        return self.chan_range[1] - self.chan_range[0]

    @property
    def n_baseline(self) -> int:
        self._require_resolved()
        return len(self.baseline_idxs)

    def get_shape(self) -> Tuple[int, int, int]:
        """(n_time, n_baseline, n_chan) of the selected data."""
        return self.n_time, self.n_baseline, self.n_chan

    def select_baselines(self, baselines: Sequence[T]) -> List[T]:
        self._require_resolved()
        return [baselines[i] for i in self.baseline_idxs]

    def timestep_blocks(self, n_times: int) -> Iterator[slice]:
        """Slices of up to ``n_times`` consecutive selected timesteps."""
        if n_times < 1:
            raise ConfigError(f"block size must be >= 1 timestep, got {n_times}")
        start, stop = self.timestep_slice.start, self.timestep_slice.stop
        for t0 in range(start, stop, n_times):
            yield slice(t0, min(t0 + n_times, stop))

    def estimate_bytes_best(self, n_times: Optional[int] = None) -> int:
        """
        Bytes needed for visibilities, weights and flags of the selection.

        Parameters
        ----------
        n_times : int, optional
            Estimate for a block of at most this many timesteps instead
        """
        n_time, n_baseline, n_chan = self.get_shape()
        if n_times is not None:
            n_time = min(n_time, n_times)
        return n_time * n_baseline * n_chan * N_POL * BYTES_PER_CORRELATION

    def allocate(self, n_times: Optional[int] = None) -> Tuple[VisibilityBlock, FlagWeightBlock]:
        """
        Zeroed visibilities and unflagged unit weights for the selection.

        Raises
        ------
        InsufficientMemoryError
            If the buffers cannot be allocated
        """
        n_time, n_baseline, n_chan = self.get_shape()
        if n_times is not None:
            n_time = min(n_time, n_times)
        shape = (n_time, n_baseline, n_chan, N_POL)
        try:
            vis = VisibilityBlock.zeros(shape)
            flagweight = FlagWeightBlock.unflagged(shape)
        except MemoryError:
            raise InsufficientMemoryError(self.estimate_bytes_best(n_times)) from None
        return vis, flagweight

    def __str__(self) -> str:
        if not self.is_resolved:
            return repr(self)
        return (
            f"timesteps [{self.timestep_range[0]}, {self.timestep_range[1]}), "
            f"channels [{self.chan_range[0]}, {self.chan_range[1]}), "
            f"{self.n_baseline} baselines"
        )
