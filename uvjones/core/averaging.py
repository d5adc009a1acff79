"""
Time and Frequency Averaging.

Policy per output bin:

    - a sample contributes only if it is unflagged, has a positive weight
      and a finite value
    - value  = sum(w * v) / sum(w) over contributing samples
    - weight = sum(w) over contributing samples
    - the bin is flagged only when no sample contributes; it then has
      weight exactly 0 and holds the unweighted mean of its samples

Sums are always formed in one canonical order (time ascending, then
channel ascending within the bin), independent of how the work is split,
so results are reproducible bit for bit.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from uvjones.coords.time import Epoch
from uvjones.core.block import BlockContext, FlagWeightBlock, VisibilityBlock, check_shapes
from uvjones.errors import ConfigError, UVJonesError

logger = logging.getLogger(__name__)


class BinAccumulator:
    """
    Running sums for one output time bin.

    Parameters
    ----------
    shape : tuple
        Output shape of one timestep (n_baseline, n_chan_out, n_pol)
    """

    def __init__(self, shape: Tuple[int, ...]):
        self.shape = tuple(shape)
        self.reset()

    def reset(self) -> None:
        self.sum_weighted = np.zeros(self.shape, dtype=np.complex128)
        self.sum_weights = np.zeros(self.shape, dtype=np.float64)
        self.all_flagged = np.ones(self.shape, dtype=bool)
        self.sum_all = np.zeros(self.shape, dtype=np.complex128)
        self.count = np.zeros(self.shape, dtype=np.int64)

    def add(
        self,
        vis: np.ndarray,
        flags: np.ndarray,
        weights: np.ndarray,
        n_out: Optional[int] = None,
    ) -> None:
        """
        Accumulate one timestep's samples into the first ``n_out`` output
        channels (all of them by default).
        """
        sl = (slice(None), slice(0, n_out))
        finite = np.isfinite(vis)
        usable = ~flags & (weights > 0) & finite
        w = np.where(usable, weights, 0.0)
        self.sum_weighted[sl] += np.where(usable, vis * w, 0.0)
        self.sum_weights[sl] += w
        self.all_flagged[sl] &= ~usable
        self.sum_all[sl] += np.where(finite, vis, 0.0)
        self.count[sl] += 1

    def result(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns
        -------
        vis, flags, weights : ndarray
        """
        flagged = self.all_flagged.copy()
        with np.errstate(invalid="ignore", divide="ignore"):
            weighted = self.sum_weighted / np.where(flagged, 1.0, self.sum_weights)
            unweighted = self.sum_all / np.maximum(self.count, 1)
        vis = np.where(flagged, unweighted, weighted)
        weights = np.where(flagged, 0.0, self.sum_weights)
        return vis, flagged, weights


def _bins(n: int, factor: int) -> List[slice]:
    return [slice(start, min(start + factor, n)) for start in range(0, n, factor)]


def average_context(context: BlockContext, time_factor: int, freq_factor: int) -> BlockContext:
    """Context of the averaged block: centroid epochs, mean channel frequencies."""
    epochs = tuple(Epoch.centroid(context.epochs[sl]) for sl in _bins(context.n_time, time_factor))
    freqs = np.array([context.frequencies[sl].mean() for sl in _bins(context.n_chan, freq_factor)])
    return context.replace(
        epochs=epochs,
        integration_time=context.integration_time * time_factor,
        frequencies=freqs,
        channel_width=context.channel_width * freq_factor,
    )


def average_block(
    vis: VisibilityBlock,
    flagweight: FlagWeightBlock,
    context: BlockContext,
    time_factor: int = 1,
    freq_factor: int = 1,
) -> Tuple[VisibilityBlock, FlagWeightBlock, BlockContext]:
    """
    Average a block by integer factors in time and frequency.

    Factors that do not divide the axis length leave a shorter final bin.
    With both factors 1 the inputs are returned as identical copies.

    Returns
    -------
    vis, flagweight, context
        New averaged objects; the inputs are not modified
    """
    for name, factor in (("time_factor", time_factor), ("freq_factor", freq_factor)):
        if int(factor) != factor or factor < 1:
            raise ConfigError(f"{name} must be an integer >= 1, got {factor}")
    time_factor, freq_factor = int(time_factor), int(freq_factor)
    check_shapes(vis, flagweight, context)

    if time_factor == 1 and freq_factor == 1:
        return vis.copy(), flagweight.copy(), context

    n_time, n_bl, n_chan, n_pol = vis.shape
    time_bins = _bins(n_time, time_factor)
    n_chan_out = len(_bins(n_chan, freq_factor))

    data, flags, weights = vis.array, flagweight.flags, flagweight.weights
    out_vis = np.empty((len(time_bins), n_bl, n_chan_out, n_pol), dtype=np.complex128)
    out_flags = np.empty(out_vis.shape, dtype=bool)
    out_weights = np.empty(out_vis.shape, dtype=np.float64)

    acc = BinAccumulator((n_bl, n_chan_out, n_pol))
    for i, tbin in enumerate(time_bins):
        acc.reset()
        for t in range(tbin.start, tbin.stop):
            for k in range(freq_factor):
                chans = slice(k, n_chan, freq_factor)
                n_out = len(range(k, n_chan, freq_factor))
                if n_out == 0:
                    continue
                acc.add(data[t, :, chans], flags[t, :, chans], weights[t, :, chans], n_out)
        out_vis[i], out_flags[i], out_weights[i] = acc.result()

    out_context = average_context(context, time_factor, freq_factor)
    logger.debug(
        "Averaged %s -> %s (time x%d, freq x%d)",
        vis.shape, out_vis.shape, time_factor, freq_factor,
    )
    return VisibilityBlock(out_vis), FlagWeightBlock(out_flags, out_weights), out_context


def assert_flag_weight_consistent(flagweight: FlagWeightBlock) -> None:
    """
    Post-condition on averaged output.

    Raises
    ------
    UVJonesError
        If any weight is negative, any flagged sample has a nonzero weight,
        or any unflagged sample has zero weight
    """
    flags, weights = flagweight.flags, flagweight.weights
    n_negative = int(np.count_nonzero(weights < 0))
    n_flagged_weighted = int(np.count_nonzero(flags & (weights != 0)))
    n_unflagged_zero = int(np.count_nonzero(~flags & (weights == 0)))
    if n_negative or n_flagged_weighted or n_unflagged_zero:
        raise UVJonesError(
            f"flag/weight post-condition violated: {n_negative} negative weights, "
            f"{n_flagged_weighted} flagged samples with nonzero weight, "
            f"{n_unflagged_zero} unflagged samples with zero weight"
        )
