"""
Phase Rotation.

Moves visibilities from their native phase centre to a new one with a
scalar phase factor per (time, baseline, channel). Visibilities follow

    V(b) = sum I(s) exp(-2πi b.(s - s0) / λ)

so re-centring on s1 multiplies by exp(+2πi (w_new - w_old) / λ) with
w = b.s the UVW w of each centre.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from uvjones.constants import VEL_C
from uvjones.coords.antenna import ArrayLayout
from uvjones.coords.frames import Direction, Frame, require_frame
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import compute_uvws
from uvjones.core.block import BlockContext, VisibilityBlock
from uvjones.errors import ShapeMismatchError

logger = logging.getLogger(__name__)

# Directions closer than this are the same phase centre.
SAME_CENTRE_RAD = 1e-12


def block_uvws(
    context: BlockContext,
    layout: ArrayLayout,
    phase_centre: Optional[Direction] = None,
    epochs: Optional[Sequence[Epoch]] = None,
) -> np.ndarray:
    """
    UVWs (metres) of every baseline of a block at every epoch.

    Returns
    -------
    uvws : ndarray (n_time, n_baseline, 3)
    """
    centre = context.phase_centre if phase_centre is None else phase_centre
    epochs = context.epochs if epochs is None else epochs
    uvws = np.empty((len(epochs), context.n_baseline, 3), dtype=np.float64)
    for i, epoch in enumerate(epochs):
        uvws[i] = compute_uvws(context.baselines, centre, epoch, layout)
    return uvws


def phase_factors(
    w_old: np.ndarray,
    w_new: np.ndarray,
    frequencies: np.ndarray,
) -> np.ndarray:
    """
    exp(2πi (w_new - w_old) f / c).

    Parameters
    ----------
    w_old, w_new : ndarray (n_time, n_baseline)
        Metres
    frequencies : ndarray (n_chan,)
        Hz

    Returns
    -------
    factors : ndarray (n_time, n_baseline, n_chan)
    """
    dw = (w_new - w_old)[..., np.newaxis]
    return np.exp(2j * np.pi * dw * (np.asarray(frequencies)[np.newaxis, np.newaxis, :] / VEL_C))


def phase_rotate(
    vis: VisibilityBlock,
    context: BlockContext,
    new_centre: Direction,
    layout: ArrayLayout,
) -> Tuple[BlockContext, np.ndarray]:
    """
    Rotate a block in place to ``new_centre``.

    Parameters
    ----------
    vis : VisibilityBlock
        Modified in place
    context : BlockContext
    new_centre : Direction
        J2000 target phase centre
    layout : ArrayLayout

    Returns
    -------
    context : BlockContext
        Context with the new phase centre
    uvws : ndarray (n_time, n_baseline, 3)
        UVWs towards the new phase centre
    """
    require_frame(new_centre, Frame.J2000)
    if vis.shape != context.shape:
        raise ShapeMismatchError("vis", context.shape, vis.shape, "phase_rotate")

    uvw_new = block_uvws(context, layout, phase_centre=new_centre)
    if context.phase_centre.separation(new_centre) < SAME_CENTRE_RAD:
        logger.debug("Phase centre unchanged, skipping rotation")
        return context, uvw_new

    logger.debug("Phase rotating from %s to %s", context.phase_centre, new_centre)
    uvw_old = block_uvws(context, layout)
    factors = phase_factors(uvw_old[..., 2], uvw_new[..., 2], context.frequencies)
    vis.array[...] *= factors[..., np.newaxis]
    return context.replace(phase_centre=new_centre), uvw_new
