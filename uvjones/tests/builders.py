"""
Block builders shared by the tests.
"""

import numpy as np

from uvjones.coords.frames import Direction
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import cross_correlation_baselines
from uvjones.core.block import BlockContext, FlagWeightBlock, VisibilityBlock

# gps time of an MWA EoR-field observation (2013-10-15)
OBS_GPS = 1065880128.0

ANTENNA_TABLE = [
    (0, (0.0, 0.0, 0.0), False),
    (1, (100.0, 0.0, 0.0), False),
    (2, (0.0, 150.0, 1.5), False),
    (3, (-80.0, 60.0, -0.5), False),
]


def make_epochs(n_time, integration=2.0, start=OBS_GPS):
    return [Epoch.from_gps(start + integration * i) for i in range(n_time)]


def make_context(n_time=2, n_chan=3, centre=None, antennas=(0, 1, 2, 3),
                 integration=2.0, width=40e3):
    freqs = 182e6 + width * np.arange(n_chan)
    return BlockContext(
        epochs=tuple(make_epochs(n_time, integration)),
        integration_time=integration,
        frequencies=freqs,
        channel_width=width,
        baselines=tuple(cross_correlation_baselines(antennas)),
        phase_centre=centre if centre is not None else Direction.from_degrees(0.0, -27.0),
    )


def random_vis(shape, seed=0):
    rng = np.random.default_rng(seed)
    return VisibilityBlock(rng.standard_normal(shape) + 1j * rng.standard_normal(shape))


def make_block(context, seed=0):
    return random_vis(context.shape, seed), FlagWeightBlock.unflagged(context.shape)
