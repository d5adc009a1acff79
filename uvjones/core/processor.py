"""
Visibility Pipeline.

Per block:

    1. copy the inputs and check their shapes
    2. flag baselines of excluded antennas
    3. phase rotate to the requested centre
    4. apply calibration
    5. average in time and frequency, then check the flag/weight post-condition
    6. compute UVWs at each output epoch

Nothing is kept between blocks.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Tuple, Union

import numpy as np

from uvjones.constants import DEFAULT_SINGULAR_EPSILON
from uvjones.coords.antenna import ArrayLayout
from uvjones.coords.frames import Direction
from uvjones.core.averaging import assert_flag_weight_consistent, average_block
from uvjones.core.block import BlockContext, FlagWeightBlock, VisibilityBlock, check_shapes
from uvjones.core.calibrate import (
    JonesSolutions,
    apply_calibration,
    check_solutions,
    solutions_from_dict,
)
from uvjones.core.phase import block_uvws, phase_rotate
from uvjones.core.stats import BlockStats
from uvjones.errors import ConfigError
from uvjones.jones.backends import JonesBackend, get_backend

if TYPE_CHECKING:
    from uvjones.pipeline.config_parser import ProcessingConfig

logger = logging.getLogger(__name__)

JonesInput = Union[JonesSolutions, Dict[Tuple[int, int], object]]


@dataclass
class ProcessedBlock:
    """
    Output of one pipeline pass.

    Attributes
    ----------
    vis : VisibilityBlock
    flagweight : FlagWeightBlock
    context : BlockContext
        Output grid (averaged epochs and channels, final phase centre)
    uvws : ndarray (n_time_out, n_baseline, 3)
        Metres, at each output epoch towards the output phase centre
    stats : BlockStats
    """
    vis: VisibilityBlock
    flagweight: FlagWeightBlock
    context: BlockContext
    uvws: np.ndarray
    stats: BlockStats = field(default_factory=BlockStats)


class VisibilityPipeline:
    """
    Phase rotation, calibration, averaging and flag propagation of blocks.

    Parameters
    ----------
    layout : ArrayLayout
        Antenna table of the observation
    config : ProcessingConfig, optional
        Averaging factors, backend and singularity threshold
    backend : JonesBackend, optional
        Overrides the backend named in ``config``
    """

    def __init__(
        self,
        layout: ArrayLayout,
        config: Optional["ProcessingConfig"] = None,
        backend: Optional[JonesBackend] = None,
    ):
        self.layout = layout
        self.time_average = getattr(config, "time_average", 1)
        self.freq_average = getattr(config, "freq_average", 1)
        self.singular_epsilon = getattr(config, "singular_epsilon", DEFAULT_SINGULAR_EPSILON)
        if backend is None:
            backend = get_backend(
                getattr(config, "backend", "numpy"),
                n_workers=getattr(config, "n_workers", 4),
            )
        self.backend = backend

    def close(self) -> None:
        self.backend.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _check_antennas(self, context: BlockContext) -> None:
        for bl in context.baselines:
            for ant in bl:
                if ant not in self.layout:
                    raise ConfigError(f"baseline {tuple(bl)} uses antenna {ant} not in antenna table")

    def _flag_excluded_antennas(
        self,
        flagweight: FlagWeightBlock,
        context: BlockContext,
        stats: BlockStats,
    ) -> None:
        excluded = set(self.layout.flagged_identifiers)
        if not excluded:
            return
        bad = np.array([b.ant1 in excluded or b.ant2 in excluded for b in context.baselines])
        if not bad.any():
            return
        newly = bad[np.newaxis, :, np.newaxis] & ~flagweight.flagged_cells()
        stats.n_flagged_antenna += int(np.count_nonzero(newly))
        flagweight.flags[:, bad] = True

    def process(
        self,
        vis: VisibilityBlock,
        flagweight: FlagWeightBlock,
        context: BlockContext,
        jones: Optional[JonesInput] = None,
        phase_centre: Optional[Direction] = None,
    ) -> ProcessedBlock:
        """
        Run one block through the pipeline.

        The inputs are not modified. Structural problems raise before any
        work is done, so a failed block leaves no partial output.

        Parameters
        ----------
        vis : VisibilityBlock
        flagweight : FlagWeightBlock
        context : BlockContext
        jones : JonesSolutions or dict, optional
            Solutions to apply; a ``{(antenna, channel): matrix}`` dict is
            applied as given (J_a V J_b^H)
        phase_centre : Direction, optional
            Target phase centre (J2000); defaults to the data's own

        Returns
        -------
        ProcessedBlock

        Raises
        ------
        ShapeMismatchError
            Visibility, flag/weight, context or Jones extents disagree
        ConfigError
            A baseline uses an antenna missing from the layout
        """
        check_shapes(vis, flagweight, context)
        self._check_antennas(context)
        if isinstance(jones, dict):
            jones = solutions_from_dict(jones, context)
        if jones is not None:
            check_solutions(jones, context)

        vis = vis.copy()
        flagweight = flagweight.copy()
        stats = BlockStats(
            n_cells=context.n_time * context.n_baseline * context.n_chan,
            n_flagged_input=int(np.count_nonzero(flagweight.flagged_cells())),
        )
        self._flag_excluded_antennas(flagweight, context, stats)

        uvws = None
        if phase_centre is not None:
            context, uvws = phase_rotate(vis, context, phase_centre, self.layout)

        if jones is not None:
            apply_calibration(
                vis, flagweight, jones, context,
                backend=self.backend,
                epsilon=self.singular_epsilon,
                stats=stats,
            )

        if self.time_average > 1 or self.freq_average > 1:
            vis, flagweight, context = average_block(
                vis, flagweight, context, self.time_average, self.freq_average
            )
            assert_flag_weight_consistent(flagweight)
            uvws = None

        if uvws is None:
            uvws = block_uvws(context, self.layout)
        start = context.epochs[0].isot if context.n_time else "-"
        logger.info("Processed block %s -> %s: %s", start, vis.shape, stats.summary())
        return ProcessedBlock(vis, flagweight, context, uvws, stats)
