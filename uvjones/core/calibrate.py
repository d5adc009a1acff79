"""
Calibration Application.

For each baseline (a, b) and channel:

    corrupt:  V' = J_a V J_b^H
    correct:  V' = J_a^{-1} V J_b^{-H}

A cell is flagged (all polarisations) rather than passed through
uncalibrated when either antenna's matrix is missing, marked invalid,
non-finite or, in ``correct`` mode, singular.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from uvjones.constants import DEFAULT_SINGULAR_EPSILON
from uvjones.core.block import BlockContext, FlagWeightBlock, VisibilityBlock, baseline_rows
from uvjones.core.stats import BlockStats
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.jones.backends import JonesBackend, NumpyJonesBackend
from uvjones.jones.matrix import Jones
from uvjones.jones.operations import jones_inverse
from uvjones.jones.terms import I_jones

logger = logging.getLogger(__name__)

MODES = ("correct", "corrupt")

# per (antenna, channel) status codes, in order of precedence
_OK, _MISSING, _NONFINITE, _SINGULAR = 0, 1, 2, 3


@dataclass(eq=False)
class JonesSolutions:
    """
    Per-antenna, per-channel Jones matrices for one block.

    Attributes
    ----------
    jones : ndarray (n_ant, n_chan, 2, 2) or (n_time, n_ant, n_chan, 2, 2)
        Matrices; the optional leading axis matches the block's timesteps
    antennas : sequence of int
        Antenna identifier of each row of the antenna axis
    valid : ndarray of bool, optional
        Same leading shape as ``jones`` without the (2, 2); False marks a
        matrix as unusable
    mode : str
        'correct' (apply inverses, the default for solutions) or 'corrupt'
    """
    jones: np.ndarray
    antennas: Sequence[int]
    valid: Optional[np.ndarray] = None
    mode: str = "correct"

    def __post_init__(self):
        self.jones = np.asarray(self.jones, dtype=np.complex128)
        self.antennas = tuple(int(a) for a in self.antennas)
        if self.mode not in MODES:
            raise ConfigError(f"calibration mode must be one of {MODES}, got {self.mode!r}")
        if self.jones.ndim not in (4, 5) or self.jones.shape[-2:] != (2, 2):
            raise ShapeMismatchError(
                "jones", ("n_ant", "n_chan", 2, 2), self.jones.shape, "JonesSolutions"
            )
        if self.jones.shape[-4] != len(self.antennas):
            raise ShapeMismatchError(
                "antennas", (self.jones.shape[-4],), (len(self.antennas),), "JonesSolutions"
            )
        if self.valid is None:
            self.valid = np.ones(self.jones.shape[:-2], dtype=bool)
        else:
            self.valid = np.asarray(self.valid, dtype=bool)
            if self.valid.shape != self.jones.shape[:-2]:
                raise ShapeMismatchError("valid", self.jones.shape[:-2], self.valid.shape, "JonesSolutions")

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[Tuple[int, int], object],
        antennas: Sequence[int],
        n_chan: int,
        mode: str = "correct",
    ) -> "JonesSolutions":
        """
        Build from a ``{(antenna, channel): matrix}`` mapping.

        Entries absent from the mapping, or mapped to None, are invalid.
        """
        antennas = list(antennas)
        row = {a: i for i, a in enumerate(antennas)}
        jones = np.full((len(antennas), n_chan, 2, 2), np.nan, dtype=np.complex128)
        valid = np.zeros((len(antennas), n_chan), dtype=bool)
        for (ant, chan), matrix in mapping.items():
            if ant not in row:
                raise ConfigError(f"Jones supplied for antenna {ant} not in the antenna list")
            if not 0 <= chan < n_chan:
                raise ConfigError(f"Jones supplied for channel {chan} outside [0, {n_chan})")
            if matrix is None:
                continue
            m = matrix.matrix if isinstance(matrix, Jones) else np.asarray(matrix).reshape(2, 2)
            jones[row[ant], chan] = m
            valid[row[ant], chan] = True
        return cls(jones, antennas, valid, mode)

    @classmethod
    def identity(cls, antennas: Sequence[int], n_chan: int) -> "JonesSolutions":
        return cls(I_jones((len(antennas), n_chan)), antennas, mode="corrupt")

    @property
    def n_chan(self) -> int:
        return self.jones.shape[-3]

    @property
    def time_dependent(self) -> bool:
        return self.jones.ndim == 5


def check_solutions(solutions: JonesSolutions, context: BlockContext) -> None:
    """Raise ShapeMismatchError unless ``solutions`` fit the block grid."""
    if solutions.n_chan != context.n_chan:
        raise ShapeMismatchError(
            "jones",
            solutions.jones.shape[:-3] + (context.n_chan, 2, 2),
            solutions.jones.shape,
            "apply_calibration",
        )
    if solutions.time_dependent and solutions.jones.shape[0] not in (1, context.n_time):
        raise ShapeMismatchError(
            "jones",
            (context.n_time,) + solutions.jones.shape[1:],
            solutions.jones.shape,
            "apply_calibration",
        )


def _effective_jones(
    solutions: JonesSolutions,
    epsilon: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Matrices to apply and a status code per (antenna, channel).

    Bad entries are replaced by the identity so that no NaN reaches the
    visibilities; the caller flags them.
    """
    jones = solutions.jones
    if not solutions.time_dependent:
        jones = jones[np.newaxis]
        valid = solutions.valid[np.newaxis]
    else:
        valid = solutions.valid

    status = np.full(valid.shape, _OK, dtype=np.int8)
    nonfinite = ~np.isfinite(jones).all(axis=(-2, -1))
    status[nonfinite] = _NONFINITE
    status[~valid] = _MISSING

    if solutions.mode == "correct":
        effective, singular = jones_inverse(jones, epsilon)
        status[singular & (status == _OK)] = _SINGULAR
    else:
        effective = jones.copy()

    effective[status != _OK] = np.eye(2, dtype=np.complex128)
    return effective, status


def apply_calibration(
    vis: VisibilityBlock,
    flagweight: FlagWeightBlock,
    solutions: JonesSolutions,
    context: BlockContext,
    backend: Optional[JonesBackend] = None,
    epsilon: float = DEFAULT_SINGULAR_EPSILON,
    stats: Optional[BlockStats] = None,
) -> BlockStats:
    """
    Apply Jones solutions to a block in place.

    Parameters
    ----------
    vis : VisibilityBlock
        Modified in place
    flagweight : FlagWeightBlock
        Flags are set (never cleared) for cells that cannot be calibrated;
        weights are left alone since the flag dominates
    solutions : JonesSolutions
    context : BlockContext
    backend : JonesBackend, optional
        Defaults to the numpy backend
    epsilon : float
        Singularity threshold on |det|
    stats : BlockStats, optional
        Counters to update

    Returns
    -------
    stats : BlockStats
    """
    if stats is None:
        stats = BlockStats(n_cells=context.n_time * context.n_baseline * context.n_chan)
    if backend is None:
        backend = NumpyJonesBackend()
    check_solutions(solutions, context)

    effective, status = _effective_jones(solutions, epsilon)

    # antennas absent from the solutions get an all-missing row
    n_t = effective.shape[0]
    effective = np.concatenate(
        [effective, np.broadcast_to(np.eye(2, dtype=np.complex128), (n_t, 1, context.n_chan, 2, 2))],
        axis=1,
    )
    status = np.concatenate(
        [status, np.full((n_t, 1, context.n_chan), _MISSING, dtype=np.int8)], axis=1
    )
    rows1, rows2 = baseline_rows(context.baselines, solutions.antennas)
    missing_row = effective.shape[1] - 1
    rows1 = np.where(rows1 < 0, missing_row, rows1)
    rows2 = np.where(rows2 < 0, missing_row, rows2)

    j_a = effective[:, rows1]
    j_b = effective[:, rows2]
    out = backend.apply(vis.jones_view, j_a, j_b)
    vis.jones_view[...] = out

    s1 = status[:, rows1]
    s2 = status[:, rows2]
    missing = (s1 == _MISSING) | (s2 == _MISSING)
    nonfinite = ((s1 == _NONFINITE) | (s2 == _NONFINITE)) & ~missing
    singular = ((s1 == _SINGULAR) | (s2 == _SINGULAR)) & ~missing & ~nonfinite
    bad = np.broadcast_to(missing | nonfinite | singular, vis.shape[:-1])

    already = flagweight.flagged_cells()
    new = ~already
    stats.n_flagged_missing_jones += int(np.count_nonzero(np.broadcast_to(missing, new.shape) & new))
    stats.n_flagged_nonfinite += int(np.count_nonzero(np.broadcast_to(nonfinite, new.shape) & new))
    stats.n_flagged_singular += int(np.count_nonzero(np.broadcast_to(singular, new.shape) & new))
    flagweight.flags |= bad[..., np.newaxis]

    if stats.n_flagged_due_to_error:
        logger.warning(
            "Flagged %d cells that could not be calibrated "
            "(missing=%d, nonfinite=%d, singular=%d)",
            stats.n_flagged_due_to_error,
            stats.n_flagged_missing_jones,
            stats.n_flagged_nonfinite,
            stats.n_flagged_singular,
        )
    return stats


def solutions_from_dict(
    jones: Dict[Tuple[int, int], object],
    context: BlockContext,
    mode: str = "corrupt",
) -> JonesSolutions:
    """Solutions for every antenna of a block from a sparse mapping."""
    antennas = sorted({a for b in context.baselines for a in b})
    return JonesSolutions.from_mapping(jones, antennas, context.n_chan, mode)
