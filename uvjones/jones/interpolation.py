"""
Jones Solution Interpolation.

Calibration solutions rarely share the data's time and channel grid.
Solutions are resampled onto the data grid by interpolating amplitude and
unwrapped phase separately, to avoid phase wrapping artefacts.
"""

import numpy as np
from scipy.interpolate import interp1d
from typing import Literal

from uvjones.errors import ShapeMismatchError

InterpolationMethod = Literal["nearest", "linear", "cubic"]


def interpolate_jones(
    jones: np.ndarray,
    time_src: np.ndarray,
    freq_src: np.ndarray,
    time_dst: np.ndarray,
    freq_dst: np.ndarray,
    time_method: InterpolationMethod = "linear",
    freq_method: InterpolationMethod = "linear",
) -> np.ndarray:
    """
    Interpolate per-antenna Jones solutions onto a data grid.

    Parameters
    ----------
    jones : ndarray (n_time_src, n_ant, n_freq_src, 2, 2)
        Source solutions. NaN entries stay NaN in every output cell they
        influence, so the cell ends up flagged downstream.
    time_src : ndarray (n_time_src,)
        Solution timestamps (any monotonic unit, e.g. GPS seconds)
    freq_src : ndarray (n_freq_src,)
        Solution frequencies (Hz)
    time_dst : ndarray (n_time_dst,)
    freq_dst : ndarray (n_freq_dst,)
    time_method, freq_method : str
        'nearest', 'linear' or 'cubic'

    Returns
    -------
    jones_interp : ndarray (n_time_dst, n_ant, n_freq_dst, 2, 2)
    """
    jones = np.asarray(jones, dtype=np.complex128)
    time_src = np.atleast_1d(np.asarray(time_src, dtype=np.float64))
    freq_src = np.atleast_1d(np.asarray(freq_src, dtype=np.float64))
    if jones.ndim != 5 or jones.shape[-2:] != (2, 2):
        raise ShapeMismatchError(
            "jones", ("n_time", "n_ant", "n_freq", 2, 2), jones.shape, "interpolate_jones"
        )
    if jones.shape[0] != len(time_src) or jones.shape[2] != len(freq_src):
        raise ShapeMismatchError(
            "jones",
            (len(time_src), jones.shape[1], len(freq_src), 2, 2),
            jones.shape,
            "interpolate_jones",
        )

    time_dst = np.atleast_1d(np.asarray(time_dst, dtype=np.float64))
    freq_dst = np.atleast_1d(np.asarray(freq_dst, dtype=np.float64))

    bad = ~np.isfinite(jones).all(axis=(-2, -1))
    if bad.any():
        jones = np.where(bad[..., np.newaxis, np.newaxis], 0.0, jones)

    amp = np.abs(jones)
    phase = np.angle(jones)
    if len(time_src) > 1:
        phase = np.unwrap(phase, axis=0)
    if len(freq_src) > 1:
        phase = np.unwrap(phase, axis=2)

    amp = _interp_axis(amp, time_src, time_dst, time_method, axis=0)
    phase = _interp_axis(phase, time_src, time_dst, time_method, axis=0)
    amp = _interp_axis(amp, freq_src, freq_dst, freq_method, axis=2)
    phase = _interp_axis(phase, freq_src, freq_dst, freq_method, axis=2)

    out = amp * np.exp(1j * phase)

    if bad.any():
        # any output cell touched by a bad source cell is bad
        b = _interp_axis(bad.astype(np.float64), time_src, time_dst, time_method, axis=0)
        b = _interp_axis(b, freq_src, freq_dst, freq_method, axis=2)
        out[np.abs(b) > 1e-9] = np.nan
    return out


def _interp_axis(
    data: np.ndarray,
    x_src: np.ndarray,
    x_dst: np.ndarray,
    method: str,
    axis: int,
) -> np.ndarray:
    """Interpolate along one axis; a single source sample is broadcast."""
    x_dst = np.atleast_1d(x_dst)
    if len(x_src) == 1:
        shape = list(data.shape)
        shape[axis] = len(x_dst)
        return np.broadcast_to(np.take(data, [0], axis=axis), shape).copy()

    if method == "cubic" and len(x_src) < 4:
        method = "linear"

    fn = interp1d(
        x_src,
        data,
        kind=method,
        axis=axis,
        bounds_error=False,
        fill_value="extrapolate",
        assume_sorted=False,
    )
    return fn(x_dst)
