"""
Jones Term Constructors.

Standard per-antenna Jones terms for linear (X, Y) feeds. Every
constructor broadcasts its inputs and returns an array of shape
(..., 2, 2), or (2, 2) for scalar inputs.

Signal propagation order (sky to correlator) used by
:func:`uvjones.jones.operations.composite_jones`:

    J = G @ D @ P
"""

import numpy as np
from typing import Optional, Union

ArrayLike = Union[float, complex, np.ndarray]


def _zeros(*values) -> np.ndarray:
    shape = np.broadcast_shapes(*(np.shape(v) for v in values))
    return np.zeros(shape + (2, 2), dtype=np.complex128)


def I_jones(shape: Optional[tuple] = None) -> np.ndarray:
    """
    Identity Jones matrix.

    Parameters
    ----------
    shape : tuple, optional
        Leading dimensions, e.g. (n_ant,) or (n_ant, n_chan)
    """
    shape = () if shape is None else tuple(shape)
    I = np.zeros(shape + (2, 2), dtype=np.complex128)
    I[..., 0, 0] = 1.0
    I[..., 1, 1] = 1.0
    return I


def G_jones(g_x: ArrayLike, g_y: ArrayLike) -> np.ndarray:
    """
    Complex gain (diagonal).

    G = | g_x   0  |
        |  0   g_y |
    """
    g_x = np.asarray(g_x, dtype=np.complex128)
    g_y = np.asarray(g_y, dtype=np.complex128)
    G = _zeros(g_x, g_y)
    G[..., 0, 0] = g_x
    G[..., 1, 1] = g_y
    return G


def K_jones_from_delay(tau_x: ArrayLike, tau_y: ArrayLike, freq: ArrayLike) -> np.ndarray:
    """
    Delay term from per-polarisation delays.

    K = | exp(2πi·ν·τ_x)        0         |
        |       0         exp(2πi·ν·τ_y)  |

    Parameters
    ----------
    tau_x, tau_y : float or ndarray
        Delays (seconds)
    freq : float or ndarray
        Frequency (Hz)
    """
    freq = np.asarray(freq, dtype=np.float64)
    phase_x = 2 * np.pi * freq * np.asarray(tau_x, dtype=np.float64)
    phase_y = 2 * np.pi * freq * np.asarray(tau_y, dtype=np.float64)
    return G_jones(np.exp(1j * phase_x), np.exp(1j * phase_y))


def D_jones(d_xy: ArrayLike, d_yx: ArrayLike) -> np.ndarray:
    """
    Polarisation leakage.

    D = |  1    d_xy |
        | d_yx   1   |

    d_xy is leakage from Y into X, d_yx from X into Y.
    """
    d_xy = np.asarray(d_xy, dtype=np.complex128)
    d_yx = np.asarray(d_yx, dtype=np.complex128)
    D = _zeros(d_xy, d_yx)
    D[..., 0, 0] = 1.0
    D[..., 0, 1] = d_xy
    D[..., 1, 0] = d_yx
    D[..., 1, 1] = 1.0
    return D


def P_jones_linear(psi: ArrayLike) -> np.ndarray:
    """
    Parallactic rotation for linear feeds (real, det = 1).

    P = | cos(ψ)   -sin(ψ) |
        | sin(ψ)    cos(ψ) |

    Parameters
    ----------
    psi : float or ndarray
        Parallactic angle (radians), see
        :func:`uvjones.coords.frames.parallactic_angle`
    """
    psi = np.asarray(psi, dtype=np.float64)
    c, s = np.cos(psi), np.sin(psi)
    P = _zeros(psi)
    P[..., 0, 0] = c
    P[..., 0, 1] = -s
    P[..., 1, 0] = s
    P[..., 1, 1] = c
    return P


def full_jones(j_xx: ArrayLike, j_xy: ArrayLike, j_yx: ArrayLike, j_yy: ArrayLike) -> np.ndarray:
    """Arbitrary 2x2 Jones matrix from its four elements."""
    elems = [np.asarray(j, dtype=np.complex128) for j in (j_xx, j_xy, j_yx, j_yy)]
    J = _zeros(*elems)
    J[..., 0, 0], J[..., 0, 1], J[..., 1, 0], J[..., 1, 1] = elems
    return J
