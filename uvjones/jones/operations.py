"""
Jones Matrix Operations.

Vectorised operations on stacks of 2x2 complex matrices with shape
(..., 2, 2). Products are written out element by element (closed form) so
results do not depend on how a stack is sliced across workers.

The functions only use array arithmetic, so they accept cupy arrays as
well as numpy arrays.
"""

import numpy as np
from typing import List, Tuple

from uvjones.constants import DEFAULT_SINGULAR_EPSILON, N_POL
from uvjones.errors import ShapeMismatchError


def _empty(a, b=None):
    """Output buffer for a product of ``a`` and ``b`` (broadcast shape)."""
    if b is None:
        shape = a.shape
    else:
        shape = np.broadcast_shapes(a.shape, b.shape)
    xp = _array_module(a)
    return xp.empty(shape, dtype=np.result_type(a.dtype, np.complex64 if b is None else b.dtype))


def _array_module(a):
    mod = type(a).__module__.split(".")[0]
    if mod == "cupy":
        import cupy
        return cupy
    return np


def jones_multiply(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """
    Matrix product A @ B of Jones stacks.

    Parameters
    ----------
    A, B : ndarray (..., 2, 2)

    Returns
    -------
    C : ndarray (..., 2, 2)
    """
    C = _empty(A, B)
    a00, a01, a10, a11 = A[..., 0, 0], A[..., 0, 1], A[..., 1, 0], A[..., 1, 1]
    b00, b01, b10, b11 = B[..., 0, 0], B[..., 0, 1], B[..., 1, 0], B[..., 1, 1]
    C[..., 0, 0] = a00 * b00 + a01 * b10
    C[..., 0, 1] = a00 * b01 + a01 * b11
    C[..., 1, 0] = a10 * b00 + a11 * b10
    C[..., 1, 1] = a10 * b01 + a11 * b11
    return C


def jones_multiply_hermitian(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """A @ B^H without forming B^H."""
    C = _empty(A, B)
    a00, a01, a10, a11 = A[..., 0, 0], A[..., 0, 1], A[..., 1, 0], A[..., 1, 1]
    b00 = B[..., 0, 0].conj()
    b01 = B[..., 0, 1].conj()
    b10 = B[..., 1, 0].conj()
    b11 = B[..., 1, 1].conj()
    C[..., 0, 0] = a00 * b00 + a01 * b01
    C[..., 0, 1] = a00 * b10 + a01 * b11
    C[..., 1, 0] = a10 * b00 + a11 * b01
    C[..., 1, 1] = a10 * b10 + a11 * b11
    return C


def jones_hermitian(J: np.ndarray) -> np.ndarray:
    """
    Hermitian (conjugate transpose) of Jones matrices.

    Parameters
    ----------
    J : ndarray (..., 2, 2)

    Returns
    -------
    J_H : ndarray (..., 2, 2)
    """
    return J.swapaxes(-2, -1).conj()


def jones_determinant(J: np.ndarray) -> np.ndarray:
    """
    Determinant of Jones matrices.

    Parameters
    ----------
    J : ndarray (..., 2, 2)

    Returns
    -------
    det : ndarray (...)
    """
    return J[..., 0, 0] * J[..., 1, 1] - J[..., 0, 1] * J[..., 1, 0]


def jones_inverse(
    J: np.ndarray,
    epsilon: float = DEFAULT_SINGULAR_EPSILON,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Inverse of Jones matrices.

    For 2x2: J^{-1} = (1/det) * |  j_11  -j_01 |
                                | -j_10   j_00 |

    Parameters
    ----------
    J : ndarray (..., 2, 2)
    epsilon : float
        Matrices with |det| < epsilon (or a non-finite det) are singular

    Returns
    -------
    J_inv : ndarray (..., 2, 2)
        Inverse; NaN where singular
    singular : ndarray (...) of bool
    """
    det = jones_determinant(J)
    xp = _array_module(J)
    singular = ~xp.isfinite(det) | (xp.abs(det) < epsilon)
    safe_det = xp.where(singular, 1.0, det)

    J_inv = xp.empty_like(J)
    J_inv[..., 0, 0] = J[..., 1, 1] / safe_det
    J_inv[..., 0, 1] = -J[..., 0, 1] / safe_det
    J_inv[..., 1, 0] = -J[..., 1, 0] / safe_det
    J_inv[..., 1, 1] = J[..., 0, 0] / safe_det
    J_inv[singular] = np.nan
    return J_inv, singular


def apply_jones(
    V: np.ndarray,
    J_i: np.ndarray,
    J_j: np.ndarray,
) -> np.ndarray:
    """
    Apply Jones matrices to a visibility.

    V' = J_i @ V @ J_j^H

    Parameters
    ----------
    V : ndarray (..., 2, 2)
        Visibility (correlation) matrix
    J_i : ndarray (..., 2, 2)
        Jones matrix for antenna i
    J_j : ndarray (..., 2, 2)
        Jones matrix for antenna j

    Returns
    -------
    V' : ndarray (..., 2, 2)
    """
    return jones_multiply_hermitian(jones_multiply(J_i, V), J_j)


def unapply_jones(
    V_obs: np.ndarray,
    J_i: np.ndarray,
    J_j: np.ndarray,
    epsilon: float = DEFAULT_SINGULAR_EPSILON,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Remove Jones matrices from an observed visibility.

    V_corrected = J_i^{-1} @ V_obs @ (J_j^{-1})^H

    Returns
    -------
    V_corrected : ndarray (..., 2, 2)
        NaN where either inverse is singular
    singular : ndarray (...) of bool
    """
    J_i_inv, sing_i = jones_inverse(J_i, epsilon)
    J_j_inv, sing_j = jones_inverse(J_j, epsilon)
    return apply_jones(V_obs, J_i_inv, J_j_inv), sing_i | sing_j


def apply_jones_vector(J: np.ndarray, e: np.ndarray) -> np.ndarray:
    """
    Apply Jones matrices to raw polarisation 2-vectors: e' = J @ e.

    Parameters
    ----------
    J : ndarray (..., 2, 2)
    e : ndarray (..., 2)
    """
    xp = _array_module(J)
    out = xp.empty(np.broadcast_shapes(J.shape[:-1], e.shape),
                   dtype=np.result_type(J.dtype, e.dtype))
    out[..., 0] = J[..., 0, 0] * e[..., 0] + J[..., 0, 1] * e[..., 1]
    out[..., 1] = J[..., 1, 0] * e[..., 0] + J[..., 1, 1] * e[..., 1]
    return out


def composite_jones(jones_list: List[np.ndarray]) -> np.ndarray:
    """
    Build composite Jones matrix from a list of Jones terms.

    The order follows signal propagation (sky to correlator):
        J_composite = J_N @ J_{N-1} @ ... @ J_1

    So jones_list[0] is closest to sky, jones_list[-1] is closest to correlator.

    Parameters
    ----------
    jones_list : list of ndarray
        List of Jones matrices in signal propagation order

    Returns
    -------
    J : ndarray (..., 2, 2)
    """
    if len(jones_list) == 0:
        return np.eye(2, dtype=np.complex128)

    J = np.asarray(jones_list[0], dtype=np.complex128).copy()
    for term in jones_list[1:]:
        J = jones_multiply(np.asarray(term, dtype=np.complex128), J)
    return J


def jones_to_mueller(J: np.ndarray) -> np.ndarray:
    """
    Convert Jones matrix to Mueller matrix.

    M = A @ (J ⊗ J*) @ A^{-1}

    where A is the transformation matrix between coherency and Stokes.

    Parameters
    ----------
    J : ndarray (..., 2, 2)

    Returns
    -------
    M : ndarray (..., 4, 4)
    """
    # S = [I, Q, U, V], coherency = [XX, XY, YX, YY]
    A = np.array([
        [1, 0, 0, 1],
        [1, 0, 0, -1],
        [0, 1, 1, 0],
        [0, -1j, 1j, 0]
    ], dtype=np.complex128) / 2

    A_inv = np.array([
        [1, 1, 0, 0],
        [0, 0, 1, 1j],
        [0, 0, 1, -1j],
        [1, -1, 0, 0]
    ], dtype=np.complex128)

    J = np.asarray(J, dtype=np.complex128)
    M_coh = np.einsum("...ik,...jl->...ijkl", J, np.conj(J))
    M_coh = M_coh.reshape(J.shape[:-2] + (4, 4))
    return A @ M_coh @ A_inv


def corr_to_jones(data: np.ndarray) -> np.ndarray:
    """
    Convert correlation format to 2x2 Jones format.

    Correlation order:
        n_corr = 4: [XX, XY, YX, YY]
        n_corr = 2: [XX, YY]
        n_corr = 1: [I]

    Parameters
    ----------
    data : ndarray (..., n_corr)

    Returns
    -------
    jones : ndarray (..., 2, 2)
    """
    n_corr = data.shape[-1]
    if n_corr == N_POL:
        return data.reshape(data.shape[:-1] + (2, 2))

    jones = np.zeros(data.shape[:-1] + (2, 2), dtype=data.dtype)
    if n_corr == 2:
        jones[..., 0, 0] = data[..., 0]
        jones[..., 1, 1] = data[..., 1]
    elif n_corr == 1:
        jones[..., 0, 0] = data[..., 0]
        jones[..., 1, 1] = data[..., 0]
    else:
        raise ShapeMismatchError("data", data.shape[:-1] + (N_POL,), data.shape, "corr_to_jones")
    return jones


def jones_to_corr(jones: np.ndarray, n_corr: int = N_POL) -> np.ndarray:
    """
    Convert 2x2 Jones format back to correlation format.

    Parameters
    ----------
    jones : ndarray (..., 2, 2)
    n_corr : int
        1, 2 or 4

    Returns
    -------
    data : ndarray (..., n_corr)
    """
    if n_corr == N_POL:
        return jones.reshape(jones.shape[:-2] + (N_POL,))
    if n_corr == 2:
        return np.stack([jones[..., 0, 0], jones[..., 1, 1]], axis=-1)
    if n_corr == 1:
        return jones[..., 0, 0][..., np.newaxis]
    raise ValueError(f"Unsupported n_corr: {n_corr}")
