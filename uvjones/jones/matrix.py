"""
Jones Matrix Value Type.

A single 2x2 complex matrix describing the polarisation response of one
antenna at one frequency and instant:

    J = | j_00  j_01 |
        | j_10  j_11 |

For linear feeds index 0 = X, index 1 = Y. Stacks of Jones matrices are
handled as (..., 2, 2) arrays by :mod:`uvjones.jones.operations`.
"""

from typing import Optional, Union

import numpy as np

from uvjones.constants import DEFAULT_SINGULAR_EPSILON
from uvjones.errors import ShapeMismatchError, SingularMatrixError
from uvjones.jones import operations as ops

Scalar = Union[int, float, complex]


class Jones:
    """
    Immutable 2x2 complex matrix.

    ``A * B`` is the matrix product; multiplying by a scalar scales every
    element.
    """

    __slots__ = ("_m",)

    def __init__(self, matrix):
        m = np.array(matrix, dtype=np.complex128)
        if m.shape != (2, 2):
            if m.shape == (4,):
                m = m.reshape(2, 2)
            else:
                raise ShapeMismatchError("matrix", (2, 2), m.shape, "Jones")
        m.setflags(write=False)
        object.__setattr__(self, "_m", m)

    def __setattr__(self, name, value):
        raise AttributeError("Jones is immutable")

    @classmethod
    def identity(cls) -> "Jones":
        return cls(np.eye(2))

    @classmethod
    def zero(cls) -> "Jones":
        return cls(np.zeros((2, 2)))

    @classmethod
    def nan(cls) -> "Jones":
        return cls(np.full((2, 2), np.nan))

    @classmethod
    def from_elements(cls, j00: Scalar, j01: Scalar, j10: Scalar, j11: Scalar) -> "Jones":
        return cls([[j00, j01], [j10, j11]])

    @property
    def matrix(self) -> np.ndarray:
        """Read-only (2, 2) array."""
        return self._m

    def __array__(self, dtype=None, copy=None):
        m = self._m.copy()
        return m if dtype is None else m.astype(dtype)

    def __getitem__(self, index):
        return self._m[index]

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def __mul__(self, other) -> "Jones":
        if isinstance(other, Jones):
            return Jones(ops.jones_multiply(self._m, other._m))
        if np.isscalar(other):
            return Jones(self._m * other)
        return NotImplemented

    def __rmul__(self, other) -> "Jones":
        if np.isscalar(other):
            return Jones(other * self._m)
        return NotImplemented

    def __add__(self, other: "Jones") -> "Jones":
        return Jones(self._m + other._m)

    def __sub__(self, other: "Jones") -> "Jones":
        return Jones(self._m - other._m)

    def __truediv__(self, scalar: Scalar) -> "Jones":
        return Jones(self._m / scalar)

    def h(self) -> "Jones":
        """Hermitian conjugate."""
        return Jones(ops.jones_hermitian(self._m))

    def det(self) -> complex:
        return complex(ops.jones_determinant(self._m))

    def inv(self, epsilon: float = DEFAULT_SINGULAR_EPSILON) -> "Jones":
        """
        Inverse.

        Raises
        ------
        SingularMatrixError
            If |det| < epsilon or the determinant is not finite
        """
        inv, singular = ops.jones_inverse(self._m, epsilon)
        if bool(singular):
            raise SingularMatrixError(self.det(), epsilon)
        return Jones(inv)

    def axbh(self, b: "Jones") -> "Jones":
        """self @ b^H"""
        return Jones(ops.jones_multiply_hermitian(self._m, b._m))

    def any_nan(self) -> bool:
        return bool(np.isnan(self._m).any())

    def norm_sqr(self) -> np.ndarray:
        """|element|^2 in [00, 01, 10, 11] order."""
        return (np.abs(self._m) ** 2).reshape(4)

    def to_corr(self) -> np.ndarray:
        """[XX, XY, YX, YY] complex array."""
        return self._m.reshape(4).copy()

    def allclose(self, other: "Jones", rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        return bool(np.allclose(self._m, other._m, rtol=rtol, atol=atol))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Jones):
            return NotImplemented
        return bool(np.array_equal(self._m, other._m))

    def __hash__(self) -> int:
        return hash(self._m.tobytes())

    def __repr__(self) -> str:
        m = self._m
        return f"Jones([[{m[0, 0]}, {m[0, 1]}], [{m[1, 0]}, {m[1, 1]}]])"


def apply(J: Jones, v, J_other: Optional[Jones] = None):
    """
    Apply a Jones matrix.

    Forms, chosen by the type of ``v``:
        Jones (correlation matrix)  -> J * V * K^H, K = J_other or J
        length-2 vector             -> J * v

    Parameters
    ----------
    J : Jones
    v : Jones or array-like (2,)
    J_other : Jones, optional
        Second antenna's matrix for the two-sided form

    Returns
    -------
    Jones or ndarray (2,)
    """
    if isinstance(v, Jones):
        other = J if J_other is None else J_other
        return (J * v).axbh(other)
    e = np.asarray(v, dtype=np.complex128)
    if e.shape != (2,):
        raise ShapeMismatchError("v", (2,), e.shape, "apply")
    return ops.apply_jones_vector(J.matrix, e)
