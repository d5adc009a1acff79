"""
Tests for Jones matrix definitions and algebra.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from uvjones.errors import ShapeMismatchError, SingularMatrixError
from uvjones.jones.matrix import Jones, apply
from uvjones.jones.terms import (
    I_jones, K_jones_from_delay, G_jones,
    P_jones_linear, D_jones, full_jones,
)
from uvjones.jones.operations import (
    apply_jones, unapply_jones, composite_jones,
    jones_determinant, jones_inverse, jones_hermitian,
    jones_multiply, corr_to_jones, jones_to_corr, jones_to_mueller,
)
from uvjones.jones.interpolation import interpolate_jones


def random_jones(shape=(), seed=0):
    rng = np.random.default_rng(seed)
    size = shape + (2, 2)
    return rng.standard_normal(size) + 1j * rng.standard_normal(size)


class TestIdentity:
    """Test identity Jones matrix."""

    def test_shape_scalar(self):
        I = I_jones()
        assert I.shape == (2, 2)
        assert_allclose(I, np.eye(2))

    def test_shape_broadcast(self):
        I = I_jones((5,))
        assert I.shape == (5, 2, 2)
        for i in range(5):
            assert_allclose(I[i], np.eye(2))

    def test_shape_2d(self):
        I = I_jones((3, 4))
        assert I.shape == (3, 4, 2, 2)


class TestKJones:
    """Test delay Jones matrices."""

    def test_from_delay(self):
        tau = 1e-9  # 1 ns
        freq = 1e9  # 1 GHz
        K = K_jones_from_delay(tau, tau, freq)
        # Phase = 2*pi*freq*tau = 2*pi
        assert_allclose(K, np.eye(2), atol=1e-10)

    def test_diagonal_unit_modulus(self):
        K = K_jones_from_delay(3e-9, -2e-9, np.linspace(170e6, 200e6, 8))
        assert K.shape == (8, 2, 2)
        assert_allclose(np.abs(K[:, 0, 0]), 1.0)
        assert_allclose(np.abs(K[:, 1, 1]), 1.0)
        assert np.all(K[:, 0, 1] == 0)


class TestGJones:
    """Test gain Jones matrices."""

    def test_complex_gain(self):
        g_X = 1.5 * np.exp(1j * np.pi/6)
        g_Y = 1.2 * np.exp(1j * np.pi/4)
        G = G_jones(g_X, g_Y)

        assert G[0, 0] == g_X
        assert G[1, 1] == g_Y
        assert G[0, 1] == 0
        assert G[1, 0] == 0

    def test_broadcast(self):
        G = G_jones(np.ones(4), 2.0)
        assert G.shape == (4, 2, 2)
        assert_allclose(G[:, 1, 1], 2.0)


class TestPJones:
    """Test parallactic angle Jones matrices."""

    def test_linear_identity(self):
        P = P_jones_linear(0.0)
        assert_allclose(P, np.eye(2))

    def test_linear_rotation(self):
        psi = np.pi/4
        P = P_jones_linear(psi)

        c = np.cos(psi)
        s = np.sin(psi)
        expected = np.array([[c, -s], [s, c]])
        assert_allclose(P, expected)

    def test_linear_orthogonal(self):
        P = P_jones_linear(np.pi/6)
        assert_allclose(P @ P.T.conj(), np.eye(2), atol=1e-10)
        assert_allclose(jones_determinant(P), 1.0)


class TestDJones:
    """Test leakage Jones matrices."""

    def test_structure(self):
        d_X = 0.05 + 0.02j
        d_Y = 0.03 - 0.01j
        D = D_jones(d_X, d_Y)

        assert D[0, 0] == 1.0
        assert D[1, 1] == 1.0
        assert D[0, 1] == d_X
        assert D[1, 0] == d_Y

    def test_full(self):
        J = full_jones(1, 2, 3, 4)
        assert_allclose(J, [[1, 2], [3, 4]])


class TestOperations:
    """Test vectorised Jones operations."""

    def test_apply_identity(self):
        V = np.array([[1+1j, 0.1], [0.1j, 1-0.5j]])
        I = I_jones()

        V_out = apply_jones(V, I, I)
        assert_allclose(V_out, V)

    def test_apply_matches_matmul(self):
        V, Ji, Jj = random_jones((6,), 1), random_jones((6,), 2), random_jones((6,), 3)
        expected = Ji @ V @ np.conj(np.swapaxes(Jj, -1, -2))
        assert_allclose(apply_jones(V, Ji, Jj), expected, rtol=1e-12)

    def test_apply_unapply_inverse(self):
        V = np.array([[1+1j, 0.1], [0.1j, 1-0.5j]])
        J = G_jones(1.5*np.exp(1j*0.3), 1.2*np.exp(1j*0.5))

        V_corrupted = apply_jones(V, J, J)
        V_recovered, singular = unapply_jones(V_corrupted, J, J)

        assert not singular
        assert_allclose(V_recovered, V, rtol=1e-10)

    def test_composite_identity(self):
        I = I_jones()
        C = composite_jones([I, I, I])
        assert_allclose(C, I)

    def test_composite_order(self):
        G1 = G_jones(2.0, 1.0)
        G2 = D_jones(0.1, 0.2)

        # C = G2 @ G1 (signal order: G1 then G2)
        C = composite_jones([G1, G2])
        assert_allclose(C, G2 @ G1)

    def test_jones_inverse(self):
        J = random_jones((10,), 4)
        J_inv, singular = jones_inverse(J)

        assert not singular.any()
        assert_allclose(J @ J_inv, I_jones((10,)), atol=1e-10)

    def test_inverse_singular(self):
        J = np.array([[[1, 2], [2, 4]], [[1, 0], [0, 1]]], dtype=complex)
        J_inv, singular = jones_inverse(J)
        assert singular.tolist() == [True, False]
        assert np.isnan(J_inv[0]).all()
        assert_allclose(J_inv[1], np.eye(2))

    def test_jones_hermitian(self):
        J = random_jones((), 5)
        assert_allclose(jones_hermitian(J), J.conj().T)

    def test_multiply(self):
        A, B = random_jones((3,), 6), random_jones((3,), 7)
        assert_allclose(jones_multiply(A, B), A @ B, rtol=1e-12)

    def test_mueller_identity(self):
        assert_allclose(jones_to_mueller(I_jones()), np.eye(4), atol=1e-12)


class TestCorrelations:
    """Test correlation <-> 2x2 conversion."""

    def test_four_pol(self):
        data = np.arange(8, dtype=complex).reshape(2, 4)
        jones = corr_to_jones(data)
        assert jones.shape == (2, 2, 2)
        assert_allclose(jones[0], [[0, 1], [2, 3]])
        assert_allclose(jones_to_corr(jones), data)

    def test_two_pol(self):
        jones = corr_to_jones(np.array([[1.0, 2.0]]))
        assert_allclose(jones[0], [[1, 0], [0, 2]])
        assert_allclose(jones_to_corr(jones, 2), [[1.0, 2.0]])

    def test_bad_count(self):
        with pytest.raises(ShapeMismatchError):
            corr_to_jones(np.zeros((2, 3)))


class TestJonesValue:
    """Test the immutable Jones value type."""

    @pytest.mark.parametrize("seed", range(20))
    def test_round_trip_law(self, seed):
        J = Jones(random_jones((), seed))
        V = Jones(random_jones((), seed + 100))
        back = apply(J.inv(), apply(J, V))
        assert back.allclose(V, rtol=1e-8, atol=1e-10)

    def test_vector_round_trip(self):
        J = Jones(random_jones((), 11))
        e = np.array([1.0 + 2j, -0.5j])
        assert_allclose(apply(J.inv(), apply(J, e)), e, rtol=1e-10)

    def test_two_sided(self):
        A, B, V = (Jones(random_jones((), s)) for s in (12, 13, 14))
        expected = A.matrix @ V.matrix @ B.matrix.conj().T
        assert_allclose(apply(A, V, B).matrix, expected, rtol=1e-12)

    def test_singular_raises(self):
        J = Jones.from_elements(1, 2, 2, 4)
        with pytest.raises(SingularMatrixError) as info:
            J.inv()
        assert abs(info.value.det) == 0.0

    def test_nan_is_singular(self):
        assert Jones.nan().any_nan()
        assert not Jones.identity().any_nan()
        with pytest.raises(SingularMatrixError):
            Jones.nan().inv()

    def test_algebra(self):
        A = Jones(random_jones((), 15))
        assert (A * Jones.identity()) == A
        assert (A - A) == Jones.zero()
        assert (2 * A).allclose(A + A)
        assert A.h().h() == A
        assert A.det() == pytest.approx(np.linalg.det(A.matrix))

    def test_immutable(self):
        J = Jones.identity()
        with pytest.raises(ValueError):
            J.matrix[0, 0] = 2.0
        with pytest.raises(AttributeError):
            J.foo = 1

    def test_from_flat(self):
        J = Jones([1, 2, 3, 4])
        assert J[1, 0] == 3
        assert_allclose(J.to_corr(), [1, 2, 3, 4])
        assert_allclose(J.norm_sqr(), [1, 4, 9, 16])

    def test_bad_shape(self):
        with pytest.raises(ShapeMismatchError):
            Jones(np.zeros((3, 3)))


class TestInterpolation:
    """Test solution interpolation onto a data grid."""

    def test_linear_amplitude(self):
        jones = np.stack([G_jones(1.0, 1.0), G_jones(3.0, 3.0)])[:, None, None]
        out = interpolate_jones(jones, [0.0, 10.0], [180e6], [5.0], [180e6])
        assert out.shape == (1, 1, 1, 2, 2)
        assert_allclose(out[0, 0, 0], G_jones(2.0, 2.0), atol=1e-12)

    def test_phase_wrap(self):
        # phases either side of +-pi interpolate across the wrap, not through 0
        g = np.exp(1j * np.array([np.pi - 0.1, -np.pi + 0.1]))
        jones = G_jones(g, g)[:, None, None]
        out = interpolate_jones(jones, [0.0, 1.0], [1.0], [0.5], [1.0])
        assert_allclose(np.abs(np.angle(out[0, 0, 0, 0, 0])), np.pi, atol=1e-9)

    def test_single_solution_broadcast(self):
        J = random_jones((1, 2, 1), 8)
        out = interpolate_jones(J, [100.0], [180e6], [90.0, 110.0], [170e6, 180e6, 190e6])
        assert out.shape == (2, 2, 3, 2, 2)
        assert_allclose(out[1, 1, 2], J[0, 1, 0], rtol=1e-12)

    def test_nan_poisons_neighbours_only(self):
        J = np.broadcast_to(I_jones(), (4, 1, 1, 2, 2)).copy()
        J[1] = np.nan
        out = interpolate_jones(J, [0.0, 1.0, 2.0, 3.0], [1.0], [0.5, 2.5], [1.0])
        assert np.isnan(out[0]).all()
        assert_allclose(out[1, 0, 0], np.eye(2), atol=1e-12)

    def test_shape_checked(self):
        with pytest.raises(ShapeMismatchError):
            interpolate_jones(random_jones((2, 1, 1)), [0.0], [1.0], [0.0], [1.0])
