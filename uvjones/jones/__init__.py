"""
Jones Matrix Types and Operations.

The :class:`Jones` value type for single matrices, vectorised operations
over (..., 2, 2) stacks, standard term constructors, solution
interpolation and the interchangeable application backends.
"""

from uvjones.jones.matrix import Jones, apply

from uvjones.jones.operations import (
    jones_multiply,
    jones_multiply_hermitian,
    jones_hermitian,
    jones_determinant,
    jones_inverse,
    apply_jones,
    unapply_jones,
    apply_jones_vector,
    composite_jones,
    jones_to_mueller,
    corr_to_jones,
    jones_to_corr,
)

from uvjones.jones.terms import (
    I_jones,
    G_jones,
    K_jones_from_delay,
    D_jones,
    P_jones_linear,
    full_jones,
)

from uvjones.jones.interpolation import interpolate_jones

from uvjones.jones.backends import (
    JonesBackend,
    NumpyJonesBackend,
    ThreadedJonesBackend,
    CupyJonesBackend,
    get_backend,
)

__all__ = [
    # Value type
    "Jones",
    "apply",
    # Operations
    "jones_multiply",
    "jones_multiply_hermitian",
    "jones_hermitian",
    "jones_determinant",
    "jones_inverse",
    "apply_jones",
    "unapply_jones",
    "apply_jones_vector",
    "composite_jones",
    "jones_to_mueller",
    "corr_to_jones",
    "jones_to_corr",
    # Terms
    "I_jones",
    "G_jones",
    "K_jones_from_delay",
    "D_jones",
    "P_jones_linear",
    "full_jones",
    # Interpolation
    "interpolate_jones",
    # Backends
    "JonesBackend",
    "NumpyJonesBackend",
    "ThreadedJonesBackend",
    "CupyJonesBackend",
    "get_backend",
]
