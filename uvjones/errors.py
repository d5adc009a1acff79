"""
Error Taxonomy.

Structural errors (shape mismatch, missing metadata) are raised to the
caller. Numeric per-cell errors (singular Jones) are caught by the pipeline
and turned into flags.
"""

from typing import Optional


class UVJonesError(Exception):
    """Base class for all uvjones errors."""


class FrameError(UVJonesError):
    """Time or coordinate reduction outside the validity of the model."""


class ConfigError(UVJonesError):
    """Missing or invalid antenna, frequency or configuration metadata."""


class SingularMatrixError(UVJonesError):
    """Jones matrix cannot be inverted."""

    def __init__(self, det: complex, epsilon: float):
        self.det = det
        self.epsilon = epsilon
        super().__init__(
            f"Jones determinant |{det}| = {abs(det):.3e} below epsilon {epsilon:.1e}"
        )


class ShapeMismatchError(UVJonesError):
    """Array extents of visibilities, flags, weights or Jones disagree."""

    def __init__(
        self,
        argument: str,
        expected: tuple,
        received: tuple,
        function: Optional[str] = None,
    ):
        self.argument = argument
        self.expected = tuple(expected)
        self.received = tuple(received)
        self.function = function
        where = f" of {function}" if function else ""
        super().__init__(
            f"bad array shape for {argument}{where}: "
            f"expected {self.expected}, received {self.received}"
        )


class InsufficientMemoryError(UVJonesError):
    """Buffers for a visibility selection could not be allocated."""

    def __init__(self, need_bytes: int):
        self.need_bytes = need_bytes
        super().__init__(f"could not allocate {need_bytes / 2**20:.1f} MiB for the selection")
