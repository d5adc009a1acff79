"""
Jones Application Backends.

Interchangeable implementations of one contract:

    backend.apply(vis, j_a, j_b) -> j_a @ vis @ j_b^H

with ``vis`` of shape (n_time, n_bl, n_chan, 2, 2) and ``j_a``/``j_b``
broadcastable to it. All backends use the closed-form products of
:mod:`uvjones.jones.operations`, so results do not depend on which
backend runs or how many workers it uses.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Type

import numpy as np

from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.jones.operations import apply_jones

logger = logging.getLogger(__name__)

BL_AXIS = 1


def _check_operands(vis: np.ndarray, j_a: np.ndarray, j_b: np.ndarray) -> None:
    if vis.ndim != 5 or vis.shape[-2:] != (2, 2):
        raise ShapeMismatchError("vis", ("n_time", "n_bl", "n_chan", 2, 2), vis.shape, "apply")
    for name, j in (("j_a", j_a), ("j_b", j_b)):
        try:
            shape = np.broadcast_shapes(vis.shape, j.shape)
        except ValueError:
            shape = None
        if shape != vis.shape:
            raise ShapeMismatchError(name, vis.shape, j.shape, "apply")


def partition_slices(n: int, n_parts: int) -> List[slice]:
    """
    Split ``range(n)`` into at most ``n_parts`` contiguous, disjoint slices.
    """
    n_parts = max(1, min(n_parts, n))
    bounds = np.linspace(0, n, n_parts + 1).astype(int)
    return [slice(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]


class JonesBackend:
    """Base class for Jones application backends."""

    name = "base"

    def apply(self, vis: np.ndarray, j_a: np.ndarray, j_b: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NumpyJonesBackend(JonesBackend):
    """Single vectorised numpy evaluation over the whole block."""

    name = "numpy"

    def apply(self, vis, j_a, j_b):
        _check_operands(vis, j_a, j_b)
        return apply_jones(vis, j_a, j_b)


class ThreadedJonesBackend(JonesBackend):
    """
    Thread pool over disjoint baseline partitions.

    Each worker writes only its own baseline slice of the output buffer;
    the call returns once every partition is done (block barrier).

    Parameters
    ----------
    n_workers : int
        Number of threads (and partitions)
    """

    name = "threaded"

    def __init__(self, n_workers: int = 4):
        if n_workers < 1:
            raise ConfigError(f"n_workers must be >= 1, got {n_workers}")
        self.n_workers = n_workers
        self._pool: Optional[ThreadPoolExecutor] = None

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.n_workers,
                                            thread_name_prefix="uvjones-jones")
        return self._pool

    def apply(self, vis, j_a, j_b):
        _check_operands(vis, j_a, j_b)
        out = np.empty(vis.shape, dtype=np.result_type(vis.dtype, j_a.dtype, j_b.dtype))
        j_a = np.broadcast_to(j_a, vis.shape)
        j_b = np.broadcast_to(j_b, vis.shape)

        def work(sl: slice) -> None:
            out[:, sl] = apply_jones(vis[:, sl], j_a[:, sl], j_b[:, sl])

        slices = partition_slices(vis.shape[BL_AXIS], self.n_workers)
        futures = [self._executor().submit(work, sl) for sl in slices]
        wait(futures)
        for f in futures:
            f.result()
        return out

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __repr__(self) -> str:
        return f"ThreadedJonesBackend(n_workers={self.n_workers})"


class CupyJonesBackend(JonesBackend):
    """
    GPU evaluation with cupy.

    Operands are copied to the device, multiplied with the same closed-form
    products, and copied back.
    """

    name = "cupy"

    def __init__(self):
        try:
            import cupy
        except ImportError as err:
            raise ConfigError("backend 'cupy' requested but cupy is not installed") from err
        self._cp = cupy

    def apply(self, vis, j_a, j_b):
        _check_operands(vis, j_a, j_b)
        cp = self._cp
        out = apply_jones(cp.asarray(vis), cp.asarray(j_a), cp.asarray(j_b))
        return cp.asnumpy(out)


BACKENDS: Dict[str, Type[JonesBackend]] = {
    NumpyJonesBackend.name: NumpyJonesBackend,
    ThreadedJonesBackend.name: ThreadedJonesBackend,
    CupyJonesBackend.name: CupyJonesBackend,
}


def get_backend(name: str = "numpy", n_workers: int = 4) -> JonesBackend:
    """
    Construct a backend by name.

    Raises
    ------
    ConfigError
        Unknown name, or the backend's library is unavailable
    """
    try:
        cls = BACKENDS[name]
    except KeyError:
        raise ConfigError(
            f"unknown Jones backend {name!r}; choose from {sorted(BACKENDS)}"
        ) from None
    if cls is ThreadedJonesBackend:
        backend = cls(n_workers=n_workers)
    else:
        backend = cls()
    logger.debug("Using Jones backend %r", backend)
    return backend
