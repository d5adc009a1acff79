"""
Format Adapter Contracts.

Readers supply observation metadata and raw blocks; writers persist
processed blocks. Implementations register under a name and are picked
from configuration at runtime:

    @register_reader("ms")
    class MSVisReader(VisReader): ...

    reader = get_reader("ms", path="obs.ms")
"""

from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import numpy as np

from uvjones.coords.antenna import ArrayLayout
from uvjones.coords.earth import LatLngHeight
from uvjones.coords.frames import Direction
from uvjones.coords.time import Epoch
from uvjones.coords.uvw import Baseline
from uvjones.core.block import BlockContext, FlagWeightBlock, VisibilityBlock
from uvjones.core.processor import ProcessedBlock
from uvjones.core.selection import VisSelection
from uvjones.errors import ConfigError

AntennaRow = Tuple[int, Sequence[float], bool]
RawBlock = Tuple[VisibilityBlock, FlagWeightBlock, BlockContext]


class VisReader:
    """
    Source of one observation.

    Subclasses implement the metadata accessors and ``iter_blocks``.
    """

    def antenna_table(self) -> List[AntennaRow]:
        """Ordered (identifier, (east, north, height), flagged) rows."""
        raise NotImplementedError

    def array_location(self) -> LatLngHeight:
        return LatLngHeight.mwa()

    def frequencies(self) -> Tuple[np.ndarray, float]:
        """Channel centre frequencies (Hz) and channel width (Hz)."""
        raise NotImplementedError

    def times(self) -> Tuple[List[Epoch], float]:
        """Timestep centres and integration time (s)."""
        raise NotImplementedError

    def phase_centre(self) -> Direction:
        raise NotImplementedError

    @property
    def baselines(self) -> List[Baseline]:
        """Baselines in the order of the visibility baseline axis."""
        raise NotImplementedError

    def iter_blocks(self, n_times: int, selection: Optional[VisSelection] = None) -> Iterator[RawBlock]:
        """
        Yield blocks of up to ``n_times`` consecutive timesteps.

        Only the timesteps, channels and baselines in ``selection`` are
        read; None reads everything.
        """
        raise NotImplementedError

    def resolve_selection(self, selection: Optional[VisSelection] = None) -> VisSelection:
        """``selection`` with unset fields filled from this observation."""
        epochs, _ = self.times()
        freqs, _ = self.frequencies()
        return (selection or VisSelection()).resolve(len(epochs), len(freqs), len(self.baselines))

    def layout(self) -> ArrayLayout:
        """Antenna layout built from ``antenna_table``."""
        rows = self.antenna_table()
        if not rows:
            raise ConfigError(f"{type(self).__name__} supplied no antennas")
        return ArrayLayout.from_table(rows, self.array_location())

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class VisWriter:
    """Sink for processed blocks."""

    def begin(self, layout: ArrayLayout) -> None:
        """Called once with the observation layout before the first write."""

    def write(self, block: ProcessedBlock) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


_READERS: Dict[str, Type[VisReader]] = {}
_WRITERS: Dict[str, Type[VisWriter]] = {}


def _register(registry: Dict[str, type], kind: str, name: str) -> Callable[[type], type]:
    def decorator(cls: type) -> type:
        if name in registry and registry[name] is not cls:
            raise ConfigError(f"{kind} {name!r} already registered to {registry[name].__name__}")
        registry[name] = cls
        return cls
    return decorator


def register_reader(name: str) -> Callable[[type], type]:
    return _register(_READERS, "reader", name)


def register_writer(name: str) -> Callable[[type], type]:
    return _register(_WRITERS, "writer", name)


def get_reader(name: str, **kwargs) -> VisReader:
    """Instantiate the reader registered as ``name``."""
    try:
        cls = _READERS[name]
    except KeyError:
        raise ConfigError(f"unknown reader {name!r}; available: {sorted(_READERS)}") from None
    return cls(**kwargs)


def get_writer(name: str, **kwargs) -> VisWriter:
    """Instantiate the writer registered as ``name``."""
    try:
        cls = _WRITERS[name]
    except KeyError:
        raise ConfigError(f"unknown writer {name!r}; available: {sorted(_WRITERS)}") from None
    return cls(**kwargs)


def available_readers() -> List[str]:
    return sorted(_READERS)


def available_writers() -> List[str]:
    return sorted(_WRITERS)
