"""
Configuration Parser.

Parse YAML pipeline configuration files:

    input:
      adapter: ms
      path: obs.ms
      data_column: DATA
    output:
      adapter: uvfits
      path: obs_avg.uvfits
    array:                      # optional, default: the MWA
      longitude_deg: 116.67081523611111
      latitude_deg: -26.703319405555554
      height_m: 377.827
    processing:
      time_average: 4s          # factor (int) or duration
      freq_average: 80kHz       # factor (int) or bandwidth
      phase_centre: [0.0, -27.0]  # RA, Dec in degrees (J2000)
      block_times: 8
      backend: threaded         # numpy | threaded | cupy
      n_workers: 4
      singular_epsilon: 1.0e-12
      selection:                # optional, default: everything
        timesteps: [0, 16]      # [start, stop) timestep indices
        channels: [0, 64]       # or coarse_channels: [0, 2] with fine_chans_per_coarse: 32
        baselines: [0, 1, 5]    # indices into the input baseline list
    calibration:                # optional
      table: solutions.h5
      terms: [G, D]
      mode: correct             # correct | corrupt
      time_interp: linear
      freq_interp: linear

Every key of ``input`` and ``output`` other than ``adapter`` is passed to
the adapter's constructor.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from uvjones.constants import DEFAULT_SINGULAR_EPSILON
from uvjones.coords.earth import LatLngHeight
from uvjones.core.selection import VisSelection
from uvjones.errors import ConfigError

INTERP_METHODS = ("nearest", "linear", "cubic")
BACKEND_NAMES = ("numpy", "threaded", "cupy")
CALIBRATION_MODES = ("correct", "corrupt")
SELECTION_KEYS = ("timesteps", "channels", "coarse_channels", "fine_chans_per_coarse", "baselines")

AveragingValue = Union[int, str]


@dataclass
class AdapterConfig:
    """Adapter name and constructor options."""
    name: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ArrayConfig:
    """Array reference position (degrees, metres)."""
    longitude_deg: float
    latitude_deg: float
    height_m: float

    def to_location(self) -> LatLngHeight:
        return LatLngHeight.from_degrees(self.longitude_deg, self.latitude_deg, self.height_m)


@dataclass
class ProcessingConfig:
    """Per-block processing options."""
    time_average: int = 1
    freq_average: int = 1
    time_average_seconds: Optional[float] = None   # resolved against the integration time
    freq_average_hz: Optional[float] = None         # resolved against the channel width
    phase_centre: Optional[Tuple[float, float]] = None
    block_times: int = 1
    backend: str = "numpy"
    n_workers: int = 4
    singular_epsilon: float = DEFAULT_SINGULAR_EPSILON
    selection: Optional[VisSelection] = None

    def resolved(self, integration_time: float, channel_width: float) -> "ProcessingConfig":
        """
        Copy with duration and bandwidth averaging turned into factors.

        Raises
        ------
        ConfigError
            If a duration is not a whole multiple of the integration time
            (or a bandwidth of the channel width)
        """
        time_average = self.time_average
        freq_average = self.freq_average
        if self.time_average_seconds is not None:
            time_average = averaging_factor(self.time_average_seconds, integration_time, "time_average")
        if self.freq_average_hz is not None:
            freq_average = averaging_factor(self.freq_average_hz, channel_width, "freq_average")
        return replace(
            self,
            time_average=time_average,
            freq_average=freq_average,
            time_average_seconds=None,
            freq_average_hz=None,
        )


@dataclass
class CalibrationConfig:
    """Jones solutions to apply."""
    table: str
    terms: List[str]
    mode: str = "correct"
    time_interp: str = "linear"
    freq_interp: str = "linear"


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""
    input: AdapterConfig
    output: AdapterConfig
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    array: Optional[ArrayConfig] = None
    calibration: Optional[CalibrationConfig] = None


def load_config(filepath: str) -> PipelineConfig:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    filepath : str
        Path to YAML configuration file

    Returns
    -------
    config : PipelineConfig
    """
    with open(filepath, "r") as f:
        raw = yaml.safe_load(f)
    return parse_config(raw)


def parse_config(raw: Optional[Dict[str, Any]]) -> PipelineConfig:
    """Build a PipelineConfig from an already-parsed mapping."""
    if not isinstance(raw, dict):
        raise ConfigError("configuration must be a mapping")
    for key in ("input", "output"):
        if key not in raw:
            raise ConfigError(f"configuration needs an '{key}' section")

    return PipelineConfig(
        input=_parse_adapter(raw["input"], "input"),
        output=_parse_adapter(raw["output"], "output"),
        processing=_parse_processing(raw.get("processing") or {}),
        array=_parse_array(raw["array"]) if raw.get("array") else None,
        calibration=_parse_calibration(raw["calibration"]) if raw.get("calibration") else None,
    )


def _parse_adapter(section: Any, name: str) -> AdapterConfig:
    if isinstance(section, str):
        return AdapterConfig(section)
    if not isinstance(section, dict) or "adapter" not in section:
        raise ConfigError(f"'{name}' needs an 'adapter' key")
    options = {k: v for k, v in section.items() if k != "adapter"}
    return AdapterConfig(str(section["adapter"]), options)


def _parse_array(section: Dict[str, Any]) -> ArrayConfig:
    try:
        return ArrayConfig(
            longitude_deg=float(section["longitude_deg"]),
            latitude_deg=float(section["latitude_deg"]),
            height_m=float(section.get("height_m", 0.0)),
        )
    except KeyError as e:
        raise ConfigError(f"array section missing {e.args[0]}") from None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid array section: {e}") from None


def _parse_processing(section: Dict[str, Any]) -> ProcessingConfig:
    cfg = ProcessingConfig()

    time_avg = section.get("time_average", 1)
    if _is_factor(time_avg):
        cfg.time_average = _positive_int(time_avg, "time_average")
    else:
        cfg.time_average_seconds = parse_time_interval(str(time_avg))

    freq_avg = section.get("freq_average", 1)
    if _is_factor(freq_avg):
        cfg.freq_average = _positive_int(freq_avg, "freq_average")
    else:
        cfg.freq_average_hz = parse_freq(str(freq_avg))

    centre = section.get("phase_centre")
    if centre is not None:
        if not isinstance(centre, (list, tuple)) or len(centre) != 2:
            raise ConfigError(f"phase_centre must be [ra_deg, dec_deg], got {centre!r}")
        ra, dec = (float(c) for c in centre)
        if not -90.0 <= dec <= 90.0:
            raise ConfigError(f"phase_centre declination {dec} outside [-90, 90]")
        cfg.phase_centre = (ra, dec)

    cfg.block_times = _positive_int(section.get("block_times", cfg.block_times), "block_times")
    cfg.n_workers = _positive_int(section.get("n_workers", cfg.n_workers), "n_workers")

    backend = str(section.get("backend", cfg.backend)).lower()
    if backend not in BACKEND_NAMES:
        raise ConfigError(f"backend must be one of {BACKEND_NAMES}, got {backend!r}")
    cfg.backend = backend

    # YAML 1.1 reads "1e-12" as a string
    try:
        cfg.singular_epsilon = float(section.get("singular_epsilon", cfg.singular_epsilon))
    except (TypeError, ValueError):
        raise ConfigError(f"invalid singular_epsilon {section.get('singular_epsilon')!r}") from None
    if cfg.singular_epsilon < 0:
        raise ConfigError("singular_epsilon must be >= 0")

    if section.get("selection"):
        cfg.selection = _parse_selection(section["selection"])
    return cfg


def _parse_selection(section: Any) -> VisSelection:
    if not isinstance(section, dict):
        raise ConfigError(f"selection must be a mapping, got {section!r}")
    unknown = sorted(set(section) - set(SELECTION_KEYS))
    if unknown:
        raise ConfigError(f"unknown selection keys {unknown}; expected {SELECTION_KEYS}")

    for key in ("timesteps", "channels", "coarse_channels", "baselines"):
        if key in section and not isinstance(section[key], (list, tuple)):
            raise ConfigError(f"selection {key} must be a list, got {section[key]!r}")
    baselines = section.get("baselines")
    kwargs = {
        "timestep_range": section.get("timesteps"),
        "baseline_idxs": tuple(baselines) if baselines is not None else None,
    }

    if "coarse_channels" in section:
        if "channels" in section:
            raise ConfigError("selection takes channels or coarse_channels, not both")
        if "fine_chans_per_coarse" not in section:
            raise ConfigError("selection coarse_channels needs fine_chans_per_coarse")
        fine = _positive_int(section["fine_chans_per_coarse"], "fine_chans_per_coarse")
        return VisSelection.from_coarse_channels(section["coarse_channels"], fine, **kwargs)
    return VisSelection(chan_range=section.get("channels"), **kwargs)


def _parse_calibration(section: Dict[str, Any]) -> CalibrationConfig:
    if "table" not in section:
        raise ConfigError("calibration section needs a 'table'")
    terms = section.get("terms", [])
    if isinstance(terms, str):
        terms = [t.strip() for t in terms.split(",") if t.strip()]
    terms = [str(t) for t in terms]
    if not terms:
        raise ConfigError("calibration section needs at least one term")

    cfg = CalibrationConfig(
        table=str(section["table"]),
        terms=terms,
        mode=str(section.get("mode", "correct")).lower(),
        time_interp=str(section.get("time_interp", "linear")).lower(),
        freq_interp=str(section.get("freq_interp", "linear")).lower(),
    )
    if cfg.mode not in CALIBRATION_MODES:
        raise ConfigError(f"calibration mode must be one of {CALIBRATION_MODES}, got {cfg.mode!r}")
    for name in ("time_interp", "freq_interp"):
        if getattr(cfg, name) not in INTERP_METHODS:
            raise ConfigError(f"{name} must be one of {INTERP_METHODS}, got {getattr(cfg, name)!r}")
    return cfg


def _is_factor(value: AveragingValue) -> bool:
    return isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit())


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer >= 1, got {value!r}")
    try:
        n = int(value)
        if float(value) != n:
            raise ValueError(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer >= 1, got {value!r}") from None
    if n < 1:
        raise ConfigError(f"{name} must be an integer >= 1, got {value!r}")
    return n


def parse_time_interval(interval_str: str) -> float:
    """
    Parse time interval string to seconds.

    Examples:
        '30s' -> 30.0
        '2m' -> 120.0
        '1h' -> 3600.0
        '500ms' -> 0.5
    """
    interval_str = interval_str.lower().strip()
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h)?", interval_str)
    if not match:
        raise ConfigError(f"invalid time interval {interval_str!r}")

    value = float(match.group(1))
    unit = match.group(2) or "s"
    multipliers = {"ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}
    value *= multipliers[unit]
    if value <= 0:
        raise ConfigError(f"time interval must be positive, got {interval_str!r}")
    return value


def parse_freq(freq_str: str) -> float:
    """
    Parse frequency string to Hz.

    Examples:
        '40kHz' -> 40000.0
        '1.28MHz' -> 1280000.0
        '10000' -> 10000.0
    """
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(hz|khz|mhz|ghz)?", freq_str.strip(), re.IGNORECASE)
    if not match:
        raise ConfigError(f"invalid frequency {freq_str!r}")

    value = float(match.group(1))
    unit = (match.group(2) or "hz").lower()
    multipliers = {"hz": 1, "khz": 1e3, "mhz": 1e6, "ghz": 1e9}
    value *= multipliers[unit]
    if value <= 0:
        raise ConfigError(f"frequency must be positive, got {freq_str!r}")
    return value


def averaging_factor(amount: float, resolution: float, name: str) -> int:
    """
    Number of native samples spanned by ``amount``.

    ``amount`` must be a whole multiple of ``resolution`` (within 1e-6 of
    a sample).
    """
    if resolution <= 0:
        raise ConfigError(f"{name}: native resolution must be positive, got {resolution}")
    ratio = amount / resolution
    factor = int(round(ratio))
    if factor < 1 or abs(ratio - factor) > 1e-6:
        raise ConfigError(
            f"{name}: {amount} is not a whole multiple of the native resolution {resolution}"
        )
    return factor
