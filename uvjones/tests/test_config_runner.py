"""
Tests for configuration parsing and the pipeline runner.
"""

import h5py
import numpy as np
import pytest
from numpy.testing import assert_allclose

from uvjones.coords.frames import Direction
from uvjones.core.block import FlagWeightBlock
from uvjones.core.selection import VisSelection
from uvjones.errors import ConfigError
from uvjones.io.memory import MemoryVisReader, MemoryVisWriter
from uvjones.io.table_io import save_jones_table
from uvjones.jones.terms import G_jones
from uvjones.pipeline.config_parser import (
    AdapterConfig,
    CalibrationConfig,
    PipelineConfig,
    ProcessingConfig,
    averaging_factor,
    load_config,
    parse_config,
    parse_freq,
    parse_time_interval,
)
from uvjones.pipeline.runner import PipelineRunner
from uvjones.tests.builders import ANTENNA_TABLE, OBS_GPS, make_epochs

CONFIG_YAML = """
input:
  adapter: ms
  path: obs.ms
  data_column: CORRECTED_DATA
output:
  adapter: uvfits
  path: out.uvfits
array:
  longitude_deg: 116.67
  latitude_deg: -26.70
  height_m: 377.0
processing:
  time_average: 4s
  freq_average: 2
  phase_centre: [0.0, -27.0]
  block_times: 8
  backend: threaded
  n_workers: 2
  singular_epsilon: 1.0e-10
calibration:
  table: cal.h5
  terms: G, D
  mode: Corrupt
"""


def memory_reader(n_time=8, n_chan=4, value=1.0, cls=MemoryVisReader):
    shape = (n_time, 6, n_chan, 4)
    return cls(
        antennas=ANTENNA_TABLE,
        frequencies=182e6 + 40e3 * np.arange(n_chan),
        channel_width=40e3,
        epochs=make_epochs(n_time),
        integration_time=2.0,
        phase_centre=Direction.from_degrees(0.0, -27.0),
        vis=np.full(shape, value, dtype=complex),
    )


def memory_config(**processing):
    return PipelineConfig(
        input=AdapterConfig("memory"),
        output=AdapterConfig("memory"),
        processing=ProcessingConfig(**processing),
    )


class TestParseConfig:
    """Test YAML configuration parsing."""

    def test_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)
        cfg = load_config(str(path))

        assert cfg.input.name == "ms"
        assert cfg.input.options == {"path": "obs.ms", "data_column": "CORRECTED_DATA"}
        assert cfg.output.name == "uvfits"
        assert cfg.array.to_location().height == 377.0
        assert cfg.processing.time_average_seconds == 4.0
        assert cfg.processing.freq_average == 2
        assert cfg.processing.phase_centre == (0.0, -27.0)
        assert cfg.processing.backend == "threaded"
        assert cfg.processing.singular_epsilon == 1e-10
        assert cfg.calibration.terms == ["G", "D"]
        assert cfg.calibration.mode == "corrupt"

    def test_minimal(self):
        cfg = parse_config({"input": "memory", "output": {"adapter": "memory"}})
        assert cfg.processing == ProcessingConfig()
        assert cfg.array is None
        assert cfg.calibration is None

    def test_selection(self):
        raw = {"input": "memory", "output": "memory", "processing": {"selection": {
            "timesteps": [2, 6], "channels": [0, 16], "baselines": [0, 5, 3],
        }}}
        sel = parse_config(raw).processing.selection
        assert sel == VisSelection(timestep_range=(2, 6), chan_range=(0, 16), baseline_idxs=(0, 5, 3))

    def test_coarse_channel_selection(self):
        raw = {"input": "memory", "output": "memory", "processing": {"selection": {
            "coarse_channels": [2, 4], "fine_chans_per_coarse": 32,
        }}}
        sel = parse_config(raw).processing.selection
        assert sel.chan_range == (64, 128)
        assert sel.timestep_range is None
        assert sel.baseline_idxs is None

    @pytest.mark.parametrize("raw", [
        None,
        {"output": "memory"},
        {"input": {"path": "x"}, "output": "memory"},
        {"input": "memory", "output": "memory", "processing": {"time_average": 0}},
        {"input": "memory", "output": "memory", "processing": {"block_times": 2.5}},
        {"input": "memory", "output": "memory", "processing": {"backend": "gpu"}},
        {"input": "memory", "output": "memory", "processing": {"phase_centre": [0.0, 95.0]}},
        {"input": "memory", "output": "memory", "processing": {"singular_epsilon": "tiny"}},
        {"input": "memory", "output": "memory", "calibration": {"terms": ["G"]}},
        {"input": "memory", "output": "memory", "calibration": {"table": "c.h5", "terms": []}},
        {"input": "memory", "output": "memory",
         "calibration": {"table": "c.h5", "terms": ["G"], "time_interp": "spline"}},
        {"input": "memory", "output": "memory", "array": {"latitude_deg": -26.7}},
        {"input": "memory", "output": "memory", "processing": {"selection": [0, 4]}},
        {"input": "memory", "output": "memory", "processing": {"selection": {"antennas": [1]}}},
        {"input": "memory", "output": "memory", "processing": {"selection": {"timesteps": 4}}},
        {"input": "memory", "output": "memory", "processing": {"selection": {"timesteps": [4, 2]}}},
        {"input": "memory", "output": "memory",
         "processing": {"selection": {"channels": [0, 2], "coarse_channels": [0, 1]}}},
        {"input": "memory", "output": "memory",
         "processing": {"selection": {"coarse_channels": [0, 1]}}},
        {"input": "memory", "output": "memory", "processing": {"selection": {"baselines": [1, 1]}}},
    ])
    def test_invalid(self, raw):
        with pytest.raises(ConfigError):
            parse_config(raw)


class TestParseTimeInterval:
    """Test time interval parsing."""

    def test_seconds(self):
        assert parse_time_interval("30s") == 30.0
        assert parse_time_interval("8") == 8.0

    def test_minutes(self):
        assert parse_time_interval("2m") == 120.0

    def test_hours(self):
        assert parse_time_interval("1h") == 3600.0

    def test_milliseconds(self):
        assert parse_time_interval("500ms") == 0.5

    @pytest.mark.parametrize("bad", ["", "fast", "-2s", "0s"])
    def test_invalid(self, bad):
        with pytest.raises(ConfigError):
            parse_time_interval(bad)


class TestParseFreq:
    """Test bandwidth parsing."""

    def test_units(self):
        assert parse_freq("40kHz") == 40e3
        assert parse_freq("1.28MHz") == pytest.approx(1.28e6)
        assert parse_freq("10000") == 10000.0

    def test_invalid(self):
        with pytest.raises(ConfigError):
            parse_freq("wide")


class TestResolve:
    """Test turning durations and bandwidths into factors."""

    def test_resolved(self):
        cfg = ProcessingConfig(time_average_seconds=8.0, freq_average_hz=80e3)
        resolved = cfg.resolved(integration_time=2.0, channel_width=40e3)
        assert resolved.time_average == 4
        assert resolved.freq_average == 2
        assert resolved.time_average_seconds is None
        assert cfg.time_average_seconds == 8.0

    def test_not_a_multiple(self):
        with pytest.raises(ConfigError):
            averaging_factor(3.0, 2.0, "time_average")
        with pytest.raises(ConfigError):
            averaging_factor(1.0, 2.0, "time_average")


class TestPipelineRunner:
    """Test block-by-block runs."""

    def test_end_to_end(self):
        writer = MemoryVisWriter()
        runner = PipelineRunner(memory_config(time_average=2, freq_average=2, block_times=3),
                                verbose=False, reader=memory_reader(), writer=writer)
        summary = runner.run()

        # block size rounded up to 4, so two blocks of 4 timesteps
        assert summary.blocks_processed == 2
        assert summary.blocks_failed == 0
        assert summary.stats.n_cells == 8 * 6 * 4
        assert writer.closed
        vis, flags, weights, uvws = writer.concatenate()
        assert vis.shape == (4, 6, 2, 4)
        assert uvws.shape == (4, 6, 3)
        assert_allclose(vis, 1.0)
        assert_allclose(weights, 4.0)
        assert not flags.any()

    def test_duration_averaging(self):
        writer = MemoryVisWriter()
        config = memory_config(time_average_seconds=8.0, block_times=4)
        PipelineRunner(config, verbose=False, reader=memory_reader(), writer=writer).run()
        assert writer.concatenate()[0].shape == (2, 6, 4, 4)

    def test_calibration_from_table(self, tmp_path):
        table = str(tmp_path / "cal.h5")
        gains = np.broadcast_to(G_jones(2.0, 2.0), (4, 1, 2, 2))
        save_jones_table(table, "G", gains, OBS_GPS, [182e6], antenna=[0, 1, 2, 3])

        config = memory_config(block_times=4)
        config.calibration = CalibrationConfig(table=table, terms=["G"], mode="corrupt")
        writer = MemoryVisWriter()
        summary = PipelineRunner(config, verbose=False, reader=memory_reader(),
                                 writer=writer).run()

        assert summary.stats.n_flagged_due_to_error == 0
        assert_allclose(writer.concatenate()[0], 4.0)

    def test_skips_bad_block(self):
        writer = MemoryVisWriter()
        reader = memory_reader(cls=_BadSecondBlockReader)
        summary = PipelineRunner(memory_config(block_times=4), verbose=False,
                                 reader=reader, writer=writer).run()
        assert summary.blocks_processed == 1
        assert summary.blocks_failed == 1
        assert summary.failures[0].startswith("block 1")
        assert len(writer.blocks) == 1

    def test_selection(self):
        writer = MemoryVisWriter()
        config = memory_config(block_times=3)
        config.processing.selection = VisSelection(
            timestep_range=(2, 6), chan_range=(1, 3), baseline_idxs=(0, 4, 2))
        summary = PipelineRunner(config, verbose=False, reader=memory_reader(), writer=writer).run()

        assert summary.blocks_processed == 2
        assert writer.concatenate()[0].shape == (4, 3, 2, 4)
        reader = memory_reader()
        assert writer.blocks[0].context.baselines == tuple(reader.baselines[i] for i in (0, 4, 2))
        assert_allclose(writer.blocks[0].context.frequencies, 182e6 + 40e3 * np.arange(1, 3))
        assert writer.blocks[0].context.epochs[0] == make_epochs(8)[2]

    def test_selection_outside_input(self):
        config = memory_config()
        config.processing.selection = VisSelection(timestep_range=(0, 9))
        with pytest.raises(ConfigError):
            PipelineRunner(config, verbose=False, reader=memory_reader(), writer=MemoryVisWriter()).run()

    def test_hdf5_output_from_config(self, tmp_path):
        path = str(tmp_path / "out.h5")
        config = memory_config(block_times=4)
        config.output = AdapterConfig("hdf5", {"path": path})
        PipelineRunner(config, verbose=False, reader=memory_reader()).run()
        with h5py.File(path, "r") as f:
            assert f["vis"].shape == (8, 6, 4, 4)

    def test_verbose_output(self, capsys):
        PipelineRunner(memory_config(block_times=8), verbose=True,
                       reader=memory_reader(), writer=MemoryVisWriter()).run()
        out = capsys.readouterr().out
        assert "[UVJONES] Blocks processed: 1, failed: 0" in out

    def test_unknown_adapter(self):
        config = memory_config()
        config.input = AdapterConfig("nope")
        with pytest.raises(ConfigError):
            PipelineRunner(config, verbose=False).run()


class _BadSecondBlockReader(MemoryVisReader):
    """Gives its second block flags of the wrong shape."""

    def iter_blocks(self, n_times, selection=None):
        for i, (vis, flagweight, context) in enumerate(super().iter_blocks(n_times, selection)):
            if i == 1:
                n_time, n_bl, n_chan, n_pol = vis.shape
                flagweight = FlagWeightBlock.unflagged((n_time, n_bl, n_chan - 1, n_pol))
            yield vis, flagweight, context
