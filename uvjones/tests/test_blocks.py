"""
Tests for the block data model and flag accounting.
"""

import numpy as np
import pytest

from uvjones.coords.uvw import Baseline
from uvjones.core.block import (
    FlagWeightBlock,
    VisibilityBlock,
    baseline_rows,
    check_shapes,
)
from uvjones.core.selection import BYTES_PER_CORRELATION, VisSelection
from uvjones.core.stats import BlockStats
from uvjones.errors import ConfigError, ShapeMismatchError
from uvjones.tests.builders import make_context, random_vis


class TestVisibilityBlock:
    """Test buffer layout and views."""

    def test_strides(self):
        vis = VisibilityBlock.zeros((2, 6, 3, 4))
        assert vis.strides == (72, 12, 4, 1)

    def test_index_matches_array(self):
        vis = random_vis((2, 6, 3, 4), seed=1)
        offset = vis.index(1, 2, 1, 3)
        assert offset == 72 + 24 + 4 + 3
        assert vis.buffer[offset] == vis.array[1, 2, 1, 3]

    def test_index_out_of_range(self):
        vis = VisibilityBlock.zeros((2, 6, 3, 4))
        with pytest.raises(IndexError):
            vis.index(0, 6, 0, 0)
        with pytest.raises(IndexError):
            vis.index(-1, 0, 0, 0)

    def test_bad_shape(self):
        with pytest.raises(ShapeMismatchError):
            VisibilityBlock(np.zeros((2, 6, 3, 3)))
        with pytest.raises(ShapeMismatchError):
            VisibilityBlock.from_buffer(np.zeros(10), (1, 1, 1, 4))

    def test_jones_view_shares_buffer(self):
        vis = VisibilityBlock.zeros((1, 2, 2, 4))
        vis.jones_view[0, 1, 0, 1, 0] = 5.0  # YX
        assert vis.array[0, 1, 0, 2] == 5.0

    def test_copy_is_independent(self):
        vis = random_vis((1, 3, 2, 4))
        other = vis.copy()
        other.array[...] = 0
        assert np.all(vis.array != 0)

    def test_partition_disjoint(self):
        vis = VisibilityBlock.zeros((2, 7, 3, 4))
        parts = vis.partition(3)
        covered = []
        for sl, view in parts:
            covered.extend(range(sl.start, sl.stop))
            view[...] = sl.start + 1
        assert covered == list(range(7))
        for sl, _ in parts:
            assert np.all(vis.array[:, sl] == sl.start + 1)

    def test_partition_more_parts_than_baselines(self):
        assert len(VisibilityBlock.zeros((1, 2, 1, 4)).partition(8)) == 2


class TestFlagWeightBlock:
    """Test flag/weight companion arrays."""

    def test_default_weights(self):
        fw = FlagWeightBlock(np.zeros((1, 2, 3, 4), dtype=bool))
        assert fw.weights.shape == (1, 2, 3, 4)
        assert np.all(fw.weights == 1.0)

    def test_weight_shape_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            FlagWeightBlock(np.zeros((1, 2, 3, 4), dtype=bool), np.ones((1, 2, 3, 2)))

    def test_flagged_cells(self):
        fw = FlagWeightBlock.unflagged((1, 2, 1, 4))
        fw.flags[0, 1, 0, 2] = True
        assert fw.flagged_cells().tolist() == [[[False], [True]]]


class TestCheckShapes:
    """Test cross-argument shape validation."""

    def test_consistent(self):
        context = make_context()
        check_shapes(random_vis(context.shape), FlagWeightBlock.unflagged(context.shape), context)

    def test_flags_mismatch(self):
        context = make_context(n_chan=3)
        with pytest.raises(ShapeMismatchError) as info:
            check_shapes(random_vis(context.shape), FlagWeightBlock.unflagged((2, 6, 2, 4)))
        assert info.value.argument == "flags"

    def test_context_mismatch(self):
        context = make_context(n_time=3)
        with pytest.raises(ShapeMismatchError):
            check_shapes(random_vis((2, 6, 3, 4)), FlagWeightBlock.unflagged((2, 6, 3, 4)), context)


class TestBlockContext:
    """Test block metadata."""

    def test_shape(self):
        context = make_context(n_time=2, n_chan=5)
        assert context.shape == (2, 6, 5, 4)
        assert context.baselines[0] == Baseline(0, 1)

    def test_frequencies_read_only(self):
        context = make_context()
        with pytest.raises(ValueError):
            context.frequencies[0] = 0.0

    def test_baseline_rows(self):
        rows1, rows2 = baseline_rows([Baseline(0, 1), Baseline(1, 7)], [1, 0])
        assert rows1.tolist() == [1, 0]
        assert rows2.tolist() == [0, -1]


class TestBlockStats:
    """Test flag counters."""

    def test_add(self):
        a = BlockStats(n_cells=10, n_flagged_missing_jones=2)
        b = BlockStats(n_cells=5, n_flagged_singular=1, n_flagged_input=3)
        total = a + b
        assert total.n_cells == 15
        assert total.n_flagged_due_to_error == 3
        assert total.n_flagged_input == 3

    def test_fraction(self):
        assert BlockStats().fraction_flagged_due_to_error == 0.0
        stats = BlockStats(n_cells=8, n_flagged_nonfinite=2)
        assert stats.fraction_flagged_due_to_error == 0.25

    def test_summary(self):
        text = BlockStats(n_cells=4, n_flagged_singular=1).summary()
        assert "4 cells" in text
        assert "singular=1" in text


class TestVisSelection:
    """Test timestep, channel and baseline selection."""

    def test_resolve_defaults(self):
        sel = VisSelection().resolve(n_time=10, n_chan=32, n_baseline=6)
        assert sel.timestep_range == (0, 10)
        assert sel.chan_range == (0, 32)
        assert sel.baseline_idxs == (0, 1, 2, 3, 4, 5)
        assert sel.get_shape() == (10, 6, 32)

    def test_resolve_keeps_given_fields(self):
        sel = VisSelection(timestep_range=(2, 5), baseline_idxs=[3, 1]).resolve(10, 32, 6)
        assert sel.get_shape() == (3, 2, 32)
        assert sel.select_baselines("abcdef") == ["d", "b"]
        assert sel.timestep_slice == slice(2, 5)
        assert sel.chan_slice == slice(0, 32)

    def test_coarse_channels(self):
        sel = VisSelection.from_coarse_channels((1, 3), 32)
        assert sel.chan_range == (32, 96)

    @pytest.mark.parametrize("kwargs", [
        {"timestep_range": (3, 3)},
        {"timestep_range": (-1, 2)},
        {"chan_range": (0,)},
        {"chan_range": "ab"},
        {"baseline_idxs": ()},
        {"baseline_idxs": (1, 1)},
        {"baseline_idxs": (-1,)},
        {"baseline_idxs": ("x",)},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            VisSelection(**kwargs)

    def test_out_of_bounds(self):
        with pytest.raises(ConfigError):
            VisSelection(timestep_range=(0, 11)).resolve(10, 32, 6)
        with pytest.raises(ConfigError):
            VisSelection(chan_range=(30, 33)).resolve(10, 32, 6)
        with pytest.raises(ConfigError):
            VisSelection(baseline_idxs=(6,)).resolve(10, 32, 6)
        with pytest.raises(ConfigError):
            VisSelection().resolve(10, 32, 0)

    def test_unresolved(self):
        with pytest.raises(ValueError):
            VisSelection(timestep_range=(0, 2)).get_shape()

    def test_timestep_blocks(self):
        sel = VisSelection(timestep_range=(3, 10)).resolve(10, 4, 6)
        assert list(sel.timestep_blocks(3)) == [slice(3, 6), slice(6, 9), slice(9, 10)]
        with pytest.raises(ConfigError):
            list(sel.timestep_blocks(0))

    def test_estimate_bytes(self):
        sel = VisSelection().resolve(n_time=8, n_chan=768, n_baseline=8128)
        assert BYTES_PER_CORRELATION == 16 + 8 + 1
        assert sel.estimate_bytes_best() == 8 * 8128 * 768 * 4 * 25
        assert sel.estimate_bytes_best(n_times=2) == sel.estimate_bytes_best() // 4
        assert sel.estimate_bytes_best(n_times=100) == sel.estimate_bytes_best()

    def test_allocate(self):
        sel = VisSelection(chan_range=(0, 3)).resolve(n_time=5, n_chan=4, n_baseline=6)
        vis, fw = sel.allocate(n_times=2)
        assert vis.shape == fw.shape == (2, 6, 3, 4)
        assert not vis.array.any()
        assert not fw.flags.any()
        assert (fw.weights == 1.0).all()
        assert vis.array.nbytes + fw.weights.nbytes + fw.flags.nbytes == sel.estimate_bytes_best(2)
