"""
Tests for time/frequency averaging and its flag/weight policy.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from uvjones.core.averaging import (
    BinAccumulator,
    assert_flag_weight_consistent,
    average_block,
)
from uvjones.core.block import FlagWeightBlock, VisibilityBlock
from uvjones.errors import ConfigError, ShapeMismatchError, UVJonesError
from uvjones.tests.builders import make_block, make_context


def two_sample_block(values, flags, weights):
    """Two timesteps of a single baseline/channel cell, same value on all pols."""
    context = make_context(n_time=2, n_chan=1, antennas=(0, 1))
    vis = VisibilityBlock(np.array(values, dtype=complex)[:, None, None, None] * np.ones((2, 1, 1, 4)))
    fw = FlagWeightBlock(
        np.array(flags)[:, None, None, None] * np.ones((2, 1, 1, 4), dtype=bool),
        np.array(weights, dtype=float)[:, None, None, None] * np.ones((2, 1, 1, 4)),
    )
    return vis, fw, context


class TestIdentityAveraging:
    """Test averaging by a factor of one."""

    def test_returns_equal_copies(self):
        context = make_context(n_time=3, n_chan=4)
        vis, fw = make_block(context, seed=3)
        fw.flags[1, 2, 3, 0] = True
        fw.weights[0, 0, 0] = 0.5

        out_vis, out_fw, out_context = average_block(vis, fw, context, 1, 1)

        assert np.array_equal(out_vis.array, vis.array)
        assert np.array_equal(out_fw.flags, fw.flags)
        assert np.array_equal(out_fw.weights, fw.weights)
        assert out_context.shape == context.shape
        assert out_vis.buffer is not vis.buffer
        assert out_fw.flags is not fw.flags


class TestFlagPolicy:
    """Test which samples contribute to a bin."""

    def test_flagged_sample_ignored(self):
        vis, fw, context = two_sample_block([1 + 1j, 3 - 2j], [True, False], [3.0, 2.0])
        out_vis, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert not out_fw.flags.any()
        assert_allclose(out_fw.weights, 2.0)
        assert_allclose(out_vis.array, 3 - 2j)

    def test_all_flagged(self):
        vis, fw, context = two_sample_block([1 + 1j, 3 - 1j], [True, True], [3.0, 2.0])
        out_vis, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert out_fw.flags.all()
        assert np.all(out_fw.weights == 0.0)
        # unweighted mean is kept for inspection
        assert_allclose(out_vis.array, 2.0)

    def test_weighted_mean(self):
        vis, fw, context = two_sample_block([1.0, 5.0], [False, False], [1.0, 3.0])
        out_vis, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert_allclose(out_vis.array, 4.0)
        assert_allclose(out_fw.weights, 4.0)

    def test_zero_weight_ignored(self):
        vis, fw, context = two_sample_block([1.0, 5.0], [False, False], [0.0, 2.0])
        out_vis, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert_allclose(out_vis.array, 5.0)
        assert not out_fw.flags.any()

    def test_all_zero_weight_flags_bin(self):
        vis, fw, context = two_sample_block([1.0, 5.0], [False, False], [0.0, 0.0])
        _, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert out_fw.flags.all()
        assert np.all(out_fw.weights == 0.0)

    def test_nonfinite_sample_ignored(self):
        vis, fw, context = two_sample_block([np.nan, 5.0], [False, False], [1.0, 1.0])
        out_vis, out_fw, _ = average_block(vis, fw, context, time_factor=2)
        assert_allclose(out_vis.array, 5.0)
        assert_allclose(out_fw.weights, 1.0)

    def test_output_satisfies_post_condition(self):
        context = make_context(n_time=4, n_chan=6)
        vis, fw = make_block(context, seed=4)
        rng = np.random.default_rng(5)
        fw.flags[...] = rng.random(fw.shape) < 0.5
        fw.weights[...] = rng.uniform(0.0, 2.0, fw.shape)
        _, out_fw, _ = average_block(vis, fw, context, 2, 3)
        assert_flag_weight_consistent(out_fw)


class TestBinning:
    """Test bin layout and output context."""

    def test_short_final_time_bin(self):
        context = make_context(n_time=3, n_chan=1)
        vis, fw = make_block(context, seed=6)
        out_vis, out_fw, out_context = average_block(vis, fw, context, time_factor=2)

        assert out_vis.shape == (2, 6, 1, 4)
        assert_allclose(out_vis.array[1], vis.array[2])
        assert_allclose(out_fw.weights[0], 2.0)
        assert_allclose(out_fw.weights[1], 1.0)
        assert out_context.epochs[0] - context.epochs[0] == pytest.approx(1.0, abs=1e-6)
        assert out_context.epochs[1] - context.epochs[2] == pytest.approx(0.0, abs=1e-6)
        assert out_context.integration_time == 4.0

    def test_frequency_averaging(self):
        context = make_context(n_time=1, n_chan=5, width=40e3)
        vis, fw = make_block(context, seed=7)
        out_vis, _, out_context = average_block(vis, fw, context, freq_factor=2)

        assert out_vis.shape == (1, 6, 3, 4)
        assert_allclose(out_vis.array[:, :, 0], vis.array[:, :, 0:2].mean(axis=2))
        assert_allclose(out_vis.array[:, :, 2], vis.array[:, :, 4])
        assert_allclose(out_context.frequencies, [182.02e6, 182.1e6, 182.16e6])
        assert out_context.channel_width == 80e3

    def test_both_axes(self):
        context = make_context(n_time=4, n_chan=4)
        vis, fw = make_block(context, seed=8)
        out_vis, out_fw, _ = average_block(vis, fw, context, 2, 2)
        expected = vis.array.reshape(2, 2, 6, 2, 2, 4).mean(axis=(1, 3))
        assert_allclose(out_vis.array, expected, rtol=1e-12)
        assert_allclose(out_fw.weights, 4.0)

    def test_inputs_unchanged(self):
        context = make_context(n_time=2, n_chan=2)
        vis, fw = make_block(context, seed=9)
        before = vis.array.copy()
        average_block(vis, fw, context, 2, 2)
        assert np.array_equal(vis.array, before)

    @pytest.mark.parametrize("factor", [0, -1, 1.5])
    def test_bad_factor(self, factor):
        context = make_context()
        vis, fw = make_block(context)
        with pytest.raises(ConfigError):
            average_block(vis, fw, context, time_factor=factor)

    def test_shape_checked(self):
        context = make_context(n_chan=3)
        vis, _ = make_block(context)
        with pytest.raises(ShapeMismatchError):
            average_block(vis, FlagWeightBlock.unflagged((2, 6, 2, 4)), context, 2)


class TestAccumulator:
    """Test running bin sums."""

    def test_reset(self):
        acc = BinAccumulator((1, 1, 4))
        acc.add(np.ones((1, 1, 4)), np.zeros((1, 1, 4), bool), np.ones((1, 1, 4)))
        acc.reset()
        _, flags, weights = acc.result()
        assert flags.all()
        assert np.all(weights == 0)


class TestPostCondition:
    """Test the flag/weight consistency check."""

    def test_consistent(self):
        fw = FlagWeightBlock(np.array([True, False]), np.array([0.0, 1.0]))
        assert_flag_weight_consistent(fw)

    @pytest.mark.parametrize("flags, weights", [
        ([True, False], [1.0, 1.0]),
        ([False, False], [0.0, 1.0]),
        ([False, False], [-1.0, 1.0]),
    ])
    def test_violations(self, flags, weights):
        with pytest.raises(UVJonesError):
            assert_flag_weight_consistent(FlagWeightBlock(np.array(flags), np.array(weights)))
