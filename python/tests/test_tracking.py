"""Tests for turbocampbell.tracking: cross-operating-point mode tracking."""

import math

import numpy as np
import pytest

from turbocampbell.cancel import CancelledError, CancelToken
from turbocampbell.tracking import (
    COST_SCALE,
    ModeSet,
    TrackingOptions,
    similarity_matrix,
    similarity_to_cost,
    track_modes,
)

E = np.eye(4)


@pytest.fixture
def three_op_sweep(mode_factory):
    """Three modes per OP, candidate order shuffled at every OP."""
    freqs = {0: 0.5, 1: 1.0, 2: 1.8}
    orders = [(0, 1, 2), (2, 0, 1), (1, 2, 0)]
    lists = []
    for op, order in enumerate(orders):
        modes = [
            mode_factory(op, i, freqs[k] + 0.01 * op, E[k])
            for i, k in enumerate(order)
        ]
        lists.append(modes)
    return lists


def _shape_index(mode):
    return int(np.argmax(np.abs(mode.eigenvector)))


# ---- options ----

class TestTrackingOptions:
    def test_defaults_accept_everything(self, mode_factory):
        opts = TrackingOptions()
        assert opts.accepts(mode_factory(0, 0, 123.0, E[0], dominant_state="AD x"))
        assert math.isnan(opts.frequency_span)

    def test_frequency_window(self, mode_factory):
        opts = TrackingOptions(min_freq=0.5, max_freq=1.5)
        assert opts.frequency_span == pytest.approx(1.0)
        assert not opts.accepts(mode_factory(0, 0, 0.4, E[0]))
        assert opts.accepts(mode_factory(0, 0, 0.5, E[0]))
        assert not opts.accepts(mode_factory(0, 0, 1.6, E[0]))

    def test_structural_only(self, mode_factory):
        opts = TrackingOptions(structural_only=True)
        assert opts.accepts(mode_factory(0, 0, 1.0, E[0], dominant_state="BD_1 Node 2, m"))
        assert not opts.accepts(mode_factory(0, 0, 1.0, E[0], dominant_state="AD Blade 1 state"))

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            TrackingOptions(min_freq=-1.0)
        with pytest.raises(ValueError):
            TrackingOptions(min_freq=2.0, max_freq=1.0)

    def test_zero_width_window_has_no_span(self):
        assert math.isnan(TrackingOptions(min_freq=1.0, max_freq=1.0).frequency_span)


# ---- similarity and cost ----

def test_similarity_matrix_mac(mode_factory):
    prev = [mode_factory(0, 0, 1.0, E[0]), mode_factory(0, 1, 2.0, E[1])]
    cand = [mode_factory(1, 0, 2.0, E[1]), mode_factory(1, 1, 1.0, E[0])]
    np.testing.assert_allclose(similarity_matrix(prev, cand), [[0, 1], [1, 0]], atol=1e-12)


def test_similarity_matrix_frequency_penalty(mode_factory):
    prev = [mode_factory(0, 0, 1.0, E[0])]
    cand = [mode_factory(1, 0, 1.5, E[0])]
    w = similarity_matrix(prev, cand, frequency_span=2.0)
    assert w[0, 0] == pytest.approx(0.75)


def test_similarity_to_cost():
    cost = similarity_to_cost(np.array([[1.0, 0.5], [0.0, 0.25]]))
    assert cost.dtype == np.int64
    np.testing.assert_array_equal(cost, [[0, 5_000_000], [10_000_000, 7_500_000]])
    assert COST_SCALE == 1e7


def test_similarity_to_cost_all_zero():
    np.testing.assert_array_equal(similarity_to_cost(np.zeros((2, 3))), np.zeros((2, 3)))


# ---- track_modes ----

class TestTrackModes:
    def test_follows_shapes_through_reordering(self, three_op_sweep):
        sets = track_modes(three_op_sweep)
        assert len(sets) == 3
        for ms in sets:
            assert ms.ops() == [0, 1, 2]
            shapes = {_shape_index(m) for m in ms.modes}
            assert len(shapes) == 1

    def test_sorted_by_minimum_frequency(self, three_op_sweep):
        sets = track_modes(three_op_sweep)
        lows = [ms.frequency_range[0] for ms in sets]
        assert lows == sorted(lows)
        assert sets[0].frequency_range == pytest.approx((0.5, 0.52))

    def test_seed_ids_follow_first_op(self, three_op_sweep):
        sets = track_modes(three_op_sweep)
        assert sorted(ms.id for ms in sets) == [0, 1, 2]
        for ms in sets:
            assert ms.modes[0].id == ms.id
            assert ms.label == str(ms.id)

    def test_ids_unique_when_seed_filtered(self, mode_factory):
        lists = [
            [mode_factory(0, 0, 0.1, E[0]), mode_factory(0, 1, 1.0, E[1])],
            [mode_factory(1, 0, 1.0, E[1]), mode_factory(1, 1, 2.0, E[2])],
        ]
        sets = track_modes(lists, TrackingOptions(min_freq=0.5))
        assert len(sets) == 2
        assert sorted(ms.id for ms in sets) == [0, 1]
        by_id = {ms.id: ms for ms in sets}
        assert by_id[0].modes == [lists[0][1], lists[1][0]]
        assert by_id[1].modes == [lists[1][1]]

    def test_unmatched_candidate_starts_new_set(self, mode_factory):
        lists = [
            [mode_factory(0, 0, 1.0, E[0]), mode_factory(0, 1, 2.0, E[1])],
            [mode_factory(1, 0, 1.0, E[0]), mode_factory(1, 1, 2.0, E[1]),
             mode_factory(1, 2, 3.0, E[2])],
        ]
        sets = track_modes(lists)
        assert len(sets) == 3
        new = [ms for ms in sets if ms.id == 2]
        assert len(new) == 1
        assert new[0].ops() == [1]
        assert new[0].modes[0] is lists[1][2]

    def test_missing_mode_leaves_short_set(self, mode_factory):
        lists = [
            [mode_factory(0, 0, 1.0, E[0]), mode_factory(0, 1, 2.0, E[1])],
            [mode_factory(1, 0, 1.0, E[0])],
        ]
        sets = track_modes(lists)
        lengths = sorted(len(ms) for ms in sets)
        assert lengths == [1, 2]

    def test_at_most_one_mode_per_op(self, three_op_sweep):
        for ms in track_modes(three_op_sweep):
            assert len(set(ms.ops())) == len(ms.ops())

    def test_frequency_filter(self, three_op_sweep):
        sets = track_modes(three_op_sweep, TrackingOptions(min_freq=0.8, max_freq=1.5))
        assert len(sets) == 1
        assert all(0.8 <= m.natural_freq_hz <= 1.5 for m in sets[0].modes)
        assert len(sets[0]) == 3

    def test_structural_filter(self, mode_factory):
        lists = [
            [mode_factory(op, 0, 1.0, E[0]),
             mode_factory(op, 1, 1.5, E[1], dominant_state="AD Blade 1 state")]
            for op in range(3)
        ]
        sets = track_modes(lists, TrackingOptions(structural_only=True))
        assert len(sets) == 1
        assert all(m.is_structural() for m in sets[0].modes)

    def test_empty_input(self):
        assert track_modes([]) == []

    def test_cancelled(self, three_op_sweep):
        token = CancelToken()
        token.cancel()
        with pytest.raises(CancelledError):
            track_modes(three_op_sweep, cancel=token)


# ---- ModeSet ----

def test_mode_set_helpers(mode_factory):
    ms = ModeSet(id=0, label="0", modes=[mode_factory(0, 0, 1.0, E[0]),
                                         mode_factory(2, 1, 1.2, E[0])])
    ms.update_frequency_range()
    assert ms.frequency_range == (1.0, 1.2)
    assert ms.mode_at(2) is ms.last
    assert ms.mode_at(1) is None
    assert len(ms) == 2
