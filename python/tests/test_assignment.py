"""Tests for turbocampbell.assignment: minimum-cost assignment."""

import numpy as np
import pytest

from turbocampbell.assignment import (
    INVALID,
    AssignmentError,
    assignment_cost,
    min_cost_assignment,
    pad_matrix,
)


# ---- reference matrices ----

def test_reference_matrix_1():
    C = [
        [20, 15, 18, 20, 25],
        [18, 20, 12, 14, 15],
        [21, 23, 25, 27, 25],
        [17, 18, 21, 23, 20],
        [18, 18, 16, 19, 20],
    ]
    pairs = min_cost_assignment(C)
    assert pairs == [(0, 1), (1, 3), (2, 0), (3, 4), (4, 2)]
    assert assignment_cost(C, pairs) == 86


def test_reference_matrix_2():
    C = [
        [9, 22, 58, 11, 19],
        [43, 78, 72, 50, 63],
        [41, 28, 91, 37, 45],
        [74, 42, 27, 49, 39],
        [36, 11, 57, 22, 25],
    ]
    pairs = min_cost_assignment(C)
    assert pairs == [(0, 3), (1, 0), (2, 1), (3, 2), (4, 4)]


def test_numpy_input_matches_list_input():
    C = np.array([[4, 1, 3], [2, 0, 5], [3, 2, 2]])
    assert min_cost_assignment(C) == min_cost_assignment(C.tolist())


def test_input_is_not_modified():
    C = np.array([[4, 1, 3], [2, 0, 5], [3, 2, 2]])
    before = C.copy()
    min_cost_assignment(C)
    np.testing.assert_array_equal(C, before)


# ---- rectangular matrices ----

def test_more_rows_than_columns():
    C = [[5, 1], [1, 5], [0, 0]]
    pairs = min_cost_assignment(C)
    assert len(pairs) == 2
    assert all(i < 3 and j < 2 for i, j in pairs)
    assert len({j for _, j in pairs}) == 2
    # The spare row takes one column for free; the other costs 1
    assert assignment_cost(C, pairs) == 1


def test_more_columns_than_rows():
    C = [[7, 3, 9, 1], [2, 8, 6, 4]]
    pairs = min_cost_assignment(C)
    assert pairs == [(0, 3), (1, 0)]
    assert assignment_cost(C, pairs) == 3


def test_empty_matrix():
    assert min_cost_assignment([]) == []
    assert min_cost_assignment(np.zeros((0, 3), dtype=int)) == []


def test_pad_matrix_square():
    padded = pad_matrix([[1, 2, 3]], pad_value=0)
    assert padded == [[1, 2, 3], [0, 0, 0], [0, 0, 0]]


def test_pairs_unique_rows_and_columns():
    rng = np.random.default_rng(0)
    C = rng.integers(0, 100, size=(6, 6))
    pairs = min_cost_assignment(C)
    assert len(pairs) == 6
    assert len({i for i, _ in pairs}) == 6
    assert len({j for _, j in pairs}) == 6


def test_optimal_against_brute_force():
    from itertools import permutations

    rng = np.random.default_rng(3)
    C = rng.integers(0, 50, size=(5, 5))
    best = min(sum(C[i, p[i]] for i in range(5)) for p in permutations(range(5)))
    assert assignment_cost(C, min_cost_assignment(C)) == best


# ---- invalid input ----

def test_invalid_entries_never_paired():
    C = [[INVALID, 1], [1, INVALID]]
    assert min_cost_assignment(C) == [(0, 1), (1, 0)]


def test_row_all_invalid_raises():
    C = [[1, 2], [INVALID, INVALID]]
    with pytest.raises(AssignmentError):
        min_cost_assignment(C)


def test_negative_cost_raises():
    with pytest.raises(ValueError, match="non-negative"):
        min_cost_assignment([[1, -1], [0, 2]])


def test_ragged_rows_raise():
    with pytest.raises(ValueError):
        min_cost_assignment([[1, 2], [3]])


def test_non_2d_array_raises():
    with pytest.raises(ValueError, match="2-D"):
        min_cost_assignment(np.arange(4))
