"""Minimum-cost bipartite assignment (Kuhn-Munkres).

Integer cost matrices are solved with the classic star/prime formulation
of the Hungarian method. Non-square inputs are padded with zero-cost dummy
entries and only pairs inside the original bounds are reported.
"""

from __future__ import annotations

import sys
from typing import Sequence

import numpy as np

# Marks a forbidden pairing in a cost matrix
INVALID = sys.maxsize

_UNMARKED = 0
_STAR = 1
_PRIME = 2


class AssignmentError(RuntimeError):
    """Raised when a cost matrix has no feasible assignment."""


def pad_matrix(cost: Sequence[Sequence[int]], pad_value: int = 0) -> list[list[int]]:
    """Return a square copy of *cost*, padded with *pad_value*."""
    n_rows = len(cost)
    n_cols = max((len(row) for row in cost), default=0)
    size = max(n_rows, n_cols)

    padded = [[pad_value] * size for _ in range(size)]
    for i, row in enumerate(cost):
        padded[i][: len(row)] = [int(v) for v in row]
    return padded


class _Munkres:
    """Working state of one assignment solve."""

    def __init__(self, cost: list[list[int]]):
        self.C = cost
        self.n = len(cost)
        self.marked = [[_UNMARKED] * self.n for _ in range(self.n)]
        self.row_covered = [False] * self.n
        self.col_covered = [False] * self.n
        self.z0 = (0, 0)

    # ---- steps ----

    def step1(self) -> int:
        """Subtract the smallest valid entry from every row."""
        for i, row in enumerate(self.C):
            valid = [v for v in row if v != INVALID]
            if not valid:
                raise AssignmentError(f"all values in row {i + 1} are INVALID")
            row_min = min(valid)
            for j, v in enumerate(row):
                if v != INVALID:
                    row[j] = v - row_min
        return 2

    def step2(self) -> int:
        """Star one zero per row and column where possible."""
        for i in range(self.n):
            if self.row_covered[i]:
                continue
            for j in range(self.n):
                if self.col_covered[j]:
                    continue
                if self.C[i][j] == 0:
                    self.marked[i][j] = _STAR
                    self.row_covered[i] = True
                    self.col_covered[j] = True
                    break
        self._clear_covers()
        return 3

    def step3(self) -> int:
        """Cover columns holding a starred zero; finish when all are covered."""
        count = 0
        for i in range(self.n):
            for j in range(self.n):
                if not self.col_covered[j] and self.marked[i][j] == _STAR:
                    self.col_covered[j] = True
                    count += 1
        if count >= self.n:
            return 7
        return 4

    def step4(self) -> int:
        """Prime uncovered zeros until one can start an augmenting path."""
        while True:
            row, col = self._find_zero(0, 0)
            if row < 0:
                return 6

            self.marked[row][col] = _PRIME
            star_col = self._find_star_in_row(row)
            if star_col < 0:
                self.z0 = (row, col)
                return 5

            self.row_covered[row] = True
            self.col_covered[star_col] = False

    def step5(self) -> int:
        """Flip stars and primes along the alternating path from ``z0``."""
        path = [self.z0]
        while True:
            row = self._find_star_in_col(path[-1][1])
            if row < 0:
                break
            path.append((row, path[-1][1]))
            col = self._find_prime_in_row(row)
            path.append((row, col))

        for i, j in path:
            self.marked[i][j] = _UNMARKED if self.marked[i][j] == _STAR else _STAR

        self._clear_covers()
        self._erase_primes()
        return 3

    def step6(self) -> int:
        """Shift the smallest uncovered value between rows and columns."""
        min_val = self._find_smallest()
        events = 0
        for i in range(self.n):
            for j in range(self.n):
                if self.C[i][j] == INVALID:
                    continue
                if self.row_covered[i]:
                    self.C[i][j] += min_val
                    events += 1
                if not self.col_covered[j]:
                    self.C[i][j] -= min_val
                    events += 1
                if self.row_covered[i] and not self.col_covered[j]:
                    events -= 2
        if events == 0:
            raise AssignmentError("matrix cannot be solved")
        return 4

    # ---- helpers ----

    def _find_smallest(self) -> int:
        min_val = INVALID
        for i in range(self.n):
            if self.row_covered[i]:
                continue
            for j in range(self.n):
                v = self.C[i][j]
                if not self.col_covered[j] and v != INVALID and v < min_val:
                    min_val = v
        return min_val

    def _find_zero(self, i0: int, j0: int) -> tuple[int, int]:
        # Scan cyclically from (i0, j0); the last uncovered zero of the
        # first row holding one wins
        row, col = -1, -1
        i = i0
        while True:
            j = j0
            while True:
                if self.C[i][j] == 0 and not self.row_covered[i] and not self.col_covered[j]:
                    row, col = i, j
                j = (j + 1) % self.n
                if j == j0:
                    break
            if row >= 0:
                break
            i = (i + 1) % self.n
            if i == i0:
                break
        return row, col

    def _find_star_in_row(self, row: int) -> int:
        for j, mark in enumerate(self.marked[row]):
            if mark == _STAR:
                return j
        return -1

    def _find_star_in_col(self, col: int) -> int:
        for i in range(self.n):
            if self.marked[i][col] == _STAR:
                return i
        return -1

    def _find_prime_in_row(self, row: int) -> int:
        for j, mark in enumerate(self.marked[row]):
            if mark == _PRIME:
                return j
        return -1

    def _clear_covers(self) -> None:
        self.row_covered = [False] * self.n
        self.col_covered = [False] * self.n

    def _erase_primes(self) -> None:
        for row in self.marked:
            for j, mark in enumerate(row):
                if mark == _PRIME:
                    row[j] = _UNMARKED


def min_cost_assignment(
    cost: Sequence[Sequence[int]] | np.ndarray,
) -> list[tuple[int, int]]:
    """Find the row/column pairing with the lowest total cost.

    Parameters
    ----------
    cost : (rows, cols) non-negative integer cost matrix. Entries equal to
        ``INVALID`` are never paired. Need not be square.

    Returns
    -------
    List of ``(row, col)`` pairs in row order. At most ``min(rows, cols)``
    pairs are returned and every pair lies inside the original bounds.

    Raises
    ------
    ValueError
        If *cost* is not two-dimensional or holds negative entries.
    AssignmentError
        If a row is entirely ``INVALID`` or the reduction stalls.
    """
    if isinstance(cost, np.ndarray):
        if cost.ndim != 2:
            raise ValueError(f"cost matrix must be 2-D, got shape {cost.shape}")
        cost = cost.tolist()
    else:
        cost = [list(row) for row in cost]

    n_rows = len(cost)
    n_cols = len(cost[0]) if n_rows else 0
    if n_rows == 0 or n_cols == 0:
        return []
    if any(len(row) != n_cols for row in cost):
        raise ValueError("cost matrix rows must all have the same length")
    if any(v < 0 for row in cost for v in row):
        raise ValueError("cost matrix entries must be non-negative")

    solver = _Munkres(pad_matrix(cost, 0))
    steps = {
        1: solver.step1,
        2: solver.step2,
        3: solver.step3,
        4: solver.step4,
        5: solver.step5,
        6: solver.step6,
    }
    step = 1
    while step in steps:
        step = steps[step]()

    return [
        (i, j)
        for i in range(n_rows)
        for j in range(n_cols)
        if solver.marked[i][j] == _STAR
    ]


def assignment_cost(
    cost: Sequence[Sequence[int]] | np.ndarray,
    pairs: Sequence[tuple[int, int]],
) -> int:
    """Total cost of *pairs* in *cost*."""
    return int(sum(cost[i][j] for i, j in pairs))
