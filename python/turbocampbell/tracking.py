"""Cross-operating-point mode tracking.

Modes of consecutive operating points are linked into mode sets by solving
a minimum-cost assignment on MAC similarity, optionally penalized by the
frequency gap between the candidates.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from turbocampbell.assignment import min_cost_assignment
from turbocampbell.cancel import CancelToken, check_cancelled
from turbocampbell.eigen import Mode

logger = logging.getLogger(__name__)

# Integer scale of the assignment cost matrix
COST_SCALE = 1e7


@dataclass
class TrackingOptions:
    """Mode filtering applied while tracking.

    Parameters
    ----------
    min_freq : lowest natural frequency (Hz) to track
    max_freq : highest natural frequency (Hz) to track
    structural_only : only track modes dominated by structural states
    """

    min_freq: float = 0.0
    max_freq: float = math.inf
    structural_only: bool = False

    def __post_init__(self):
        if self.min_freq < 0:
            raise ValueError(f"min_freq must be >= 0, got {self.min_freq}")
        if self.max_freq < self.min_freq:
            raise ValueError(
                f"max_freq ({self.max_freq}) must be >= min_freq ({self.min_freq})"
            )

    def accepts(self, mode: Mode) -> bool:
        """True if *mode* lies in the frequency window and passes the structural filter."""
        if mode.natural_freq_hz < self.min_freq or mode.natural_freq_hz > self.max_freq:
            return False
        if self.structural_only and not mode.is_structural():
            return False
        return True

    @property
    def frequency_span(self) -> float:
        """Width of the frequency window, or NaN when it is unbounded or empty."""
        span = self.max_freq - self.min_freq
        if not math.isfinite(span) or span <= 0:
            return math.nan
        return span


@dataclass(eq=False)
class ModeSet:
    """A tracked line: at most one mode per operating point, ordered by OP.

    Parameters
    ----------
    id : identifier assigned at creation
    label : display label
    modes : member modes
    frequency_range : (min, max) natural frequency in Hz
    """

    id: int
    label: str
    modes: list[Mode] = field(default_factory=list)
    frequency_range: tuple[float, float] = (math.nan, math.nan)

    def __len__(self) -> int:
        return len(self.modes)

    @property
    def last(self) -> Mode:
        return self.modes[-1]

    def ops(self) -> list[int]:
        return [m.op for m in self.modes]

    def mode_at(self, op: int) -> Optional[Mode]:
        for m in self.modes:
            if m.op == op:
                return m
        return None

    def update_frequency_range(self) -> None:
        freqs = [m.natural_freq_hz for m in self.modes]
        self.frequency_range = (min(freqs), max(freqs)) if freqs else (math.nan, math.nan)


def similarity_matrix(
    previous: Sequence[Mode],
    candidates: Sequence[Mode],
    frequency_span: float = math.nan,
) -> np.ndarray:
    """MAC between each previous mode and each candidate.

    When *frequency_span* is finite the MAC is scaled by
    ``1 - |df| / frequency_span``.
    """
    w = np.zeros((len(previous), len(candidates)))
    for j, mp in enumerate(previous):
        for k, mn in enumerate(candidates):
            value = mp.mac(mn)
            if math.isfinite(frequency_span):
                value *= 1.0 - abs(mn.natural_freq_hz - mp.natural_freq_hz) / frequency_span
            w[j, k] = value
    return w


def similarity_to_cost(w: np.ndarray) -> np.ndarray:
    """Rescale weights to integer costs ``round(1e7 * (1 - w / max(w)))``."""
    w_max = w.max() if w.size else 0.0
    if w_max <= 0:
        return np.zeros(w.shape, dtype=np.int64)
    cost = np.rint(COST_SCALE * (1.0 - w / w_max))
    return np.clip(cost, 0, None).astype(np.int64)


def track_modes(
    mode_lists: Sequence[Sequence[Mode]],
    options: TrackingOptions | None = None,
    cancel: CancelToken | None = None,
) -> list[ModeSet]:
    """Link modes across ordered operating points into mode sets.

    Parameters
    ----------
    mode_lists : mode_lists[op] = modes of that operating point, with the
        operating points already ordered
    options : filtering options (None = defaults)
    cancel : optional cancellation token

    Returns
    -------
    Non-empty mode sets sorted ascending by minimum frequency.

    Raises
    ------
    AssignmentError
        If a transition has no feasible assignment.
    CancelledError
        If *cancel* is set while tracking.
    """
    if options is None:
        options = TrackingOptions()
    if not mode_lists:
        return []

    span = options.frequency_span

    mode_sets: list[ModeSet] = []
    for m in mode_lists[0]:
        if options.accepts(m):
            n = len(mode_sets)
            mode_sets.append(ModeSet(id=n, label=str(n), modes=[m]))

    for op in range(1, len(mode_lists)):
        check_cancelled(cancel, "mode tracking")
        candidates = [m for m in mode_lists[op] if options.accepts(m)]
        unpaired = dict(enumerate(candidates))

        if mode_sets and candidates:
            w = similarity_matrix([ms.last for ms in mode_sets], candidates, span)
            pairs = min_cost_assignment(similarity_to_cost(w))
            for j, k in pairs:
                mode_sets[j].modes.append(candidates[k])
                del unpaired[k]
            logger.debug(
                "OP %d: %d candidates, %d paired, %d new sets",
                op, len(candidates), len(pairs), len(unpaired),
            )

        for m in unpaired.values():
            n = len(mode_sets)
            mode_sets.append(ModeSet(id=n, label=str(n), modes=[m]))

    mode_sets = [ms for ms in mode_sets if ms.modes]
    for ms in mode_sets:
        ms.update_frequency_range()
    mode_sets.sort(key=lambda ms: ms.frequency_range[0])

    logger.info(
        "Tracked %d mode sets across %d operating points", len(mode_sets), len(mode_lists)
    )
    return mode_sets
