"""Spectral-clustering refinement of tracked mode sets.

Greedy pairwise tracking can swap modes where lines cross or veer. Complete
mode sets that run close in frequency are grouped, all their modes are
pooled and re-partitioned by spectral clustering on MAC similarity, and
each set is rebuilt from the cluster it overlaps most.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import scipy.linalg

from turbocampbell.assignment import min_cost_assignment
from turbocampbell.cancel import CancelToken, check_cancelled
from turbocampbell.eigen import Mode
from turbocampbell.tracking import ModeSet

logger = logging.getLogger(__name__)


@dataclass
class ClusterConfig:
    """Spectral clustering settings.

    Parameters
    ----------
    group_gap_hz : sets closer than this (Hz) at some operating point are refined together
    max_attempts : k-means restarts per group
    max_iter : k-means iterations per attempt
    tol : k-means convergence tolerance
    target_ratio : stop restarting once repeated-OP penalty / N drops below this
    seed : seed for k-means initialization (None = nondeterministic)
    embedding : ``"smallest"`` or ``"largest"``, which end of the Laplacian
        spectrum supplies the embedding eigenvectors. The smallest eigenvalues
        of ``Lsym`` are the largest of the normalized affinity
        ``D^-1/2 W D^-1/2`` and index its MAC-coherent clusters.
    """

    group_gap_hz: float = 0.05
    max_attempts: int = 1000
    max_iter: int = 1000
    tol: float = 1e-3
    target_ratio: float = 0.01
    seed: Optional[int] = 0
    embedding: str = "smallest"

    def __post_init__(self):
        if self.group_gap_hz < 0:
            raise ValueError(f"group_gap_hz must be >= 0, got {self.group_gap_hz}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.embedding not in ("largest", "smallest"):
            raise ValueError(
                f"embedding must be 'largest' or 'smallest', got {self.embedding!r}"
            )


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def _min_gap(ms: ModeSet, group: Sequence[ModeSet]) -> float:
    """Smallest natural-frequency gap between *ms* and any set in *group* at a shared OP."""
    gap = np.inf
    mine = {m.op: m for m in ms.modes}
    for other in group:
        for m in other.modes:
            if m.op in mine:
                gap = min(gap, abs(mine[m.op].natural_freq_hz - m.natural_freq_hz))
    return gap


def group_mode_sets(
    mode_sets: Sequence[ModeSet],
    num_ops: int,
    gap_hz: float = 0.05,
) -> list[list[ModeSet]]:
    """Group complete mode sets whose frequencies come within *gap_hz*.

    Only sets with one mode per operating point take part. They are scanned
    in order of their frequency at the first operating point; a new group
    starts whenever the next set is farther than *gap_hz* from every set in
    the current group.
    """
    complete = [ms for ms in mode_sets if len(ms.modes) >= num_ops]
    complete.sort(key=lambda ms: (ms.modes[0].natural_freq_hz, ms.id))

    groups: list[list[ModeSet]] = [[]]
    for ms in complete:
        if groups[-1] and _min_gap(ms, groups[-1]) > gap_hz:
            groups.append([])
        groups[-1].append(ms)
    return [g for g in groups if g]


# ---------------------------------------------------------------------------
# Spectral embedding
# ---------------------------------------------------------------------------

def affinity_matrix(modes: Sequence[Mode]) -> np.ndarray:
    """Symmetric MAC weights with a zero diagonal."""
    n = len(modes)
    W = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            if len(modes[i].eigenvector) != len(modes[j].eigenvector):
                continue
            W[i, j] = W[j, i] = modes[i].mac(modes[j])
    return W


def spectral_embedding(W: np.ndarray, k: int, largest: bool = False) -> np.ndarray:
    """Row-normalized eigenvectors of the normalized Laplacian.

    Uses the *k* eigenvectors of ``D^-1/2 (D - W) D^-1/2`` with the
    smallest eigenvalues (largest when *largest* is True).

    Raises
    ------
    numpy.linalg.LinAlgError
        If the eigendecomposition fails.
    """
    d = W.sum(axis=1)
    with np.errstate(divide="ignore"):
        d_isr = np.where(d > 0, 1.0 / np.sqrt(d), 0.0)
    L = np.diag(d) - W
    L_sym = d_isr[:, None] * L * d_isr[None, :]

    values, vectors = scipy.linalg.eigh(L_sym)
    order = np.argsort(values)
    if largest:
        order = order[::-1]
    order = order[:k]
    X = vectors[:, order]

    norms = np.linalg.norm(X, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return X / norms


def repeated_op_penalty(modes: Sequence[Mode], labels: np.ndarray) -> int:
    """Sum over clusters of (count - 1) for every OP seen more than once."""
    penalty = 0
    for c in np.unique(labels):
        counts = Counter(m.op for m, lab in zip(modes, labels) if lab == c)
        penalty += sum(n - 1 for n in counts.values() if n > 1)
    return penalty


def _partition(
    X: np.ndarray,
    modes: Sequence[Mode],
    k: int,
    config: ClusterConfig,
    cancel: CancelToken | None,
) -> np.ndarray:
    """Best k-means labelling of *X* over repeated random restarts."""
    from sklearn.cluster import KMeans

    n = len(modes)
    rng = np.random.default_rng(config.seed)

    best_labels = None
    best_penalty = n + 1
    for attempt in range(config.max_attempts):
        check_cancelled(cancel, "cluster refinement")
        km = KMeans(
            n_clusters=k,
            init="random",
            n_init=1,
            max_iter=config.max_iter,
            tol=config.tol,
            random_state=int(rng.integers(0, 2**31 - 1)),
        )
        labels = km.fit_predict(X)
        penalty = repeated_op_penalty(modes, labels)

        if penalty < best_penalty:
            best_penalty = penalty
            best_labels = labels

        if penalty / n < config.target_ratio:
            break

    logger.debug(
        "k-means: %d modes, k=%d, penalty=%d after %d attempts",
        n, k, best_penalty, attempt + 1,
    )
    return best_labels


def refine_group(
    group: Sequence[ModeSet],
    config: ClusterConfig | None = None,
    cancel: CancelToken | None = None,
) -> None:
    """Rebuild the mode sets of one group from a spectral clustering of their modes.

    Each set is paired with the cluster it shares the most modes with. The
    set's modes are replaced by that cluster's modes, dropping every
    operating point that contributes more than one mode to the cluster, so
    a refined set may end up shorter than before.
    """
    if config is None:
        config = ClusterConfig()

    modes = [m for ms in group for m in ms.modes]
    n = len(modes)
    k = min(len(group), n)

    X = spectral_embedding(affinity_matrix(modes), k, config.embedding == "largest")
    labels = _partition(X, modes, k, config, cancel)
    mode_cluster = {id(m): int(c) for m, c in zip(modes, labels)}

    cluster_modes: dict[int, list[Mode]] = defaultdict(list)
    for m, c in zip(modes, labels):
        cluster_modes[int(c)].append(m)

    cost = np.full((len(group), k), n - 1, dtype=np.int64)
    for i, ms in enumerate(group):
        for m in ms.modes:
            cost[i, mode_cluster[id(m)]] -= 1

    for i, c in min_cost_assignment(cost):
        by_op: dict[int, list[Mode]] = defaultdict(list)
        for m in cluster_modes.get(c, []):
            by_op[m.op].append(m)

        kept = sorted(
            (op_modes[0] for op_modes in by_op.values() if len(op_modes) == 1),
            key=lambda m: m.op,
        )
        for m in kept:
            m.cluster = c
        group[i].modes = kept
        group[i].update_frequency_range()


def cluster_modes(
    mode_sets: Sequence[ModeSet],
    num_ops: int,
    config: ClusterConfig | None = None,
    cancel: CancelToken | None = None,
) -> list[ModeSet]:
    """Refine groups of closely spaced complete mode sets in place.

    Parameters
    ----------
    mode_sets : output of :func:`turbocampbell.tracking.track_modes`
    num_ops : number of operating points
    config : clustering settings (None = defaults)
    cancel : optional cancellation token

    Returns
    -------
    The non-empty mode sets, re-sorted ascending by minimum frequency. A
    group whose Laplacian cannot be decomposed is logged and left unchanged.
    """
    if config is None:
        config = ClusterConfig()

    groups = group_mode_sets(mode_sets, num_ops, config.group_gap_hz)
    refined = 0
    for group in groups:
        if len(group) < 2:
            continue
        check_cancelled(cancel, "cluster refinement")
        try:
            refine_group(group, config, cancel)
        except np.linalg.LinAlgError as e:
            logger.warning(
                "Skipping refinement of %d mode sets near %.3f Hz: %s",
                len(group), group[0].frequency_range[0], e,
            )
            continue
        refined += 1

    # k-means may leave a cluster empty, which empties its set
    result = [ms for ms in mode_sets if ms.modes]
    result.sort(key=lambda ms: ms.frequency_range[0])

    logger.info(
        "Refined %d of %d mode-set groups, %d sets dropped as empty",
        refined, len(groups), len(mode_sets) - len(result),
    )
    return result
