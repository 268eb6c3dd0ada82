"""Multi-blade coordinate (MBC3) transform for three-bladed rotors.

Converts the periodic, rotating-frame state matrices of one operating point
(one linearization per azimuth) into a single averaged, time-invariant
non-rotating state matrix.

Two simplifications are carried as named invariants:

- ``ROTOR_ACCELERATION`` is zero, so the rotor speed derivative terms of
  the transform vanish.
- The second-order states split exactly in half between positions and
  rates (see :func:`turbocampbell.ordering.split_second_order`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.linalg import block_diag

from turbocampbell.linfile import Snapshot, StateDescriptor
from turbocampbell.ordering import (
    NUM_BLADES,
    StateOrdering,
    combine_orderings,
    new_state_ordering,
    split_second_order,
)

logger = logging.getLogger(__name__)

# Rotor angular acceleration used in the transform (rad/s^2)
ROTOR_ACCELERATION = 0.0


@dataclass
class AggregatedSeries:
    """Per-azimuth data of one operating point, stacked along the first axis.

    Parameters
    ----------
    azimuths : (n_steps,) azimuth in radians, ascending
    rotor_speeds : (n_steps,) rotor speed in rad/s
    wind_speeds : (n_steps,) wind speed in m/s
    A : (n_steps, n_x, n_x) rotating-frame state matrices
    x_values : (n_steps, n_x) state operating-point values
    xdot_values : (n_steps, n_x) state-derivative operating-point values
    x, u, y : descriptor lists (taken from the last step)
    """

    azimuths: np.ndarray
    rotor_speeds: np.ndarray
    wind_speeds: np.ndarray
    A: np.ndarray
    x_values: np.ndarray
    xdot_values: np.ndarray
    x: list[StateDescriptor] = field(default_factory=list)
    u: list[StateDescriptor] = field(default_factory=list)
    y: list[StateDescriptor] = field(default_factory=list)

    @property
    def num_steps(self) -> int:
        return len(self.azimuths)

    @classmethod
    def from_snapshots(cls, snapshots: Sequence[Snapshot]) -> "AggregatedSeries":
        """Stack the snapshots of one operating point, sorted by azimuth.

        Raises
        ------
        ValueError
            If there are no snapshots, a snapshot has no A matrix, or the
            snapshots disagree in their dimensions.
        """
        if not snapshots:
            raise ValueError("at least one snapshot is required")

        snaps = sorted(snapshots, key=lambda s: s.azimuth)
        ref = snaps[-1]
        n_x = len(ref.x)

        for s in snaps:
            if len(s.x) != n_x or len(s.u) != len(ref.u) or len(s.y) != len(ref.y):
                raise ValueError(
                    f"snapshot {s.path or s.step_id} has descriptor counts "
                    f"({len(s.x)}, {len(s.u)}, {len(s.y)}), expected "
                    f"({n_x}, {len(ref.u)}, {len(ref.y)})"
                )
            if n_x and (s.A is None or s.A.shape != (n_x, n_x)):
                raise ValueError(
                    f"snapshot {s.path or s.step_id} is missing a {n_x}x{n_x} A matrix"
                )
            if s.xdot and len(s.xdot) != n_x:
                raise ValueError(
                    f"snapshot {s.path or s.step_id} has {len(s.xdot)} state "
                    f"derivative descriptors, expected {n_x}"
                )

        def _values(descs: list[StateDescriptor]) -> np.ndarray:
            if not descs:
                return np.zeros(n_x)
            return np.array([d.value for d in descs], dtype=np.float64)

        return cls(
            azimuths=np.array([s.azimuth for s in snaps], dtype=np.float64),
            rotor_speeds=np.array([s.rotor_speed for s in snaps], dtype=np.float64),
            wind_speeds=np.array([s.wind_speed for s in snaps], dtype=np.float64),
            A=np.stack([s.A if n_x else np.zeros((0, 0)) for s in snaps]),
            x_values=np.stack([_values(s.x) for s in snaps]),
            xdot_values=np.stack([_values(s.xdot) for s in snaps]),
            x=list(ref.x),
            u=list(ref.u),
            y=list(ref.y),
        )


@dataclass
class NonRotatingModel:
    """Averaged non-rotating model of one operating point.

    Parameters
    ----------
    avg_A : (n_x, n_x) azimuth-averaged non-rotating state matrix
    avg_x, avg_xdot : (n_x,) averaged state and state-rate values
    rotor_speed : mean rotor speed in RPM
    wind_speed : mean wind speed in m/s
    azimuths : azimuths of the averaged steps (rad)
    order_x : combined q2, q2dot, q1 ordering
    order_q2, order_q2dot, order_q1 : per-group orderings
    order_u, order_y : input and output orderings
    eigen_indices : sorted state indices kept in eigenvectors (q2 and q1)
    state_labels : labels of all states, by index
    """

    avg_A: np.ndarray
    avg_x: np.ndarray
    avg_xdot: np.ndarray
    rotor_speed: float
    wind_speed: float
    azimuths: np.ndarray
    order_x: StateOrdering
    order_q2: StateOrdering
    order_q2dot: StateOrdering
    order_q1: StateOrdering
    order_u: StateOrdering
    order_y: StateOrdering
    eigen_indices: list[int]
    state_labels: list[str]

    @property
    def eigen_labels(self) -> list[str]:
        """Labels of the eigen-relevant states."""
        return [self.state_labels[i] for i in self.eigen_indices]

    @property
    def has_aero_states(self) -> bool:
        """True if any eigen-relevant state belongs to the aerodynamics module."""
        return any(label.startswith("AD") for label in self.eigen_labels)


def blade_matrices(azimuth: float, num_blades: int = NUM_BLADES):
    """Per-blade transform rows at one azimuth.

    Returns
    -------
    tt : (3, 3) rotation matrix, row ``j`` = ``[1, cos, sin]`` of blade ``j``
    tt2 : (3, 3) first azimuth derivative, rows ``[0, -sin, cos]``
    tt3 : (3, 3) second azimuth derivative, rows ``[0, -cos, -sin]``
    """
    xi = azimuth + 2.0 * np.pi * np.arange(num_blades) / num_blades
    s, c = np.sin(xi), np.cos(xi)
    zero = np.zeros(num_blades)
    tt = np.column_stack([np.ones(num_blades), c, s])
    tt2 = np.column_stack([zero, -s, c])
    tt3 = np.column_stack([zero, -c, -s])
    return tt, tt2, tt3


def _expand(fixed: np.ndarray, block: np.ndarray, n_triplets: int) -> np.ndarray:
    """Block-diagonal operator: *fixed* followed by *n_triplets* copies of *block*."""
    return block_diag(fixed, *([block] * n_triplets))


def _state_orderings(x: Sequence[StateDescriptor]):
    if not x:
        empty = StateOrdering()
        return empty, empty, empty, empty
    q2, q2dot, q1 = split_second_order(x)
    order_q2 = new_state_ordering(q2)
    order_q2dot = new_state_ordering(q2dot)
    order_q1 = new_state_ordering(q1)
    return (
        combine_orderings(order_q2, order_q2dot, order_q1),
        order_q2,
        order_q2dot,
        order_q1,
    )


def mbc3(series: AggregatedSeries) -> NonRotatingModel:
    """Transform one operating point into its averaged non-rotating model.

    Parameters
    ----------
    series : stacked per-azimuth data for one operating point

    Returns
    -------
    NonRotatingModel

    Raises
    ------
    numpy.linalg.LinAlgError
        If a blade rotation matrix is singular.
    """
    order_x, order_q2, order_q2dot, order_q1 = _state_orderings(series.x)
    order_u = new_state_ordering(series.u) if series.u else StateOrdering()
    order_y = new_state_ordering(series.y) if series.y else StateOrdering()

    n_x = len(series.x)
    idx = np.asarray(order_x.indices, dtype=int)
    n2 = order_q2.num
    n2dot = order_q2dot.num

    if sorted(order_x.indices) != list(range(n_x)):
        raise ValueError("state descriptor indices are not a permutation of 0..n_x-1")
    if n2 != n2dot or order_q2.num_triplets != order_q2dot.num_triplets:
        raise ValueError(
            f"second-order states do not split evenly: {n2} positions "
            f"({order_q2.num_triplets} triplets), {n2dot} rates "
            f"({order_q2dot.num_triplets} triplets)"
        )

    eye2 = np.eye(order_q2.num_fixed)
    zero2 = np.zeros((order_q2.num_fixed, order_q2.num_fixed))
    eye1 = np.eye(order_q1.num_fixed)
    zero1 = np.zeros((order_q1.num_fixed, order_q1.num_fixed))

    A_nr = np.zeros((series.num_steps, n_x, n_x))
    for step in range(series.num_steps):
        omega = series.rotor_speeds[step]
        omega_dot = ROTOR_ACCELERATION

        tt, tt2, tt3 = blade_matrices(series.azimuths[step])
        ttv = np.linalg.inv(tt)

        # Second-order states
        T1 = _expand(eye2, tt, order_q2.num_triplets)
        T1v = _expand(eye2, ttv, order_q2.num_triplets)
        T2 = _expand(zero2, tt2, order_q2.num_triplets)
        T3 = _expand(zero2, tt3, order_q2.num_triplets)

        # First-order states
        T1q = _expand(eye1, tt, order_q1.num_triplets)
        T1qv = _expand(eye1, ttv, order_q1.num_triplets)
        T2q = _expand(zero1, tt2, order_q1.num_triplets)

        # [[T1, 0, 0], [omega*T2, T1, 0], [0, 0, T1q]]
        L = block_diag(T1, T1, T1q)
        L[n2:n2 + n2dot, :n2] = omega * T2

        # [[omega*T2, 0, 0], [omega^2*T3 + omega_dot*T2, 2*omega*T2, 0], [0, 0, omega*T2q]]
        R = block_diag(omega * T2, 2.0 * omega * T2, omega * T2q)
        R[n2:n2 + n2dot, :n2] = omega**2 * T3 + omega_dot * T2

        A = series.A[step][np.ix_(idx, idx)]
        ANR = block_diag(T1v, T1v, T1qv) @ (A @ L - R)

        out = np.empty_like(ANR)
        out[np.ix_(idx, idx)] = ANR
        A_nr[step] = out

    eigen_indices = sorted(order_q2.indices + order_q1.indices)
    labels = [""] * n_x
    for d in series.x:
        labels[d.index] = d.label

    model = NonRotatingModel(
        avg_A=A_nr.mean(axis=0) if series.num_steps else np.zeros((n_x, n_x)),
        avg_x=series.x_values.mean(axis=0),
        avg_xdot=series.xdot_values.mean(axis=0),
        rotor_speed=float(np.mean(series.rotor_speeds) * 30.0 / np.pi),
        wind_speed=float(np.mean(series.wind_speeds)),
        azimuths=series.azimuths.copy(),
        order_x=order_x,
        order_q2=order_q2,
        order_q2dot=order_q2dot,
        order_q1=order_q1,
        order_u=order_u,
        order_y=order_y,
        eigen_indices=eigen_indices,
        state_labels=labels,
    )

    logger.debug(
        "MBC: %d steps, %d states (%d q2 / %d q2dot / %d q1), %d triplets",
        series.num_steps, n_x, n2, n2dot, order_q1.num, order_x.num_triplets,
    )
    return model
