"""Shared fixtures for turbocampbell tests.

The synthetic turbine used throughout is a fixed-frame, second-order model
``q'' + C q' + K q = 0`` with ``K = Phi diag(w^2) Phi^T`` and
``C = Phi diag(2 zeta w) Phi^T`` for an orthogonal ``Phi``. Its eigenvectors
restricted to the positions are the columns of ``Phi``, so modes of the
same column have MAC 1 across operating points and distinct columns MAC 0.
"""

from pathlib import Path

import numpy as np
import pytest

from turbocampbell.eigen import Mode
from turbocampbell.linfile import Snapshot, StateDescriptor

TEST_DATA_DIR = Path(__file__).resolve().parent.parent.parent / "tests" / "test_data"

# Base natural frequencies (Hz) of the synthetic sweep and their rotor-speed slope
BASE_FREQS = (0.3, 0.7, 1.2, 2.0)
FREQ_SLOPE = 0.05


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: tests taking more than a few seconds")


def orthogonal_shapes(n: int, seed: int = 7) -> np.ndarray:
    q, _ = np.linalg.qr(np.random.default_rng(seed).normal(size=(n, n)))
    return q


def modal_descriptors(n: int, prefix: str = "ED") -> list[StateDescriptor]:
    """Position then rate descriptors of *n* non-rotating second-order states."""
    desc = [
        StateDescriptor(i, 0.0, False, 2, f"{prefix} Mode {i + 1} DOF, m")
        for i in range(n)
    ]
    desc += [
        StateDescriptor(n + i, 0.0, False, 2,
                        f"{prefix} First time derivative of Mode {i + 1} DOF, m/s")
        for i in range(n)
    ]
    return desc


def modal_state_matrix(freqs_hz, zeta: float = 0.02, shapes=None) -> np.ndarray:
    n = len(freqs_hz)
    if shapes is None:
        shapes = orthogonal_shapes(n)
    w = 2.0 * np.pi * np.asarray(freqs_hz, dtype=float)
    K = shapes @ np.diag(w**2) @ shapes.T
    C = shapes @ np.diag(2.0 * zeta * w) @ shapes.T
    return np.block([
        [np.zeros((n, n)), np.eye(n)],
        [-K, -C],
    ])


def make_snapshots(
    rotor_speed: float,
    freqs_hz,
    wind_speed: float = 0.0,
    zeta: float = 0.02,
    n_azimuths: int = 3,
    shapes=None,
    prefix: str = "ED",
) -> list[Snapshot]:
    """Snapshots of one operating point of the synthetic model."""
    A = modal_state_matrix(freqs_hz, zeta, shapes)
    x = modal_descriptors(len(freqs_hz), prefix)
    return [
        Snapshot(
            rotor_speed=rotor_speed,
            azimuth=2.0 * np.pi * k / n_azimuths,
            wind_speed=wind_speed,
            num_x=len(x),
            x=list(x),
            A=A.copy(),
            step_id=k + 1,
        )
        for k in range(n_azimuths)
    ]


def sweep_frequencies(rotor_speed: float) -> list[float]:
    return [f + FREQ_SLOPE * rotor_speed for f in BASE_FREQS]


def make_sweep(rotor_speeds=(0.5, 0.7, 0.9, 1.1, 1.3), wind_speeds=None) -> dict:
    """Groups named so that name order is the reverse of rotor-speed order."""
    groups = {}
    n = len(rotor_speeds)
    for i, omega in enumerate(rotor_speeds):
        wind = 0.0 if wind_speeds is None else wind_speeds[i]
        groups[f"op{n - i:02d}"] = make_snapshots(omega, sweep_frequencies(omega), wind)
    return groups


@pytest.fixture(scope="session")
def test_data_dir():
    """Return path to the test data directory."""
    return TEST_DATA_DIR


@pytest.fixture
def sweep_groups():
    """Five operating points, four well-separated modes each."""
    return make_sweep()


@pytest.fixture
def sweep_factory():
    return make_sweep


@pytest.fixture
def snapshot_factory():
    return make_snapshots


@pytest.fixture
def mode_factory():
    """Build a Mode directly from frequency and shape."""

    def _make(op, id, freq_hz, vector, dominant_state="ED Mode 1 DOF, m", zeta=0.01):
        w = 2.0 * np.pi * freq_hz
        lam = complex(-zeta * w, w * np.sqrt(1.0 - zeta**2))
        return Mode(
            id=id,
            op=op,
            natural_freq_raw=w,
            natural_freq_hz=freq_hz,
            damped_freq_raw=lam.imag,
            damped_freq_hz=lam.imag / (2.0 * np.pi),
            damping_ratio=zeta,
            eigenvalue=lam,
            eigenvector=np.asarray(vector, dtype=complex),
            dominant_state=dominant_state,
        )

    return _make
