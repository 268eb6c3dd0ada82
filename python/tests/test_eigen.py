"""Tests for turbocampbell.eigen: MAC and eigen-analysis."""

import numpy as np
import pytest

from turbocampbell.eigen import eigen_analysis, mac, mac_matrix
from turbocampbell.mbc import AggregatedSeries, mbc3


def _model(snapshots):
    return mbc3(AggregatedSeries.from_snapshots(snapshots))


# ---- MAC ----

def test_mac_self_is_one():
    v = np.array([1 + 2j, -0.5j, 3.0])
    assert mac(v, v) == pytest.approx(1.0)


def test_mac_invariant_to_complex_scaling():
    v = np.array([1 + 2j, -0.5j, 3.0])
    assert mac(v, (2 - 3j) * v) == pytest.approx(1.0)


def test_mac_orthogonal_is_zero():
    assert mac(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)


def test_mac_symmetric_and_bounded():
    rng = np.random.default_rng(1)
    for _ in range(20):
        a = rng.normal(size=6) + 1j * rng.normal(size=6)
        b = rng.normal(size=6) + 1j * rng.normal(size=6)
        m = mac(a, b)
        assert 0.0 <= m <= 1.0
        assert m == pytest.approx(mac(b, a))


def test_mac_zero_vector():
    assert mac(np.zeros(3), np.array([1.0, 2.0, 3.0])) == 0.0


def test_mac_length_mismatch():
    with pytest.raises(AssertionError):
        mac(np.ones(3), np.ones(4))


def test_mac_matrix_identity_for_orthogonal_basis():
    basis = list(np.eye(3, dtype=complex))
    np.testing.assert_allclose(mac_matrix(basis, basis), np.eye(3), atol=1e-12)


# ---- eigen_analysis ----

class TestEigenAnalysis:
    def test_single_damped_oscillator(self, snapshot_factory):
        model = _model(snapshot_factory(1.0, [1.5], zeta=0.05))
        modes = eigen_analysis(model)

        assert len(modes) == 1
        m = modes[0]
        assert m.natural_freq_hz == pytest.approx(1.5)
        assert m.natural_freq_raw == pytest.approx(2 * np.pi * 1.5)
        assert m.damping_ratio == pytest.approx(0.05)
        assert m.damped_freq_hz == pytest.approx(1.5 * np.sqrt(1 - 0.05**2))
        assert m.eigenvalue.imag > 0

    def test_one_mode_per_conjugate_pair(self, snapshot_factory):
        freqs = [0.4, 0.9, 1.7]
        modes = eigen_analysis(_model(snapshot_factory(1.0, freqs)))
        assert len(modes) == len(freqs)
        np.testing.assert_allclose([m.natural_freq_hz for m in modes], freqs, rtol=1e-8)

    def test_sorted_with_sequential_ids(self, snapshot_factory):
        modes = eigen_analysis(_model(snapshot_factory(1.0, [2.0, 0.5, 1.0])), op=3)
        freqs = [m.natural_freq_raw for m in modes]
        assert freqs == sorted(freqs)
        assert [m.id for m in modes] == [0, 1, 2]
        assert all(m.op == 3 for m in modes)
        assert [m.name for m in modes] == ["3-0", "3-1", "3-2"]

    def test_overdamped_modes_dropped(self, snapshot_factory):
        modes = eigen_analysis(_model(snapshot_factory(1.0, [1.0], zeta=1.5)))
        assert modes == []

    def test_eigenvector_restricted_to_positions(self, snapshot_factory):
        snaps = snapshot_factory(1.0, [0.5, 1.0])
        model = _model(snaps)
        modes = eigen_analysis(model)
        assert model.eigen_indices == [0, 1]
        for m in modes:
            assert m.eigenvector.shape == (2,)

    def test_dominant_state_is_structural(self, snapshot_factory):
        modes = eigen_analysis(_model(snapshot_factory(1.0, [0.5, 1.0])))
        for m in modes:
            assert m.dominant_state.startswith("ED Mode")
            assert m.is_structural()

    def test_aero_dominated_mode_not_structural(self, snapshot_factory):
        modes = eigen_analysis(_model(snapshot_factory(1.0, [0.5], prefix="AD")))
        assert modes[0].dominant_state.startswith("AD")
        assert not modes[0].is_structural()

    def test_shapes_match_modal_basis(self, snapshot_factory):
        phi, _ = np.linalg.qr(np.random.default_rng(11).normal(size=(3, 3)))
        modes = eigen_analysis(_model(snapshot_factory(1.0, [0.5, 1.0, 1.5], shapes=phi)))
        for k, m in enumerate(modes):
            assert mac(m.eigenvector, phi[:, k]) == pytest.approx(1.0)
