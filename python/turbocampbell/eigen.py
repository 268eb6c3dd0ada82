"""Eigen-analysis of non-rotating models and the modal assurance criterion."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import scipy.linalg

from turbocampbell.mbc import NonRotatingModel

# Label prefixes of structural states (ElastoDyn, BeamDyn, SubDyn)
STRUCTURAL_PREFIXES = ("ED", "BD", "SD")


@dataclass(eq=False)
class Mode:
    """One eigenmode of an operating point.

    Parameters
    ----------
    id : sequential index, ascending natural frequency within its operating point
    op : operating-point index (set once operating points are ordered)
    natural_freq_raw : |lambda| in rad/s
    natural_freq_hz : |lambda| / 2 pi
    damped_freq_raw : Im(lambda) in rad/s
    damped_freq_hz : Im(lambda) / 2 pi
    damping_ratio : -Re(lambda) / |lambda|
    eigenvalue : complex eigenvalue
    eigenvector : complex eigenvector restricted to the eigen-relevant states
    dominant_state : label of the state with the largest eigenvector magnitude
    cluster : cluster number attached by refinement (None until then)
    """

    id: int
    op: int
    natural_freq_raw: float
    natural_freq_hz: float
    damped_freq_raw: float
    damped_freq_hz: float
    damping_ratio: float
    eigenvalue: complex
    eigenvector: np.ndarray = field(repr=False)
    dominant_state: str = ""
    cluster: Optional[int] = None

    @property
    def name(self) -> str:
        return f"{self.op}-{self.id}"

    def is_structural(self) -> bool:
        return self.dominant_state.startswith(STRUCTURAL_PREFIXES)

    def mac(self, other: "Mode") -> float:
        return mac(self.eigenvector, other.eigenvector)


def mac(v1: np.ndarray, v2: np.ndarray) -> float:
    """Modal Assurance Criterion between two complex eigenvectors.

    ``|sum(v1 * conj(v2))|^2 / (sum(v1 * conj(v1)) * sum(v2 * conj(v2)))``,
    in [0, 1]. Returns 0 when either vector is zero.
    """
    v1 = np.asarray(v1)
    v2 = np.asarray(v2)
    assert v1.shape == v2.shape, f"eigenvector lengths differ: {v1.shape} vs {v2.shape}"

    num = np.abs(np.vdot(v2, v1)) ** 2
    den = np.real(np.vdot(v1, v1)) * np.real(np.vdot(v2, v2))
    if den < 1e-30:
        return 0.0
    return float(min(num / den, 1.0))


def mac_matrix(vectors_a: list[np.ndarray], vectors_b: list[np.ndarray]) -> np.ndarray:
    """MAC between every pair of vectors from two lists."""
    out = np.zeros((len(vectors_a), len(vectors_b)))
    for i, va in enumerate(vectors_a):
        for j, vb in enumerate(vectors_b):
            out[i, j] = mac(va, vb)
    return out


def eigen_analysis(model: NonRotatingModel, op: int = 0) -> list[Mode]:
    """Extract oscillatory modes from a non-rotating model.

    Only eigenvalues with strictly positive imaginary part are kept, so each
    complex-conjugate pair contributes one mode and real eigenvalues none.

    Parameters
    ----------
    model : averaged non-rotating model
    op : operating-point index stored on each mode

    Returns
    -------
    Modes sorted ascending by natural frequency with IDs 0, 1, ...

    Raises
    ------
    numpy.linalg.LinAlgError
        If the eigendecomposition does not converge.
    """
    if model.avg_A.size == 0:
        return []

    values, vectors = scipy.linalg.eig(model.avg_A)
    rows = np.asarray(model.eigen_indices, dtype=int)
    labels = model.eigen_labels

    modes = []
    for i, lam in enumerate(values):
        if lam.imag <= 0:
            continue
        mag = abs(lam)
        vec = vectors[rows, i]
        dominant = labels[int(np.argmax(np.abs(vec)))] if len(vec) else ""
        modes.append(Mode(
            id=0,
            op=op,
            natural_freq_raw=float(mag),
            natural_freq_hz=float(mag / (2.0 * np.pi)),
            damped_freq_raw=float(lam.imag),
            damped_freq_hz=float(lam.imag / (2.0 * np.pi)),
            damping_ratio=float(-lam.real / mag) if mag > 0 else 0.0,
            eigenvalue=complex(lam),
            eigenvector=vec,
            dominant_state=dominant,
        ))

    modes.sort(key=lambda m: m.natural_freq_raw)
    for i, m in enumerate(modes):
        m.id = i
    return modes
