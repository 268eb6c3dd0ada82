"""Campbell diagram assembly and JSON persistence."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np

from turbocampbell.cancel import CancelToken
from turbocampbell.cluster import ClusterConfig, cluster_modes
from turbocampbell.tracking import ModeSet, TrackingOptions, track_modes

if TYPE_CHECKING:
    from turbocampbell.solver import OperatingPoint

logger = logging.getLogger(__name__)


@dataclass
class DiagramOptions:
    """Options for building a Campbell diagram.

    Parameters
    ----------
    min_freq : lowest natural frequency (Hz) tracked
    max_freq : highest natural frequency (Hz) tracked
    structural_only : skip modes dominated by non-structural states
    cluster : run spectral-clustering refinement after tracking
    cluster_config : refinement settings
    """

    min_freq: float = 0.0
    max_freq: float = math.inf
    structural_only: bool = False
    cluster: bool = False
    cluster_config: ClusterConfig = field(default_factory=ClusterConfig)

    def __post_init__(self):
        if self.min_freq < 0:
            raise ValueError(f"min_freq must be >= 0, got {self.min_freq}")
        if self.max_freq < self.min_freq:
            raise ValueError(
                f"max_freq ({self.max_freq}) must be >= min_freq ({self.min_freq})"
            )

    def tracking_options(self) -> TrackingOptions:
        return TrackingOptions(
            min_freq=self.min_freq,
            max_freq=self.max_freq,
            structural_only=self.structural_only,
        )


@dataclass
class Point:
    """One mode of a line at one operating point."""

    line: int
    op: int
    mode: int
    rotor_speed: float
    wind_speed: float
    natural_freq_hz: float
    damped_freq_hz: float
    damping_ratio: float


@dataclass
class Line:
    """A tracked mode set rendered as points."""

    id: int
    label: str
    points: list[Point] = field(default_factory=list)

    def frequencies(self) -> np.ndarray:
        return np.array([p.natural_freq_hz for p in self.points])

    def damping(self) -> np.ndarray:
        return np.array([p.damping_ratio for p in self.points])

    def ops(self) -> list[int]:
        return [p.op for p in self.points]


@dataclass
class Diagram:
    """Campbell diagram: per-OP speeds plus tracked lines.

    Parameters
    ----------
    has_wind : True if any operating point has a nonzero wind speed
    rotor_speeds : (n_ops,) rotor speed in RPM per operating point
    wind_speeds : (n_ops,) wind speed in m/s per operating point
    lines : tracked mode sets
    """

    has_wind: bool
    rotor_speeds: list[float]
    wind_speeds: list[float]
    lines: list[Line] = field(default_factory=list)

    @property
    def num_ops(self) -> int:
        return len(self.rotor_speeds)

    @property
    def abscissa(self) -> np.ndarray:
        """Wind speeds when the diagram has wind, else rotor speeds."""
        return np.asarray(self.wind_speeds if self.has_wind else self.rotor_speeds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Diagram":
        lines = [
            Line(
                id=int(ln["id"]),
                label=str(ln["label"]),
                points=[Point(**p) for p in ln.get("points", [])],
            )
            for ln in data.get("lines", [])
        ]
        return cls(
            has_wind=bool(data["has_wind"]),
            rotor_speeds=[float(v) for v in data["rotor_speeds"]],
            wind_speeds=[float(v) for v in data["wind_speeds"]],
            lines=lines,
        )

    def save(self, path: str | Path) -> None:
        """Write the diagram as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as fh:
            json.dump(self.to_dict(), fh, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> "Diagram":
        """Read a diagram written by :meth:`save`."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Diagram file not found: {path}")
        with open(path, "r") as fh:
            return cls.from_dict(json.load(fh))


def _render_lines(
    mode_sets: Sequence[ModeSet],
    rotor_speeds: Sequence[float],
    wind_speeds: Sequence[float],
) -> list[Line]:
    lines = []
    for i, ms in enumerate(mode_sets):
        points = [
            Point(
                line=i,
                op=m.op,
                mode=m.id,
                rotor_speed=float(rotor_speeds[m.op]),
                wind_speed=float(wind_speeds[m.op]),
                natural_freq_hz=float(m.natural_freq_hz),
                damped_freq_hz=float(m.damped_freq_hz),
                damping_ratio=float(m.damping_ratio),
            )
            for m in ms.modes
        ]
        lines.append(Line(id=i, label=f"Line {i + 1}", points=points))
    return lines


def build_diagram(
    ops: Sequence["OperatingPoint"],
    options: DiagramOptions | None = None,
    cancel: CancelToken | None = None,
) -> Diagram:
    """Track modes across ordered operating points and assemble the diagram.

    Parameters
    ----------
    ops : operating points in diagram order, each with ``rotor_speed``,
        ``wind_speed`` and ``modes`` (mode ``op`` fields matching the position)
    options : diagram options (None = defaults)
    cancel : optional cancellation token

    Returns
    -------
    Diagram

    Raises
    ------
    AssignmentError
        If tracking hits an infeasible transition.
    """
    if options is None:
        options = DiagramOptions()

    rotor_speeds = [float(op.rotor_speed) for op in ops]
    wind_speeds = [float(op.wind_speed) for op in ops]
    has_wind = any(ws > 0 for ws in wind_speeds)

    mode_sets = track_modes([op.modes for op in ops], options.tracking_options(), cancel)

    if options.cluster:
        mode_sets = cluster_modes(mode_sets, len(ops), options.cluster_config, cancel)

    lines = _render_lines(mode_sets, rotor_speeds, wind_speeds)
    logger.info("Built Campbell diagram: %d operating points, %d lines", len(ops), len(lines))

    return Diagram(
        has_wind=has_wind,
        rotor_speeds=rotor_speeds,
        wind_speeds=wind_speeds,
        lines=lines,
    )
