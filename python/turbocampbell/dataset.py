"""HDF5 export and import of processed operating points and Campbell diagrams.

Stores the averaged non-rotating models, the modal results of every
operating point and the tracked diagram lines in one file, so a sweep can be
re-plotted or re-tracked without rerunning the MBC transform.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

import numpy as np

from turbocampbell.diagram import Diagram, Line, Point
from turbocampbell.solver import OperatingPoint

_FORMAT_VERSION = "0.1.0"


@dataclass
class DatasetConfig:
    """Configuration for HDF5 export.

    Parameters
    ----------
    include_state_matrices : store each operating point's averaged A matrix
    include_mode_shapes : store the complex eigenvectors
    compression : HDF5 compression filter name (e.g. "gzip", "lzf")
    compression_level : compression level (1-9 for gzip)
    """

    include_state_matrices: bool = True
    include_mode_shapes: bool = True
    compression: str = "gzip"
    compression_level: int = 4


def export_results(
    path: str | Path,
    ops: Sequence[OperatingPoint],
    diagram: Optional[Diagram] = None,
    config: DatasetConfig | None = None,
) -> None:
    """Export processed operating points (and optionally a diagram) to HDF5.

    Parameters
    ----------
    path : output HDF5 file path
    ops : ordered operating points
    diagram : Campbell diagram built from *ops* (None = not stored)
    config : dataset configuration (None uses defaults)

    File layout
    -----------
    ::

        /operating_points    structured array with fields:
                             name, rotor_speed, wind_speed, has_aero_states

        /ops/{i}/avg_A              (n_x, n_x) float64   (if include_state_matrices)
        /ops/{i}/eigen_indices      (n_e,) int32
        /ops/{i}/state_labels       (n_x,) str
        /ops/{i}/natural_freq_hz    (n_modes,) float64
        /ops/{i}/damped_freq_hz     (n_modes,) float64
        /ops/{i}/damping_ratio      (n_modes,) float64
        /ops/{i}/eigenvalues        (n_modes,) complex128
        /ops/{i}/dominant_state     (n_modes,) str
        /ops/{i}/mode_shapes        (n_modes, n_e) complex128  (if include_mode_shapes)

        /diagram                    attrs: has_wind, num_lines
        /diagram/rotor_speeds       (n_ops,) float64
        /diagram/wind_speeds        (n_ops,) float64
        /diagram/lines/{j}          structured array of points, attrs: id, label
    """
    import h5py

    if config is None:
        config = DatasetConfig()

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    comp_kwargs: dict[str, Any] = {}
    if config.compression:
        comp_kwargs["compression"] = config.compression
        if config.compression == "gzip":
            comp_kwargs["compression_opts"] = config.compression_level

    str_dtype = h5py.string_dtype()

    with h5py.File(str(path), "w") as f:
        # ---- Operating points (structured array) ----
        op_dtype = np.dtype([
            ("name", str_dtype),
            ("rotor_speed", np.float64),
            ("wind_speed", np.float64),
            ("has_aero_states", np.bool_),
        ])
        op_arr = np.empty(len(ops), dtype=op_dtype)
        for i, op in enumerate(ops):
            op_arr[i] = (op.name, op.rotor_speed, op.wind_speed, op.has_aero_states)
        f.create_dataset("operating_points", data=op_arr)

        # ---- Modal results per operating point ----
        ops_grp = f.create_group("ops")
        for i, op in enumerate(ops):
            g = ops_grp.create_group(str(i))
            model = op.model
            if config.include_state_matrices:
                g.create_dataset("avg_A", data=np.asarray(model.avg_A, dtype=np.float64), **comp_kwargs)
            g.create_dataset("eigen_indices", data=np.asarray(model.eigen_indices, dtype=np.int32))
            g.create_dataset("state_labels", data=np.array(model.state_labels, dtype=object), dtype=str_dtype)

            g.create_dataset("natural_freq_hz", data=np.array([m.natural_freq_hz for m in op.modes], dtype=np.float64))
            g.create_dataset("damped_freq_hz", data=np.array([m.damped_freq_hz for m in op.modes], dtype=np.float64))
            g.create_dataset("damping_ratio", data=np.array([m.damping_ratio for m in op.modes], dtype=np.float64))
            g.create_dataset("eigenvalues", data=np.array([m.eigenvalue for m in op.modes], dtype=np.complex128))
            g.create_dataset(
                "dominant_state",
                data=np.array([m.dominant_state for m in op.modes], dtype=object),
                dtype=str_dtype,
            )

            # Mode shapes (optional, potentially large)
            if config.include_mode_shapes:
                n_e = len(model.eigen_indices)
                shapes = np.zeros((len(op.modes), n_e), dtype=np.complex128)
                for k, m in enumerate(op.modes):
                    shapes[k] = m.eigenvector
                g.create_dataset("mode_shapes", data=shapes, **comp_kwargs)

        # ---- Diagram ----
        if diagram is not None:
            _write_diagram(f.create_group("diagram"), diagram)

        # Global attributes
        f.attrs["turbocampbell_version"] = _FORMAT_VERSION
        f.attrs["num_operating_points"] = len(ops)
        f.attrs["include_mode_shapes"] = config.include_mode_shapes


_POINT_DTYPE = np.dtype([
    ("op", np.int32),
    ("mode", np.int32),
    ("rotor_speed", np.float64),
    ("wind_speed", np.float64),
    ("natural_freq_hz", np.float64),
    ("damped_freq_hz", np.float64),
    ("damping_ratio", np.float64),
])


def _write_diagram(grp, diagram: Diagram) -> None:
    grp.attrs["has_wind"] = diagram.has_wind
    grp.attrs["num_lines"] = len(diagram.lines)
    grp.create_dataset("rotor_speeds", data=np.asarray(diagram.rotor_speeds, dtype=np.float64))
    grp.create_dataset("wind_speeds", data=np.asarray(diagram.wind_speeds, dtype=np.float64))

    lines_grp = grp.create_group("lines")
    for j, line in enumerate(diagram.lines):
        arr = np.empty(len(line.points), dtype=_POINT_DTYPE)
        for k, p in enumerate(line.points):
            arr[k] = (
                p.op, p.mode, p.rotor_speed, p.wind_speed,
                p.natural_freq_hz, p.damped_freq_hz, p.damping_ratio,
            )
        ds = lines_grp.create_dataset(str(j), data=arr)
        ds.attrs["id"] = line.id
        ds.attrs["label"] = line.label


def _read_diagram(grp) -> Diagram:
    lines = []
    for j in range(int(grp.attrs["num_lines"])):
        ds = grp["lines"][str(j)]
        line_id = int(ds.attrs["id"])
        points = [
            Point(
                line=line_id,
                op=int(row["op"]),
                mode=int(row["mode"]),
                rotor_speed=float(row["rotor_speed"]),
                wind_speed=float(row["wind_speed"]),
                natural_freq_hz=float(row["natural_freq_hz"]),
                damped_freq_hz=float(row["damped_freq_hz"]),
                damping_ratio=float(row["damping_ratio"]),
            )
            for row in np.array(ds)
        ]
        label = ds.attrs["label"]
        if isinstance(label, bytes):
            label = label.decode()
        lines.append(Line(id=line_id, label=str(label), points=points))

    return Diagram(
        has_wind=bool(grp.attrs["has_wind"]),
        rotor_speeds=[float(v) for v in np.array(grp["rotor_speeds"])],
        wind_speeds=[float(v) for v in np.array(grp["wind_speeds"])],
        lines=lines,
    )


def _strings(ds) -> list[str]:
    return [s.decode() if isinstance(s, bytes) else str(s) for s in ds[()]]


def load_results(
    path: str | Path,
) -> tuple[list[dict[str, Any]], Optional[Diagram]]:
    """Load results written by :func:`export_results`.

    Parameters
    ----------
    path : path to the HDF5 file

    Returns
    -------
    ops : one dict per operating point, with keys "name", "rotor_speed",
        "wind_speed", "has_aero_states", "eigen_indices", "state_labels",
        "natural_freq_hz", "damped_freq_hz", "damping_ratio", "eigenvalues",
        "dominant_state", and "avg_A" / "mode_shapes" when stored
    diagram : the stored Diagram, or None
    """
    import h5py

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"HDF5 dataset not found: {path}")

    ops: list[dict[str, Any]] = []
    diagram = None

    with h5py.File(str(path), "r") as f:
        op_arr = np.array(f["operating_points"])
        ops_grp = f["ops"]
        for i, row in enumerate(op_arr):
            name = row["name"]
            entry: dict[str, Any] = {
                "name": name.decode() if isinstance(name, bytes) else str(name),
                "rotor_speed": float(row["rotor_speed"]),
                "wind_speed": float(row["wind_speed"]),
                "has_aero_states": bool(row["has_aero_states"]),
            }
            g = ops_grp[str(i)]
            entry["eigen_indices"] = np.array(g["eigen_indices"])
            entry["state_labels"] = _strings(g["state_labels"])
            entry["dominant_state"] = _strings(g["dominant_state"])
            for key in ("natural_freq_hz", "damped_freq_hz", "damping_ratio", "eigenvalues"):
                entry[key] = np.array(g[key])
            if "avg_A" in g:
                entry["avg_A"] = np.array(g["avg_A"])
            if "mode_shapes" in g:
                entry["mode_shapes"] = np.array(g["mode_shapes"])
            ops.append(entry)

        if "diagram" in f:
            diagram = _read_diagram(f["diagram"])

    return ops, diagram
