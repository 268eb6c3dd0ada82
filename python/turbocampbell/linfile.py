"""Linearization file reader.

Each linearization file holds one snapshot of the turbine: a header of
named scalars, descriptor tables for states, state derivatives, inputs and
outputs, and the dense state-space matrices. File names end in ``.N.lin``
where ``N`` is the azimuth step; files sharing the part before ``.N.lin``
belong to one operating point.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import numpy as np

logger = logging.getLogger(__name__)

_LIN_SUFFIX = ".lin"

# Descriptor table headers and the default derivative order of their rows
_SECTIONS = {
    "Order of continuous states:": ("x", 2),
    "Order of continuous state derivatives:": ("xdot", 2),
    "Order of discrete states:": ("x", 2),
    "Order of inputs:": ("u", 0),
    "Order of outputs:": ("y", 0),
}

_MATRICES = ("A", "B", "C", "D", "dUdu", "dUdy")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class LinFileError(ValueError):
    """Raised when a linearization file cannot be parsed."""

    def __init__(self, path: str | Path, message: str):
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


@dataclass
class StateDescriptor:
    """One row of a descriptor table.

    Parameters
    ----------
    index : zero-based position in the state, input or output vector
    value : operating-point value
    rotating : True if the quantity is expressed in the rotating frame
    deriv_order : 0, 1 or 2
    label : free-text description, e.g. ``"ED 1st flapwise bending-mode DOF of blade 1, m"``
    """

    index: int
    value: float
    rotating: bool
    deriv_order: int
    label: str

    def sort_key(self) -> int:
        """Key placing positions, rates, first-order then zero-order entries."""
        key = 1000
        if self.deriv_order == 2:
            key = 10
            _, _, rest = self.label.partition(" ")
            if rest.startswith("First time derivative"):
                key += 5
        elif self.deriv_order == 1:
            key = 20
        elif self.deriv_order == 0:
            key = 30
        if self.rotating:
            key += 1
        return key

    def sanitized_label(self) -> str:
        """Label with the parenthesised part removed for ``ED`` descriptors."""
        label = self.label
        if label.startswith("ED"):
            j = label.find("(")
            k = label.rfind(")")
            if j > -1 and k > -1:
                return label[:j] + label[k + 1:]
        return label


def sort_descriptors(descriptors: Iterable[StateDescriptor]) -> list[StateDescriptor]:
    """Stable sort into q2, q2dot, q1 and zero-order groups."""
    return sorted(descriptors, key=StateDescriptor.sort_key)


@dataclass
class Snapshot:
    """One linearization of the turbine at a single azimuth.

    Parameters
    ----------
    sim_time : simulation time in seconds
    rotor_speed : rotor speed in rad/s
    azimuth : rotor azimuth in radians, normalized to [0, 2*pi)
    wind_speed : hub-height wind speed in m/s (NaN when not reported)
    num_x, num_xd, num_z, num_u, num_y : continuous, discrete, constraint
        state, input and output counts from the header
    x, xdot, u, y : descriptor lists
    A, B, C, D : state-space matrices (None when absent)
    dUdu, dUdy : input Jacobians (None when absent)
    path : source file, if read from disk
    step_id : the ``N`` in ``name.N.lin``
    """

    sim_time: float = 0.0
    rotor_speed: float = math.nan
    azimuth: float = 0.0
    wind_speed: float = math.nan
    num_x: int = 0
    num_xd: int = 0
    num_z: int = 0
    num_u: int = 0
    num_y: int = 0
    x: list[StateDescriptor] = field(default_factory=list)
    xdot: list[StateDescriptor] = field(default_factory=list)
    u: list[StateDescriptor] = field(default_factory=list)
    y: list[StateDescriptor] = field(default_factory=list)
    A: Optional[np.ndarray] = None
    B: Optional[np.ndarray] = None
    C: Optional[np.ndarray] = None
    D: Optional[np.ndarray] = None
    dUdu: Optional[np.ndarray] = None
    dUdy: Optional[np.ndarray] = None
    path: Optional[str] = None
    step_id: int = 0

    @property
    def num_x2(self) -> int:
        """Number of second-order continuous states."""
        return sum(1 for d in self.x if d.deriv_order == 2)


# ---------------------------------------------------------------------------
# File names and grouping
# ---------------------------------------------------------------------------

def lin_step_id(path: str | Path) -> int:
    """Return ``N`` from a file named ``name.N.lin``."""
    parts = Path(path).name.split(".")
    if len(parts) < 3 or parts[-1] != "lin":
        raise LinFileError(path, "invalid lin file name, must end in '.N.lin'")
    try:
        return int(parts[-2])
    except ValueError:
        raise LinFileError(path, "invalid lin file name, must end in '.N.lin'") from None


def lin_group_name(path: str | Path) -> str:
    """Operating-point name of a lin file: its path without ``.N.lin``."""
    parts = str(path).split(".")
    if len(parts) < 3:
        raise LinFileError(path, "invalid lin file name, must end in '.N.lin'")
    return ".".join(parts[:-2])


def group_lin_files(paths: Iterable[str | Path]) -> dict[str, list[str]]:
    """Group linearization files by operating point.

    Parameters
    ----------
    paths : linearization file paths

    Returns
    -------
    Mapping from group name to its file paths, in first-seen order.
    """
    groups: dict[str, list[str]] = OrderedDict()
    for p in paths:
        groups.setdefault(lin_group_name(p), []).append(str(p))
    return groups


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _parse_float(path: Path, text: str, what: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise LinFileError(path, f"error parsing {what}: {text!r}") from None


def _parse_int(path: Path, text: str, what: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise LinFileError(path, f"error parsing {what}: {text!r}") from None


def _parse_bool(path: Path, text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise LinFileError(path, f"invalid rotating-frame flag: {text!r}")


def _header_field(path: Path, fields: list[str], pos: int, what: str) -> str:
    if len(fields) <= pos:
        raise LinFileError(path, f"missing value for {what}")
    return fields[pos]


def _parse_header(path: Path, lines, snap: Snapshot) -> None:
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        fields = line.split()

        if line.startswith("Simulation time"):
            snap.sim_time = _parse_float(path, _header_field(path, fields, 2, "Simulation time"), "Simulation time")
        elif line.startswith("Rotor Speed"):
            snap.rotor_speed = _parse_float(path, _header_field(path, fields, 2, "Rotor Speed"), "Rotor Speed")
        elif line.startswith("Azimuth"):
            az = _parse_float(path, _header_field(path, fields, 1, "Azimuth"), "Azimuth")
            snap.azimuth = az % (2.0 * math.pi)
        elif line.startswith("Wind Speed"):
            snap.wind_speed = _parse_float(path, _header_field(path, fields, 2, "Wind Speed"), "Wind Speed")
        elif line.startswith("Number of continuous states"):
            snap.num_x = _parse_int(path, _header_field(path, fields, 4, "continuous states"), "Number of continuous states")
        elif line.startswith("Number of discrete states"):
            snap.num_xd = _parse_int(path, _header_field(path, fields, 4, "discrete states"), "Number of discrete states")
        elif line.startswith("Number of constraint states"):
            snap.num_z = _parse_int(path, _header_field(path, fields, 4, "constraint states"), "Number of constraint states")
        elif line.startswith("Number of inputs"):
            snap.num_u = _parse_int(path, _header_field(path, fields, 3, "inputs"), "Number of inputs")
        elif line.startswith("Number of outputs"):
            snap.num_y = _parse_int(path, _header_field(path, fields, 3, "outputs"), "Number of outputs")
        elif line.startswith("Jacobians included"):
            return


def _parse_descriptor(
    path: Path, fields: list[str], default_deriv: int, has_deriv: bool,
) -> Optional[StateDescriptor]:
    try:
        index = int(fields[0]) - 1
    except ValueError:
        return None
    rest = fields[1:]
    if len(rest) < 2:
        raise LinFileError(path, f"truncated descriptor row: {' '.join(fields)!r}")

    value_text, rest = rest[0], rest[1:]
    if "," in value_text:
        # Orientation values are written as three comma-separated components
        value_text = value_text.strip(",")
        rest = rest[2:]
    value = _parse_float(path, value_text, "operating point value")

    if not rest:
        raise LinFileError(path, f"missing rotating-frame flag: {' '.join(fields)!r}")
    rotating = _parse_bool(path, rest[0])
    rest = rest[1:]

    deriv_order = default_deriv
    if has_deriv:
        if not rest:
            raise LinFileError(path, f"missing derivative order: {' '.join(fields)!r}")
        deriv_order = _parse_int(path, rest[0], "derivative order")
        rest = rest[1:]

    return StateDescriptor(
        index=index,
        value=value,
        rotating=rotating,
        deriv_order=deriv_order,
        label=" ".join(rest),
    )


def _parse_descriptors(path: Path, lines, snap: Snapshot) -> None:
    current: Optional[list[StateDescriptor]] = None
    default_deriv = 0
    has_deriv = False

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if line in _SECTIONS:
            name, default_deriv = _SECTIONS[line]
            current = getattr(snap, name)
            continue
        if "Operating Point" in line:
            has_deriv = "Derivative Order" in line
            continue
        if line in ("Linearized state matrices:", "Jacobian matrices:"):
            return

        desc = _parse_descriptor(path, line.split(), default_deriv, has_deriv)
        if desc is None:
            continue
        if current is None:
            raise LinFileError(path, f"descriptor row outside of a table: {line!r}")
        current.append(desc)


def _parse_matrices(path: Path, lines, snap: Snapshot) -> None:
    matrix: Optional[np.ndarray] = None
    name = ""
    i_row = 0

    for raw in lines:
        line = raw.strip()
        if not line or line == "Linearized state matrices:":
            continue
        fields = line.split()

        if len(fields) == 4 and fields[2] == "x":
            name = fields[0].rstrip(":")
            rows = _parse_int(path, fields[1], f"{name} row count")
            cols = _parse_int(path, fields[3], f"{name} column count")
            matrix = np.zeros((rows, cols), dtype=np.float64)
            i_row = 0
            if name in _MATRICES:
                setattr(snap, name, matrix)
            continue

        if matrix is None:
            raise LinFileError(path, f"matrix data before any matrix header: {line!r}")
        if i_row >= matrix.shape[0] or len(fields) != matrix.shape[1]:
            raise LinFileError(
                path, f"matrix {name} row {i_row + 1} does not fit {matrix.shape}"
            )
        matrix[i_row] = [_parse_float(path, s, f"matrix {name}") for s in fields]
        i_row += 1


def read_lin_file(path: str | Path) -> Snapshot:
    """Read one linearization file.

    Parameters
    ----------
    path : file named ``name.N.lin``

    Returns
    -------
    Snapshot with header scalars, descriptor lists and matrices.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    LinFileError
        If the name or contents cannot be parsed, or the descriptor
        counts disagree with the header.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Linearization file not found: {path}")

    snap = Snapshot(path=str(path), step_id=lin_step_id(path))

    with open(path, "r") as fh:
        _parse_header(path, fh, snap)
        _parse_descriptors(path, fh, snap)
        _parse_matrices(path, fh, snap)

    n_x = snap.num_x + snap.num_xd
    if snap.x and len(snap.x) != n_x:
        raise LinFileError(
            path, f"expected {n_x} state descriptors, found {len(snap.x)}"
        )
    if snap.A is not None and snap.A.shape != (len(snap.x), len(snap.x)):
        raise LinFileError(
            path, f"A is {snap.A.shape}, expected {(len(snap.x), len(snap.x))}"
        )

    logger.debug(
        "Read %s: azimuth=%.4f rad, %d states, %d inputs, %d outputs",
        path.name, snap.azimuth, len(snap.x), len(snap.u), len(snap.y),
    )
    return snap


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def _descriptor_table(title: str, descriptors: list[StateDescriptor]) -> list[str]:
    lines = [
        title,
        "   Row/Column     Operating Point    Rotating Frame?  Derivative Order  Description",
        "   ----------     ---------------    ---------------  ----------------  -----------",
    ]
    for d in descriptors:
        flag = "T" if d.rotating else "F"
        lines.append(
            f"{d.index + 1:>10d}  {d.value:>22.15E}  {flag:>8s}  {d.deriv_order:>8d}      {d.label}"
        )
    lines.append("")
    return lines


def _matrix_block(name: str, M: np.ndarray) -> list[str]:
    lines = [f"{name}: {M.shape[0]} x {M.shape[1]}"]
    for row in M:
        lines.append(" ".join(f"{v:.17g}" for v in row))
    lines.append("")
    return lines


def write_lin_file(path: str | Path, snap: Snapshot) -> Path:
    """Write *snap* in the format read by :func:`read_lin_file`.

    *path* must end in ``.N.lin``. Only continuous states are written; the
    derivative-order column is always included.
    """
    path = Path(path)
    lin_step_id(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wind = snap.wind_speed if math.isfinite(snap.wind_speed) else 0.0
    out = [
        "Linearized model",
        "",
        f"Simulation time:                 {snap.sim_time:.4f} s",
        f"Rotor Speed:                     {snap.rotor_speed:.17g} rad/s",
        f"Azimuth:                         {snap.azimuth:.17g} rad",
        f"Wind Speed:                      {wind:.17g} m/s",
        f"Number of continuous states:     {len(snap.x)}",
        f"Number of discrete states:       0",
        f"Number of constraint states:     0",
        f"Number of inputs:                {len(snap.u)}",
        f"Number of outputs:               {len(snap.y)}",
        "Jacobians included in this file? No",
        "",
    ]
    out += _descriptor_table("Order of continuous states:", snap.x)
    if snap.xdot:
        out += _descriptor_table("Order of continuous state derivatives:", snap.xdot)
    if snap.u:
        out += _descriptor_table("Order of inputs:", snap.u)
    if snap.y:
        out += _descriptor_table("Order of outputs:", snap.y)

    out += ["", "Linearized state matrices:", ""]
    for name in _MATRICES:
        M = getattr(snap, name)
        if M is not None:
            out += _matrix_block(name, np.atleast_2d(M))

    path.write_text("\n".join(out) + "\n")
    return path
