"""High-level interface: linearization groups to Campbell diagram."""

from __future__ import annotations

import logging
import os
import sys
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from turbocampbell.cancel import CancelledError, CancelToken, check_cancelled
from turbocampbell.diagram import Diagram, DiagramOptions, build_diagram
from turbocampbell.eigen import Mode, eigen_analysis
from turbocampbell.linfile import Snapshot, group_lin_files, read_lin_file
from turbocampbell.mbc import AggregatedSeries, NonRotatingModel, mbc3

logger = logging.getLogger(__name__)

# Verbosity levels
SILENT = 0
PROGRESS = 1
DETAILED = 2

_ON_ERROR = ("raise", "skip")


class GroupProcessingError(RuntimeError):
    """An operating-point group failed to process."""

    def __init__(self, group: str, cause: BaseException):
        self.group = group
        self.cause = cause
        super().__init__(f"operating point '{group}': {cause}")


@dataclass
class OperatingPoint:
    """Processed operating point.

    Parameters
    ----------
    name : group name (shared base name of its files)
    model : averaged non-rotating model
    modes : modes sorted by natural frequency
    paths : source files, if read from disk
    """

    name: str
    model: NonRotatingModel
    modes: list[Mode]
    paths: list[str] = field(default_factory=list)

    @property
    def rotor_speed(self) -> float:
        """Mean rotor speed in RPM."""
        return self.model.rotor_speed

    @property
    def wind_speed(self) -> float:
        return self.model.wind_speed

    @property
    def has_aero_states(self) -> bool:
        return self.model.has_aero_states


def _progress_bar(
    current: int,
    total: int,
    width: int = 40,
    prefix: str = "",
    suffix: str = "",
    elapsed: float = 0.0,
) -> str:
    """Render a text progress bar."""
    frac = current / max(total, 1)
    filled = int(width * frac)
    bar = "=" * filled + ">" * (1 if filled < width else 0) + "." * (width - filled - 1)
    pct = f"{100 * frac:5.1f}%"

    eta_str = ""
    if current > 0 and elapsed > 0:
        eta = elapsed / current * (total - current)
        if eta >= 60:
            eta_str = f"  ETA {eta / 60:.1f}m"
        else:
            eta_str = f"  ETA {eta:.0f}s"

    return f"\r{prefix}[{bar}] {pct}  ({current}/{total}){suffix}{eta_str}"


def default_num_workers() -> int:
    """Worker threads for group processing: 1 + 2/3 of the available cores."""
    return 1 + (2 * (os.cpu_count() or 1)) // 3


def process_group(
    name: str,
    snapshots: Sequence[Snapshot] | Sequence[str | Path],
    cancel: CancelToken | None = None,
) -> OperatingPoint:
    """MBC transform and eigen-analysis of one operating point.

    Parameters
    ----------
    name : group name
    snapshots : the group's snapshots, or paths of its linearization files
    cancel : optional cancellation token

    Returns
    -------
    OperatingPoint with modes whose ``op`` is 0 until the points are ordered.
    """
    check_cancelled(cancel, f"operating point '{name}'")

    paths: list[str] = []
    snaps: list[Snapshot] = []
    for s in snapshots:
        if isinstance(s, Snapshot):
            snaps.append(s)
        else:
            paths.append(str(s))
            snaps.append(read_lin_file(s))
        check_cancelled(cancel, f"operating point '{name}'")

    model = mbc3(AggregatedSeries.from_snapshots(snaps))
    modes = eigen_analysis(model)
    return OperatingPoint(name=name, model=model, modes=modes, paths=paths)


def order_operating_points(ops: Iterable[OperatingPoint]) -> list[OperatingPoint]:
    """Sort by wind speed if any point has wind, else by rotor speed, and
    stamp each mode with its operating-point index.
    """
    ops = sorted(ops, key=lambda op: op.name)
    has_wind = any(op.wind_speed > 0 for op in ops)
    if has_wind:
        ops.sort(key=lambda op: op.wind_speed)
    else:
        ops.sort(key=lambda op: op.rotor_speed)

    for i, op in enumerate(ops):
        for m in op.modes:
            m.op = i
    return ops


def process_groups(
    groups: Mapping[str, Sequence[Snapshot] | Sequence[str | Path]],
    max_threads: int = 0,
    on_error: str = "raise",
    verbose: int = SILENT,
    cancel: CancelToken | None = None,
) -> list[OperatingPoint]:
    """Process operating-point groups in parallel.

    Parameters
    ----------
    groups : mapping from group name to its snapshots or file paths
    max_threads : worker threads (0 = auto, 1 + 2/3 of the CPU cores)
    on_error : ``"raise"`` stops at the first failed group and raises
        GroupProcessingError; ``"skip"`` logs failures and returns the rest
    verbose : 0=silent, 1=progress bar, 2=detailed output
    cancel : optional cancellation token

    Returns
    -------
    Ordered list of OperatingPoint (see :func:`order_operating_points`).
    """
    if on_error not in _ON_ERROR:
        raise ValueError(f"on_error must be one of {_ON_ERROR}, got {on_error!r}")
    # Failures under on_error="raise" stop sibling groups without
    # cancelling the caller's token
    group_cancel = CancelToken(parent=cancel)

    n_groups = len(groups)
    n_workers = max_threads if max_threads > 0 else default_num_workers()
    n_workers = max(1, min(n_workers, n_groups))

    if verbose >= PROGRESS:
        print(f"Processing {n_groups} operating points ({n_workers} threads)")

    if n_groups == 0:
        return []

    results: dict[str, OperatingPoint] = {}
    failures: dict[str, BaseException] = {}
    first_failure = None
    t_start = time.perf_counter()

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = {
            executor.submit(process_group, name, snaps, group_cancel): name
            for name, snaps in groups.items()
        }
        pending = set(futures)
        done_count = 0

        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                name = futures[future]
                done_count += 1
                if future.cancelled():
                    continue
                try:
                    op = future.result()
                except CancelledError:
                    continue
                except Exception as e:
                    failures[name] = e
                    if first_failure is None:
                        first_failure = name
                    if on_error == "raise":
                        group_cancel.cancel()
                        for f in pending:
                            f.cancel()
                    else:
                        logger.warning("Skipping operating point '%s': %s", name, e)
                    continue

                results[name] = op
                elapsed = time.perf_counter() - t_start
                if verbose == PROGRESS:
                    sys.stdout.write(_progress_bar(
                        done_count, n_groups, prefix="  ", elapsed=elapsed,
                        suffix=f"  {op.rotor_speed:6.2f} RPM",
                    ))
                    sys.stdout.flush()
                elif verbose >= DETAILED:
                    freqs = ", ".join(f"{m.natural_freq_hz:.3f}" for m in op.modes[:4])
                    print(
                        f"  [{done_count}/{n_groups}] {name}: {op.rotor_speed:.2f} RPM, "
                        f"{op.wind_speed:.2f} m/s, {len(op.modes)} modes [{freqs}] Hz"
                    )

    if verbose == PROGRESS:
        sys.stdout.write("\n")

    if first_failure is not None and on_error == "raise":
        cause = failures[first_failure]
        raise GroupProcessingError(first_failure, cause) from cause
    check_cancelled(cancel, "group processing")

    total = time.perf_counter() - t_start
    if verbose >= PROGRESS:
        print(f"  Processed {len(results)}/{n_groups} operating points in {total:.1f}s")
    logger.info(
        "Processed %d operating points (%d failed) in %.1fs",
        len(results), len(failures), total,
    )

    return order_operating_points(results.values())


def process_lin_files(
    paths: Iterable[str | Path],
    max_threads: int = 0,
    on_error: str = "raise",
    verbose: int = SILENT,
    cancel: CancelToken | None = None,
) -> list[OperatingPoint]:
    """Group linearization files by operating point and process each group."""
    return process_groups(
        group_lin_files(paths),
        max_threads=max_threads,
        on_error=on_error,
        verbose=verbose,
        cancel=cancel,
    )


def campbell_diagram(
    paths: Iterable[str | Path],
    options: DiagramOptions | None = None,
    max_threads: int = 0,
    on_error: str = "raise",
    verbose: int = PROGRESS,
    cancel: CancelToken | None = None,
) -> tuple[Diagram, list[OperatingPoint]]:
    """Build a Campbell diagram from linearization files.

    Parameters
    ----------
    paths : linearization files, named ``<operating point>.<step>.lin``
    options : diagram options (None = defaults)
    max_threads : worker threads for group processing (0 = auto)
    on_error : group failure policy, ``"raise"`` or ``"skip"``
    verbose : 0=silent, 1=progress bar, 2=detailed output
    cancel : optional cancellation token

    Returns
    -------
    (diagram, operating_points)
    """
    ops = process_lin_files(
        paths, max_threads=max_threads, on_error=on_error, verbose=verbose, cancel=cancel,
    )
    diagram = build_diagram(ops, options, cancel)

    if verbose >= PROGRESS:
        x = "wind speed" if diagram.has_wind else "rotor speed"
        print(f"  Campbell diagram: {len(diagram.lines)} lines over {len(ops)} points ({x})")

    return diagram, ops
