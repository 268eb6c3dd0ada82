"""Visualization for turbocampbell: Campbell and damping diagrams."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from turbocampbell.diagram import Diagram


def _line_colors(n: int):
    import matplotlib.pyplot as plt

    # Use a colormap with enough distinct colors
    if n <= 10:
        cmap = plt.cm.tab10
    elif n <= 20:
        cmap = plt.cm.tab20
    else:
        return [plt.cm.turbo(i / max(n - 1, 1)) for i in range(n)]
    return [cmap(i % cmap.N) for i in range(n)]


def plot_campbell(
    diagram: Diagram,
    per_rev: Sequence[int] | None = None,
    max_freq: float | None = None,
    show_damping: bool = True,
    figsize: tuple[float, float] = (12, 8),
    hidden: Sequence[int] = (),
):
    """Plot a Campbell diagram and, optionally, the damping of each line.

    Parameters
    ----------
    diagram : output of build_diagram() or campbell_diagram()
    per_rev : rotor harmonics to overlay as nP excitation lines (e.g. [1, 3, 6]).
        Only drawn against rotor speed.
    max_freq : maximum frequency for y-axis (None = auto)
    show_damping : add a second axis with damping ratio per line
    figsize : matplotlib figure size
    hidden : line IDs to leave out

    Returns
    -------
    matplotlib Figure
    """
    import matplotlib.pyplot as plt

    if show_damping:
        fig, (ax, ax_d) = plt.subplots(2, 1, figsize=figsize, sharex=True)
    else:
        fig, ax = plt.subplots(figsize=figsize)
        ax_d = None

    if diagram.num_ops == 0:
        return fig

    x_all = diagram.abscissa
    x_label = "Wind speed (m/s)" if diagram.has_wind else "Rotor speed (RPM)"
    hidden_ids = set(hidden)
    lines = [ln for ln in diagram.lines if ln.id not in hidden_ids]
    colors = _line_colors(len(lines))

    for color, line in zip(colors, lines):
        if not line.points:
            continue
        x = x_all[line.ops()]
        ax.plot(x, line.frequencies(), "-", color=color, linewidth=1.2,
                marker=".", markersize=4, label=line.label)
        if ax_d is not None:
            ax_d.plot(x, 100.0 * line.damping(), "-", color=color, linewidth=1.2,
                      marker=".", markersize=4)

    # Per-revolution excitation lines
    if per_rev and not diagram.has_wind:
        rpm = np.asarray(diagram.rotor_speeds)
        rpm_line = np.linspace(rpm.min(), rpm.max(), 50)
        for n in per_rev:
            p_freq = n * rpm_line / 60.0
            ax.plot(rpm_line, p_freq, "k:", linewidth=0.8, alpha=0.4)
            y_pos = p_freq[-1]
            if max_freq and y_pos > max_freq:
                cross = np.where(p_freq <= max_freq)[0]
                if len(cross) > 0:
                    idx = cross[-1]
                    ax.text(rpm_line[idx], p_freq[idx], f" {n}P",
                            fontsize=8, va="bottom", alpha=0.6)
            else:
                ax.text(rpm_line[-1], y_pos, f" {n}P",
                        fontsize=8, va="center", alpha=0.6)

    ax.set_ylabel("Natural frequency (Hz)", fontsize=11)
    ax.set_title("Campbell Diagram", fontsize=13)
    if x_all.size > 1 and np.ptp(x_all) > 0:
        ax.set_xlim(np.nanmin(x_all), np.nanmax(x_all))
    if max_freq:
        ax.set_ylim(0, max_freq)
    else:
        ax.set_ylim(bottom=0)
    if lines:
        ax.legend(loc="upper left", fontsize=7, ncol=3, framealpha=0.8)
    ax.grid(True, alpha=0.3)

    if ax_d is not None:
        ax_d.set_ylabel("Damping ratio (%)", fontsize=11)
        ax_d.set_xlabel(x_label, fontsize=11)
        ax_d.grid(True, alpha=0.3)
    else:
        ax.set_xlabel(x_label, fontsize=11)

    fig.tight_layout()
    return fig
