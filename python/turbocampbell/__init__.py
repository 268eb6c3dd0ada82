"""Turbocampbell: Campbell diagrams from rotating-frame wind turbine linearizations."""

from turbocampbell.assignment import INVALID, AssignmentError, min_cost_assignment
from turbocampbell.cancel import CancelledError, CancelToken
from turbocampbell.linfile import (
    LinFileError,
    Snapshot,
    StateDescriptor,
    group_lin_files,
    read_lin_file,
    write_lin_file,
)
from turbocampbell.ordering import StateOrdering, combine_orderings, new_state_ordering
from turbocampbell.mbc import AggregatedSeries, NonRotatingModel, mbc3
from turbocampbell.eigen import Mode, eigen_analysis, mac
from turbocampbell.tracking import ModeSet, TrackingOptions, track_modes
from turbocampbell.cluster import ClusterConfig, cluster_modes
from turbocampbell.diagram import Diagram, DiagramOptions, Line, Point, build_diagram
from turbocampbell.solver import (
    GroupProcessingError,
    OperatingPoint,
    campbell_diagram,
    process_group,
    process_groups,
    process_lin_files,
)

# Optional-dependency modules: h5py / matplotlib are imported on first use
from turbocampbell.dataset import DatasetConfig, export_results, load_results
from turbocampbell.viz import plot_campbell

__version__ = "0.1.0"

__all__ = [
    # Assignment
    "INVALID",
    "AssignmentError",
    "min_cost_assignment",
    # Cancellation
    "CancelToken",
    "CancelledError",
    # Linearization files
    "LinFileError",
    "Snapshot",
    "StateDescriptor",
    "group_lin_files",
    "read_lin_file",
    "write_lin_file",
    # MBC transform & eigen-analysis
    "StateOrdering",
    "combine_orderings",
    "new_state_ordering",
    "AggregatedSeries",
    "NonRotatingModel",
    "mbc3",
    "Mode",
    "eigen_analysis",
    "mac",
    # Tracking
    "ModeSet",
    "TrackingOptions",
    "track_modes",
    "ClusterConfig",
    "cluster_modes",
    # Diagram
    "Diagram",
    "DiagramOptions",
    "Line",
    "Point",
    "build_diagram",
    # Solver
    "GroupProcessingError",
    "OperatingPoint",
    "campbell_diagram",
    "process_group",
    "process_groups",
    "process_lin_files",
    # Dataset & visualization
    "DatasetConfig",
    "export_results",
    "load_results",
    "plot_campbell",
]
