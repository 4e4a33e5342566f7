"""benchgraph - performance history graphs for a source repository."""

__version__ = "0.1.0"

from benchgraph.dataset import PlotDataset, build_dataset
from benchgraph.errors import (
    BenchgraphError,
    CycleDetectedError,
    MalformedGraphError,
    ResourceUnavailableError,
    StaleVersionError,
)
from benchgraph.graph import CommitGraph, CommitSnapshot, build_snapshot, day_equidistant, order_commits
from benchgraph.state import GraphSession, ResourceKind, VersionState

__all__ = [
    "BenchgraphError",
    "CommitGraph",
    "CommitSnapshot",
    "CycleDetectedError",
    "GraphSession",
    "MalformedGraphError",
    "PlotDataset",
    "ResourceKind",
    "ResourceUnavailableError",
    "StaleVersionError",
    "VersionState",
    "build_dataset",
    "build_snapshot",
    "day_equidistant",
    "order_commits",
]
