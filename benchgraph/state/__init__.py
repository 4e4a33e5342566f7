"""Consistency protocol and session state."""

from benchgraph.state.coordinator import (
    GraphTransition,
    RefetchRequest,
    ResourceKind,
    VersionState,
    observe_data_id,
    observe_graph_id,
)
from benchgraph.state.session import GraphSession

__all__ = [
    "GraphSession",
    "GraphTransition",
    "RefetchRequest",
    "ResourceKind",
    "VersionState",
    "observe_data_id",
    "observe_graph_id",
]
