"""Commit graph construction, ordering and x coordinates."""

from benchgraph.graph.commits import Commit, CommitGraph, build_commit_graph
from benchgraph.graph.equidistant import SECONDS_PER_DAY, day_equidistant
from benchgraph.graph.ordering import order_commits, sort_chronologically, sort_topologically
from benchgraph.graph.snapshot import (
    CommitSnapshot,
    build_snapshot,
    reindex_to_display,
    reindex_to_hash,
    snapshot_from_graph,
)

__all__ = [
    "Commit",
    "CommitGraph",
    "CommitSnapshot",
    "SECONDS_PER_DAY",
    "build_commit_graph",
    "build_snapshot",
    "day_equidistant",
    "order_commits",
    "reindex_to_display",
    "reindex_to_hash",
    "snapshot_from_graph",
    "sort_chronologically",
    "sort_topologically",
]
