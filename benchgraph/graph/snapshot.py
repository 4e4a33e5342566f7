"""Immutable view of an ordered commit graph.

A snapshot bundles everything the renderer needs from one accepted commit
graph response: the display-ordered commits, both coordinate variants and the
permutation between hash order and display order. Snapshots are never
mutated; a fresher commit graph produces a new snapshot.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, TypeVar

from benchgraph.errors import MalformedGraphError
from benchgraph.graph.commits import Commit, CommitGraph, build_commit_graph
from benchgraph.graph.equidistant import day_equidistant
from benchgraph.graph.ordering import order_commits
from benchgraph.logging_config import get_logger
from benchgraph.models import CommitsResponse

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CommitSnapshot:
    """Display-ordered commits of one commit graph version."""

    graph_id: int
    commits: Tuple[Commit, ...]
    x_exact: Tuple[float, ...]
    x_equidistant: Tuple[float, ...]
    display_by_hash: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.commits)

    def find(self, commit_hash: str) -> Optional[Commit]:
        for commit in self.commits:
            if commit.hash == commit_hash:
                return commit
        return None

    def hashes(self) -> List[str]:
        return [c.hash for c in self.commits]


def snapshot_from_graph(graph: CommitGraph, graph_id: int) -> CommitSnapshot:
    """Order ``graph`` and compute both coordinate variants."""
    ordered = order_commits(graph)
    commits = tuple(graph[idx] for idx in ordered)
    timestamps = [c.committer_date for c in commits]

    display_by_hash = [0] * len(graph)
    for display_idx, hash_idx in enumerate(ordered):
        display_by_hash[hash_idx] = display_idx

    return CommitSnapshot(
        graph_id=graph_id,
        commits=commits,
        x_exact=tuple(float(t) for t in timestamps),
        x_equidistant=tuple(day_equidistant(timestamps)),
        display_by_hash=tuple(display_by_hash),
    )


def build_snapshot(response: CommitsResponse) -> CommitSnapshot:
    """Run the whole pipeline for a commit graph response.

    Raises:
        MalformedGraphError: If the response does not describe a DAG
    """
    graph = build_commit_graph(response)
    return snapshot_from_graph(graph, response.graph_id)


def reindex_to_display(values: Sequence[T], snapshot: CommitSnapshot) -> List[T]:
    """Permute a hash-order array into display order.

    Raises:
        MalformedGraphError: If the array length does not match the commit count
    """
    if len(values) != len(snapshot):
        raise MalformedGraphError(
            f"Expected {len(snapshot)} values but got {len(values)}", snapshot.graph_id
        )
    result: List[T] = [None] * len(values)  # type: ignore[list-item]
    for hash_idx, value in enumerate(values):
        result[snapshot.display_by_hash[hash_idx]] = value
    return result


def reindex_to_hash(values: Sequence[T], snapshot: CommitSnapshot) -> List[T]:
    """Inverse of :func:`reindex_to_display`."""
    if len(values) != len(snapshot):
        raise MalformedGraphError(
            f"Expected {len(snapshot)} values but got {len(values)}", snapshot.graph_id
        )
    return [values[snapshot.display_by_hash[hash_idx]] for hash_idx in range(len(values))]
