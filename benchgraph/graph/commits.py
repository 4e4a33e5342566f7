"""Build the commit DAG from a commit graph response.

Commits live in an arena (a list indexed by hash-order index). Parent and
child relations are stored as lists of arena indices on both endpoints, so
the structure contains no reference cycles.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from benchgraph.errors import MalformedGraphError
from benchgraph.logging_config import get_logger
from benchgraph.models import CommitsResponse

logger = get_logger(__name__)


@dataclass
class Commit:
    """A single repository commit.

    ``index_by_graph`` is -1 until the orderer assigns the display index.
    """

    index_by_hash: int
    hash: str
    author: str
    committer_date: int
    summary: str
    parents: List[int] = field(default_factory=list)
    children: List[int] = field(default_factory=list)
    index_by_graph: int = -1

    @property
    def short_hash(self) -> str:
        return self.hash[:8]


@dataclass
class CommitGraph:
    """Commit DAG in hash order."""

    commits: List[Commit]
    graph_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.commits)

    def __getitem__(self, index: int) -> Commit:
        return self.commits[index]

    def roots(self) -> List[int]:
        """Indices of commits without parents, in hash order."""
        return [c.index_by_hash for c in self.commits if not c.parents]

    def edge_count(self) -> int:
        return sum(len(c.parents) for c in self.commits)

    @classmethod
    def from_records(
        cls,
        hashes: Sequence[str],
        authors: Sequence[str],
        committer_dates: Sequence[int],
        summaries: Sequence[str],
        child_parent_pairs: Iterable[Tuple[int, int]],
        graph_id: Optional[int] = None,
    ) -> "CommitGraph":
        """Create a graph from parallel hash-order arrays and index pairs.

        Args:
            hashes: Commit hashes in hash order
            authors: Authors, aligned to ``hashes``
            committer_dates: Committer timestamps in seconds, aligned to ``hashes``
            summaries: Summary lines, aligned to ``hashes``
            child_parent_pairs: ``(child_index, parent_index)`` pairs
            graph_id: Graph id of the response the records came from

        Returns:
            CommitGraph with symmetric parent/child links

        Raises:
            MalformedGraphError: If the arrays differ in length, a hash is
                duplicated or an edge references an index out of range
        """
        n = len(hashes)
        lengths = {
            "authorByHash": len(authors),
            "committerDateByHash": len(committer_dates),
            "summaryByHash": len(summaries),
        }
        for name, length in lengths.items():
            if length != n:
                raise MalformedGraphError(
                    f"{name} has {length} entries but hashByHash has {n}", graph_id
                )

        commits: List[Commit] = []
        seen = set()
        for idx, commit_hash in enumerate(hashes):
            if commit_hash in seen:
                raise MalformedGraphError(f"Duplicate commit hash {commit_hash}", graph_id)
            seen.add(commit_hash)
            commits.append(
                Commit(
                    index_by_hash=idx,
                    hash=commit_hash,
                    author=authors[idx],
                    committer_date=int(committer_dates[idx]),
                    summary=summaries[idx],
                )
            )

        for child_idx, parent_idx in child_parent_pairs:
            if not (0 <= child_idx < n and 0 <= parent_idx < n):
                raise MalformedGraphError(
                    f"Edge ({child_idx}, {parent_idx}) references a commit outside 0..{n - 1}",
                    graph_id,
                )
            commits[child_idx].parents.append(parent_idx)
            commits[parent_idx].children.append(child_idx)

        return cls(commits=commits, graph_id=graph_id)


def build_commit_graph(response: CommitsResponse) -> CommitGraph:
    """Build the commit DAG for a ``graph/commits`` response."""
    graph = CommitGraph.from_records(
        response.hash_by_hash,
        response.author_by_hash,
        response.committer_date_by_hash,
        response.summary_by_hash,
        response.child_parent_index_pairs,
        graph_id=response.graph_id,
    )
    logger.debug(
        f"Built commit graph {response.graph_id} with {len(graph)} commits "
        f"and {graph.edge_count()} edges"
    )
    return graph
