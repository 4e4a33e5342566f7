"""Display ordering of commits.

The x-axis order is computed in two phases:

1. A topological sort, so that parents come before their children.
2. A stable sort by committer date. Commits with identical committer dates
   keep their relative topological order.

The topological phase is a reverse post-order depth-first search that starts
at all parentless commits. Using a stack (rather than a queue) keeps lines of
descent together. For this graph, where children are listed top to bottom,

    A - B - C
     \\       \\
      D - E - F

the order is ``A, B, C, D, E, F`` and not ``A, B, D, C, E, F``. Since ties
in the chronological phase fall back to this order, the choice is visible to
users and must not change.
"""

from typing import List

from benchgraph.errors import CycleDetectedError
from benchgraph.graph.commits import CommitGraph
from benchgraph.logging_config import LogContext, get_logger

logger = get_logger(__name__)

_UNVISITED = 0
_IN_PROGRESS = 1
_FINISHED = 2


def sort_topologically(graph: CommitGraph) -> List[int]:
    """Sort commits such that parents come before their children.

    Args:
        graph: Commit graph

    Returns:
        Hash-order indices in topological order

    Raises:
        CycleDetectedError: If the graph has a cycle, including cycles that
            are unreachable from any parentless commit
    """
    n = len(graph)
    state = [_UNVISITED] * n
    stack = graph.roots()
    finished: List[int] = []

    while stack:
        idx = stack[-1]
        current = state[idx]

        if current == _FINISHED:
            # Pushed more than once, already handled
            stack.pop()
            continue

        if current == _IN_PROGRESS:
            # All children are finished now
            stack.pop()
            state[idx] = _FINISHED
            finished.append(idx)
            continue

        state[idx] = _IN_PROGRESS
        for child in graph[idx].children:
            child_state = state[child]
            if child_state == _IN_PROGRESS:
                # In-progress commits are exactly the ancestors of idx on the stack
                raise CycleDetectedError(
                    [graph[child].hash, graph[idx].hash], graph.graph_id
                )
            if child_state == _UNVISITED:
                stack.append(child)

    if len(finished) != n:
        unreachable = [graph[i].hash for i in range(n) if state[i] != _FINISHED]
        raise CycleDetectedError(unreachable, graph.graph_id)

    finished.reverse()
    return finished


def sort_chronologically(graph: CommitGraph, order: List[int]) -> List[int]:
    """Stable sort of ``order`` by ascending committer date."""
    return sorted(order, key=lambda idx: graph[idx].committer_date)


def order_commits(graph: CommitGraph) -> List[int]:
    """Compute the display order and fill in ``index_by_graph``.

    Args:
        graph: Freshly built commit graph (not yet shared with readers)

    Returns:
        Hash-order indices in display order
    """
    with LogContext(operation="order_commits", graph_id=graph.graph_id):
        topological = sort_topologically(graph)
        ordered = sort_chronologically(graph, topological)

        for display_idx, hash_idx in enumerate(ordered):
            graph[hash_idx].index_by_graph = display_idx

        logger.debug(f"Ordered {len(ordered)} commits")
        return ordered
