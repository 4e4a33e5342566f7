"""Consistency protocol between the three graph resources.

Every commit graph and measurements response carries a graph id, every metric
list and measurements response carries a data id.

- The graph id is incremented when the commit graph structure changes.
  Commit graph and measurements responses MUST have the same graph id to be
  combined. A response with a graph id lower than one already held is
  discarded and re-fetched with an upper bound of the held graph id.
- The data id is incremented when data changes (e.g. a new run is added).
  Metric list and measurements responses SHOULD have the same data id, but
  MAY be combined when they don't.

The state is an immutable :class:`VersionState`. Transition functions take a
state and return a new one, so the protocol can be tested without any I/O.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple


class ResourceKind(str, Enum):
    """Logical resources fetched from the server."""
    METRICS = "metrics"
    COMMITS = "commits"
    MEASUREMENTS = "measurements"


@dataclass(frozen=True)
class RefetchRequest:
    """Request to fetch ``kind`` again, asking for a graph id <= ``max_graph_id``."""
    kind: ResourceKind
    max_graph_id: Optional[int]


@dataclass(frozen=True)
class VersionState:
    """Highest observed versions plus the versions of held resources."""

    graph_id: Optional[int] = None
    data_id: Optional[int] = None
    commits_graph_id: Optional[int] = None
    measurements_graph_id: Optional[int] = None

    @property
    def can_render(self) -> bool:
        """True if the held commit graph and measurements may be combined."""
        return (
            self.commits_graph_id is not None
            and self.commits_graph_id == self.measurements_graph_id
        )

    def held_graph_id(self, kind: ResourceKind) -> Optional[int]:
        if kind == ResourceKind.COMMITS:
            return self.commits_graph_id
        if kind == ResourceKind.MEASUREMENTS:
            return self.measurements_graph_id
        raise ValueError(f"{kind.value} responses carry no graph id")

    def requires_commits(self) -> bool:
        return self.commits_graph_id is None or (
            self.graph_id is not None and self.commits_graph_id < self.graph_id
        )


@dataclass(frozen=True)
class GraphTransition:
    """Result of observing a graph id."""

    state: VersionState
    accepted: bool
    dropped: Tuple[ResourceKind, ...] = ()
    refetch: Tuple[RefetchRequest, ...] = ()


def _with_held(state: VersionState, kind: ResourceKind, graph_id: Optional[int]) -> VersionState:
    if kind == ResourceKind.COMMITS:
        return replace(state, commits_graph_id=graph_id)
    return replace(state, measurements_graph_id=graph_id)


def observe_graph_id(state: VersionState, kind: ResourceKind, graph_id: int) -> GraphTransition:
    """Decide what to do with a commit graph or measurements response.

    Args:
        state: Current version state
        kind: ``COMMITS`` or ``MEASUREMENTS``
        graph_id: Graph id stamped on the incoming response

    Returns:
        Transition with the new state. If ``accepted`` is False the response
        must be discarded. ``dropped`` lists held resources the caller must
        throw away; ``refetch`` lists the requests to issue next.
    """
    if kind not in (ResourceKind.COMMITS, ResourceKind.MEASUREMENTS):
        raise ValueError(f"{kind.value} responses carry no graph id")

    if state.graph_id is not None and graph_id < state.graph_id:
        return GraphTransition(
            state=state,
            accepted=False,
            refetch=(RefetchRequest(kind, state.graph_id),),
        )

    new_state = replace(state, graph_id=graph_id)
    new_state = _with_held(new_state, kind, graph_id)

    dropped = []
    refetch = []
    for other in (ResourceKind.COMMITS, ResourceKind.MEASUREMENTS):
        if other == kind:
            continue
        held = new_state.held_graph_id(other)
        if held is not None and held != graph_id:
            new_state = _with_held(new_state, other, None)
            dropped.append(other)
            refetch.append(RefetchRequest(other, graph_id))

    return GraphTransition(
        state=new_state,
        accepted=True,
        dropped=tuple(dropped),
        refetch=tuple(refetch),
    )


def observe_data_id(state: VersionState, data_id: int) -> VersionState:
    """Raise the data id if ``data_id`` is larger. Never rejects anything."""
    if state.data_id is None or data_id > state.data_id:
        return replace(state, data_id=data_id)
    return state
