"""Exception hierarchy for benchgraph."""

from typing import Optional, Sequence


class BenchgraphError(Exception):
    """Base class for all benchgraph errors."""
    pass


class MalformedGraphError(BenchgraphError):
    """Raised when a commit graph response cannot be turned into a DAG, or
    when measurements do not line up with the commits of their graph.

    The whole update is rejected; the previously built snapshot stays in use.
    """

    def __init__(self, message: str, graph_id: Optional[int] = None):
        self.graph_id = graph_id
        if graph_id is not None:
            message = f"{message} (graph id {graph_id})"
        super().__init__(message)


class CycleDetectedError(MalformedGraphError):
    """Raised when the parent/child relation contains a cycle."""

    def __init__(self, hashes: Sequence[str], graph_id: Optional[int] = None):
        self.hashes = list(hashes)
        shown = ", ".join(self.hashes[:10])
        if len(self.hashes) > 10:
            shown += f", ... ({len(self.hashes) - 10} more)"
        super().__init__(f"Cycle detected in commit graph involving: {shown}", graph_id)


class StaleVersionError(BenchgraphError):
    """Raised when a resource kept arriving with an outdated graph id."""

    def __init__(self, resource: str, attempts: int, held_graph_id: Optional[int]):
        self.resource = resource
        self.attempts = attempts
        self.held_graph_id = held_graph_id
        super().__init__(
            f"Gave up re-fetching {resource} after {attempts} attempts; "
            f"server never returned graph id {held_graph_id}"
        )


class ResourceUnavailableError(BenchgraphError):
    """Raised when a resource could not be fetched or decoded."""

    def __init__(self, resource: str, reason: str):
        self.resource = resource
        self.reason = reason
        super().__init__(f"Resource {resource} unavailable: {reason}")
