"""Graph session: keeps the three resources consistent and produces datasets.

A session owns the current :class:`VersionState`, the current commit snapshot
and the held measurements. :meth:`GraphSession.refresh` requests whatever is
missing or outdated, feeds every response through the consistency
coordinator and, once the held commit graph and measurements share a graph
id, builds a new :class:`~benchgraph.dataset.PlotDataset`.

Snapshots and datasets are replaced wholesale. If anything goes wrong while
processing a response, the previous snapshot and dataset stay in place.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from benchgraph.config import BenchgraphConfig
from benchgraph.dataset import PlotDataset, build_dataset
from benchgraph.errors import MalformedGraphError, ResourceUnavailableError, StaleVersionError
from benchgraph.graph.snapshot import CommitSnapshot, build_snapshot
from benchgraph.logging_config import LogContext, get_logger
from benchgraph.metrics import MetricCatalog
from benchgraph.models import CommitsResponse, MeasurementsResponse, MetricsResponse
from benchgraph.state.coordinator import (
    GraphTransition,
    ResourceKind,
    VersionState,
    observe_data_id,
    observe_graph_id,
)

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class GraphSession:
    """Client-side state for one graph page.

    Example:
        ```python
        session = GraphSession(ResourceFetcher(config), config)
        dataset = await session.refresh(["build/time"])
        ```
    """

    def __init__(
        self,
        fetcher: Any,
        config: Optional[BenchgraphConfig] = None,
        catalog: Optional[MetricCatalog] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize session.

        Args:
            fetcher: Object with ``get_metrics``, ``get_commits`` and
                ``get_measurements`` coroutines (usually a ResourceFetcher)
            config: Configuration, defaults are used if omitted
            catalog: Metric catalog to keep up to date
            sleep: Coroutine used for backoff delays
        """
        self.fetcher = fetcher
        self.config = config or BenchgraphConfig()
        self.catalog = catalog or MetricCatalog(
            separator=self.config.metrics.separator,
            refresh_on_new_data=self.config.metrics.refresh_on_new_data,
        )
        self._sleep = sleep

        self.state = VersionState()
        self.snapshot: Optional[CommitSnapshot] = None
        self.dataset: Optional[PlotDataset] = None

        # Hash-order values, all at state.measurements_graph_id
        self._measurements: Dict[str, List[Optional[float]]] = {}
        self._unknown_metrics: Set[str] = set()
        self._bounds: Dict[ResourceKind, int] = {}
        self._attempts: Dict[ResourceKind, int] = {
            ResourceKind.COMMITS: 0,
            ResourceKind.MEASUREMENTS: 0,
        }

    @property
    def can_render(self) -> bool:
        return (
            self.state.can_render
            and self.snapshot is not None
            and self.snapshot.graph_id == self.state.commits_graph_id
        )

    def held_metrics(self) -> Set[str]:
        if self.state.measurements_graph_id is None:
            return set()
        return set(self._measurements)

    # ------------------------------------------------------------------
    # Response handling (synchronous, never suspends)
    # ------------------------------------------------------------------

    def _schedule_refetch(self, transition: GraphTransition) -> None:
        max_attempts = self.config.consistency.max_refetch_attempts
        for request in transition.refetch:
            self._attempts[request.kind] += 1
            if request.max_graph_id is not None:
                self._bounds[request.kind] = request.max_graph_id
            if self._attempts[request.kind] > max_attempts:
                attempts = self._attempts[request.kind] - 1
                # The next refresh starts with a fresh budget
                self._attempts[request.kind] = 0
                raise StaleVersionError(request.kind.value, attempts, self.state.graph_id)

    def _apply(self, transition: GraphTransition) -> None:
        self.state = transition.state
        if ResourceKind.MEASUREMENTS in transition.dropped:
            logger.info("Dropping measurements with an outdated graph id")
            self._measurements = {}
        if ResourceKind.COMMITS in transition.dropped:
            logger.info("Commit graph is outdated, re-fetching")

    def _drop_misaligned_measurements(self, snapshot: CommitSnapshot) -> None:
        if self.state.measurements_graph_id != snapshot.graph_id:
            return
        misaligned = sorted(
            name for name, values in self._measurements.items() if len(values) != len(snapshot)
        )
        if misaligned:
            logger.error(
                f"Measurements for {', '.join(misaligned)} do not match the "
                f"{len(snapshot)} commits of graph {snapshot.graph_id}, re-fetching"
            )
            for name in misaligned:
                del self._measurements[name]

    def _check_lengths(self, response: MeasurementsResponse) -> None:
        snapshot = self.snapshot
        if snapshot is None or snapshot.graph_id != response.graph_id:
            return
        for name, values in response.measurements.items():
            if len(values) != len(snapshot):
                error = MalformedGraphError(
                    f"metric {name!r} has {len(values)} values, expected {len(snapshot)}",
                    graph_id=response.graph_id,
                )
                logger.error(f"Rejecting measurements: {error}")
                raise error

    def handle_metrics(self, response: MetricsResponse) -> None:
        self.state = observe_data_id(self.state, response.data_id)
        self.catalog.update(response)
        logger.debug(f"Loaded {len(response.metrics)} metric names (data id {response.data_id})")

    def handle_commits(self, response: CommitsResponse) -> bool:
        """Process a commit graph response.

        Returns:
            True if the response was accepted

        Raises:
            MalformedGraphError: If the graph is not a DAG. Nothing is changed.
            StaleVersionError: If re-fetch attempts are exhausted. The
                response has been applied by then.
        """
        with LogContext(resource="commits", graph_id=response.graph_id):
            transition = observe_graph_id(self.state, ResourceKind.COMMITS, response.graph_id)
            if not transition.accepted:
                logger.warning(
                    f"Discarding commit graph {response.graph_id}, "
                    f"already have graph id {self.state.graph_id}"
                )
                self._schedule_refetch(transition)
                return False

            # Build before touching any state so a bad graph leaves everything as is
            try:
                snapshot = build_snapshot(response)
            except MalformedGraphError as e:
                logger.error(f"Rejecting commit graph: {e}")
                raise

            self._apply(transition)
            self.snapshot = snapshot
            self._bounds.pop(ResourceKind.COMMITS, None)
            self._drop_misaligned_measurements(snapshot)
            logger.info(f"Accepted commit graph with {len(snapshot)} commits")

            self._schedule_refetch(transition)
            return True

    def handle_measurements(self, response: MeasurementsResponse) -> bool:
        """Process a measurements response.

        Returns:
            True if the response was accepted

        Raises:
            MalformedGraphError: If a series does not have one value per
                commit of the held graph. Nothing is changed.
            StaleVersionError: If re-fetch attempts are exhausted
        """
        with LogContext(resource="measurements", graph_id=response.graph_id):
            previous = self.state.measurements_graph_id
            transition = observe_graph_id(
                self.state, ResourceKind.MEASUREMENTS, response.graph_id
            )
            if not transition.accepted:
                logger.warning(
                    f"Discarding measurements for graph id {response.graph_id}, "
                    f"already have graph id {self.state.graph_id}"
                )
                self._schedule_refetch(transition)
                return False

            self._check_lengths(response)

            if previous is not None and previous != response.graph_id:
                self._measurements = {}

            self._apply(transition)
            self.state = observe_data_id(self.state, response.data_id)
            self._measurements.update(
                {name: list(values) for name, values in response.measurements.items()}
            )
            self._bounds.pop(ResourceKind.MEASUREMENTS, None)

            self._schedule_refetch(transition)
            return True

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _backoff(self, kind: ResourceKind) -> None:
        delay = self.config.consistency.delay_for(self._attempts[kind])
        if delay > 0:
            logger.debug(f"Waiting {delay:.2f}s before re-fetching {kind.value}")
            await self._sleep(delay)

    async def _load_metrics(self) -> None:
        self.handle_metrics(await self.fetcher.get_metrics())

    async def _load_commits(self) -> None:
        await self._backoff(ResourceKind.COMMITS)
        bound = self._bounds.get(ResourceKind.COMMITS)
        self.handle_commits(await self.fetcher.get_commits(max_graph_id=bound))

    async def _load_measurements(self, metrics: List[str]) -> None:
        await self._backoff(ResourceKind.MEASUREMENTS)
        bound = self._bounds.get(ResourceKind.MEASUREMENTS)
        batches = await self.fetcher.get_measurements(metrics, max_graph_id=bound)

        requested: Set[str] = set()
        received: Set[str] = set()
        for batch in batches:
            if self.handle_measurements(batch.response):
                requested.update(batch.metrics)
                received.update(batch.response.measurements)

        # Only names the server left out of an accepted answer to their own request
        unknown = requested - received
        if unknown:
            logger.warning(f"Server has no measurements for: {', '.join(sorted(unknown))}")
            self._unknown_metrics |= unknown

    def _needs_commits(self) -> bool:
        return self.state.requires_commits()

    def _missing_metrics(self, wanted: Set[str]) -> List[str]:
        return sorted(wanted - self.held_metrics() - self._unknown_metrics)

    async def refresh(self, metrics: Optional[Iterable[str]] = None) -> Optional[PlotDataset]:
        """Request missing or outdated resources and rebuild the dataset.

        Args:
            metrics: Metrics to show, defaults to the catalog selection

        Returns:
            The newest consistent dataset, or the previous one if no new
            consistent combination could be obtained. None if nothing could
            be rendered yet.

        Raises:
            MalformedGraphError: If the server sent an invalid commit graph or
                measurements that do not fit it
            StaleVersionError: If responses kept arriving with outdated graph ids.
                Responses accepted up to that point are kept.
        """
        wanted = set(metrics) if metrics is not None else self.catalog.selected()
        metrics_requested = False

        while True:
            jobs = []
            # The metric list's data id may lag behind the measurements', so ask once per refresh
            if not metrics_requested and self.catalog.requires_update(self.state.data_id):
                metrics_requested = True
                jobs.append(self._load_metrics())
            if self._needs_commits():
                jobs.append(self._load_commits())
            missing = self._missing_metrics(wanted)
            if missing:
                jobs.append(self._load_measurements(missing))

            if not jobs:
                break

            results = await asyncio.gather(*jobs, return_exceptions=True)

            unavailable = False
            for result in results:
                if isinstance(result, ResourceUnavailableError):
                    logger.warning(f"{result}; keeping the last consistent dataset")
                    unavailable = True
                elif isinstance(result, BaseException):
                    raise result
            if unavailable:
                break

        snapshot = self.snapshot
        if not self.can_render or snapshot is None:
            logger.debug("No consistent combination of commits and measurements yet")
            return self.dataset

        held = {name: values for name, values in self._measurements.items() if name in wanted}
        self.dataset = build_dataset(snapshot, held, self.state.data_id)
        for kind in self._attempts:
            self._attempts[kind] = 0
        logger.info(
            f"Built dataset for graph id {self.dataset.graph_id} "
            f"with {len(held)} metric(s) and {len(self.dataset)} commits"
        )
        return self.dataset
