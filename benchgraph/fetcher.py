"""Request the graph resources from the server.

The fetcher has two jobs:

1. Providing a typed interface for the three graph resources
2. Never sending a request for a resource that is already in flight. Callers
   asking for it again await the existing request instead.

Transport and decoding failures are reported as
:class:`~benchgraph.errors.ResourceUnavailableError`.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel

from benchgraph.config import BenchgraphConfig
from benchgraph.errors import ResourceUnavailableError
from benchgraph.http_client import get_async_client, request_with_retry
from benchgraph.logging_config import LogContext, get_logger
from benchgraph.models import CommitsResponse, MeasurementsResponse, MetricsResponse
from benchgraph.validation import validate_base_url

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

METRICS_KEY = "metrics"
COMMITS_KEY = "commits"


def measurements_key(metric: str) -> str:
    return f"measurements:{metric}"


@dataclass(frozen=True)
class MeasurementsBatch:
    """One measurements response with the metric names its request asked for."""
    metrics: Tuple[str, ...]
    response: MeasurementsResponse


class ResourceFetcher:
    """Fetch metric lists, commit graphs and measurements.

    Example:
        ```python
        fetcher = ResourceFetcher(config)
        commits, metrics = await asyncio.gather(
            fetcher.get_commits(), fetcher.get_metrics()
        )
        ```
    """

    def __init__(self, config: BenchgraphConfig, client: Optional[httpx.AsyncClient] = None):
        """Initialize fetcher.

        Args:
            config: Configuration (server location, HTTP retry policy)
            client: Optional client to use instead of the shared one
        """
        self.config = config
        self.base_url = validate_base_url(config.server.base_url)
        self._client = client
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self.requests_sent = 0

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_async_client(self.config.http)

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _start(self, keys: Iterable[str], factory: Callable[[], Awaitable[Any]]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(factory())
        for key in keys:
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    async def _request(
        self,
        resource: str,
        path: str,
        params: List[Tuple[str, Any]],
        model: type[M],
    ) -> M:
        url = urljoin(self.base_url, path)
        headers = {}
        if self.config.server.token:
            headers["Authorization"] = f"Bearer {self.config.server.token}"

        http = self.config.http
        with LogContext(operation="fetch", resource=resource):
            logger.debug(f"Requesting {url} params={params}")
            self.requests_sent += 1
            client = await self._get_client()
            try:
                response = await request_with_retry(
                    client,
                    "GET",
                    url,
                    params=params,
                    headers=headers,
                    max_retries=http.max_retries,
                    retry_delay=http.retry_delay,
                    retry_backoff=http.retry_backoff,
                    retry_max_delay=http.retry_max_delay,
                )
            except httpx.HTTPError as e:
                logger.warning(f"Could not get {resource}: {e}")
                raise ResourceUnavailableError(resource, str(e)) from e

            try:
                # JSON and pydantic validation errors are both ValueErrors
                return model.model_validate(response.json())
            except ValueError as e:
                logger.warning(f"Could not decode {resource}: {e}")
                raise ResourceUnavailableError(resource, f"bad payload: {e}") from e

    async def get_metrics(self) -> MetricsResponse:
        """Fetch the list of metric names."""
        task = self._in_flight.get(METRICS_KEY)
        if task is None:
            task = self._start(
                [METRICS_KEY],
                lambda: self._request(
                    METRICS_KEY, self.config.server.metrics_path, [], MetricsResponse
                ),
            )
        return await asyncio.shield(task)

    async def get_commits(self, max_graph_id: Optional[int] = None) -> CommitsResponse:
        """Fetch the commit graph.

        Args:
            max_graph_id: Ask the server for a graph id no greater than this
        """
        task = self._in_flight.get(COMMITS_KEY)
        if task is None:
            params: List[Tuple[str, Any]] = []
            if max_graph_id is not None:
                params.append(("graphId", max_graph_id))
            task = self._start(
                [COMMITS_KEY],
                lambda: self._request(
                    COMMITS_KEY, self.config.server.commits_path, params, CommitsResponse
                ),
            )
        return await asyncio.shield(task)

    async def _request_batch(
        self, metrics: Tuple[str, ...], params: List[Tuple[str, Any]]
    ) -> MeasurementsBatch:
        response = await self._request(
            "measurements", self.config.server.measurements_path, params, MeasurementsResponse
        )
        return MeasurementsBatch(metrics, response)

    async def get_measurements(
        self,
        metrics: Iterable[str],
        max_graph_id: Optional[int] = None,
    ) -> List[MeasurementsBatch]:
        """Fetch measurements for a set of metrics.

        Metrics whose measurements are already being requested are not asked
        for again; their in-flight responses are included in the result.

        Args:
            metrics: Metric names
            max_graph_id: Ask the server for a graph id no greater than this

        Returns:
            One batch per successful underlying request, in request order.
            Each batch carries the metric names its request asked for, so
            a name missing from a response can be told apart from a name
            whose request failed.

        Raises:
            ResourceUnavailableError: If none of the underlying requests succeeded
        """
        names = list(dict.fromkeys(metrics))
        if not names:
            return []

        tasks: List["asyncio.Task[Any]"] = []
        missing = []
        for name in names:
            task = self._in_flight.get(measurements_key(name))
            if task is None:
                missing.append(name)
            elif task not in tasks:
                tasks.append(task)

        if missing:
            params: List[Tuple[str, Any]] = [("metric", name) for name in missing]
            if max_graph_id is not None:
                params.append(("graphId", max_graph_id))
            tasks.append(
                self._start(
                    [measurements_key(name) for name in missing],
                    lambda: self._request_batch(tuple(missing), params),
                )
            )

        results = await asyncio.gather(
            *(asyncio.shield(task) for task in tasks), return_exceptions=True
        )
        batches = [r for r in results if isinstance(r, MeasurementsBatch)]
        errors = [r for r in results if isinstance(r, BaseException)]

        if errors and not batches:
            raise errors[0]
        for error in errors:
            logger.warning(f"Some measurements are unavailable: {error}")
        return batches
