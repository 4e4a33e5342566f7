"""Unit tests for GraphSession."""

from unittest.mock import patch

import pytest

from benchgraph.errors import MalformedGraphError, ResourceUnavailableError, StaleVersionError
from benchgraph.fetcher import MeasurementsBatch
from benchgraph.models import CommitsResponse
from benchgraph.state.coordinator import ResourceKind
from benchgraph.state.session import GraphSession
from tests.factories import (
    make_commits_response,
    make_measurements_response,
    make_metrics_response,
)


def _history(graph_id):
    return make_commits_response(
        [("c", 300, ["b"]), ("b", 200, ["a"]), ("a", 100, [])],
        graph_id=graph_id,
    )


class FakeFetcher:
    """Serves queued responses and records the requests made."""

    def __init__(self, commits=(), measurements=(), metrics=None):
        self.metrics = metrics or make_metrics_response(["m", "n"])
        self.commits = list(commits)
        self.measurements = list(measurements)
        self.metrics_calls = 0
        self.commit_bounds = []
        self.measurement_calls = []

    async def get_metrics(self):
        self.metrics_calls += 1
        return self.metrics

    async def get_commits(self, max_graph_id=None):
        self.commit_bounds.append(max_graph_id)
        item = self.commits.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def get_measurements(self, metrics, max_graph_id=None):
        self.measurement_calls.append((list(metrics), max_graph_id))
        item = self.measurements.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, list):
            return item
        return [MeasurementsBatch(tuple(metrics), item)]


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestHandlers:
    """Test the synchronous response handlers."""

    def test_outdated_measurements_are_discarded(self, fast_config):
        """Commits at graph id 5, then measurements at 4: nothing renders."""
        session = GraphSession(FakeFetcher(), fast_config)

        assert session.handle_commits(_history(5))
        assert not session.handle_measurements(
            make_measurements_response({"m": [1.0, 2.0, 3.0]}, graph_id=4)
        )

        assert not session.can_render
        assert session.held_metrics() == set()
        assert session.state.graph_id == 5

    def test_matching_graph_ids_render(self, fast_config):
        session = GraphSession(FakeFetcher(), fast_config)

        session.handle_commits(_history(5))
        session.handle_measurements(make_measurements_response({"m": [1.0, 2.0, 3.0]}, graph_id=5))

        assert session.can_render
        assert session.held_metrics() == {"m"}

    def test_data_id_follows_accepted_measurements(self, fast_config):
        """A discarded response doesn't advance the data id."""
        session = GraphSession(FakeFetcher(), fast_config)
        session.handle_commits(_history(5))

        session.handle_measurements(
            make_measurements_response({"m": [1.0, 2.0, 3.0]}, graph_id=4, data_id=9)
        )
        assert session.state.data_id is None

        session.handle_measurements(
            make_measurements_response({"m": [1.0, 2.0, 3.0]}, graph_id=5, data_id=3)
        )
        assert session.state.data_id == 3

    def test_malformed_graph_changes_nothing(self, fast_config):
        session = GraphSession(FakeFetcher(), fast_config)
        session.handle_commits(_history(1))
        before = session.state

        cyclic = CommitsResponse(
            graph_id=2,
            hash_by_hash=["a", "b"],
            author_by_hash=["x", "y"],
            committer_date_by_hash=[1, 2],
            summary_by_hash=["s", "t"],
            child_parent_index_pairs=[(0, 1), (1, 0)],
        )
        with pytest.raises(MalformedGraphError):
            session.handle_commits(cyclic)

        assert session.state == before
        assert session.snapshot.graph_id == 1

    def test_measurements_of_wrong_length_are_rejected(self, fast_config):
        """A series must have one value per commit of the held graph."""
        session = GraphSession(FakeFetcher(), fast_config)
        session.handle_commits(_history(1))
        session.handle_measurements(make_measurements_response({"m": [1.0, 2.0, 3.0]}, graph_id=1))
        before = session.state

        with pytest.raises(MalformedGraphError):
            session.handle_measurements(
                make_measurements_response({"n": [1.0]}, graph_id=1, data_id=4)
            )

        assert session.state == before
        assert session.held_metrics() == {"m"}

    def test_commits_drop_measurements_of_wrong_length(self, fast_config):
        """Measurements that arrived first are checked once their graph is known."""
        session = GraphSession(FakeFetcher(), fast_config)
        session.handle_measurements(
            make_measurements_response({"m": [1.0, 2.0, 3.0], "n": [1.0]}, graph_id=2)
        )

        session.handle_commits(_history(2))

        assert session.held_metrics() == {"m"}


class TestRefresh:
    """Test the fetch/coordinate/render loop."""

    @pytest.mark.asyncio
    async def test_renders_consistent_data(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1)],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["m"])

        assert dataset.graph_id == 1
        assert [c.hash for c in dataset.commits] == ["a", "b", "c"]
        assert dataset.series == {"m": (1.0, 2.0, 3.0)}
        assert fetcher.metrics_calls == 1

    @pytest.mark.asyncio
    async def test_refetches_outdated_measurements_bounded_by_held_graph_id(self, fast_config):
        """Measurements at 4 after commits at 5 are re-fetched with graphId=5."""
        fetcher = FakeFetcher(
            commits=[_history(5)],
            measurements=[
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=4),
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=5),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["m"])

        assert fetcher.measurement_calls == [(["m"], None), (["m"], 5)]
        assert dataset.graph_id == 5
        assert dataset.series["m"] == (1.0, 2.0, 3.0)

    @pytest.mark.asyncio
    async def test_newer_measurements_make_commits_refetch(self, fast_config):
        """Measurements at a newer graph id drop the held commit graph."""
        fetcher = FakeFetcher(
            commits=[_history(4), _history(5)],
            measurements=[make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=5)],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["m"])

        assert fetcher.commit_bounds == [None, 5]
        assert dataset.graph_id == 5
        assert session.snapshot.graph_id == 5

    @pytest.mark.asyncio
    async def test_backoff_between_refetches(self, fast_config):
        fast_config.consistency.refetch_base_delay = 0.5
        sleep = RecordingSleep()
        fetcher = FakeFetcher(
            commits=[_history(5)],
            measurements=[
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=3),
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=4),
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=5),
            ],
        )
        session = GraphSession(fetcher, fast_config, sleep=sleep)

        await session.refresh(["m"])

        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, fast_config):
        """A server stuck on an old graph id ends in StaleVersionError."""
        fast_config.consistency.max_refetch_attempts = 2
        fetcher = FakeFetcher(
            commits=[_history(5)],
            measurements=[
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=4)
                for _ in range(5)
            ],
        )
        session = GraphSession(fetcher, fast_config)

        with pytest.raises(StaleVersionError) as exc_info:
            await session.refresh(["m"])

        assert exc_info.value.resource == "measurements"
        assert len(fetcher.measurement_calls) == 3
        assert session.dataset is None

    @pytest.mark.asyncio
    async def test_unavailable_resource_keeps_last_dataset(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1),
                ResourceUnavailableError("measurements", "connection refused"),
            ],
        )
        session = GraphSession(fetcher, fast_config)
        first = await session.refresh(["m"])

        second = await session.refresh(["m", "n"])

        assert second == first
        assert second.metrics() == ["m"]

    @pytest.mark.asyncio
    async def test_malformed_graph_keeps_last_dataset(self, fast_config):
        """A cyclic commit graph is rejected and the old snapshot stays."""
        cyclic = CommitsResponse(
            graph_id=2,
            hash_by_hash=["c", "b", "a"],
            author_by_hash=["x", "y", "z"],
            committer_date_by_hash=[3, 2, 1],
            summary_by_hash=["s", "t", "u"],
            child_parent_index_pairs=[(0, 1), (1, 0)],
        )
        fetcher = FakeFetcher(
            commits=[_history(1), cyclic],
            measurements=[
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1),
                make_measurements_response({"n": [1.0, 1.0, 1.0]}, graph_id=2),
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=2),
            ],
        )
        session = GraphSession(fetcher, fast_config)
        first = await session.refresh(["m"])

        with pytest.raises(MalformedGraphError):
            await session.refresh(["m", "n"])

        assert session.snapshot.graph_id == 1
        assert session.dataset is first

    @pytest.mark.asyncio
    async def test_unknown_metrics_are_not_requested_again(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1)],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["ghost", "m"])
        await session.refresh(["ghost", "m"])

        assert dataset.metrics() == ["m"]
        assert fetcher.measurement_calls == [(["ghost", "m"], None)]

    @pytest.mark.asyncio
    async def test_metric_list_is_loaded_once(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1, data_id=1),
                make_measurements_response({"n": [1.0, 1.0, 1.0]}, graph_id=1, data_id=2),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        await session.refresh(["m"])
        await session.refresh(["m", "n"])

        assert fetcher.metrics_calls == 1
        assert session.catalog.data_id == 1
        assert session.state.data_id == 2

    @pytest.mark.asyncio
    async def test_defaults_to_catalog_selection(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[make_measurements_response({"n": [1.0, 2.0, 3.0]}, graph_id=1)],
        )
        session = GraphSession(fetcher, fast_config)
        session.catalog.select("n")

        dataset = await session.refresh()

        assert dataset.metrics() == ["n"]

    @pytest.mark.asyncio
    async def test_commits_accepted_before_giving_up_are_kept(self, fast_config):
        """Running out of attempts after accepting a newer graph keeps that graph."""
        fast_config.consistency.max_refetch_attempts = 1
        fetcher = FakeFetcher(
            commits=[_history(2), _history(4)],
            measurements=[
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=1),
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=3),
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=3),
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=4),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        with pytest.raises(StaleVersionError):
            await session.refresh(["m"])

        assert session.snapshot.graph_id == 4
        assert session.state.commits_graph_id == 4

        # The next refresh starts with a fresh budget and keeps the held graph
        dataset = await session.refresh(["m"])

        assert dataset.graph_id == 4
        assert dataset.series["m"] == (1.0, 2.0, 3.0)
        assert fetcher.commit_bounds == [None, 3]
        assert fetcher.measurement_calls[-2:] == [(["m"], 4), (["m"], 4)]

    @pytest.mark.asyncio
    async def test_metrics_answered_by_separate_responses_are_not_unknown(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[
                [
                    MeasurementsBatch(
                        ("m",), make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=1)
                    ),
                    MeasurementsBatch(
                        ("n",), make_measurements_response({"n": [1.0, 1.0, 1.0]}, graph_id=1)
                    ),
                ]
            ],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["m", "n"])

        assert dataset.metrics() == ["m", "n"]
        assert session.held_metrics() == {"m", "n"}
        assert len(fetcher.measurement_calls) == 1

    @pytest.mark.asyncio
    async def test_outdated_batch_does_not_mark_metrics_unknown(self, fast_config):
        """Names from a discarded response are requested again, not given up on."""
        fetcher = FakeFetcher(
            commits=[_history(5)],
            measurements=[
                [
                    MeasurementsBatch(
                        ("n",), make_measurements_response({"n": [1.0, 1.0, 1.0]}, graph_id=4)
                    ),
                    MeasurementsBatch(
                        ("m",), make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=5)
                    ),
                ],
                make_measurements_response({"n": [1.0, 2.0, 3.0]}, graph_id=5),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        dataset = await session.refresh(["m", "n"])

        assert dataset.metrics() == ["m", "n"]
        assert fetcher.measurement_calls == [(["m", "n"], None), (["n"], None)]

    @pytest.mark.asyncio
    async def test_wrong_length_measurements_are_requested_again(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(1)],
            measurements=[
                make_measurements_response({"m": [3.0, 2.0, 1.0], "n": [1.0]}, graph_id=1),
                make_measurements_response({"m": [3.0, 2.0, 1.0], "n": [1.0, 1.0, 1.0]}, graph_id=1),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        with pytest.raises(MalformedGraphError):
            await session.refresh(["m", "n"])
        assert session.dataset is None

        dataset = await session.refresh(["m", "n"])

        assert fetcher.measurement_calls == [(["m", "n"], None), (["m", "n"], None)]
        assert dataset.metrics() == ["m", "n"]

    @pytest.mark.asyncio
    async def test_attempts_survive_a_failed_build(self, fast_config):
        fetcher = FakeFetcher(
            commits=[_history(5)],
            measurements=[
                make_measurements_response({"m": [1.0, 1.0, 1.0]}, graph_id=4),
                make_measurements_response({"m": [3.0, 2.0, 1.0]}, graph_id=5),
            ],
        )
        session = GraphSession(fetcher, fast_config)

        with patch(
            "benchgraph.state.session.build_dataset",
            side_effect=MalformedGraphError("bad series"),
        ):
            with pytest.raises(MalformedGraphError):
                await session.refresh(["m"])

        assert session.dataset is None
        assert session._attempts[ResourceKind.MEASUREMENTS] == 1
