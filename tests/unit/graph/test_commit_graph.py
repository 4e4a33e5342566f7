"""Unit tests for building the commit DAG."""

import pytest

from benchgraph.errors import MalformedGraphError
from benchgraph.graph.commits import CommitGraph, build_commit_graph
from tests.factories import make_commits_response


class TestBuildCommitGraph:
    """Test turning a commit response into a graph."""

    def test_links_are_symmetric(self, linear_history):
        """Every edge is recorded on both endpoints."""
        graph = build_commit_graph(linear_history)

        assert len(graph) == 3
        c, b, a = graph.commits
        assert c.parents == [1]
        assert b.parents == [2]
        assert b.children == [0]
        assert a.children == [1]
        assert a.parents == []

    def test_keeps_hash_order_and_metadata(self, linear_history):
        """Commits are stored in hash order with their attributes."""
        graph = build_commit_graph(linear_history)

        assert [c.hash for c in graph.commits] == ["c", "b", "a"]
        assert [c.index_by_hash for c in graph.commits] == [0, 1, 2]
        assert graph[2].author == "author-a"
        assert graph[2].summary == "Commit a"
        assert graph[2].committer_date == 10
        assert graph[2].index_by_graph == -1
        assert graph.graph_id == 1

    def test_roots_in_hash_order(self):
        """Parentless commits are reported in hash order."""
        response = make_commits_response(
            [("x", 1, []), ("y", 2, ["x"]), ("z", 3, [])]
        )
        graph = build_commit_graph(response)

        assert graph.roots() == [0, 2]

    def test_merge_commit_has_two_parents(self):
        """Edges are appended in pair order."""
        response = make_commits_response(
            [("a", 1, []), ("b", 2, ["a"]), ("c", 3, ["a"]), ("m", 4, ["b", "c"])]
        )
        graph = build_commit_graph(response)

        assert graph[3].parents == [1, 2]
        assert graph[0].children == [1, 2]
        assert graph.edge_count() == 4

    def test_empty_graph(self):
        """An empty history is a valid graph."""
        graph = build_commit_graph(make_commits_response([]))

        assert len(graph) == 0
        assert graph.roots() == []


class TestMalformedInput:
    """Test rejection of malformed commit responses."""

    def test_edge_index_out_of_range(self):
        """An edge referencing a missing commit is fatal."""
        with pytest.raises(MalformedGraphError, match="outside"):
            CommitGraph.from_records(["a", "b"], ["x", "y"], [1, 2], ["s", "t"], [(1, 2)])

    def test_negative_edge_index(self):
        """Negative indices are out of range too."""
        with pytest.raises(MalformedGraphError):
            CommitGraph.from_records(["a"], ["x"], [1], ["s"], [(0, -1)])

    def test_parallel_arrays_must_match(self):
        """All per-commit arrays must have the same length."""
        with pytest.raises(MalformedGraphError, match="authorByHash"):
            CommitGraph.from_records(["a", "b"], ["x"], [1, 2], ["s", "t"], [])

    def test_duplicate_hash(self):
        """A hash may only occur once."""
        with pytest.raises(MalformedGraphError, match="Duplicate"):
            CommitGraph.from_records(["a", "a"], ["x", "y"], [1, 2], ["s", "t"], [])

    def test_error_mentions_graph_id(self):
        """The diagnostic names the offending graph id."""
        with pytest.raises(MalformedGraphError) as exc_info:
            CommitGraph.from_records(["a"], ["x"], [1], ["s"], [(0, 5)], graph_id=7)

        assert exc_info.value.graph_id == 7
        assert "graph id 7" in str(exc_info.value)
