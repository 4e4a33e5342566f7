"""Test data builders for benchgraph payloads.

Usage:
    from tests.factories import make_commits_response

    response = make_commits_response([("a", 100, []), ("b", 100, ["a"])], graph_id=5)
"""

from .payloads import (
    make_commits_response,
    make_measurements_response,
    make_metrics_response,
)

__all__ = [
    "make_commits_response",
    "make_measurements_response",
    "make_metrics_response",
]
