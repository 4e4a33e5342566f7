"""Global pytest configuration and fixtures.

This module provides shared fixtures and configuration for all tests.
"""

import logging
import sys
from pathlib import Path

import pytest


# =============================================================================
# Path Setup
# =============================================================================

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from benchgraph.config import BenchgraphConfig  # noqa: E402
from benchgraph.http_client import reset_clients  # noqa: E402
from benchgraph.logging_config import ROOT_LOGGER_NAME, clear_context  # noqa: E402
from benchgraph.models import CommitsResponse  # noqa: E402
from tests.factories import make_commits_response  # noqa: E402


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (>30 seconds)"
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def linear_history() -> CommitsResponse:
    """Three commits a <- b <- c on consecutive days, listed newest first."""
    return make_commits_response(
        [
            ("c", 2 * 86400 + 10, ["b"]),
            ("b", 86400 + 10, ["a"]),
            ("a", 10, []),
        ],
        graph_id=1,
    )


@pytest.fixture
def fast_config() -> BenchgraphConfig:
    """Config without backoff or retry delays."""
    config = BenchgraphConfig()
    config.server.base_url = "http://bench.test/"
    config.consistency.refetch_base_delay = 0.0
    config.http.max_retries = 0
    config.http.retry_delay = 0.0
    return config


@pytest.fixture(autouse=True)
def _reset_shared_state():
    yield
    clear_context()
    reset_clients()

    # CLI invocations install handlers bound to streams that are closed afterwards
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
