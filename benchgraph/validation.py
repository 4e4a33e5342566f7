"""Input validation utilities with helpful error messages."""

from typing import Iterable, List, Optional
from urllib.parse import urlparse

from benchgraph.errors import BenchgraphError


class ValidationError(BenchgraphError):
    """Raised when input validation fails.

    This exception includes helpful error messages and suggestions for fixing the issue.
    """
    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        full_message = message
        if suggestion:
            full_message += f"\n\nSuggestion: {suggestion}"
        super().__init__(full_message)


def validate_base_url(url: str) -> str:
    """Validate the server base URL.

    A trailing slash is added so resource paths resolve below the URL.

    Args:
        url: Base URL of the benchmark server

    Returns:
        Normalized URL

    Raises:
        ValidationError: If the URL is empty or not http(s)
    """
    if not url or not url.strip():
        raise ValidationError(
            "Server URL cannot be empty",
            "Pass --url or set BENCHGRAPH_URL, e.g. http://localhost:8221/"
        )

    url = url.strip()
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https"):
        raise ValidationError(
            f"Server URL must use http or https: {url}",
            "Include the scheme, e.g. 'https://bench.example.org/' not 'bench.example.org'"
        )

    if not parsed.netloc:
        raise ValidationError(
            f"Server URL has no host: {url}",
            "Use a URL like 'http://localhost:8221/'"
        )

    if not url.endswith("/"):
        url += "/"
    return url


def validate_retry_config(max_retries: int, backoff_factor: float, base_delay: float) -> tuple[int, float, float]:
    """Validate retry configuration parameters.

    Args:
        max_retries: Maximum number of retry attempts
        backoff_factor: Exponential backoff multiplier
        base_delay: Base delay in seconds

    Returns:
        Tuple of validated parameters

    Raises:
        ValidationError: If parameters are invalid
    """
    if max_retries < 0:
        raise ValidationError(
            f"Max retries cannot be negative: {max_retries}",
            "Use 0 to disable retries, or a positive number (recommended: 3)"
        )

    if max_retries > 10:
        raise ValidationError(
            f"Max retries is unusually high: {max_retries}",
            "Consider using fewer retries to fail faster.\n"
            "Recommended: 3 (default), 5 (patient), 10 (very patient)"
        )

    if backoff_factor < 1.0:
        raise ValidationError(
            f"Backoff factor must be >= 1.0: {backoff_factor}",
            "Use at least 1.0 for linear backoff, 2.0 for exponential (recommended)"
        )

    if base_delay < 0:
        raise ValidationError(
            f"Base delay cannot be negative: {base_delay}",
            "Use a positive value in seconds, e.g., 0.25 (default)"
        )

    return max_retries, backoff_factor, base_delay


def validate_metric_names(names: Iterable[str]) -> List[str]:
    """Validate and deduplicate metric names, keeping their order.

    Raises:
        ValidationError: If no names are given or a name is blank
    """
    result: List[str] = []
    for name in names:
        if not name or not name.strip():
            raise ValidationError(
                "Metric names cannot be empty",
                "Run 'benchgraph metrics' to list the available metrics"
            )
        if name not in result:
            result.append(name)

    if not result:
        raise ValidationError(
            "At least one metric is required",
            "Pass --metric NAME (repeatable). Run 'benchgraph metrics' to list them"
        )
    return result
