"""Configuration management for benchgraph.

Configuration Priority Chain (highest to lowest):
1. Command-line arguments (--url, --log-level, etc.)
2. Config file (.benchgraphrc, benchgraph.toml)
3. Environment variables
4. Built-in defaults

Config files are searched hierarchically:
1. Current directory
2. Parent directories (up to root)
3. User home directory (~/.benchgraphrc or ~/.config/benchgraph.toml)

Environment Variable Names:
- BENCHGRAPH_URL
- BENCHGRAPH_MAX_REFETCH_ATTEMPTS
- BENCHGRAPH_DAY_EQUIDISTANT (true/false)
- BENCHGRAPH_LOG_LEVEL (or LOG_LEVEL)
- BENCHGRAPH_LOG_FORMAT (or LOG_FORMAT)
- BENCHGRAPH_LOG_FILE (or LOG_FILE)

Example .benchgraphrc (YAML):
```yaml
server:
  base_url: https://bench.example.org/
  token: ${BENCHGRAPH_TOKEN}

consistency:
  max_refetch_attempts: 5
  refetch_base_delay: 0.25

plot:
  day_equidistant: true

logging:
  level: INFO
  format: human
```

Example benchgraph.toml:
```toml
[server]
base_url = "https://bench.example.org/"

[http]
max_retries = 3

[logging]
level = "DEBUG"
format = "json"
file = "logs/benchgraph.log"
```
"""

import json
import os
import re
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from benchgraph.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_FILE_NAMES = (".benchgraphrc", "benchgraph.toml")


class ConfigError(Exception):
    """Raised when configuration is invalid."""
    pass


@dataclass
class ServerConfig:
    """Where the graph resources are served."""
    base_url: str = "http://localhost:8221/"
    metrics_path: str = "graph/metrics"
    commits_path: str = "graph/commits"
    measurements_path: str = "graph/measurements"
    token: Optional[str] = None


@dataclass
class HttpConfig:
    """Transport timeouts and retry policy for transient HTTP errors."""
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0
    retry_max_delay: float = 30.0


@dataclass
class ConsistencyConfig:
    """Bounded re-fetching when a resource arrives with an outdated graph id."""
    max_refetch_attempts: int = 5
    refetch_base_delay: float = 0.25
    refetch_backoff: float = 2.0
    refetch_max_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before re-fetch number ``attempt`` (0-based)."""
        if attempt <= 0:
            return 0.0
        delay = self.refetch_base_delay * (self.refetch_backoff ** (attempt - 1))
        return min(delay, self.refetch_max_delay)


@dataclass
class MetricsConfig:
    """Metric catalog behaviour."""
    separator: str = "/"
    # Re-fetching the list collapses the folder tree, so by default it is only loaded once
    refresh_on_new_data: bool = False


@dataclass
class PlotConfig:
    """Rendering defaults."""
    day_equidistant: bool = False
    max_rows: int = 50


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "human"  # human or json
    file: Optional[str] = None


@dataclass
class BenchgraphConfig:
    """Complete benchgraph configuration."""
    server: ServerConfig = field(default_factory=ServerConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    consistency: ConsistencyConfig = field(default_factory=ConsistencyConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    plot: PlotConfig = field(default_factory=PlotConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BenchgraphConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            BenchgraphConfig instance

        Raises:
            ConfigError: If a section contains unknown keys
        """
        data = _expand_env_vars(data or {})

        sections = {
            "server": ServerConfig,
            "http": HttpConfig,
            "consistency": ConsistencyConfig,
            "metrics": MetricsConfig,
            "plot": PlotConfig,
            "logging": LoggingConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, section_cls in sections.items():
            try:
                kwargs[name] = section_cls(**(data.get(name) or {}))
            except TypeError as e:
                raise ConfigError(f"Invalid [{name}] section: {e}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def merge(self, other: "BenchgraphConfig") -> "BenchgraphConfig":
        """Merge with another config (other takes precedence).

        Only values of ``other`` that differ from the defaults override.
        """
        merged = self.to_dict()
        defaults = BenchgraphConfig().to_dict()
        for section, values in other.to_dict().items():
            for key, value in values.items():
                if value != defaults[section][key]:
                    merged[section][key] = value
        return BenchgraphConfig.from_dict(merged)


def _expand_env_vars(data: Union[Dict, list, str, Any]) -> Any:
    """Recursively expand environment variables in config data.

    Supports ${VAR_NAME} and $VAR_NAME syntax. Unknown variables are left as is.
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = re.compile(r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)')

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return pattern.sub(replace_var, data)
    else:
        return data


def find_config_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find config file using hierarchical search.

    Searches the start directory, its parents, then the home directory
    (``~/.benchgraphrc`` and ``~/.config/benchgraph.toml``).

    Args:
        start_dir: Starting directory for search (default: current directory)

    Returns:
        Path to config file, or None if not found
    """
    current = Path.cwd() if start_dir is None else Path(start_dir).resolve()

    while True:
        for name in CONFIG_FILE_NAMES:
            candidate = current / name
            if candidate.is_file():
                logger.info(f"Found config file: {candidate}")
                return candidate

        parent = current.parent
        if parent == current:
            break
        current = parent

    home = Path.home()
    for candidate in (home / ".benchgraphrc", home / ".config" / "benchgraph.toml"):
        if candidate.is_file():
            logger.info(f"Found config file: {candidate}")
            return candidate

    logger.debug("No config file found")
    return None


def load_config_file(file_path: Path) -> Dict[str, Any]:
    """Load configuration from file.

    Supports:
    - .benchgraphrc, *.yaml, *.yml (YAML, JSON is accepted as well)
    - *.json (JSON)
    - *.toml (TOML)

    Raises:
        ConfigError: If file cannot be parsed or format not supported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise ConfigError(f"Config file not found: {file_path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {file_path}: {e}")

    if file_path.suffix == ".toml":
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse {file_path} as TOML: {e}")
        logger.debug(f"Loaded TOML config from {file_path}")
        return data

    if file_path.suffix == ".json":
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {file_path} as JSON: {e}")
        logger.debug(f"Loaded JSON config from {file_path}")
        return data or {}

    if file_path.name == ".benchgraphrc" or file_path.suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {file_path} as YAML: {e}")
        logger.debug(f"Loaded YAML config from {file_path}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {file_path} must contain a mapping")
        return data

    raise ConfigError(
        f"Unsupported config file format: {file_path}\n"
        f"Use .benchgraphrc (YAML/JSON), *.yaml, *.json or benchgraph.toml"
    )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> Dict[str, Any]:
    """Load configuration values from environment variables."""
    config: Dict[str, Any] = {}

    if url := os.getenv("BENCHGRAPH_URL"):
        config.setdefault("server", {})["base_url"] = url

    if token := os.getenv("BENCHGRAPH_TOKEN"):
        config.setdefault("server", {})["token"] = token

    if attempts := os.getenv("BENCHGRAPH_MAX_REFETCH_ATTEMPTS"):
        try:
            config.setdefault("consistency", {})["max_refetch_attempts"] = int(attempts)
        except ValueError:
            raise ConfigError(
                f"BENCHGRAPH_MAX_REFETCH_ATTEMPTS must be an integer, got {attempts!r}"
            )

    if equidistant := os.getenv("BENCHGRAPH_DAY_EQUIDISTANT"):
        config.setdefault("plot", {})["day_equidistant"] = _parse_bool(equidistant)

    log_env = {
        "level": os.getenv("BENCHGRAPH_LOG_LEVEL") or os.getenv("LOG_LEVEL"),
        "format": os.getenv("BENCHGRAPH_LOG_FORMAT") or os.getenv("LOG_FORMAT"),
        "file": os.getenv("BENCHGRAPH_LOG_FILE") or os.getenv("LOG_FILE"),
    }
    log_env = {k: v for k, v in log_env.items() if v}
    if log_env:
        config["logging"] = log_env

    return config


def load_config(
    config_file: Optional[str] = None,
    search_path: Optional[Path] = None,
) -> BenchgraphConfig:
    """Load configuration with the full priority chain (except CLI options).

    Args:
        config_file: Explicit config file path (skips the search)
        search_path: Directory to start the config file search from

    Returns:
        BenchgraphConfig instance
    """
    config = BenchgraphConfig()

    env_data = load_config_from_env()
    if env_data:
        config = config.merge(BenchgraphConfig.from_dict(env_data))
        logger.debug("Applied configuration from environment")

    path = Path(config_file) if config_file else find_config_file(search_path)
    if path is not None:
        config = config.merge(BenchgraphConfig.from_dict(load_config_file(path)))
        logger.debug(f"Applied configuration from {path}")

    return config


def generate_config_template(format: str = "yaml") -> str:
    """Generate a config file template with the default values.

    Args:
        format: ``yaml``, ``toml`` or ``json``

    Raises:
        ValueError: If the format is unknown
    """
    data = BenchgraphConfig().to_dict()

    if format == "json":
        return json.dumps(data, indent=2)

    if format == "yaml":
        header = "# benchgraph configuration\n# Save as .benchgraphrc\n\n"
        return header + yaml.safe_dump(data, sort_keys=False)

    if format == "toml":
        lines = ["# benchgraph configuration", "# Save as benchgraph.toml", ""]
        for section, values in data.items():
            lines.append(f"[{section}]")
            for key, value in values.items():
                if value is None:
                    lines.append(f"# {key} = ")
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                else:
                    lines.append(f"{key} = {value}")
            lines.append("")
        return "\n".join(lines)

    raise ValueError(f"Unknown config format: {format}")
