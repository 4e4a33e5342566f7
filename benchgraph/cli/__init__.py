"""Command-line interface for benchgraph."""

import asyncio
import json
from typing import Optional, Tuple

import click
from rich.console import Console

from benchgraph.config import BenchgraphConfig, ConfigError, generate_config_template, load_config
from benchgraph.dataset import dataset_to_dict
from benchgraph.errors import BenchgraphError
from benchgraph.fetcher import ResourceFetcher
from benchgraph.http_client import close_clients
from benchgraph.logging_config import LogContext, configure_logging, get_logger
from benchgraph.render import render_metric_tree, render_table
from benchgraph.state.session import GraphSession
from benchgraph.validation import validate_base_url, validate_metric_names, validate_retry_config

console = Console()
logger = get_logger(__name__)

# Global config storage (loaded once per CLI invocation)
_config: BenchgraphConfig | None = None


def get_config() -> BenchgraphConfig:
    """Get loaded configuration."""
    global _config
    if _config is None:
        _config = BenchgraphConfig()
    return _config


def _config_with_url(url: Optional[str]) -> BenchgraphConfig:
    config = get_config()
    if url:
        config = config.merge(BenchgraphConfig.from_dict({"server": {"base_url": url}}))
    config.server.base_url = validate_base_url(config.server.base_url)
    consistency = config.consistency
    validate_retry_config(
        consistency.max_refetch_attempts,
        consistency.refetch_backoff,
        consistency.refetch_base_delay,
    )
    return config


async def _run_with_cleanup(coro):
    try:
        return await coro
    finally:
        await close_clients()


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file (.benchgraphrc or benchgraph.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config file)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "human"], case_sensitive=False),
    default=None,
    help="Log output format (overrides config file)",
)
@click.option(
    "--log-file",
    type=click.Path(),
    default=None,
    help="Write logs to file (overrides config file)",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None, log_format: str | None, log_file: str | None) -> None:
    """benchgraph - performance history graphs for a repository

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Config file (--config, .benchgraphrc, benchgraph.toml)
    3. Environment variables
    4. Built-in defaults
    """
    global _config

    try:
        _config = load_config(config_file=config)
    except ConfigError as e:
        console.print(f"[yellow]Config error: {e}[/yellow]")
        console.print("[dim]Using default configuration[/dim]\n")
        _config = BenchgraphConfig()

    final_log_level = log_level or _config.logging.level
    final_log_format = log_format or _config.logging.format
    final_log_file = log_file or _config.logging.file

    configure_logging(
        level=final_log_level,
        json_output=(final_log_format == "json"),
        log_file=final_log_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = _config


@cli.command()
@click.option("--url", "-u", default=None, help="Server base URL (overrides config)")
def metrics(url: Optional[str]) -> None:
    """List the metrics available on the server.

    \b
    Examples:
      $ benchgraph metrics --url http://localhost:8221/
    """
    try:
        config = _config_with_url(url)

        async def load():
            session = GraphSession(ResourceFetcher(config), config)
            with LogContext(operation="metrics"):
                response = await session.fetcher.get_metrics()
            session.handle_metrics(response)
            return session.catalog

        catalog = asyncio.run(_run_with_cleanup(load()))
    except BenchgraphError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()

    if not catalog.tree.children:
        console.print("There aren't yet any metrics")
        return
    console.print(render_metric_tree(catalog.tree, title=f"Metrics (data id {catalog.data_id})"))


@cli.command()
@click.option("--url", "-u", default=None, help="Server base URL (overrides config)")
@click.option("--metric", "-m", "metric_names", multiple=True, help="Metric to show (repeatable)")
@click.option(
    "--day-equidistant/--exact-time",
    default=None,
    help="Spread commits of the same day evenly across the day",
)
@click.option("--limit", "-n", type=int, default=None, help="Only show the newest N commits")
@click.option("--json", "as_json", is_flag=True, help="Print the dataset as JSON")
def show(
    url: Optional[str],
    metric_names: Tuple[str, ...],
    day_equidistant: Optional[bool],
    limit: Optional[int],
    as_json: bool,
) -> None:
    """Show measurements for the selected metrics across the commit history.

    \b
    Examples:
      $ benchgraph show -m build/time -m test/duration
      $ benchgraph show -m build/time --day-equidistant --limit 20
      $ benchgraph show -m build/time --json > graph.json
    """
    try:
        config = _config_with_url(url)
        names = validate_metric_names(metric_names)
        equidistant = config.plot.day_equidistant if day_equidistant is None else day_equidistant

        async def load():
            session = GraphSession(ResourceFetcher(config), config)
            with LogContext(operation="show"):
                return await session.refresh(names)

        dataset = asyncio.run(_run_with_cleanup(load()))
    except BenchgraphError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()

    if dataset is None:
        console.print("[yellow]No consistent data available from the server[/yellow]")
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(dataset_to_dict(dataset, equidistant)))
        return

    rows = limit if limit is not None else config.plot.max_rows
    console.print(render_table(dataset, day_equidistant=equidistant, limit=rows))


@cli.command(name="config")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["yaml", "toml", "json"], case_sensitive=False),
    default="yaml",
    help="Template format",
)
def config_template(fmt: str) -> None:
    """Print a configuration file template."""
    click.echo(generate_config_template(fmt.lower()))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
