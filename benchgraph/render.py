"""Terminal rendering of datasets and metric trees with rich."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from rich import box
from rich.table import Table
from rich.tree import Tree

from benchgraph.dataset import PlotDataset
from benchgraph.metrics import MetricTree

# https://sashamaps.net/docs/resources/20-colors/
COLORS = [
    "#e6194B",  # Red
    "#3cb44b",  # Green
    "#ffe119",  # Yellow
    "#4363d8",  # Blue
    "#f58231",  # Orange
    "#42d4f4",  # Cyan
    "#f032e6",  # Magenta
    "#469990",  # Teal
    "#9A6324",  # Brown
    "#800000",  # Maroon
    "#000075",  # Navy
    "#a9a9a9",  # Grey
    "#000000",  # Black
]


@dataclass(frozen=True)
class PlotSeries:
    """One line of the plot."""
    metric: str
    color: str
    x: Tuple[float, ...]
    y: Tuple[Optional[float], ...]


def assign_colors(metrics: List[str]) -> Dict[str, str]:
    """Assign palette colors to metrics in sorted order, cycling if needed."""
    return {name: COLORS[i % len(COLORS)] for i, name in enumerate(sorted(metrics))}


def build_series(dataset: PlotDataset, day_equidistant: bool = False) -> List[PlotSeries]:
    colors = assign_colors(list(dataset.series))
    x = dataset.x(day_equidistant)
    return [
        PlotSeries(metric=name, color=colors[name], x=x, y=dataset.series[name])
        for name in dataset.metrics()
    ]


def _format_time(x: float) -> str:
    return datetime.fromtimestamp(x, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _format_value(value: Optional[float]) -> str:
    if value is None:
        return "[dim]-[/dim]"
    return f"{value:.6g}"


def render_table(
    dataset: PlotDataset,
    day_equidistant: bool = False,
    limit: Optional[int] = None,
) -> Table:
    """Render a dataset as a table, newest commits last.

    Args:
        dataset: Dataset to render
        day_equidistant: Show day-equidistant x coordinates instead of commit times
        limit: Only show the last ``limit`` commits
    """
    series = build_series(dataset, day_equidistant)

    table = Table(
        title=f"Graph {dataset.graph_id} ({len(dataset)} commits)",
        box=box.SIMPLE_HEAVY,
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Commit", style="cyan", no_wrap=True)
    table.add_column("x (UTC)", no_wrap=True)
    table.add_column("Author")
    table.add_column("Summary", overflow="ellipsis", max_width=50)
    for s in series:
        table.add_column(s.metric, justify="right", style=s.color)

    x = dataset.x(day_equidistant)
    start = 0 if limit is None else max(0, len(dataset) - limit)
    for idx in range(start, len(dataset)):
        commit = dataset.commits[idx]
        table.add_row(
            str(idx),
            commit.short_hash,
            _format_time(x[idx]),
            commit.author,
            commit.summary,
            *(_format_value(s.y[idx]) for s in series),
        )
    return table


def render_metric_tree(tree: MetricTree, title: str = "Metrics") -> Tree:
    """Render the metric hierarchy. Folders get a trailing separator."""
    root = Tree(f"[bold]{title}[/bold]")

    def add(parent: Tree, node: MetricTree) -> None:
        for name, child in node.children.items():
            if child.is_folder:
                label = f"[bold]{name}/[/bold]"
                if child.metric is None:
                    label = f"[dim]{label}[/dim]"
            else:
                label = name
            branch = parent.add(label)
            add(branch, child)

    add(root, tree)
    return root
