"""Combine an ordered commit graph with measurements into a plottable dataset."""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from benchgraph.graph.commits import Commit
from benchgraph.graph.snapshot import CommitSnapshot, reindex_to_display


@dataclass(frozen=True)
class PlotDataset:
    """Everything the renderer needs, aligned to display order."""

    graph_id: int
    data_id: Optional[int]
    commits: Tuple[Commit, ...]
    x_exact: Tuple[float, ...]
    x_equidistant: Tuple[float, ...]
    series: Dict[str, Tuple[Optional[float], ...]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.commits)

    def x(self, day_equidistant: bool = False) -> Tuple[float, ...]:
        return self.x_equidistant if day_equidistant else self.x_exact

    def metrics(self) -> List[str]:
        return sorted(self.series)


def build_dataset(
    snapshot: CommitSnapshot,
    measurements: Mapping[str, Sequence[Optional[float]]],
    data_id: Optional[int] = None,
) -> PlotDataset:
    """Realign hash-order measurements to the snapshot's display order.

    The caller is responsible for only combining measurements with the same
    graph id as ``snapshot``.

    Raises:
        MalformedGraphError: If a value array does not match the commit count
    """
    series = {
        name: tuple(reindex_to_display(values, snapshot))
        for name, values in measurements.items()
    }
    return PlotDataset(
        graph_id=snapshot.graph_id,
        data_id=data_id,
        commits=snapshot.commits,
        x_exact=snapshot.x_exact,
        x_equidistant=snapshot.x_equidistant,
        series=series,
    )


def dataset_to_dict(dataset: PlotDataset, day_equidistant: bool = False) -> dict:
    """JSON-serializable representation of a dataset."""
    return {
        "graphId": dataset.graph_id,
        "dataId": dataset.data_id,
        "dayEquidistant": day_equidistant,
        "commits": [
            {
                "hash": c.hash,
                "author": c.author,
                "committerDate": c.committer_date,
                "summary": c.summary,
            }
            for c in dataset.commits
        ],
        "x": list(dataset.x(day_equidistant)),
        "series": {name: list(values) for name, values in sorted(dataset.series.items())},
    }
