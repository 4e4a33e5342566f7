"""Metric catalog.

Metric names form a hierarchy by splitting them on a separator (``/`` by
default): ``build/time/debug`` lives in folder ``build`` > ``time``. A node may
be a metric and a folder at the same time (``build/time`` and
``build/time/debug`` can both exist).
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from benchgraph.logging_config import get_logger
from benchgraph.models import MetricsResponse

logger = get_logger(__name__)


@dataclass
class MetricTree:
    """Folder node of the metric hierarchy."""

    metric: Optional[str] = None
    children: Dict[str, "MetricTree"] = field(default_factory=dict)

    def get_or_create_child(self, name: str) -> "MetricTree":
        child = self.children.get(name)
        if child is None:
            child = MetricTree()
            self.children[name] = child
        return child

    def add(self, metric: str, separator: str = "/") -> None:
        current = self
        for segment in metric.split(separator):
            current = current.get_or_create_child(segment)
        current.metric = metric

    @property
    def is_folder(self) -> bool:
        return bool(self.children)

    def walk(self, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "MetricTree"]]:
        """Yield ``(path, node)`` pairs depth-first in insertion order."""
        for name, child in self.children.items():
            path = prefix + (name,)
            yield path, child
            yield from child.walk(path)

    def metrics(self) -> List[str]:
        return [node.metric for _, node in self.walk() if node.metric is not None]

    @classmethod
    def from_names(cls, names: Iterable[str], separator: str = "/") -> "MetricTree":
        tree = cls()
        for name in names:
            tree.add(name, separator)
        return tree


class MetricCatalog:
    """Available metrics plus the user's selection."""

    def __init__(self, separator: str = "/", refresh_on_new_data: bool = False):
        self.separator = separator
        self.refresh_on_new_data = refresh_on_new_data
        self.tree = MetricTree()
        self.data_id: Optional[int] = None
        self._selected: Set[str] = set()

    def requires_update(self, data_id: Optional[int]) -> bool:
        """Whether the metric list should be (re-)fetched.

        Before the first load this is always true. Afterwards it is only true
        when refreshing is enabled and a newer data id was seen.
        """
        if self.data_id is None:
            return True
        if not self.refresh_on_new_data or data_id is None:
            return False
        return self.data_id < data_id

    def update(self, response: MetricsResponse) -> None:
        """Replace the tree, keeping the selection where metrics still exist."""
        tree = MetricTree.from_names(response.metrics, self.separator)
        available = set(tree.metrics())
        gone = self._selected - available
        if gone:
            logger.info(f"Deselecting metrics that no longer exist: {', '.join(sorted(gone))}")

        self.tree = tree
        self._selected &= available
        self.data_id = response.data_id

    @property
    def loaded(self) -> bool:
        return self.data_id is not None

    def __contains__(self, metric: str) -> bool:
        return metric in set(self.tree.metrics())

    def select(self, metric: str) -> None:
        if self.loaded and metric not in self:
            raise KeyError(metric)
        self._selected.add(metric)

    def deselect(self, metric: str) -> None:
        self._selected.discard(metric)

    def selected(self) -> Set[str]:
        return set(self._selected)
