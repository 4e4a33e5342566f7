"""Pydantic models for the three graph resources served by the server.

Field names follow Python conventions; the wire format uses camelCase and is
mapped through aliases. All arrays of the commit response are parallel and
indexed in "hash order".
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class MetricsResponse(_WireModel):
    """`graph/metrics` response data."""

    data_id: int = Field(..., alias="dataId", description="Content version")
    metrics: List[str] = Field(default_factory=list, description="Flat list of metric names")


class CommitsResponse(_WireModel):
    """`graph/commits` response data."""

    graph_id: int = Field(..., alias="graphId", description="Commit graph structure version")
    hash_by_hash: List[str] = Field(default_factory=list, alias="hashByHash")
    author_by_hash: List[str] = Field(default_factory=list, alias="authorByHash")
    committer_date_by_hash: List[int] = Field(default_factory=list, alias="committerDateByHash")
    summary_by_hash: List[str] = Field(default_factory=list, alias="summaryByHash")
    child_parent_index_pairs: List[Tuple[int, int]] = Field(
        default_factory=list, alias="childParentIndexPairs"
    )


class MeasurementsResponse(_WireModel):
    """`graph/measurements` response data.

    Each value list is aligned to the hash order of the commit response with
    the same graph id. Missing values are ``None``.
    """

    graph_id: int = Field(..., alias="graphId")
    data_id: int = Field(..., alias="dataId")
    measurements: Dict[str, List[Optional[float]]] = Field(default_factory=dict)
