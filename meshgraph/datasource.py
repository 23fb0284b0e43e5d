import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import Settings
from .errors import MeshGraphError
from .graph import GraphAssembler, SampleSource
from .models import TimeRange
from .promql import applications_lookups, filter_queries, namespaces_lookups, workloads_lookups
from .querymodel import (
    QUERY_APPLICATIONS,
    QUERY_FILTERS,
    QUERY_NAMESPACES,
    QUERY_WORKLOADS,
    QueryModel,
    parse_query,
)

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, Mapping[str, Any]]


@dataclass
class DataResponse:
    """Result of one query: frames on success, an error message otherwise, never both."""

    frames: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return dict(self.frames)


async def _join_values(aws: Iterable[Awaitable[List[str]]]) -> List[str]:
    results = await asyncio.gather(*aws, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        raise errors[0]
    return sorted({value for values in results for value in values})


class Datasource:
    def __init__(self, source: SampleSource, settings: Optional[Settings] = None):
        self.source = source
        self.settings = settings or Settings()
        self.assembler = GraphAssembler.from_settings(source, self.settings)

    async def query(self, payload: Payload, time_range: TimeRange) -> DataResponse:
        try:
            model = parse_query(payload)
        except MeshGraphError as exc:
            logger.error("[DATASOURCE] Failed to parse query model: %s", exc)
            return DataResponse(error=str(exc))

        try:
            if model.is_graph:
                graph = await self.assembler.build(model.graph_request(), time_range)
                return DataResponse(frames=graph.to_dict())
            values = await self.lookup(model, time_range)
        except MeshGraphError as exc:
            logger.error("[DATASOURCE] %s query failed: %s", model.query_type, exc)
            return DataResponse(error=str(exc))
        except Exception as exc:
            logger.exception("[DATASOURCE] %s query failed unexpectedly", model.query_type)
            return DataResponse(error=f"{type(exc).__name__}: {exc}")
        return DataResponse(frames={"values": values})

    async def query_data(self, payloads: Sequence[Payload], time_range: TimeRange) -> List[DataResponse]:
        """Run several queries concurrently, bounded by max_concurrent_queries; order is kept."""
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_queries)

        async def bounded(payload: Payload) -> DataResponse:
            async with semaphore:
                return await self.query(payload, time_range)

        return list(await asyncio.gather(*[bounded(p) for p in payloads]))

    async def lookup(self, model: QueryModel, time_range: TimeRange) -> List[str]:
        if model.query_type == QUERY_FILTERS:
            return await self.filter_values(model, time_range)
        if model.query_type == QUERY_NAMESPACES:
            lookups = namespaces_lookups()
        elif model.query_type == QUERY_APPLICATIONS:
            lookups = applications_lookups(model.namespace)
        elif model.query_type == QUERY_WORKLOADS:
            lookups = workloads_lookups(model.namespace)
        else:
            raise MeshGraphError(f"'{model.query_type}' is not a lookup query")
        return await self.label_values(lookups, time_range)

    async def label_values(self, lookups: Sequence[Tuple[str, List[str]]], time_range: TimeRange) -> List[str]:
        """Distinct values of each label, fetched in parallel and merged after all returned."""
        return await _join_values(
            self.source.get_label_values(label, matches, time_range) for label, matches in lookups
        )

    async def filter_values(self, model: QueryModel, time_range: TimeRange) -> List[str]:
        """Workloads talking to the scoped entity, as "<namespace>/<workload>" filter entries."""
        namespace_label, workload_label, queries = filter_queries(
            model.filter_type, model.namespace, model.application, model.workload
        )

        async def workloads(query: str) -> List[str]:
            samples = await self.source.get_metrics("", query, time_range)
            return [
                f"{s.labels[namespace_label]}/{s.labels[workload_label]}"
                for s in samples
                if namespace_label in s.labels and workload_label in s.labels
            ]

        return await _join_values(workloads(q) for q in queries)
