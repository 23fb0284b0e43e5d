import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Tuple, Union

from .errors import QueryModelError
from .models import DEFAULT_METRICS

QUERY_NAMESPACES = "namespaces"
QUERY_APPLICATIONS = "applications"
QUERY_WORKLOADS = "workloads"
QUERY_FILTERS = "filters"
QUERY_APPLICATION_GRAPH = "applicationgraph"
QUERY_WORKLOAD_GRAPH = "workloadgraph"
QUERY_NAMESPACE_GRAPH = "namespacegraph"

LOOKUP_QUERY_TYPES = (QUERY_NAMESPACES, QUERY_APPLICATIONS, QUERY_WORKLOADS, QUERY_FILTERS)
GRAPH_QUERY_TYPES = (QUERY_APPLICATION_GRAPH, QUERY_WORKLOAD_GRAPH, QUERY_NAMESPACE_GRAPH)
QUERY_TYPES = LOOKUP_QUERY_TYPES + GRAPH_QUERY_TYPES

FILTER_TYPES = ("source", "destination")


@dataclass(frozen=True)
class GraphRequest:
    """Engine input: what to graph and which workloads to leave out."""

    namespace: str
    application: str = ""
    workload: str = ""
    metrics: Tuple[str, ...] = DEFAULT_METRICS
    idle_edges: bool = False
    source_filters: Tuple[str, ...] = ()
    destination_filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class QueryModel:
    query_type: str
    namespace: str = ""
    application: str = ""
    workload: str = ""
    metrics: Tuple[str, ...] = DEFAULT_METRICS
    idle_edges: bool = False
    source_filters: Tuple[str, ...] = ()
    destination_filters: Tuple[str, ...] = ()
    filter_type: str = ""

    @property
    def is_graph(self) -> bool:
        return self.query_type in GRAPH_QUERY_TYPES

    def graph_request(self) -> GraphRequest:
        # Each graph type scopes by exactly one of application/workload, or neither.
        application = self.application if self.query_type == QUERY_APPLICATION_GRAPH else ""
        workload = self.workload if self.query_type == QUERY_WORKLOAD_GRAPH else ""
        return GraphRequest(
            namespace=self.namespace,
            application=application,
            workload=workload,
            metrics=self.metrics,
            idle_edges=self.idle_edges,
            source_filters=self.source_filters,
            destination_filters=self.destination_filters,
        )


def _string(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise QueryModelError(f"'{key}' must be a string")
    return value.strip()


def _string_list(raw: Mapping[str, Any], key: str) -> List[str]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise QueryModelError(f"'{key}' must be a list of strings")
    return value


def split_filters(entries: Iterable[str]) -> Tuple[str, ...]:
    """Expand comma separated entries (multi-value variables) and drop blanks."""
    out = []
    for entry in entries:
        out.extend(part.strip() for part in entry.split(",") if part.strip())
    return tuple(out)


def parse_query(payload: Union[str, bytes, Mapping[str, Any]]) -> QueryModel:
    """
    Parse and validate a query model.

    Accepts a decoded mapping or a JSON document. Raises QueryModelError when
    the payload is malformed or misses a field required by its query type.
    """
    if isinstance(payload, (str, bytes)):
        try:
            raw = json.loads(payload)
        except ValueError as exc:
            raise QueryModelError(f"could not decode query model: {exc}") from exc
    else:
        raw = payload
    if not isinstance(raw, Mapping):
        raise QueryModelError("query model must be a JSON object")

    query_type = _string(raw, "queryType") or QUERY_APPLICATION_GRAPH
    if query_type not in QUERY_TYPES:
        raise QueryModelError(f"unknown query type '{query_type}'")

    idle_edges = raw.get("idleEdges", False)
    if not isinstance(idle_edges, bool):
        raise QueryModelError("'idleEdges' must be a boolean")

    metrics = _string_list(raw, "metrics") if "metrics" in raw else list(DEFAULT_METRICS)

    model = QueryModel(
        query_type=query_type,
        namespace=_string(raw, "namespace"),
        application=_string(raw, "application"),
        workload=_string(raw, "workload"),
        metrics=tuple(metrics),
        idle_edges=idle_edges,
        source_filters=split_filters(_string_list(raw, "sourceFilters")),
        destination_filters=split_filters(_string_list(raw, "destinationFilters")),
        filter_type=_string(raw, "filterType"),
    )
    validate(model)
    return model


def validate(model: QueryModel) -> None:
    qt = model.query_type
    if qt != QUERY_NAMESPACES and not model.namespace:
        raise QueryModelError(f"query type '{qt}' requires a namespace")
    if qt == QUERY_FILTERS and model.filter_type not in FILTER_TYPES:
        raise QueryModelError(f"'filterType' must be one of {list(FILTER_TYPES)}")
    if qt == QUERY_APPLICATION_GRAPH and not model.application:
        raise QueryModelError("query type 'applicationgraph' requires an application")
    if qt == QUERY_WORKLOAD_GRAPH and not model.workload:
        raise QueryModelError("query type 'workloadgraph' requires a workload")
