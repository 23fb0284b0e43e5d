"""
Assemble the topology graph for a namespace, application or workload.

Samples for every requested metric kind are fetched concurrently, once where
the scoped entity is the destination and once where it is the source. Each
fetch returns its own samples; they are merged only after all fetches have
finished. If any fetch failed the build is aborted with the first failure and
nothing partial is returned. The collected samples then go through
deduplication, edge building, node aggregation and stat projection.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Sequence, Tuple

from .edges import build_edges
from .models import Entity, Node, Sample, TimeRange
from .nodes import build_nodes
from .promql import destinations_query, sources_query
from .querymodel import GraphRequest
from .samples import deduplicate
from .stats import (
    DETAIL_GRPC_DURATION,
    DETAIL_GRPC_ERR,
    DETAIL_GRPC_RATE,
    DETAIL_GRPC_RECEIVED_MESSAGES,
    DETAIL_GRPC_SENT_MESSAGES,
    DETAIL_HTTP_DURATION,
    DETAIL_HTTP_ERR,
    DETAIL_HTTP_RATE,
    DETAIL_TCP_RECEIVED_BYTES,
    DETAIL_TCP_SENT_BYTES,
    Projection,
    StatProjector,
)

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

STAT_SEPARATOR = " | "

# (column, display name); an empty display name keeps the column name.
EDGE_COLUMNS: List[Tuple[str, str]] = [
    ("id", ""),
    ("source", ""),
    ("target", ""),
    ("mainstat", "Main Stats"),
    ("secondarystat", "Secondary Stats"),
    ("color", "Health"),
    (DETAIL_GRPC_RATE, "gRPC Rate"),
    (DETAIL_GRPC_ERR, "gRPC Error"),
    (DETAIL_GRPC_DURATION, "gRPC Duration"),
    (DETAIL_GRPC_SENT_MESSAGES, "gRPC Sent Messages"),
    (DETAIL_GRPC_RECEIVED_MESSAGES, "gRPC Received Messages"),
    (DETAIL_HTTP_RATE, "HTTP Rate"),
    (DETAIL_HTTP_ERR, "HTTP Error"),
    (DETAIL_HTTP_DURATION, "HTTP Duration"),
    (DETAIL_TCP_SENT_BYTES, "TCP Sent"),
    (DETAIL_TCP_RECEIVED_BYTES, "TCP Received"),
]

NODE_COLUMNS: List[Tuple[str, str]] = [
    ("id", ""),
    ("title", "Type"),
    ("subtitle", "Name (Namespace)"),
    ("mainstat", "Main Stats"),
    ("secondarystat", "Secondary Stats"),
    ("color", "Health"),
    (DETAIL_GRPC_RATE, "gRPC Rate"),
    (DETAIL_GRPC_ERR, "gRPC Error"),
    (DETAIL_GRPC_SENT_MESSAGES, "gRPC Sent Messages"),
    (DETAIL_GRPC_RECEIVED_MESSAGES, "gRPC Received Messages"),
    (DETAIL_HTTP_RATE, "HTTP Rate"),
    (DETAIL_HTTP_ERR, "HTTP Error"),
    (DETAIL_TCP_SENT_BYTES, "TCP Sent"),
    (DETAIL_TCP_RECEIVED_BYTES, "TCP Received"),
    ("link", "Istio Dashboard"),
]

EDGE_DETAILS = [name for name, _ in EDGE_COLUMNS if name.startswith("detail__")]
NODE_DETAILS = [name for name, _ in NODE_COLUMNS if name.startswith("detail__")]


class SampleSource(Protocol):
    async def get_metrics(self, metric: str, query: str, time_range: TimeRange) -> List[Sample]:
        ...

    async def get_label_values(self, label: str, matches: Sequence[str], time_range: TimeRange) -> List[str]:
        ...


@dataclass
class Graph:
    edges: List[Dict[str, str]] = field(default_factory=list)
    nodes: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {"edges": self.edges, "nodes": self.nodes}


def dashboard_link(
    entity: Entity,
    time_range: TimeRange,
    workload_dashboard: str = "",
    service_dashboard: str = "",
) -> str:
    window = f"from={time_range.start_ms}&to={time_range.end_ms}"
    if entity.is_service:
        return f"{service_dashboard}&var-service={entity.service}&{window}"
    return f"{workload_dashboard}&var-namespace={entity.namespace}&var-workload={entity.name}&{window}"


def edge_row(projection: Projection) -> Dict[str, str]:
    row = {
        "id": projection.id,
        "source": projection.source,
        "target": projection.destination,
        "mainstat": STAT_SEPARATOR.join(projection.main_stat),
        "secondarystat": STAT_SEPARATOR.join(projection.secondary_stat),
        "color": projection.color,
    }
    for name in EDGE_DETAILS:
        row[name] = STAT_SEPARATOR.join(projection.details.get(name, []))
    return row


def node_row(node: Node, projection: Projection, link: str) -> Dict[str, str]:
    row = {
        "id": projection.id,
        "title": node.entity.kind,
        "subtitle": f"{node.entity.name} ({node.entity.namespace})",
        "mainstat": STAT_SEPARATOR.join(projection.main_stat),
        "secondarystat": STAT_SEPARATOR.join(projection.secondary_stat),
        "color": projection.color,
    }
    for name in NODE_DETAILS:
        row[name] = STAT_SEPARATOR.join(projection.details.get(name, []))
    row["link"] = link
    return row


async def fetch_samples(source: SampleSource, request: GraphRequest, time_range: TimeRange) -> List[Sample]:
    """
    Fetch every requested metric kind in both directions concurrently.

    No fetch is cancelled when a sibling fails. After all of them finished,
    the first failure in request order is raised; otherwise the samples are
    concatenated in request order.
    """
    interval = time_range.interval_seconds
    jobs = []
    for metric in request.metrics:
        for direction, build in (("destination", destinations_query), ("source", sources_query)):
            query = build(
                request.namespace,
                request.application,
                request.workload,
                metric,
                request.idle_edges,
                interval,
            )
            if not query:
                logger.debug("[GRAPH] Ignoring unknown metric kind %s", metric)
                break
            jobs.append((metric, direction, query))

    logger.debug(
        "[GRAPH] Fetching %d queries namespace=%s application=%s workload=%s interval=%ds",
        len(jobs), request.namespace, request.application, request.workload, interval,
    )
    results = await asyncio.gather(
        *[source.get_metrics(metric, query, time_range) for metric, _, query in jobs],
        return_exceptions=True,
    )

    errors: List[BaseException] = []
    samples: List[Sample] = []
    for (metric, direction, _), result in zip(jobs, results):
        if isinstance(result, BaseException):
            logger.error("[GRAPH] Failed to get metric %s (%s): %s", metric, direction, result)
            errors.append(result)
            continue
        samples.extend(result)

    if errors:
        raise errors[0]
    return samples


class GraphAssembler:
    def __init__(
        self,
        source: SampleSource,
        projector: Optional[StatProjector] = None,
        workload_dashboard: str = "",
        service_dashboard: str = "",
        duration_policy: str = "last",
    ):
        self.source = source
        self.projector = projector or StatProjector()
        self.workload_dashboard = workload_dashboard
        self.service_dashboard = service_dashboard
        self.duration_policy = duration_policy

    @classmethod
    def from_settings(cls, source: SampleSource, settings: "Settings") -> "GraphAssembler":
        return cls(
            source,
            projector=StatProjector(settings.thresholds),
            workload_dashboard=settings.workload_dashboard,
            service_dashboard=settings.service_dashboard,
            duration_policy=settings.duration_policy,
        )

    async def build(self, request: GraphRequest, time_range: TimeRange) -> Graph:
        samples = await fetch_samples(self.source, request, time_range)
        return self.assemble(samples, request, time_range)

    def assemble(self, samples: Sequence[Sample], request: GraphRequest, time_range: TimeRange) -> Graph:
        unique = deduplicate(samples)
        edges = build_edges(
            unique,
            request.source_filters,
            request.destination_filters,
            duration_policy=self.duration_policy,
        )
        nodes = build_nodes(edges.values())
        logger.debug(
            "[GRAPH] %d samples (%d unique) -> %d edges, %d nodes",
            len(samples), len(unique), len(edges), len(nodes),
        )

        interval = time_range.interval_seconds
        graph = Graph()
        for edge in edges.values():
            graph.edges.append(edge_row(self.projector.project_edge(edge, interval)))
        for node in nodes.values():
            link = dashboard_link(node.entity, time_range, self.workload_dashboard, self.service_dashboard)
            graph.nodes.append(node_row(node, self.projector.project_node(node, interval), link))
        return graph
