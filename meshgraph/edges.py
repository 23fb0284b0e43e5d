"""
Turn deduplicated samples into directed, accumulated edges.

Every accepted sample is expanded into the hops it describes:
  * source workload -> destination service -> destination workload, or
  * source workload -> destination workload when either end is a waypoint
    proxy, so ambient-mesh graphs show application traffic instead of proxy
    hops.
All hops of a sample receive the same counters. Edges are keyed by their
(source, destination) entities and accumulate across every sample of one build.
"""
import logging
from typing import Callable, Collection, Dict, Iterable, List, Sequence, Tuple, Union

from .errors import ConfigError
from .models import (
    KIND_SERVICE,
    KIND_WORKLOAD,
    METRIC_GRPC_RECEIVED_MESSAGES,
    METRIC_GRPC_REQUEST_DURATION,
    METRIC_GRPC_REQUESTS,
    METRIC_GRPC_SENT_MESSAGES,
    METRIC_HTTP_REQUEST_DURATION,
    METRIC_HTTP_REQUESTS,
    METRIC_TCP_RECEIVED_BYTES,
    METRIC_TCP_SENT_BYTES,
    WAYPOINT,
    Edge,
    Entity,
    Sample,
)

logger = logging.getLogger(__name__)

# gRPC statuses that correlate with HTTP 5xx: UNKNOWN, DEADLINE_EXCEEDED,
# UNIMPLEMENTED, INTERNAL, UNAVAILABLE, DATA_LOSS.
GRPC_ERROR_CODES = frozenset({"2", "4", "12", "13", "14", "15"})

EdgeKey = Tuple[Entity, Entity]
DurationPolicy = Callable[[float, float], float]


def _last(current: float, incoming: float) -> float:
    return incoming


DURATION_POLICIES: Dict[str, DurationPolicy] = {
    "last": _last,
    "max": max,
}


def resolve_duration_policy(policy: Union[str, DurationPolicy]) -> DurationPolicy:
    if callable(policy):
        return policy
    try:
        return DURATION_POLICIES[policy]
    except KeyError:
        raise ConfigError(
            f"Unknown duration policy '{policy}', expected one of {sorted(DURATION_POLICIES)}"
        )


def workload_identity(namespace: str, workload: str) -> str:
    return f"{namespace}/{workload}"


def is_filtered(
    sample: Sample,
    source_filters: Collection[str],
    destination_filters: Collection[str],
) -> bool:
    source = workload_identity(
        sample.label("source_workload_namespace"), sample.label("source_workload")
    )
    destination = workload_identity(
        sample.label("destination_workload_namespace"), sample.label("destination_workload")
    )
    return source in source_filters or destination in destination_filters


def is_waypoint(sample: Sample) -> bool:
    return WAYPOINT in (sample.label("source_workload"), sample.label("destination_workload"))


def sample_hops(sample: Sample) -> List[EdgeKey]:
    """Return the (source, destination) pairs a single sample contributes to."""
    service_fqdn = sample.label("destination_service")
    source = Entity(
        KIND_WORKLOAD,
        sample.label("source_workload"),
        sample.label("source_workload_namespace"),
    )
    destination = Entity(
        KIND_WORKLOAD,
        sample.label("destination_workload"),
        sample.label("destination_workload_namespace"),
        service=service_fqdn,
    )
    if is_waypoint(sample):
        return [(source, destination)]

    service = Entity(
        KIND_SERVICE,
        sample.label("destination_service_name"),
        sample.label("destination_service_namespace"),
        service=service_fqdn,
    )
    return [(source, service), (service, destination)]


def accumulate(edge: Edge, sample: Sample, duration_policy: DurationPolicy = _last) -> None:
    """Add one sample's value to the counters of an edge, keyed by metric kind."""
    stats = edge.stats
    metric = sample.metric
    value = sample.value

    if metric == METRIC_GRPC_REQUESTS:
        code = sample.label("grpc_response_status")
        stats.grpc_response_codes[code] = stats.grpc_response_codes.get(code, 0.0) + value
        if code in GRPC_ERROR_CODES:
            stats.grpc_requests_error += value
        else:
            stats.grpc_requests_success += value
    elif metric == METRIC_HTTP_REQUESTS:
        code = sample.label("response_code")
        stats.http_response_codes[code] = stats.http_response_codes.get(code, 0.0) + value
        if code.startswith("5"):
            stats.http_requests_error += value
        else:
            stats.http_requests_success += value
    # Durations only describe the hop into a service; the service -> workload
    # leg depends on the calling workload and is left empty.
    elif metric == METRIC_GRPC_REQUEST_DURATION:
        if edge.destination.is_service and value > 0:
            edge.grpc_request_duration = duration_policy(edge.grpc_request_duration, value)
    elif metric == METRIC_HTTP_REQUEST_DURATION:
        if edge.destination.is_service and value > 0:
            edge.http_request_duration = duration_policy(edge.http_request_duration, value)
    elif metric == METRIC_GRPC_SENT_MESSAGES:
        stats.grpc_sent_messages += value
    elif metric == METRIC_GRPC_RECEIVED_MESSAGES:
        stats.grpc_received_messages += value
    elif metric == METRIC_TCP_SENT_BYTES:
        stats.tcp_sent_bytes += value
    elif metric == METRIC_TCP_RECEIVED_BYTES:
        stats.tcp_received_bytes += value


def build_edges(
    samples: Iterable[Sample],
    source_filters: Sequence[str] = (),
    destination_filters: Sequence[str] = (),
    duration_policy: Union[str, DurationPolicy] = "last",
) -> Dict[EdgeKey, Edge]:
    """
    Build one accumulated edge per (source, destination) pair.

    Samples whose source workload ("<namespace>/<workload>") is listed in
    ``source_filters`` or whose destination workload is listed in
    ``destination_filters`` are skipped entirely.
    """
    merge_duration = resolve_duration_policy(duration_policy)
    source_filters = set(source_filters)
    destination_filters = set(destination_filters)

    edges: Dict[EdgeKey, Edge] = {}
    skipped = 0
    for sample in samples:
        if is_filtered(sample, source_filters, destination_filters):
            skipped += 1
            continue
        for source, destination in sample_hops(sample):
            key = (source, destination)
            edge = edges.get(key)
            if edge is None:
                edge = edges[key] = Edge(source=source, destination=destination)
            accumulate(edge, sample, merge_duration)

    if skipped:
        logger.debug("[EDGES] Skipped %d filtered samples", skipped)
    return edges
