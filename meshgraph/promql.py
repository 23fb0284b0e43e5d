"""PromQL for the Istio standard metrics the graph is built from."""
from typing import Dict, List, Tuple

from .models import (
    METRIC_GRPC_RECEIVED_MESSAGES,
    METRIC_GRPC_REQUEST_DURATION,
    METRIC_GRPC_REQUESTS,
    METRIC_GRPC_SENT_MESSAGES,
    METRIC_HTTP_REQUEST_DURATION,
    METRIC_HTTP_REQUESTS,
    METRIC_TCP_RECEIVED_BYTES,
    METRIC_TCP_SENT_BYTES,
)

EDGE_LABELS = (
    "destination_service, destination_service_namespace, destination_service_name, "
    "destination_workload_namespace, destination_workload, destination_version, "
    "source_workload_namespace, source_workload"
)

TRAFFIC_SERIES = (
    "istio_requests_total",
    "istio_tcp_sent_bytes_total",
    "istio_tcp_received_bytes_total",
)

# metric kind -> (series, extra selector, extra group-by label, quantile)
_METRICS: Dict[str, Tuple[str, str, str, bool]] = {
    METRIC_GRPC_REQUESTS: ("istio_requests_total", ', request_protocol="grpc"', "grpc_response_status", False),
    METRIC_GRPC_REQUEST_DURATION: ("istio_request_duration_milliseconds_bucket", ', request_protocol="grpc"', "", True),
    METRIC_GRPC_SENT_MESSAGES: ("istio_request_messages_total", "", "", False),
    METRIC_GRPC_RECEIVED_MESSAGES: ("istio_response_messages_total", "", "", False),
    METRIC_HTTP_REQUESTS: ("istio_requests_total", ', request_protocol="http"', "response_code", False),
    METRIC_HTTP_REQUEST_DURATION: ("istio_request_duration_milliseconds_bucket", ', request_protocol="http"', "", True),
    METRIC_TCP_SENT_BYTES: ("istio_tcp_sent_bytes_total", "", "", False),
    METRIC_TCP_RECEIVED_BYTES: ("istio_tcp_received_bytes_total", "", "", False),
}


def _scope(side: str, application: str, workload: str) -> str:
    if application:
        return f', {side}_app="{application}"'
    if workload:
        return f', {side}_workload="{workload}"'
    return ""


def metric_query(
    side: str,
    namespace: str,
    application: str,
    workload: str,
    metric: str,
    idle_edges: bool,
    interval: int,
) -> str:
    """
    Build the query for one metric kind, scoped to the entity on one side.

    ``side`` is "destination" or "source". Unless idle edges are requested the
    query keeps only series with traffic ("> 0"). Unknown metric kinds give an
    empty query.
    """
    if metric not in _METRICS:
        return ""
    series, selector, code_label, quantile = _METRICS[metric]
    operator = "" if idle_edges else " > 0"
    matchers = f'{side}_workload_namespace="{namespace}"{selector}{_scope(side, application, workload)}'
    increase = f"increase({series}{{{matchers}}}[{interval}s])"
    if quantile:
        return f"histogram_quantile(0.99, sum({increase}) by (le, {EDGE_LABELS})){operator}"
    group_by = f"{EDGE_LABELS}, {code_label}" if code_label else EDGE_LABELS
    return f"sum({increase}) by ({group_by}){operator}"


def destinations_query(namespace, application, workload, metric, idle_edges, interval) -> str:
    """Query for traffic where the scoped entity is the destination."""
    return metric_query("destination", namespace, application, workload, metric, idle_edges, interval)


def sources_query(namespace, application, workload, metric, idle_edges, interval) -> str:
    """Query for traffic where the scoped entity is the source."""
    return metric_query("source", namespace, application, workload, metric, idle_edges, interval)


def _matches(namespace_label: str, namespace: str) -> List[str]:
    return [f'{series}{{{namespace_label}="{namespace}"}}' for series in TRAFFIC_SERIES]


def namespaces_lookups() -> List[Tuple[str, List[str]]]:
    return [
        ("destination_workload_namespace", list(TRAFFIC_SERIES)),
        ("source_workload_namespace", list(TRAFFIC_SERIES)),
    ]


def applications_lookups(namespace: str) -> List[Tuple[str, List[str]]]:
    return [
        ("destination_app", _matches("destination_workload_namespace", namespace)),
        ("source_app", _matches("source_workload_namespace", namespace)),
    ]


def workloads_lookups(namespace: str) -> List[Tuple[str, List[str]]]:
    return [
        ("destination_workload", _matches("destination_workload_namespace", namespace)),
        ("source_workload", _matches("source_workload_namespace", namespace)),
    ]


def filter_queries(filter_type: str, namespace: str, application: str = "", workload: str = "") -> Tuple[str, str, List[str]]:
    """
    Queries listing the workloads that could be filtered out of a graph.

    Returns the namespace label, the workload label and the queries. For the
    "source" filter type these are the callers of the scoped entity, for
    "destination" the entities it calls.
    """
    if filter_type == "source":
        scoped, listed = "destination", "source"
    elif filter_type == "destination":
        scoped, listed = "source", "destination"
    else:
        raise ValueError(f"Unsupported filter type '{filter_type}'")

    namespace_label = f"{listed}_workload_namespace"
    workload_label = f"{listed}_workload"
    matchers = f'{scoped}_workload_namespace="{namespace}"{_scope(scoped, application, workload)}'
    queries = [
        f"sum({series}{{{matchers}}}) by ({namespace_label}, {workload_label})"
        for series in TRAFFIC_SERIES
    ]
    return namespace_label, workload_label, queries
