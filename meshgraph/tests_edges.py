#!/usr/bin/env python3
"""Tests for edge building: hops, waypoint collapse, filters and error codes."""
import sys

from meshgraph.edges import GRPC_ERROR_CODES, build_edges, sample_hops
from meshgraph.errors import ConfigError
from meshgraph.models import KIND_SERVICE, KIND_WORKLOAD, Entity, Sample


def mesh_labels(src="frontend", dst="cart", ns="shop", **extra):
    labels = {
        "source_workload": src,
        "source_workload_namespace": ns,
        "destination_workload": dst,
        "destination_workload_namespace": ns,
        "destination_service_name": dst,
        "destination_service_namespace": ns,
        "destination_service": f"{dst}.{ns}.svc.cluster.local",
    }
    labels.update(extra)
    return labels


WEB = Entity(KIND_WORKLOAD, "frontend", "shop")
CART_SVC = Entity(KIND_SERVICE, "cart", "shop")
CART = Entity(KIND_WORKLOAD, "cart", "shop")


def test_two_hops_through_service():
    hops = sample_hops(Sample(1, mesh_labels(metric="httpRequests")))
    assert hops == [(WEB, CART_SVC), (CART_SVC, CART)]
    assert hops[0][1].service == "cart.shop.svc.cluster.local"


def test_waypoint_collapses_to_single_edge():
    s = Sample(4, mesh_labels(dst="waypoint", metric="httpRequests", response_code="200"))
    edges = build_edges([s])
    assert list(edges) == [(WEB, Entity(KIND_WORKLOAD, "waypoint", "shop"))]
    assert edges[(WEB, Entity(KIND_WORKLOAD, "waypoint", "shop"))].stats.http_requests_success == 4


def test_http_codes_split_success_and_error():
    edges = build_edges([
        Sample(10, mesh_labels(metric="httpRequests", response_code="200")),
        Sample(2, mesh_labels(metric="httpRequests", response_code="503")),
        Sample(1, mesh_labels(metric="httpRequests", response_code="404")),
    ])
    assert len(edges) == 2
    for edge in edges.values():
        assert edge.stats.http_requests_success == 11
        assert edge.stats.http_requests_error == 2
        assert edge.stats.http_response_codes == {"200": 10, "503": 2, "404": 1}


def test_grpc_error_codes():
    assert GRPC_ERROR_CODES == {"2", "4", "12", "13", "14", "15"}
    edges = build_edges([
        Sample(5, mesh_labels(metric="grpcRequests", grpc_response_status="0")),
        Sample(3, mesh_labels(metric="grpcRequests", grpc_response_status="14")),
        Sample(7, mesh_labels(metric="grpcRequests", grpc_response_status="5")),
    ])
    edge = edges[(WEB, CART_SVC)]
    assert edge.stats.grpc_requests_success == 12
    assert edge.stats.grpc_requests_error == 3


def test_filters_skip_whole_sample():
    samples = [
        Sample(1, mesh_labels(metric="tcpSentBytes")),
        Sample(1, mesh_labels(src="loadgen", metric="tcpSentBytes")),
    ]
    edges = build_edges(samples, source_filters=["shop/loadgen"])
    assert Entity(KIND_WORKLOAD, "loadgen", "shop") not in {src for src, _ in edges}
    assert build_edges(samples, destination_filters=["shop/cart"]) == {}


def test_duration_only_on_service_hop():
    edges = build_edges([
        Sample(120, mesh_labels(metric="httpRequestDuration")),
        Sample(80, mesh_labels(metric="httpRequestDuration")),
        Sample(0, mesh_labels(metric="grpcRequestDuration")),
    ])
    assert edges[(WEB, CART_SVC)].http_request_duration == 80
    assert edges[(WEB, CART_SVC)].grpc_request_duration == 0
    assert edges[(CART_SVC, CART)].http_request_duration == 0


def test_max_duration_policy():
    edges = build_edges(
        [
            Sample(120, mesh_labels(metric="httpRequestDuration")),
            Sample(80, mesh_labels(metric="httpRequestDuration", destination_version="v2")),
        ],
        duration_policy="max",
    )
    assert edges[(WEB, CART_SVC)].http_request_duration == 120


def test_unknown_duration_policy():
    try:
        build_edges([], duration_policy="mean")
    except ConfigError as exc:
        assert "mean" in str(exc)
    else:
        raise AssertionError("expected ConfigError")


def test_unknown_metric_kind_creates_empty_edges():
    edges = build_edges([Sample(9, mesh_labels(metric="somethingNew"))])
    assert len(edges) == 2
    assert not any(edge.stats.has_traffic() for edge in edges.values())


def main():
    test_two_hops_through_service()
    test_waypoint_collapses_to_single_edge()
    test_http_codes_split_success_and_error()
    test_grpc_error_codes()
    test_filters_skip_whole_sample()
    test_duration_only_on_service_hop()
    test_max_duration_policy()
    test_unknown_duration_policy()
    test_unknown_metric_kind_creates_empty_edges()
    print("tests_edges: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
