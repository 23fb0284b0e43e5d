#!/usr/bin/env python3
"""Tests for node aggregation."""
import sys

from meshgraph.edges import build_edges
from meshgraph.models import KIND_SERVICE, KIND_WORKLOAD, Entity, Sample
from meshgraph.nodes import build_nodes
from meshgraph.tests_edges import mesh_labels


def test_client_and_server_sides():
    edges = build_edges([
        Sample(10, mesh_labels(metric="httpRequests", response_code="200")),
        Sample(6, mesh_labels(src="checkout", metric="httpRequests", response_code="500")),
    ])
    nodes = build_nodes(edges.values())
    assert len(nodes) == 4

    web = nodes[Entity(KIND_WORKLOAD, "frontend", "shop")]
    assert web.client.http_requests == 10
    assert web.server.http_requests == 0

    svc = nodes[Entity(KIND_SERVICE, "cart", "shop")]
    assert svc.server.http_requests_success == 10
    assert svc.server.http_requests_error == 6
    assert svc.client.http_requests == 16
    assert svc.entity.service == "cart.shop.svc.cluster.local"

    cart = nodes[Entity(KIND_WORKLOAD, "cart", "shop")]
    assert cart.server.http_response_codes == {"200": 10, "500": 6}
    assert cart.client.http_requests == 0


def test_node_stats_do_not_alias_edges():
    edges = build_edges([Sample(3, mesh_labels(metric="grpcRequests", grpc_response_status="0"))])
    nodes = build_nodes(edges.values())
    nodes[Entity(KIND_WORKLOAD, "cart", "shop")].server.grpc_response_codes["0"] = 100
    for edge in edges.values():
        assert edge.stats.grpc_response_codes == {"0": 3}


def test_no_edges_no_nodes():
    assert build_nodes([]) == {}


def main():
    test_client_and_server_sides()
    test_node_stats_do_not_alias_edges()
    test_no_edges_no_nodes()
    print("tests_nodes: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
