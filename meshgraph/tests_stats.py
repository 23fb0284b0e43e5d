#!/usr/bin/env python3
"""Tests for stat projection: protocol choice, formatting and health colors."""
import sys

from meshgraph.models import KIND_SERVICE, KIND_WORKLOAD, Edge, Entity, Node, TrafficStats
from meshgraph.stats import (
    DETAIL_GRPC_RATE,
    DETAIL_HTTP_DURATION,
    DETAIL_HTTP_ERR,
    DETAIL_HTTP_RATE,
    Palette,
    StatProjector,
    Thresholds,
    error_rate,
)

WEB = Entity(KIND_WORKLOAD, "frontend", "shop")
CART_SVC = Entity(KIND_SERVICE, "cart", "shop", service="cart.shop.svc.cluster.local")
PALETTE = Palette()


def http_stats(ok=10.0, failed=2.0):
    return TrafficStats(
        http_response_codes={"200": ok, "503": failed},
        http_requests_success=ok,
        http_requests_error=failed,
    )


def test_http_edge_rate_and_error_percent():
    edge = Edge(WEB, CART_SVC, stats=http_stats(), http_request_duration=42.5)
    p = StatProjector(Thresholds(warning=1, error=20)).project_edge(edge, 10)
    assert p.id == "workload-frontend-shop-service-cart-shop"
    assert p.source == "Workload: frontend (shop)"
    assert p.destination == "Service: cart (shop)"
    assert p.main_stat == ["1.20rps", "16.67%"]
    assert p.secondary_stat == ["42.50ms"]
    assert p.color == PALETTE.warning
    assert p.details[DETAIL_HTTP_RATE] == ["1.20rps"]
    assert p.details[DETAIL_HTTP_ERR] == ["16.67%"]
    assert p.details[DETAIL_HTTP_DURATION] == ["42.50ms"]


def test_error_threshold_is_inclusive():
    edge = Edge(WEB, CART_SVC, stats=http_stats())
    assert StatProjector(Thresholds(warning=1, error=10)).project_edge(edge, 10).color == PALETTE.critical
    edge = Edge(WEB, CART_SVC, stats=http_stats(ok=3, failed=1))
    assert StatProjector(Thresholds(warning=0, error=25)).project_edge(edge, 10).color == PALETTE.critical


def test_healthy_edge_has_no_error_stat():
    edge = Edge(WEB, CART_SVC, stats=http_stats(failed=0))
    p = StatProjector().project_edge(edge, 5)
    assert p.main_stat == ["2.00rps"]
    assert p.color == PALETTE.healthy


def test_grpc_wins_ties_and_tcp_is_secondary():
    stats = TrafficStats(
        grpc_requests_success=4,
        http_requests_success=4,
        tcp_sent_bytes=300,
        tcp_received_bytes=100,
    )
    p = StatProjector().project_edge(Edge(WEB, CART_SVC, stats=stats, grpc_request_duration=7), 4)
    assert p.main_stat == ["1.00rps"]
    assert p.secondary_stat == ["7.00ms", "100.00bps"]
    assert p.details[DETAIL_GRPC_RATE] == ["1.00rps"]


def test_dominant_protocol_swaps():
    # Each protocol carries its own error rate and duration, so the color and
    # secondary stat show which one was picked.
    projector = StatProjector(Thresholds(warning=1, error=5))

    http_heavy = TrafficStats(
        http_requests_success=98, http_requests_error=2,
        grpc_requests_success=25, grpc_requests_error=25,
    )
    p = projector.project_edge(
        Edge(WEB, CART_SVC, stats=http_heavy, http_request_duration=11, grpc_request_duration=22), 10
    )
    assert p.main_stat == ["10.00rps", "2.00%"]
    assert p.secondary_stat == ["11.00ms"]
    assert p.color == PALETTE.warning

    grpc_heavy = TrafficStats(
        http_requests_success=25, http_requests_error=25,
        grpc_requests_success=98, grpc_requests_error=2,
    )
    p = projector.project_edge(
        Edge(WEB, CART_SVC, stats=grpc_heavy, http_request_duration=11, grpc_request_duration=22), 10
    )
    assert p.main_stat == ["10.00rps", "2.00%"]
    assert p.secondary_stat == ["22.00ms"]
    assert p.color == PALETTE.warning


def test_color_threshold_bands():
    projector = StatProjector(Thresholds(warning=1, error=5))
    expected = {0: PALETTE.healthy, 1: PALETTE.healthy, 2: PALETTE.warning, 5: PALETTE.critical, 6: PALETTE.critical}
    for errors, color in expected.items():
        stats = TrafficStats(grpc_requests_success=100 - errors, grpc_requests_error=errors)
        assert projector.project_edge(Edge(WEB, CART_SVC, stats=stats), 10).color == color, errors
    assert projector.color_for(1.0) == PALETTE.healthy
    assert projector.color_for(5.0) == PALETTE.critical


def test_tcp_only_and_idle():
    p = StatProjector().project_edge(Edge(WEB, CART_SVC, stats=TrafficStats(tcp_sent_bytes=50)), 10)
    assert p.main_stat == ["5.00bps"]
    assert p.color == PALETTE.tcp

    p = StatProjector().project_edge(Edge(WEB, CART_SVC), 10)
    assert p.main_stat == []
    assert p.secondary_stat == []
    assert p.color == PALETTE.idle
    assert p.details[DETAIL_HTTP_DURATION] == ["-"]


def test_custom_palette():
    palette = Palette(warning="orange")
    edge = Edge(WEB, CART_SVC, stats=http_stats())
    assert StatProjector(Thresholds(warning=1, error=50), palette).project_edge(edge, 10).color == "orange"


def test_workload_node_falls_back_to_client_side():
    node = Node(WEB, client=http_stats(ok=8, failed=0))
    p = StatProjector().project_node(node, 4)
    assert p.id == "Workload: frontend (shop)"
    assert p.main_stat == ["2.00rps"]
    assert p.color == PALETTE.healthy
    assert p.details[DETAIL_HTTP_RATE] == ["0.00rps", "2.00rps"]
    assert DETAIL_HTTP_DURATION not in p.details


def test_workload_node_prefers_server_tcp_over_client_requests():
    node = Node(WEB, server=TrafficStats(tcp_received_bytes=40), client=http_stats())
    p = StatProjector().project_node(node, 10)
    assert p.main_stat == ["4.00bps"]
    assert p.color == PALETTE.tcp


def test_service_node_uses_server_side_only():
    node = Node(CART_SVC, server=http_stats(ok=9, failed=1), client=http_stats(ok=100, failed=100))
    p = StatProjector(Thresholds(warning=0, error=5)).project_node(node, 10)
    assert p.id == "Service: cart (shop)"
    assert p.main_stat == ["1.00rps", "10.00%"]
    assert p.color == PALETTE.critical
    assert p.details[DETAIL_HTTP_RATE] == ["1.00rps"]


def test_error_rate_without_requests():
    assert error_rate(0, 0) == 0.0
    assert error_rate(3, 1) == 25.0


def main():
    test_http_edge_rate_and_error_percent()
    test_error_threshold_is_inclusive()
    test_healthy_edge_has_no_error_stat()
    test_grpc_wins_ties_and_tcp_is_secondary()
    test_dominant_protocol_swaps()
    test_color_threshold_bands()
    test_tcp_only_and_idle()
    test_custom_palette()
    test_workload_node_falls_back_to_client_side()
    test_workload_node_prefers_server_tcp_over_client_requests()
    test_service_node_uses_server_side_only()
    test_error_rate_without_requests()
    print("tests_stats: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
