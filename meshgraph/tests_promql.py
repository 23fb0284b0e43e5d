#!/usr/bin/env python3
"""Tests for PromQL synthesis."""
import sys

from meshgraph.promql import EDGE_LABELS, destinations_query, filter_queries, sources_query, workloads_lookups


def test_http_requests_to_application():
    q = destinations_query("shop", "cart", "", "httpRequests", False, 900)
    assert q == (
        'sum(increase(istio_requests_total{destination_workload_namespace="shop", request_protocol="http", '
        f'destination_app="cart"}}[900s])) by ({EDGE_LABELS}, response_code) > 0'
    )


def test_grpc_from_workload_with_idle_edges():
    q = sources_query("shop", "", "cart-v1", "grpcRequests", True, 60)
    assert q.startswith('sum(increase(istio_requests_total{source_workload_namespace="shop", request_protocol="grpc", source_workload="cart-v1"}[60s]))')
    assert q.endswith(", grpc_response_status)")


def test_duration_is_p99():
    q = destinations_query("shop", "", "", "httpRequestDuration", False, 300)
    assert q.startswith("histogram_quantile(0.99, sum(increase(istio_request_duration_milliseconds_bucket{")
    assert f"by (le, {EDGE_LABELS})) > 0" in q


def test_unknown_metric_gives_empty_query():
    assert destinations_query("shop", "", "", "quicStreams", False, 300) == ""


def test_lookups_and_filters():
    lookups = workloads_lookups("shop")
    assert [label for label, _ in lookups] == ["destination_workload", "source_workload"]
    assert 'istio_requests_total{destination_workload_namespace="shop"}' in lookups[0][1]

    ns_label, wl_label, queries = filter_queries("source", "shop", workload="cart-v1")
    assert (ns_label, wl_label) == ("source_workload_namespace", "source_workload")
    assert len(queries) == 3
    assert 'destination_workload="cart-v1"' in queries[0]
    try:
        filter_queries("sideways", "shop")
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")


def main():
    test_http_requests_to_application()
    test_grpc_from_workload_with_idle_edges()
    test_duration_is_p99()
    test_unknown_metric_gives_empty_query()
    test_lookups_and_filters()
    print("tests_promql: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
