#!/usr/bin/env python3
"""Tests for the graph assembler against an in-memory sample source."""
import asyncio
import sys
from datetime import datetime, timezone

from meshgraph.errors import SampleSourceError
from meshgraph.graph import EDGE_COLUMNS, NODE_COLUMNS, GraphAssembler, dashboard_link
from meshgraph.models import KIND_SERVICE, Entity, Sample, TimeRange
from meshgraph.querymodel import GraphRequest
from meshgraph.stats import Palette, StatProjector, Thresholds
from meshgraph.tests_edges import mesh_labels

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
WINDOW = TimeRange.last(10, now=NOW)


class FakeSource:
    """Answers metric queries from canned samples, keyed by metric kind and direction."""

    def __init__(self, samples=None, fail=None, delays=None):
        self.samples = samples or {}
        self.fail = fail or {}
        self.delays = delays or {}
        self.calls = []

    async def get_metrics(self, metric, query, time_range):
        direction = "destination" if "{destination_workload_namespace=" in query else "source"
        self.calls.append((metric, direction))
        await asyncio.sleep(self.delays.get((metric, direction), 0))
        if (metric, direction) in self.fail:
            raise self.fail[(metric, direction)]
        return [Sample(value, dict(labels, metric=metric)) for value, labels in self.samples.get((metric, direction), [])]

    async def get_label_values(self, label, matches, time_range):
        return []


def http_samples():
    return {
        ("httpRequests", "destination"): [
            (10, mesh_labels(response_code="200")),
            (2, mesh_labels(response_code="503")),
        ],
        # The same series seen from the source side is deduplicated.
        ("httpRequests", "source"): [
            (10, mesh_labels(response_code="200")),
        ],
    }


def test_end_to_end_http_graph():
    source = FakeSource(http_samples())
    assembler = GraphAssembler(source, projector=StatProjector(Thresholds(warning=1, error=20)))
    request = GraphRequest(namespace="shop", application="cart", metrics=("httpRequests",))
    graph = asyncio.run(assembler.build(request, WINDOW))

    assert sorted(source.calls) == [("httpRequests", "destination"), ("httpRequests", "source")]
    assert len(graph.edges) == 2
    assert len(graph.nodes) == 3
    for row in graph.edges:
        assert list(row) == [name for name, _ in EDGE_COLUMNS]
        assert row["mainstat"] == "1.20rps | 16.67%"
        assert row["color"] == Palette().warning

    nodes = {row["id"]: row for row in graph.nodes}
    assert list(nodes["Workload: cart (shop)"]) == [name for name, _ in NODE_COLUMNS]
    assert nodes["Workload: cart (shop)"]["detail__httprate"] == "1.20rps | 0.00rps"
    assert nodes["Workload: frontend (shop)"]["mainstat"] == "1.20rps | 16.67%"
    assert nodes["Service: cart (shop)"]["title"] == "Service"
    assert nodes["Service: cart (shop)"]["subtitle"] == "cart (shop)"


def test_critical_with_lower_error_threshold():
    assembler = GraphAssembler(FakeSource(http_samples()), projector=StatProjector(Thresholds(warning=1, error=10)))
    graph = asyncio.run(assembler.build(GraphRequest(namespace="shop", metrics=("httpRequests",)), WINDOW))
    assert {row["color"] for row in graph.edges} == {Palette().critical}


def test_first_failure_in_request_order_wins():
    first = SampleSourceError("grpc down")
    second = SampleSourceError("tcp down")
    source = FakeSource(
        http_samples(),
        fail={("grpcRequests", "source"): first, ("tcpSentBytes", "destination"): second},
        # The later request fails first in wall-clock time.
        delays={("grpcRequests", "source"): 0.05},
    )
    request = GraphRequest(namespace="shop", metrics=("grpcRequests", "httpRequests", "tcpSentBytes"))
    try:
        asyncio.run(GraphAssembler(source).build(request, WINDOW))
    except SampleSourceError as exc:
        assert exc is first
    else:
        raise AssertionError("expected SampleSourceError")
    # No sibling was cancelled.
    assert len(source.calls) == 6


def test_unknown_metric_kind_is_skipped():
    source = FakeSource(http_samples())
    request = GraphRequest(namespace="shop", metrics=("httpRequests", "quicStreams"))
    graph = asyncio.run(GraphAssembler(source).build(request, WINDOW))
    assert {metric for metric, _ in source.calls} == {"httpRequests"}
    assert len(graph.edges) == 2


def test_no_samples_gives_empty_graph():
    graph = asyncio.run(GraphAssembler(FakeSource()).build(GraphRequest(namespace="shop"), WINDOW))
    assert graph.to_dict() == {"edges": [], "nodes": []}


def test_filtered_workload_leaves_no_nodes():
    request = GraphRequest(namespace="shop", metrics=("httpRequests",), source_filters=("shop/frontend",))
    graph = asyncio.run(GraphAssembler(FakeSource(http_samples())).build(request, WINDOW))
    assert graph.edges == []
    assert graph.nodes == []


def test_dashboard_links():
    svc = Entity(KIND_SERVICE, "cart", "shop", service="cart.shop.svc.cluster.local")
    link = dashboard_link(svc, WINDOW, "https://g/d/wl?orgId=1", "https://g/d/svc?orgId=1")
    assert link == (
        "https://g/d/svc?orgId=1&var-service=cart.shop.svc.cluster.local"
        f"&from={WINDOW.start_ms}&to={WINDOW.end_ms}"
    )
    assert WINDOW.end_ms - WINDOW.start_ms == 10000

    assembler = GraphAssembler(
        FakeSource(http_samples()),
        workload_dashboard="https://g/d/wl?orgId=1",
        service_dashboard="https://g/d/svc?orgId=1",
    )
    graph = asyncio.run(assembler.build(GraphRequest(namespace="shop", metrics=("httpRequests",)), WINDOW))
    links = {row["id"]: row["link"] for row in graph.nodes}
    assert links["Workload: frontend (shop)"].startswith("https://g/d/wl?orgId=1&var-namespace=shop&var-workload=frontend&")
    assert "var-service=cart.shop.svc.cluster.local" in links["Service: cart (shop)"]


def main():
    test_end_to_end_http_graph()
    test_critical_with_lower_error_threshold()
    test_first_failure_in_request_order_wins()
    test_unknown_metric_kind_is_skipped()
    test_no_samples_gives_empty_graph()
    test_filtered_workload_leaves_no_nodes()
    test_dashboard_links()
    print("tests_graph: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
