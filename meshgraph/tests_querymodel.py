#!/usr/bin/env python3
"""Tests for query model parsing and validation."""
import json
import sys

from meshgraph.errors import QueryModelError
from meshgraph.models import DEFAULT_METRICS
from meshgraph.querymodel import parse_query, split_filters


def expect_error(payload, fragment):
    try:
        parse_query(payload)
    except QueryModelError as exc:
        assert fragment in str(exc), str(exc)
    else:
        raise AssertionError(f"expected QueryModelError for {payload!r}")


def test_defaults():
    model = parse_query(json.dumps({"namespace": "shop", "application": "cart"}))
    assert model.query_type == "applicationgraph"
    assert model.metrics == DEFAULT_METRICS
    assert model.idle_edges is False
    assert model.is_graph


def test_graph_request_scoping():
    model = parse_query({
        "queryType": "workloadgraph",
        "namespace": "shop",
        "application": "ignored",
        "workload": "cart-v1",
        "metrics": ["httpRequests"],
        "idleEdges": True,
        "sourceFilters": ["shop/loadgen,shop/probe", " "],
        "destinationFilters": ["shop/db"],
    })
    request = model.graph_request()
    assert request.application == ""
    assert request.workload == "cart-v1"
    assert request.metrics == ("httpRequests",)
    assert request.idle_edges is True
    assert request.source_filters == ("shop/loadgen", "shop/probe")
    assert request.destination_filters == ("shop/db",)

    request = parse_query({"queryType": "namespacegraph", "namespace": "shop", "workload": "x"}).graph_request()
    assert (request.application, request.workload) == ("", "")


def test_lookup_types():
    assert not parse_query({"queryType": "namespaces"}).is_graph
    assert parse_query(b'{"queryType": "workloads", "namespace": "shop"}').namespace == "shop"
    assert parse_query({"queryType": "filters", "namespace": "shop", "filterType": "destination"}).filter_type == "destination"


def test_required_fields():
    expect_error({"queryType": "applications"}, "requires a namespace")
    expect_error({"queryType": "applicationgraph", "namespace": "shop"}, "requires an application")
    expect_error({"queryType": "workloadgraph", "namespace": "shop"}, "requires a workload")
    expect_error({"queryType": "filters", "namespace": "shop"}, "filterType")


def test_malformed_payloads():
    expect_error("{not json", "could not decode")
    expect_error("[1, 2]", "JSON object")
    expect_error({"queryType": "topology", "namespace": "shop"}, "unknown query type")
    expect_error({"namespace": "shop", "application": "cart", "idleEdges": "yes"}, "idleEdges")
    expect_error({"namespace": "shop", "application": "cart", "metrics": "httpRequests"}, "metrics")


def test_split_filters():
    assert split_filters(["a/b, c/d", "", "e/f"]) == ("a/b", "c/d", "e/f")


def main():
    test_defaults()
    test_graph_request_scoping()
    test_lookup_types()
    test_required_fields()
    test_malformed_payloads()
    test_split_filters()
    print("tests_querymodel: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
