#!/usr/bin/env python3
"""Tests for command line parsing and query model construction."""
import argparse
import json
import sys
import tempfile

from meshgraph import cli
from meshgraph.cli import build_payload, parse_args, parse_range, time_range_from
from meshgraph.querymodel import parse_query


def test_parse_range():
    assert parse_range("90s") == 90
    assert parse_range("15m") == 900
    assert parse_range("2h") == 7200
    for bad in ("15", "m", "-5m", "0m"):
        try:
            parse_range(bad)
        except argparse.ArgumentTypeError:
            pass
        else:
            raise AssertionError(f"expected ArgumentTypeError for {bad!r}")


def test_graph_payload_from_flags():
    a = parse_args([
        "graph", "--namespace", "shop", "--workload", "cart-v1",
        "--metric", "httpRequests", "--metric", "grpcRequests",
        "--source-filter", "shop/loadgen", "--idle-edges",
    ])
    model = parse_query(build_payload(a))
    assert model.query_type == "workloadgraph"
    assert model.metrics == ("httpRequests", "grpcRequests")
    assert model.source_filters == ("shop/loadgen",)
    assert model.idle_edges is True

    a = parse_args(["graph", "--namespace", "shop"])
    model = parse_query(build_payload(a))
    assert model.query_type == "namespacegraph"
    assert len(model.metrics) == 4


def test_values_payload_and_query_file():
    a = parse_args(["values", "filters", "--namespace", "shop", "--filter-type", "destination"])
    model = parse_query(build_payload(a))
    assert (model.query_type, model.filter_type) == ("filters", "destination")

    with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8") as fh:
        json.dump({"queryType": "applicationgraph", "namespace": "shop", "application": "cart"}, fh)
    a = parse_args(["graph", "--query", fh.name])
    assert parse_query(build_payload(a)).application == "cart"


def test_time_range():
    a = parse_args(["graph", "--namespace", "shop", "--range", "5m"])
    assert time_range_from(a).interval_seconds == 300

    a = parse_args(["graph", "--namespace", "shop", "--from", "2024-05-01T12:00:00", "--to", "2024-05-01T12:10:00"])
    window = time_range_from(a)
    assert window.interval_seconds == 600
    assert window.start.tzinfo is not None


def test_inverted_window_exits_with_error():
    rc = cli.main(["graph", "--namespace", "shop", "--from", "2024-05-01T12:10:00", "--to", "2024-05-01T12:00:00"])
    assert rc == 1


def main():
    test_parse_range()
    test_graph_payload_from_flags()
    test_values_payload_and_query_file()
    test_time_range()
    test_inverted_window_exits_with_error()
    print("tests_cli: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
