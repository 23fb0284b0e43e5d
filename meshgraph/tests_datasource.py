#!/usr/bin/env python3
"""Tests for query dispatch, lookups and bounded concurrent queries."""
import asyncio
import sys

from meshgraph.config import Settings
from meshgraph.datasource import Datasource
from meshgraph.errors import SampleSourceError
from meshgraph.models import Sample
from meshgraph.tests_graph import WINDOW, FakeSource, http_samples


class LookupSource(FakeSource):
    def __init__(self, values=None, fail_label=None, **kwargs):
        super().__init__(**kwargs)
        self.values = values or {}
        self.fail_label = fail_label
        self.active = 0
        self.peak = 0

    async def get_metrics(self, metric, query, time_range):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            return await super().get_metrics(metric, query, time_range)
        finally:
            self.active -= 1

    async def get_label_values(self, label, matches, time_range):
        if label == self.fail_label:
            raise SampleSourceError(f"{label} lookup failed")
        return self.values.get(label, [])


def test_graph_query():
    ds = Datasource(FakeSource(http_samples()), Settings(warning_threshold=1, error_threshold=20))
    resp = asyncio.run(ds.query({"queryType": "namespacegraph", "namespace": "shop", "metrics": ["httpRequests"]}, WINDOW))
    assert resp.ok
    assert len(resp.frames["edges"]) == 2
    assert len(resp.frames["nodes"]) == 3


def test_namespace_values_are_sorted_and_unique():
    source = LookupSource({
        "destination_workload_namespace": ["shop", "infra"],
        "source_workload_namespace": ["shop", "loadgen"],
    })
    resp = asyncio.run(Datasource(source).query({"queryType": "namespaces"}, WINDOW))
    assert resp.to_dict() == {"values": ["infra", "loadgen", "shop"]}


def test_lookup_failure_is_an_error_result():
    source = LookupSource({"destination_app": ["cart"]}, fail_label="source_app")
    resp = asyncio.run(Datasource(source).query({"queryType": "applications", "namespace": "shop"}, WINDOW))
    assert not resp.ok
    assert resp.frames == {}
    assert resp.to_dict() == {"error": "source_app lookup failed"}


def test_filter_values():
    class FilterSource(LookupSource):
        async def get_metrics(self, metric, query, time_range):
            return [
                Sample(3, {"source_workload_namespace": "shop", "source_workload": "frontend"}),
                Sample(1, {"source_workload_namespace": "tools", "source_workload": "loadgen"}),
                Sample(1, {"source_workload": "unlabelled"}),
            ]

    resp = asyncio.run(Datasource(FilterSource()).query(
        {"queryType": "filters", "namespace": "shop", "filterType": "source"}, WINDOW
    ))
    assert resp.frames == {"values": ["shop/frontend", "tools/loadgen"]}


def test_parse_and_fetch_errors():
    ds = Datasource(FakeSource(fail={("httpRequests", "source"): SampleSourceError("prometheus unreachable")}))
    resp = asyncio.run(ds.query("{broken", WINDOW))
    assert not resp.ok and "could not decode" in resp.error

    resp = asyncio.run(ds.query({"queryType": "namespacegraph", "namespace": "shop"}, WINDOW))
    assert resp.error == "prometheus unreachable"
    assert resp.frames == {}


def test_query_data_keeps_order_and_bounds_concurrency():
    source = LookupSource(
        samples=http_samples(),
        delays={("httpRequests", "destination"): 0.01, ("httpRequests", "source"): 0.01},
    )
    ds = Datasource(source, Settings(max_concurrent_queries=1))
    payloads = [
        {"queryType": "namespacegraph", "namespace": "shop", "metrics": ["httpRequests"]},
        {"queryType": "bogus"},
        {"queryType": "namespacegraph", "namespace": "shop", "metrics": ["httpRequests"]},
    ]
    responses = asyncio.run(ds.query_data(payloads, WINDOW))
    assert [r.ok for r in responses] == [True, False, True]
    assert "bogus" in responses[1].error
    # One query at a time; each query fans out to both directions.
    assert source.peak == 2


def main():
    test_graph_query()
    test_namespace_values_are_sorted_and_unique()
    test_lookup_failure_is_an_error_result()
    test_filter_values()
    test_parse_and_fetch_errors()
    test_query_data_keeps_order_and_bounds_concurrency()
    print("tests_datasource: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
