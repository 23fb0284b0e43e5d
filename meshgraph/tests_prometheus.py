#!/usr/bin/env python3
"""Tests for the Prometheus sample source, using a stub requests session."""
import asyncio
import sys
from datetime import datetime, timezone

import requests

from meshgraph.errors import ConfigError, SampleSourceError
from meshgraph.models import TimeRange
from meshgraph.prometheus import AUTH_BASIC, AUTH_TOKEN, PrometheusClient

WINDOW = TimeRange.last(60, now=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


class StubResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self.payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class StubSession:
    def __init__(self, response=None, exc=None):
        self.headers = {}
        self.auth = None
        self.response = response
        self.exc = exc
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def vector(*series):
    return {"status": "success", "data": {"resultType": "vector", "result": list(series)}}


def test_get_metrics_tags_metric_kind():
    session = StubSession(StubResponse(vector(
        {"metric": {"source_workload": "web", "response_code": "200"}, "value": [1714564800, "12.5"]},
    )))
    client = PrometheusClient("http://prom:9090/", timeout=5, session=session)
    samples = asyncio.run(client.get_metrics("httpRequests", "up", WINDOW))
    assert len(samples) == 1
    assert samples[0].value == 12.5
    assert samples[0].metric == "httpRequests"
    assert samples[0].label("source_workload") == "web"

    url, params, timeout = session.requests[0]
    assert url == "http://prom:9090/api/v1/query"
    assert params["query"] == "up"
    assert params["time"] == "1714564800.000"
    assert timeout == 5


def test_non_vector_result_is_empty():
    session = StubSession(StubResponse({"status": "success", "data": {"resultType": "matrix", "result": [{}]}}))
    client = PrometheusClient("http://prom", session=session)
    assert asyncio.run(client.get_metrics("tcpSentBytes", "q", WINDOW)) == []


def test_label_values_params():
    session = StubSession(StubResponse({"status": "success", "data": ["shop", "infra"]}))
    client = PrometheusClient("http://prom", session=session)
    values = asyncio.run(client.get_label_values("source_app", ["a{x=\"1\"}", "b"], WINDOW))
    assert values == ["shop", "infra"]
    url, params, _ = session.requests[0]
    assert url == "http://prom/api/v1/label/source_app/values"
    assert params[:2] == [("match[]", 'a{x="1"}'), ("match[]", "b")]


def test_auth_methods():
    session = StubSession()
    PrometheusClient("http://prom", auth_method=AUTH_BASIC, username="u", password="p", session=session)
    assert session.auth == ("u", "p")

    session = StubSession()
    PrometheusClient("http://prom", auth_method=AUTH_TOKEN, token="t0k", session=session)
    assert session.headers["Authorization"] == "Bearer t0k"
    assert session.headers["Accept"] == "application/json"

    try:
        PrometheusClient("http://prom", auth_method="oauth", session=StubSession())
    except ConfigError:
        pass
    else:
        raise AssertionError("expected ConfigError")


def expect_source_error(session, fragment):
    client = PrometheusClient("http://prom", session=session)
    try:
        asyncio.run(client.get_metrics("httpRequests", "q", WINDOW))
    except SampleSourceError as exc:
        assert fragment in str(exc), str(exc)
    else:
        raise AssertionError("expected SampleSourceError")


def test_failures_become_sample_source_errors():
    expect_source_error(StubSession(exc=requests.ConnectionError("refused")), "refused")
    expect_source_error(
        StubSession(StubResponse({"status": "error", "errorType": "bad_data", "error": "parse error"}, 400)),
        "bad_data: parse error",
    )
    expect_source_error(StubSession(StubResponse(None, 502, "<html>bad gateway</html>")), "502")
    expect_source_error(
        StubSession(StubResponse(vector({"metric": {}, "value": [1, "NaN?"]}))),
        "malformed",
    )


def main():
    test_get_metrics_tags_metric_kind()
    test_non_vector_result_is_empty()
    test_label_values_params()
    test_auth_methods()
    test_failures_become_sample_source_errors()
    print("tests_prometheus: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
