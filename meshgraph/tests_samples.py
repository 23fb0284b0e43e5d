#!/usr/bin/env python3
"""Tests for sample deduplication."""
import sys

from meshgraph.models import Sample
from meshgraph.samples import deduplicate


def test_duplicate_label_sets_keep_first():
    a = Sample(10, {"metric": "httpRequests", "source_workload": "web", "response_code": "200"})
    b = Sample(99, {"response_code": "200", "source_workload": "web", "metric": "httpRequests"})
    c = Sample(3, {"metric": "httpRequests", "source_workload": "web", "response_code": "503"})
    out = deduplicate([a, b, c])
    assert out == [a, c]
    assert out[0].value == 10


def test_metric_kind_is_part_of_identity():
    a = Sample(1, {"metric": "tcpSentBytes", "source_workload": "web"})
    b = Sample(1, {"metric": "tcpReceivedBytes", "source_workload": "web"})
    assert deduplicate([a, b]) == [a, b]


def test_dedup_idempotent():
    samples = [
        Sample(1, {"metric": "httpRequests", "response_code": "200"}),
        Sample(2, {"metric": "httpRequests", "response_code": "200"}),
        Sample(3, {"metric": "grpcRequests", "grpc_response_status": "14"}),
    ]
    once = deduplicate(samples)
    assert deduplicate(once) == once
    assert len(once) == 2


def test_samples_are_read_only_and_unhashable():
    labels = {"metric": "tcpSentBytes", "source_workload": "web"}
    sample = Sample(5, labels)
    labels["source_workload"] = "changed"
    assert sample.label("source_workload") == "web"
    try:
        sample.labels["source_workload"] = "other"
    except TypeError:
        pass
    else:
        raise AssertionError("labels should be read-only")
    try:
        hash(sample)
    except TypeError:
        pass
    else:
        raise AssertionError("samples should not be hashable")
    assert sample == Sample(5, {"source_workload": "web", "metric": "tcpSentBytes"})


def test_empty_input():
    assert deduplicate([]) == []


def main():
    test_duplicate_label_sets_keep_first()
    test_metric_kind_is_part_of_identity()
    test_dedup_idempotent()
    test_samples_are_read_only_and_unhashable()
    test_empty_input()
    print("tests_samples: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
