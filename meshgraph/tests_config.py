#!/usr/bin/env python3
"""Tests for environment-driven settings."""
import sys

from meshgraph.config import load_settings
from meshgraph.errors import ConfigError
from meshgraph.stats import Thresholds


def expect_config_error(env, fragment):
    try:
        load_settings(env)
    except ConfigError as exc:
        assert fragment in str(exc), str(exc)
    else:
        raise AssertionError(f"expected ConfigError for {env!r}")


def test_defaults():
    settings = load_settings({})
    assert settings.prometheus_url == "http://localhost:9090"
    assert settings.prometheus_auth_method == "none"
    assert settings.thresholds == Thresholds(warning=0.0, error=5.0)
    assert settings.max_concurrent_queries == 10
    assert settings.duration_policy == "last"


def test_overrides():
    settings = load_settings({
        "MESHGRAPH_PROMETHEUS_URL": "http://prom.monitoring:9090",
        "MESHGRAPH_PROMETHEUS_AUTH": "Token",
        "MESHGRAPH_PROMETHEUS_TOKEN": "abc",
        "MESHGRAPH_WARNING_THRESHOLD": "1.5",
        "MESHGRAPH_ERROR_THRESHOLD": "10",
        "MESHGRAPH_MAX_CONCURRENT_QUERIES": "4",
        "MESHGRAPH_DURATION_POLICY": "max",
        "MESHGRAPH_SERVICE_DASHBOARD": "https://grafana/d/svc?orgId=1",
    })
    assert settings.prometheus_url == "http://prom.monitoring:9090"
    assert settings.prometheus_auth_method == "token"
    assert settings.prometheus_token == "abc"
    assert settings.thresholds == Thresholds(warning=1.5, error=10.0)
    assert settings.max_concurrent_queries == 4
    assert settings.duration_policy == "max"
    assert settings.service_dashboard == "https://grafana/d/svc?orgId=1"


def test_zero_error_threshold_falls_back():
    assert load_settings({"MESHGRAPH_ERROR_THRESHOLD": "0"}).error_threshold == 5.0


def test_invalid_values():
    expect_config_error({"MESHGRAPH_WARNING_THRESHOLD": "high"}, "MESHGRAPH_WARNING_THRESHOLD")
    expect_config_error({"MESHGRAPH_PROMETHEUS_AUTH": "oauth"}, "oauth")
    expect_config_error({"MESHGRAPH_DURATION_POLICY": "mean"}, "mean")
    expect_config_error({"MESHGRAPH_MAX_CONCURRENT_QUERIES": "0"}, "at least 1")


def main():
    test_defaults()
    test_overrides()
    test_zero_error_threshold_falls_back()
    test_invalid_values()
    print("tests_config: OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
