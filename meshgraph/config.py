import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .edges import DURATION_POLICIES
from .errors import ConfigError
from .prometheus import AUTH_METHODS, AUTH_NONE
from .stats import Thresholds

DEFAULT_PROMETHEUS_URL = "http://localhost:9090"
DEFAULT_WARNING_THRESHOLD = 0.0
DEFAULT_ERROR_THRESHOLD = 5.0


@dataclass(frozen=True)
class Settings:
    prometheus_url: str = DEFAULT_PROMETHEUS_URL
    prometheus_auth_method: str = AUTH_NONE
    prometheus_username: str = ""
    prometheus_password: str = ""
    prometheus_token: str = ""
    prometheus_timeout: float = 30.0
    warning_threshold: float = DEFAULT_WARNING_THRESHOLD
    error_threshold: float = DEFAULT_ERROR_THRESHOLD
    workload_dashboard: str = ""
    service_dashboard: str = ""
    max_concurrent_queries: int = 10
    duration_policy: str = "last"

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(warning=self.warning_threshold, error=self.error_threshold)


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from MESHGRAPH_* environment variables."""
    env = os.environ if env is None else env

    auth_method = (env.get("MESHGRAPH_PROMETHEUS_AUTH") or AUTH_NONE).strip().lower()
    if auth_method not in AUTH_METHODS:
        raise ConfigError(
            f"MESHGRAPH_PROMETHEUS_AUTH must be one of {list(AUTH_METHODS)}, got '{auth_method}'"
        )

    duration_policy = (env.get("MESHGRAPH_DURATION_POLICY") or "last").strip().lower()
    if duration_policy not in DURATION_POLICIES:
        raise ConfigError(
            f"MESHGRAPH_DURATION_POLICY must be one of {sorted(DURATION_POLICIES)}, got '{duration_policy}'"
        )

    # Zero means unset.
    error_threshold = _number(env, "MESHGRAPH_ERROR_THRESHOLD", DEFAULT_ERROR_THRESHOLD)
    if error_threshold == 0:
        error_threshold = DEFAULT_ERROR_THRESHOLD

    max_concurrent = int(_number(env, "MESHGRAPH_MAX_CONCURRENT_QUERIES", 10))
    if max_concurrent < 1:
        raise ConfigError("MESHGRAPH_MAX_CONCURRENT_QUERIES must be at least 1")

    return Settings(
        prometheus_url=(env.get("MESHGRAPH_PROMETHEUS_URL") or DEFAULT_PROMETHEUS_URL).strip(),
        prometheus_auth_method=auth_method,
        prometheus_username=env.get("MESHGRAPH_PROMETHEUS_USERNAME", ""),
        prometheus_password=env.get("MESHGRAPH_PROMETHEUS_PASSWORD", ""),
        prometheus_token=env.get("MESHGRAPH_PROMETHEUS_TOKEN", ""),
        prometheus_timeout=_number(env, "MESHGRAPH_PROMETHEUS_TIMEOUT", 30.0),
        warning_threshold=_number(env, "MESHGRAPH_WARNING_THRESHOLD", DEFAULT_WARNING_THRESHOLD),
        error_threshold=error_threshold,
        workload_dashboard=env.get("MESHGRAPH_WORKLOAD_DASHBOARD", ""),
        service_dashboard=env.get("MESHGRAPH_SERVICE_DASHBOARD", ""),
        max_concurrent_queries=max_concurrent,
        duration_policy=duration_policy,
    )
