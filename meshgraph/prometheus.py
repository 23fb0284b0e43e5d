"""
Sample source backed by the Prometheus HTTP API.

Calls are blocking ``requests`` round trips; the async methods run them in a
worker thread so the graph assembler can fan them out concurrently. There is
no retry here: a failed call surfaces as ``SampleSourceError``.
"""
import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import requests

from .errors import ConfigError, SampleSourceError
from .models import METRIC_LABEL, Sample, TimeRange

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

AUTH_NONE = "none"
AUTH_BASIC = "basic"
AUTH_TOKEN = "token"
AUTH_METHODS = (AUTH_NONE, AUTH_BASIC, AUTH_TOKEN)

HDR = {"Accept": "application/json"}


class PrometheusClient:
    def __init__(
        self,
        url: str,
        auth_method: str = AUTH_NONE,
        username: str = "",
        password: str = "",
        token: str = "",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if auth_method not in AUTH_METHODS:
            raise ConfigError(f"Unsupported Prometheus auth method '{auth_method}'")
        self.base = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(HDR)
        if auth_method == AUTH_BASIC:
            self.session.auth = (username, password)
        elif auth_method == AUTH_TOKEN:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: "Settings", session: Optional[requests.Session] = None) -> "PrometheusClient":
        return cls(
            settings.prometheus_url,
            auth_method=settings.prometheus_auth_method,
            username=settings.prometheus_username,
            password=settings.prometheus_password,
            token=settings.prometheus_token,
            timeout=settings.prometheus_timeout,
            session=session,
        )

    def _get(self, path: str, params: Any) -> Any:
        url = f"{self.base}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SampleSourceError(f"Prometheus request to {url} failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            resp_text = (resp.text or "").strip()[:200]
            raise SampleSourceError(
                f"Prometheus returned {resp.status_code} with a non-JSON body: {resp_text}"
            )
        if payload.get("status") != "success":
            error_type = payload.get("errorType") or "error"
            message = payload.get("error") or f"HTTP {resp.status_code}"
            raise SampleSourceError(f"Prometheus {error_type}: {message}")
        return payload.get("data")

    def query_vector(self, query: str, at: datetime) -> List[Dict[str, Any]]:
        """Run an instant query; results of any type other than a vector are ignored."""
        data = self._get("/api/v1/query", {"query": query, "time": f"{at.timestamp():.3f}"}) or {}
        if data.get("resultType") != "vector":
            return []
        return data.get("result") or []

    def label_values(self, label: str, matches: Sequence[str], start: datetime, end: datetime) -> List[str]:
        params = [("match[]", m) for m in matches]
        params += [("start", f"{start.timestamp():.3f}"), ("end", f"{end.timestamp():.3f}")]
        data = self._get(f"/api/v1/label/{label}/values", params) or []
        return [str(v) for v in data]

    async def get_metrics(self, metric: str, query: str, time_range: TimeRange) -> List[Sample]:
        """Fetch one metric kind; every sample is tagged with the kind under the "metric" label."""
        logger.debug("[PROMETHEUS] query metric=%s query=%s", metric, query)
        series = await asyncio.to_thread(self.query_vector, query, time_range.end)
        samples = []
        for item in series:
            labels = dict(item.get("metric") or {})
            labels[METRIC_LABEL] = metric
            value = item.get("value") or [0, "0"]
            try:
                samples.append(Sample(value=float(value[1]), labels=labels))
            except (IndexError, TypeError, ValueError) as exc:
                raise SampleSourceError(f"Prometheus returned a malformed sample {value!r}") from exc
        logger.debug("[PROMETHEUS] metric=%s returned %d samples", metric, len(samples))
        return samples

    async def get_label_values(self, label: str, matches: Sequence[str], time_range: TimeRange) -> List[str]:
        logger.debug("[PROMETHEUS] label values label=%s matches=%s", label, list(matches))
        return await asyncio.to_thread(
            self.label_values, label, matches, time_range.start, time_range.end
        )
