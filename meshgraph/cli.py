#!/usr/bin/env python3
# Build an Istio traffic graph (or list graph variables) from Prometheus and
# print it as JSON. Settings come from MESHGRAPH_* env vars; flags override.
import argparse
import asyncio
import dataclasses
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import load_settings
from .datasource import Datasource
from .errors import MeshGraphError
from .models import DEFAULT_METRICS, TimeRange
from .prometheus import PrometheusClient
from .querymodel import (
    FILTER_TYPES,
    QUERY_APPLICATION_GRAPH,
    QUERY_APPLICATIONS,
    QUERY_FILTERS,
    QUERY_NAMESPACE_GRAPH,
    QUERY_NAMESPACES,
    QUERY_WORKLOAD_GRAPH,
    QUERY_WORKLOADS,
)

RANGE_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def log(msg: str) -> None:
    print(msg, file=sys.stderr)


def parse_range(value: str) -> int:
    """'90s', '15m', '1h', '2d' -> seconds."""
    m = re.fullmatch(r"\s*(\d+)\s*([smhd])\s*", value or "")
    if not m:
        raise argparse.ArgumentTypeError(f"invalid range '{value}', expected e.g. 15m or 1h")
    seconds = int(m.group(1)) * RANGE_UNITS[m.group(2)]
    if seconds <= 0:
        raise argparse.ArgumentTypeError("range must be positive")
    return seconds


def parse_time(value: str) -> datetime:
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid timestamp '{value}', expected ISO 8601")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="meshgraph", description="Istio traffic graph from Prometheus telemetry.")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--namespace", default="")
    common.add_argument("--application", default="")
    common.add_argument("--workload", default="")
    common.add_argument("--query", help="JSON file with a raw query model; overrides the query flags.")
    common.add_argument("--range", type=parse_range, default=parse_range("15m"),
                        help="Window ending now, e.g. 15m, 1h (default 15m).")
    common.add_argument("--from", dest="start", type=parse_time, help="Window start (ISO 8601).")
    common.add_argument("--to", dest="end", type=parse_time, help="Window end (ISO 8601), default now.")
    common.add_argument("--prometheus-url", help="Overrides MESHGRAPH_PROMETHEUS_URL.")
    common.add_argument("--out", help="Also write the JSON result to this file.")
    common.add_argument("--verbose", "-v", action="store_true")

    sub = ap.add_subparsers(dest="command", required=True)

    g = sub.add_parser("graph", parents=[common], help="Build the traffic graph.")
    g.add_argument("--metric", action="append", dest="metrics",
                   help=f"Metric kind to query; repeatable (default {', '.join(DEFAULT_METRICS)}).")
    g.add_argument("--idle-edges", action="store_true", help="Keep edges without traffic.")
    g.add_argument("--source-filter", action="append", default=[],
                   help="Skip traffic from <namespace>/<workload>; repeatable.")
    g.add_argument("--destination-filter", action="append", default=[],
                   help="Skip traffic to <namespace>/<workload>; repeatable.")
    g.add_argument("--warning-threshold", type=float, help="Error percent above which edges turn warning.")
    g.add_argument("--error-threshold", type=float, help="Error percent at which edges turn critical.")

    v = sub.add_parser("values", parents=[common], help="List graph variable values.")
    v.add_argument("kind", choices=[QUERY_NAMESPACES, QUERY_APPLICATIONS, QUERY_WORKLOADS, QUERY_FILTERS])
    v.add_argument("--filter-type", choices=list(FILTER_TYPES), default="source")

    a = ap.parse_args(argv)
    if a.application and a.workload:
        ap.error("--application and --workload are mutually exclusive")
    if a.end is not None and a.start is None:
        ap.error("--to requires --from")
    return a


def build_payload(a: argparse.Namespace) -> Dict[str, Any]:
    if a.query:
        with open(a.query, "r", encoding="utf-8") as fh:
            return json.load(fh)

    payload: Dict[str, Any] = {
        "namespace": a.namespace,
        "application": a.application,
        "workload": a.workload,
    }
    if a.command == "values":
        payload["queryType"] = a.kind
        payload["filterType"] = a.filter_type
        return payload

    if a.application:
        payload["queryType"] = QUERY_APPLICATION_GRAPH
    elif a.workload:
        payload["queryType"] = QUERY_WORKLOAD_GRAPH
    else:
        payload["queryType"] = QUERY_NAMESPACE_GRAPH
    if a.metrics:
        payload["metrics"] = a.metrics
    payload["idleEdges"] = a.idle_edges
    payload["sourceFilters"] = a.source_filter
    payload["destinationFilters"] = a.destination_filter
    return payload


def time_range_from(a: argparse.Namespace) -> TimeRange:
    if a.start is not None:
        end = a.end or datetime.now(timezone.utc)
        if end <= a.start:
            raise MeshGraphError("--to must be later than --from")
        return TimeRange(start=a.start, end=end)
    return TimeRange.last(a.range)


def main(argv: Optional[List[str]] = None) -> int:
    a = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if a.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        settings = load_settings()
        overrides: Dict[str, Any] = {}
        if a.prometheus_url:
            overrides["prometheus_url"] = a.prometheus_url
        if getattr(a, "warning_threshold", None) is not None:
            overrides["warning_threshold"] = a.warning_threshold
        if getattr(a, "error_threshold", None):
            overrides["error_threshold"] = a.error_threshold
        settings = dataclasses.replace(settings, **overrides)
        payload = build_payload(a)
        time_range = time_range_from(a)
    except (MeshGraphError, OSError, ValueError) as exc:
        log(f"ERROR: {exc}")
        return 1

    log(f"Querying {settings.prometheus_url} ({a.command}) for "
        f"{time_range.start.isoformat()} .. {time_range.end.isoformat()}")
    datasource = Datasource(PrometheusClient.from_settings(settings), settings)
    resp = asyncio.run(datasource.query(payload, time_range))
    if not resp.ok:
        log(f"ERROR: {resp.error}")
        return 1

    result = resp.to_dict()
    text = json.dumps(result, indent=2)
    if a.out:
        with open(a.out, "w", encoding="utf-8") as fh:
            fh.write(text + "\n")
        if "edges" in result:
            log(f"Wrote {a.out}: |V|={len(result['nodes'])} |E|={len(result['edges'])}")
        else:
            log(f"Wrote {a.out}: {len(result.get('values', []))} values")
    print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
