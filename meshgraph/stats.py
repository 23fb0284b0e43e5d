"""
Derive display fields and a health color for edges and nodes.

The projector is pure: thresholds and colors are passed in, and the window
length is supplied per call. For every element it picks the dominant protocol
(HTTP when it carries more requests than gRPC, then gRPC, then raw TCP bytes)
and surfaces that protocol's rate, error percentage, duration and the combined
TCP byte rate.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import Edge, Node, TrafficStats

NO_DATA = "-"

DETAIL_GRPC_RATE = "detail__grpcrate"
DETAIL_GRPC_ERR = "detail__grpcperr"
DETAIL_GRPC_DURATION = "detail__grpcduration"
DETAIL_GRPC_SENT_MESSAGES = "detail__grpcsentmessages"
DETAIL_GRPC_RECEIVED_MESSAGES = "detail__grpcreceivedmessages"
DETAIL_HTTP_RATE = "detail__httprate"
DETAIL_HTTP_ERR = "detail__httperr"
DETAIL_HTTP_DURATION = "detail__httpduration"
DETAIL_TCP_SENT_BYTES = "detail__tcpsentbytes"
DETAIL_TCP_RECEIVED_BYTES = "detail__tcpreceivedbytes"


@dataclass(frozen=True)
class Thresholds:
    """Error-rate thresholds in percent."""

    warning: float = 0.0
    error: float = 5.0


@dataclass(frozen=True)
class Palette:
    critical: str = "#f2495c"
    warning: str = "#fade2a"
    healthy: str = "#73bf69"
    tcp: str = "#5794f2"
    idle: str = "#ccccdc"


def format_rate(value: float) -> str:
    return f"{value:.2f}rps"


def format_percent(value: float) -> str:
    return f"{value:.2f}%"


def format_duration(value: float) -> str:
    return f"{value:.2f}ms" if value > 0 else NO_DATA


def format_messages(value: float) -> str:
    return f"{value:.2f}mps"


def format_bytes(value: float) -> str:
    return f"{value:.2f}bps"


def error_rate(success: float, error: float) -> float:
    total = success + error
    if total <= 0:
        return 0.0
    return error / total * 100


@dataclass
class Summary:
    main_stat: List[str] = field(default_factory=list)
    secondary_stat: List[str] = field(default_factory=list)
    color: str = ""


@dataclass
class Projection:
    id: str
    source: str = ""
    destination: str = ""
    main_stat: List[str] = field(default_factory=list)
    secondary_stat: List[str] = field(default_factory=list)
    color: str = ""
    details: Dict[str, List[str]] = field(default_factory=dict)


class StatProjector:
    def __init__(self, thresholds: Optional[Thresholds] = None, palette: Optional[Palette] = None):
        self.thresholds = thresholds or Thresholds()
        self.palette = palette or Palette()

    def color_for(self, err_rate: float) -> str:
        if err_rate >= self.thresholds.error:
            return self.palette.critical
        if err_rate > self.thresholds.warning:
            return self.palette.warning
        return self.palette.healthy

    def summarize(
        self,
        stats: TrafficStats,
        interval: float,
        grpc_duration: float = 0.0,
        http_duration: float = 0.0,
    ) -> Optional[Summary]:
        """Pick the dominant protocol of one stat block; None when it carries no traffic."""
        tcp_rate = stats.tcp_bytes / interval

        if stats.http_requests > stats.grpc_requests:
            requests = stats.http_requests
            err_rate = error_rate(stats.http_requests_success, stats.http_requests_error)
            duration = http_duration
        elif stats.grpc_requests > 0:
            requests = stats.grpc_requests
            err_rate = error_rate(stats.grpc_requests_success, stats.grpc_requests_error)
            duration = grpc_duration
        elif stats.tcp_bytes > 0:
            return Summary(main_stat=[format_bytes(tcp_rate)], color=self.palette.tcp)
        else:
            return None

        summary = Summary(main_stat=[format_rate(requests / interval)], color=self.color_for(err_rate))
        if err_rate > 0:
            summary.main_stat.append(format_percent(err_rate))
        if duration > 0:
            summary.secondary_stat.append(format_duration(duration))
        if stats.tcp_bytes > 0:
            summary.secondary_stat.append(format_bytes(tcp_rate))
        return summary

    def project_edge(self, edge: Edge, interval: float) -> Projection:
        stats = edge.stats
        projection = Projection(
            id=edge.id,
            source=edge.source.label,
            destination=edge.destination.label,
            details={
                DETAIL_GRPC_RATE: [format_rate(stats.grpc_requests / interval)],
                DETAIL_GRPC_ERR: [format_percent(error_rate(stats.grpc_requests_success, stats.grpc_requests_error))],
                DETAIL_GRPC_DURATION: [format_duration(edge.grpc_request_duration)],
                DETAIL_GRPC_SENT_MESSAGES: [format_messages(stats.grpc_sent_messages / interval)],
                DETAIL_GRPC_RECEIVED_MESSAGES: [format_messages(stats.grpc_received_messages / interval)],
                DETAIL_HTTP_RATE: [format_rate(stats.http_requests / interval)],
                DETAIL_HTTP_ERR: [format_percent(error_rate(stats.http_requests_success, stats.http_requests_error))],
                DETAIL_HTTP_DURATION: [format_duration(edge.http_request_duration)],
                DETAIL_TCP_SENT_BYTES: [format_bytes(stats.tcp_sent_bytes / interval)],
                DETAIL_TCP_RECEIVED_BYTES: [format_bytes(stats.tcp_received_bytes / interval)],
            },
        )
        summary = self.summarize(
            stats,
            interval,
            grpc_duration=edge.grpc_request_duration,
            http_duration=edge.http_request_duration,
        )
        self._apply(projection, summary)
        return projection

    def project_node(self, node: Node, interval: float) -> Projection:
        # Client traffic of a service repeats the client traffic of the
        # workloads behind it, so services only show what they serve.
        if node.entity.is_service:
            projection = self.project_edge(
                Edge(source=node.entity, destination=node.entity, stats=node.server),
                interval,
            )
            projection.id = node.id
            return projection

        server, client = node.server, node.client
        projection = Projection(
            id=node.id,
            details={
                DETAIL_GRPC_RATE: [
                    format_rate(server.grpc_requests / interval),
                    format_rate(client.grpc_requests / interval),
                ],
                DETAIL_GRPC_ERR: [
                    format_percent(error_rate(server.grpc_requests_success, server.grpc_requests_error)),
                    format_percent(error_rate(client.grpc_requests_success, client.grpc_requests_error)),
                ],
                DETAIL_GRPC_SENT_MESSAGES: [
                    format_messages(server.grpc_sent_messages / interval),
                    format_messages(client.grpc_sent_messages / interval),
                ],
                DETAIL_GRPC_RECEIVED_MESSAGES: [
                    format_messages(server.grpc_received_messages / interval),
                    format_messages(client.grpc_received_messages / interval),
                ],
                DETAIL_HTTP_RATE: [
                    format_rate(server.http_requests / interval),
                    format_rate(client.http_requests / interval),
                ],
                DETAIL_HTTP_ERR: [
                    format_percent(error_rate(server.http_requests_success, server.http_requests_error)),
                    format_percent(error_rate(client.http_requests_success, client.http_requests_error)),
                ],
                DETAIL_TCP_SENT_BYTES: [
                    format_bytes(server.tcp_sent_bytes / interval),
                    format_bytes(client.tcp_sent_bytes / interval),
                ],
                DETAIL_TCP_RECEIVED_BYTES: [
                    format_bytes(server.tcp_received_bytes / interval),
                    format_bytes(client.tcp_received_bytes / interval),
                ],
            },
        )
        summary = self.summarize(server, interval) or self.summarize(client, interval)
        self._apply(projection, summary)
        return projection

    def _apply(self, projection: Projection, summary: Optional[Summary]) -> None:
        if summary is None:
            projection.color = self.palette.idle
            return
        projection.main_stat = summary.main_stat
        projection.secondary_stat = summary.secondary_stat
        projection.color = summary.color
