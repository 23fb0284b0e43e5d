from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, Mapping, Optional

METRIC_GRPC_REQUESTS = "grpcRequests"
METRIC_GRPC_REQUEST_DURATION = "grpcRequestDuration"
METRIC_GRPC_SENT_MESSAGES = "grpcSentMessages"
METRIC_GRPC_RECEIVED_MESSAGES = "grpcReceivedMessages"
METRIC_HTTP_REQUESTS = "httpRequests"
METRIC_HTTP_REQUEST_DURATION = "httpRequestDuration"
METRIC_TCP_SENT_BYTES = "tcpSentBytes"
METRIC_TCP_RECEIVED_BYTES = "tcpReceivedBytes"

METRICS = (
    METRIC_GRPC_REQUESTS,
    METRIC_GRPC_REQUEST_DURATION,
    METRIC_GRPC_SENT_MESSAGES,
    METRIC_GRPC_RECEIVED_MESSAGES,
    METRIC_HTTP_REQUESTS,
    METRIC_HTTP_REQUEST_DURATION,
    METRIC_TCP_SENT_BYTES,
    METRIC_TCP_RECEIVED_BYTES,
)

DEFAULT_METRICS = (
    METRIC_GRPC_REQUESTS,
    METRIC_HTTP_REQUESTS,
    METRIC_TCP_SENT_BYTES,
    METRIC_TCP_RECEIVED_BYTES,
)

# Label carrying the metric kind on every sample.
METRIC_LABEL = "metric"

KIND_WORKLOAD = "Workload"
KIND_SERVICE = "Service"

# Workload name istio gives to ambient-mesh waypoint proxies.
WAYPOINT = "waypoint"


@dataclass(frozen=True)
class Sample:
    """One series value with its labels.

    Labels are copied into a read-only mapping. Samples compare by value and
    labels but are not hashable; deduplicate them through ``label_set``.
    """

    value: float
    labels: Mapping[str, str]

    __hash__ = None

    def __post_init__(self):
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    @property
    def metric(self) -> str:
        return self.labels.get(METRIC_LABEL, "")

    def label(self, name: str) -> str:
        return self.labels.get(name, "")


@dataclass(frozen=True)
class Entity:
    """A workload or service in the mesh.

    Identity is (kind, name, namespace). ``service`` holds the fully qualified
    destination service name when it is known and is only used for dashboard
    links, so it does not take part in equality or hashing.
    """

    kind: str
    name: str
    namespace: str
    service: str = field(default="", compare=False)

    @property
    def label(self) -> str:
        return f"{self.kind}: {self.name} ({self.namespace})"

    @property
    def key(self) -> str:
        return f"{self.kind.lower()}-{self.name}-{self.namespace}"

    @property
    def is_service(self) -> bool:
        return self.kind == KIND_SERVICE


@dataclass
class TrafficStats:
    """Summed request, message and byte counters for one direction of traffic."""

    grpc_response_codes: Dict[str, float] = field(default_factory=dict)
    grpc_requests_success: float = 0.0
    grpc_requests_error: float = 0.0
    grpc_sent_messages: float = 0.0
    grpc_received_messages: float = 0.0
    http_response_codes: Dict[str, float] = field(default_factory=dict)
    http_requests_success: float = 0.0
    http_requests_error: float = 0.0
    tcp_sent_bytes: float = 0.0
    tcp_received_bytes: float = 0.0

    @property
    def grpc_requests(self) -> float:
        return self.grpc_requests_success + self.grpc_requests_error

    @property
    def http_requests(self) -> float:
        return self.http_requests_success + self.http_requests_error

    @property
    def tcp_bytes(self) -> float:
        return self.tcp_sent_bytes + self.tcp_received_bytes

    @property
    def total_requests(self) -> float:
        return self.grpc_requests + self.http_requests

    def has_traffic(self) -> bool:
        return self.total_requests > 0 or self.tcp_bytes > 0

    def merge(self, other: "TrafficStats") -> None:
        for code, count in other.grpc_response_codes.items():
            self.grpc_response_codes[code] = self.grpc_response_codes.get(code, 0.0) + count
        self.grpc_requests_success += other.grpc_requests_success
        self.grpc_requests_error += other.grpc_requests_error
        self.grpc_sent_messages += other.grpc_sent_messages
        self.grpc_received_messages += other.grpc_received_messages
        for code, count in other.http_response_codes.items():
            self.http_response_codes[code] = self.http_response_codes.get(code, 0.0) + count
        self.http_requests_success += other.http_requests_success
        self.http_requests_error += other.http_requests_error
        self.tcp_sent_bytes += other.tcp_sent_bytes
        self.tcp_received_bytes += other.tcp_received_bytes

    def copy(self) -> "TrafficStats":
        clone = TrafficStats()
        clone.merge(self)
        return clone


@dataclass
class Edge:
    source: Entity
    destination: Entity
    stats: TrafficStats = field(default_factory=TrafficStats)
    grpc_request_duration: float = 0.0
    http_request_duration: float = 0.0

    @property
    def id(self) -> str:
        return f"{self.source.key}-{self.destination.key}"


@dataclass
class Node:
    entity: Entity
    server: TrafficStats = field(default_factory=TrafficStats)
    client: TrafficStats = field(default_factory=TrafficStats)

    @property
    def id(self) -> str:
        return self.entity.label


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    @classmethod
    def last(cls, seconds: int, now: Optional[datetime] = None) -> "TimeRange":
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(seconds=seconds), end=end)

    @property
    def interval_seconds(self) -> int:
        """Window length used for rate normalization, never below one second."""
        return max(1, int((self.end - self.start).total_seconds()))

    @property
    def start_ms(self) -> int:
        return int(self.start.timestamp() * 1000)

    @property
    def end_ms(self) -> int:
        return int(self.end.timestamp() * 1000)
