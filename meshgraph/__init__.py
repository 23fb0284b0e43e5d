"""Build Istio service-mesh traffic graphs from Prometheus telemetry."""
from .datasource import DataResponse, Datasource
from .graph import Graph, GraphAssembler
from .models import Edge, Entity, Node, Sample, TimeRange, TrafficStats
from .querymodel import GraphRequest, parse_query

__version__ = "0.1.0"

__all__ = [
    "DataResponse",
    "Datasource",
    "Edge",
    "Entity",
    "Graph",
    "GraphAssembler",
    "GraphRequest",
    "Node",
    "Sample",
    "TimeRange",
    "TrafficStats",
    "parse_query",
]
