"""Exceptions raised by the graph engine and its collaborators."""


class MeshGraphError(Exception):
    pass


class ConfigError(MeshGraphError, ValueError):
    """Invalid value in the environment or on the command line."""


class QueryModelError(MeshGraphError, ValueError):
    """The query model could not be parsed or is missing required fields."""


class SampleSourceError(MeshGraphError, RuntimeError):
    """Fetching samples or label values from the time-series store failed."""
