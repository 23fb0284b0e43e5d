from typing import Dict, Iterable

from .models import Edge, Entity, Node


def _node_for(nodes: Dict[Entity, Node], entity: Entity) -> Node:
    node = nodes.get(entity)
    if node is None:
        node = nodes[entity] = Node(entity=entity)
    elif entity.service and not node.entity.service:
        # A service first seen without its fqdn keeps the one learned later.
        node.entity = entity
    return node


def build_nodes(edges: Iterable[Edge]) -> Dict[Entity, Node]:
    """
    Aggregate edges into one node per entity.

    The source of an edge receives the edge counters as client traffic, the
    destination receives them as server traffic. Counters are summed field by
    field; request durations stay on the edges.
    """
    nodes: Dict[Entity, Node] = {}
    for edge in edges:
        _node_for(nodes, edge.source).client.merge(edge.stats)
        _node_for(nodes, edge.destination).server.merge(edge.stats)
    return nodes
