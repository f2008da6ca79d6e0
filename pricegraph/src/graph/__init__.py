"""
Price computation graph.

- Node: Base class of all graph vertices
- OriginNode: Leaf holding ticks fetched from an origin
- MedianNode, IndirectNode, InvertNode: Aggregating nodes
- DeviationCircuitBreakerNode: Price guard against a reference price
- ReferenceNode, WrapperNode: Pass-through nodes
- walk, detect_cycle: Graph traversal helpers
"""

from .base import GraphError, Node, detect_cycle, walk
from .circuit_breaker import DeviationCircuitBreakerNode
from .indirect import IndirectNode, cross_rate
from .invert import InvertNode
from .median import MedianNode, median
from .origin import DEFAULT_EXPIRY_THRESHOLD, DEFAULT_FRESHNESS_THRESHOLD, OriginNode
from .reference import ReferenceNode
from .wrapper import WrapperNode

__all__ = [
    "DEFAULT_EXPIRY_THRESHOLD",
    "DEFAULT_FRESHNESS_THRESHOLD",
    "DeviationCircuitBreakerNode",
    "GraphError",
    "IndirectNode",
    "InvertNode",
    "MedianNode",
    "Node",
    "OriginNode",
    "ReferenceNode",
    "WrapperNode",
    "cross_rate",
    "detect_cycle",
    "median",
    "walk",
]
