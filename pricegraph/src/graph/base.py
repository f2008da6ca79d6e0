"""Node interface and graph traversal helpers.

A price model is a directed acyclic graph of nodes. Leaf nodes
(:class:`~.origin.OriginNode`) hold ticks fetched from origins, branch
nodes compute their tick from the ticks of their branches every time
``tick()`` is called.

.. code-block:: python

    median = MedianNode(Pair("BTC", "USD"), min_sources=2)
    median.add_branch(coinbase_node, kraken_node)
    walk(print, median)
    assert detect_cycle(median) == []
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from ..Pair import Pair
from ..Tick import Tick


class GraphError(Exception):
    """Raised when nodes are wired incorrectly."""

    pass


class Node(ABC):
    """A vertex of the price computation graph."""

    @property
    @abstractmethod
    def branches(self) -> list[Node]:
        """Nodes this node reads its ticks from."""

    @abstractmethod
    def add_branch(self, *branches: Node) -> None:
        """Connect branches to this node.

        :raises GraphError: If the branches are not allowed for this node.
        """

    @property
    @abstractmethod
    def pair(self) -> Pair:
        """Pair of the ticks returned by this node."""

    @abstractmethod
    def tick(self) -> Tick:
        """Return the current tick, computed from the branches."""

    @property
    @abstractmethod
    def meta(self) -> dict[str, Any]:
        """Debug annotations: the node type and its parameters."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.pair})"


def walk(fn: Callable[[Node], None], *roots: Node) -> None:
    """Call fn once for every node reachable from the roots.

    Shared sub-graphs are visited once. The order of calls is not defined.

    :param fn: Callback invoked with each node.
    :param roots: Nodes to start from.
    """
    visited: dict[int, Node] = {}
    stack = list(roots)
    while stack:
        node = stack.pop()
        if id(node) in visited:
            continue
        visited[id(node)] = node
        stack.extend(node.branches)
    for node in visited.values():
        fn(node)


def detect_cycle(root: Node) -> list[Node]:
    """Find a cycle reachable from root.

    Depth-first search with an explicit stack. The current path is checked
    for repeated nodes, sub-graphs already proven acyclic are skipped.

    :param root: Node to start from.
    :returns: Nodes forming the cycle, starting and ending at the repeated
        node, or an empty list if the graph is acyclic.
    """
    cleared: set[int] = set()
    path: list[Node] = [root]
    on_path: set[int] = {id(root)}
    iterators = [iter(root.branches)]

    while iterators:
        child = next(iterators[-1], None)
        if child is None:
            done = path.pop()
            on_path.discard(id(done))
            cleared.add(id(done))
            iterators.pop()
            continue
        if id(child) in on_path:
            start = next(i for i, n in enumerate(path) if n is child)
            return path[start:] + [child]
        if id(child) in cleared:
            continue
        path.append(child)
        on_path.add(id(child))
        iterators.append(iter(child.branches))

    return []
