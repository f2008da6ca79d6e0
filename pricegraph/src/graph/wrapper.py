"""WrapperNode: Attaches different meta to an existing node."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from ..Pair import Pair
from ..Tick import Tick
from .base import GraphError, Node


class WrapperNode(Node):
    """Returns the tick of the wrapped node with its own meta.

    The wrapped node is fixed at construction, used for labelling the
    branches of a :class:`~.circuit_breaker.DeviationCircuitBreakerNode`.
    """

    def __init__(self, node: Node, meta: dict[str, Any]) -> None:
        self._branch = node
        self._meta = meta

    @property
    def branches(self) -> list[Node]:
        return [self._branch]

    def add_branch(self, *branches: Node) -> None:
        if branches:
            raise GraphError("only one branch is allowed")

    @property
    def pair(self) -> Pair:
        return self._branch.pair

    @property
    def meta(self) -> dict[str, Any]:
        return self._meta

    def tick(self) -> Tick:
        tick = self._branch.tick()
        return replace(tick, sub_ticks=[tick], meta=self._meta)
