"""ReferenceNode: Placeholder pointing at another price model."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import GraphError, Node


class ReferenceNode(Node):
    """Passes through the tick of another model's root node.

    Models may refer to each other in any order, so the config loader
    creates one reference node per model first and connects it to the
    model root with :meth:`add_branch` once every model is built.
    """

    def __init__(self, pair: Pair) -> None:
        self._pair = pair
        self._branch: Node | None = None

    @property
    def branches(self) -> list[Node]:
        return [self._branch] if self._branch is not None else []

    def add_branch(self, *branches: Node) -> None:
        if not branches:
            return
        if self._branch is not None:
            raise GraphError("branch already exists")
        if len(branches) != 1:
            raise GraphError(f"expected 1 branch, got {len(branches)}")
        if branches[0].pair != self._pair:
            raise GraphError(f"expected pair {self._pair}, got {branches[0].pair}")
        self._branch = branches[0]

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def meta(self) -> dict[str, Any]:
        return {"type": "reference"}

    def tick(self) -> Tick:
        if self._branch is None:
            return Tick(
                pair=self._pair,
                meta=self.meta,
                error=TickError("branch is not set (this is likely a bug)"),
            )
        tick = self._branch.tick()
        return replace(tick, sub_ticks=[tick], meta=self.meta)
