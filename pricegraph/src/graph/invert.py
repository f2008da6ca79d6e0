"""InvertNode: Turns a BASE/QUOTE tick into a QUOTE/BASE tick."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import GraphError, Node


def invert_price(price: Decimal | None) -> Decimal | None:
    """Return 1/price, infinity for a zero price."""
    if price is None:
        return None
    if price == 0:
        return Decimal("Infinity")
    return 1 / price


class InvertNode(Node):
    """Inverts the pair, price and volume of its single branch.

    A node for USD/BTC takes a BTC/USD branch: a price of 1000 becomes
    0.001, and the volume is converted to the new base asset.
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
            raise GraphError("only 1 branch is allowed")
        expected = self._pair.invert()
        if branches[0].pair != expected:
            raise GraphError(f"expected pair {expected}, got {branches[0].pair}")
        self._branch = branches[0]

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def meta(self) -> dict[str, Any]:
        return {"type": "invert"}

    def tick(self) -> Tick:
        if self._branch is None:
            return Tick(pair=self._pair, meta=self.meta, error=TickError("branch is not set"))
        tick = self._branch.tick()
        price = invert_price(tick.price)
        volume = tick.volume24h
        if volume is not None and price is not None:
            volume = volume / price if price != 0 else None
        return replace(
            tick,
            pair=self._pair,
            price=price,
            volume24h=volume,
            sub_ticks=[tick],
            meta=self.meta,
        )
