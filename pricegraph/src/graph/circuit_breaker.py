"""DeviationCircuitBreakerNode: Rejects a price too far from a reference."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import GraphError, Node
from .wrapper import WrapperNode


class DeviationCircuitBreakerNode(Node):
    """Tips when ``abs(1 - reference / price)`` exceeds the threshold.

    The first branch added is the price branch, the second one the
    reference branch. The returned tick is the price tick; when the
    breaker tips it keeps its price but carries an error.

    :ivar threshold: Maximum allowed deviation, e.g. 0.05 for 5%.
    """

    def __init__(self, pair: Pair, threshold: float) -> None:
        self._pair = pair
        self.threshold = threshold
        self._price_branch: Node | None = None
        self._reference_branch: Node | None = None

    @property
    def branches(self) -> list[Node]:
        return [b for b in (self._price_branch, self._reference_branch) if b is not None]

    def add_branch(self, *branches: Node) -> None:
        for node in branches:
            if node.pair != self._pair:
                raise GraphError(f"expected pair {self._pair}, got {node.pair}")
        remaining = list(branches)
        if remaining and self._price_branch is None:
            self._price_branch = WrapperNode(remaining.pop(0), {"type": "price"})
        if remaining and self._reference_branch is None:
            self._reference_branch = WrapperNode(remaining.pop(0), {"type": "reference_price"})
        if remaining:
            raise GraphError("only two branches are allowed")

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def meta(self) -> dict[str, Any]:
        return {"type": "deviation_circuit_breaker", "threshold": self.threshold}

    def tick(self) -> Tick:
        meta = self.meta
        if self._price_branch is None or self._reference_branch is None:
            return Tick(pair=self._pair, meta=meta, error=TickError("two branches are required"))

        price = self._price_branch.tick()
        reference = self._reference_branch.tick()

        error = price.validation_error()
        if error is not None:
            return Tick(
                pair=self._pair,
                sub_ticks=[price, reference],
                meta=meta,
                error=TickError(f"invalid price tick: {error}"),
            )
        error = reference.validation_error()
        if error is not None:
            return Tick(
                pair=self._pair,
                sub_ticks=[price, reference],
                meta=meta,
                error=TickError(f"invalid reference tick: {error}"),
            )

        deviation = float(abs(1 - reference.price / price.price))
        meta["deviation"] = deviation
        tick = replace(price, sub_ticks=[price, reference], meta=meta)
        if deviation > self.threshold:
            tick.error = TickError(
                f"deviation {deviation:f} is greater than threshold {self.threshold:f}"
            )
        return tick
