"""MedianNode: Median of the valid ticks of its branches."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import Node


def median(prices: list[Decimal]) -> Decimal | None:
    """Return the median, the mean of the two middle values for even counts."""
    count = len(prices)
    if count == 0:
        return None
    ordered = sorted(prices)
    middle = count // 2
    if count % 2 == 0:
        return (ordered[middle - 1] + ordered[middle]) / 2
    return ordered[middle]


class MedianNode(Node):
    """Median price of branches with a valid tick for the node pair.

    Every branch tick is kept in ``sub_ticks``, including the ones that
    were skipped, so a trace shows why a median could not be calculated.

    :ivar min_sources: Minimum number of valid prices required.
    """

    def __init__(self, pair: Pair, min_sources: int) -> None:
        self._pair = pair
        self.min_sources = min_sources
        self._branches: list[Node] = []

    @property
    def branches(self) -> list[Node]:
        return list(self._branches)

    def add_branch(self, *branches: Node) -> None:
        self._branches.extend(branches)

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def meta(self) -> dict[str, Any]:
        return {"type": "median", "min_sources": self.min_sources}

    def tick(self) -> Tick:
        ticks: list[Tick] = []
        prices: list[Decimal] = []
        time = None

        for branch in self._branches:
            tick = branch.tick()
            ticks.append(tick)
            # Earliest time of all branches, valid or not.
            if tick.time is not None and (time is None or tick.time < time):
                time = tick.time
            if tick.pair != self._pair or not tick.valid:
                continue
            prices.append(tick.price)

        if len(prices) < self.min_sources or not prices:
            return Tick(
                pair=self._pair,
                sub_ticks=ticks,
                meta=self.meta,
                error=TickError("not enough prices to calculate median"),
            )

        return Tick(
            pair=self._pair,
            price=median(prices),
            time=time,
            sub_ticks=ticks,
            meta=self.meta,
        )
