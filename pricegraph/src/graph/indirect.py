"""IndirectNode: Cross rate calculated through a chain of pairs."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import Node


class IndirectNode(Node):
    """Resolves a pair from branches sharing one asset with their neighbour.

    Branches are resolved from first to last, so their order matters:
    ``ETH/BTC`` can be computed from ``[ETH/USD, BTC/USD]`` or from
    ``[ETH/USD, USD/BTC]``, the position of the shared asset does not.
    """

    def __init__(self, pair: Pair) -> None:
        self._pair = pair
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
        return {"type": "indirect"}

    def tick(self) -> Tick:
        ticks = [branch.tick() for branch in self._branches]
        meta = self.meta

        for tick in ticks:
            error = tick.validation_error()
            if error is not None:
                return Tick(
                    pair=self._pair,
                    sub_ticks=ticks,
                    meta=meta,
                    error=TickError(f"invalid tick: {error}"),
                )

        try:
            indirect = cross_rate(ticks)
        except TickError as e:
            return Tick(pair=self._pair, sub_ticks=ticks, meta=meta, error=e)

        if indirect.pair != self._pair:
            return Tick(
                pair=self._pair,
                sub_ticks=ticks,
                meta=meta,
                error=TickError(f"expected pair {self._pair}, got {indirect.pair}"),
            )

        return Tick(
            pair=indirect.pair,
            price=indirect.price,
            time=indirect.time,
            sub_ticks=ticks,
            meta=meta,
        )


def cross_rate(ticks: list[Tick]) -> Tick:
    """Reduce a chain of ticks to a single tick, first to last.

    No ticks give an empty tick, a single tick is returned unchanged.
    The resulting time is the earliest time in the chain.

    :param ticks: Valid ticks, adjacent ones sharing exactly one asset.
    :returns: Tick with the resolved pair, price and time.
    :raises TickError: If two adjacent ticks have no asset in common.
    """
    if not ticks:
        return Tick()
    if len(ticks) == 1:
        return ticks[0]

    zero = Decimal(0)
    a = ticks[0]
    for b in ticks[1:]:
        if a.pair.quote == b.pair.quote:  # A/C, B/C
            pair = Pair(a.pair.base, b.pair.base)
            price = a.price / b.price if b.price > 0 else zero
        elif a.pair.base == b.pair.base:  # C/A, C/B
            pair = Pair(a.pair.quote, b.pair.quote)
            price = b.price / a.price if a.price > 0 else zero
        elif a.pair.quote == b.pair.base:  # A/C, C/B
            pair = Pair(a.pair.base, b.pair.quote)
            price = a.price * b.price
        elif a.pair.base == b.pair.quote:  # C/A, B/C
            pair = Pair(a.pair.quote, b.pair.base)
            price = 1 / b.price / a.price if a.price > 0 and b.price > 0 else zero
        else:
            raise TickError(f"unable to calculate cross rate for {a.pair} and {b.pair}")
        a = replace(b, pair=pair, price=price, time=min(a.time, b.time))

    return Tick(pair=a.pair, price=a.price, time=a.time)
