"""Tick: Price, volume and time for an asset pair.

A tick is the value flowing through the computation graph. Nodes never
raise for bad data; they return a tick with ``error`` set instead, so
consumers must call :meth:`Tick.validate` before using ``price``.

.. code-block:: python

    tick = Tick(pair=Pair("BTC", "USD"), price=Decimal("42000"), time=now)
    tick.validate()  # raises TickError if the tick is unusable
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from .Pair import Pair
from .TreeRender import NodeData, render_tree


class TickError(Exception):
    """Describes why a tick cannot be used."""

    pass


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Tick:
    """A price observation or a value computed from other ticks.

    :ivar pair: Asset pair the price is for.
    :ivar price: Price of the base asset in the quote asset.
    :ivar volume24h: Optional 24h volume in the base asset.
    :ivar time: Time of the price, ``None`` when unknown.
    :ivar sub_ticks: Ticks used to compute this one.
    :ivar meta: Annotations added by the node that produced the tick.
    :ivar error: Set when the tick is known to be invalid.
    """

    pair: Pair = field(default_factory=lambda: Pair("", ""))
    price: Decimal | None = None
    volume24h: Decimal | None = None
    time: datetime | None = None
    sub_ticks: list[Tick] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    error: TickError | None = None

    def validate(self) -> None:
        """Check the tick can be used.

        :raises TickError: The stored error, or the first failed rule.
        """
        if self.error is not None:
            raise self.error
        if self.pair.empty():
            raise TickError("pair is not set")
        if self.price is None:
            raise TickError("price is not set")
        if self.price.is_nan() or self.price <= 0:
            raise TickError("price is zero or negative")
        if self.price.is_infinite():
            raise TickError("price is infinite")
        if self.time is None:
            raise TickError("time is not set")
        if self.volume24h is not None and self.volume24h < 0:
            raise TickError("volume is negative")

    def validation_error(self) -> TickError | None:
        """Return the validation error instead of raising it."""
        try:
            self.validate()
        except TickError as e:
            return e
        return None

    @property
    def valid(self) -> bool:
        return self.validation_error() is None

    def __str__(self) -> str:
        return (
            f"{self.pair}(price: {self.price}, volume: {self.volume24h}, "
            f"time: {self.time}, error: {self.error})"
        )

    def to_plain(self) -> str:
        """Return "PAIR: PRICE"."""
        return f"{self.pair}: {self.price}"

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable representation, sub-ticks included."""
        error = self.validation_error()
        data: dict[str, Any] = {
            "base": self.pair.base,
            "quote": self.pair.quote,
            "price": float(self.price) if self.price is not None else 0.0,
            "vol24h": float(self.volume24h) if self.volume24h is not None else 0.0,
            "ts": self.time.astimezone(timezone.utc).isoformat() if self.time else None,
        }
        if self.meta:
            data["params"] = meta_to_json(self.meta)
        if self.sub_ticks:
            data["prices"] = [t.to_json() for t in self.sub_ticks]
        if error is not None:
            data["error"] = str(error)
        return data

    def to_trace(self) -> str:
        """Render the tick and its sub-ticks as a tree."""
        return render_tree(_tick_node_data, [self])


def _tick_node_data(tick: Tick) -> NodeData:
    params = dict(tick.meta)
    name = params.pop("type", "tick")
    params["pair"] = tick.pair
    params["price"] = tick.price
    params["time"] = tick.time.astimezone(timezone.utc).isoformat() if tick.time else None
    return NodeData(
        name=str(name),
        params=params,
        children=tick.sub_ticks,
        error=tick.validation_error(),
    )


def meta_to_json(meta: dict[str, Any]) -> dict[str, Any]:
    """Convert meta values to JSON-friendly primitives.

    Pairs and decimals become strings, durations become seconds.
    """
    out: dict[str, Any] = {}
    for key, value in meta.items():
        if isinstance(value, timedelta):
            out[key] = value.total_seconds()
        elif isinstance(value, (Pair, Decimal)):
            out[key] = str(value)
        elif isinstance(value, dict):
            out[key] = meta_to_json(value)
        else:
            out[key] = value
    return out
