"""OriginNode: Leaf node holding the last tick fetched from an origin."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from typing import Any

from ..Pair import Pair
from ..Tick import Tick, TickError, utcnow
from .base import GraphError, Node

DEFAULT_FRESHNESS_THRESHOLD = timedelta(seconds=60)
DEFAULT_EXPIRY_THRESHOLD = timedelta(seconds=300)


class OriginNode(Node):
    """Leaf node updated by the :class:`~pricegraph.src.Updater.Updater`.

    The node is fresh while ``now <= tick.time + freshness_threshold``, which
    lets the updater skip it, and expired once
    ``tick.time + expiry_threshold < now``. The freshness threshold should be
    lower than the expiry threshold so the node is refetched before it
    expires; the config loader enforces that.

    :ivar origin: Name of the origin the tick is fetched from.
    :ivar fetch_pair: Pair requested from the origin. May differ from the
        node pair when an origin uses different symbols.
    :ivar freshness_threshold: How long a tick does not need a refetch.
    :ivar expiry_threshold: How long a tick can be used at all.
    """

    def __init__(
        self,
        origin: str,
        pair: Pair,
        fetch_pair: Pair | None = None,
        freshness_threshold: timedelta = DEFAULT_FRESHNESS_THRESHOLD,
        expiry_threshold: timedelta = DEFAULT_EXPIRY_THRESHOLD,
    ) -> None:
        self.origin = origin
        self._pair = pair
        self.fetch_pair = fetch_pair if fetch_pair is not None else pair
        self.freshness_threshold = freshness_threshold
        self.expiry_threshold = expiry_threshold
        self._lock = threading.Lock()
        self._tick = Tick(pair=pair, error=TickError("tick is not set"))

    @property
    def branches(self) -> list[Node]:
        return []

    def add_branch(self, *branches: Node) -> None:
        if branches:
            raise GraphError("origin node cannot have branches")

    @property
    def pair(self) -> Pair:
        return self._pair

    @property
    def meta(self) -> dict[str, Any]:
        return {
            "type": "origin",
            "origin": self.origin,
            "fetch_pair": self.fetch_pair,
            "freshness_threshold": self.freshness_threshold,
            "expiry_threshold": self.expiry_threshold,
        }

    def tick(self) -> Tick:
        """Return the stored tick, marked as expired if it is too old."""
        with self._lock:
            tick = self._tick
        if tick.error is not None:
            return tick
        if self._expired(tick):
            return replace(tick, error=TickError("tick is expired"))
        return tick

    def set_tick(self, tick: Tick) -> None:
        """Store a tick fetched for ``fetch_pair``.

        The stored copy has the node pair and the node meta.

        :param tick: Tick returned by the origin.
        :raises GraphError: If the pair differs from ``fetch_pair``, the tick
            is invalid, or it is not newer than the stored tick.
        """
        if tick.pair != self.fetch_pair:
            raise GraphError(
                f"unable to set tick: tick pair {tick.pair} does not match "
                f"fetch pair {self.fetch_pair}"
            )
        try:
            tick.validate()
        except TickError as e:
            raise GraphError(f"unable to set tick: {e}") from e
        with self._lock:
            current = self._tick.time
            if current is not None and tick.time <= current:
                raise GraphError("unable to set tick: tick is not newer than the current tick")
            self._tick = replace(tick, pair=self._pair, meta=self.meta)

    def is_fresh(self) -> bool:
        with self._lock:
            time = self._tick.time
        return time is not None and utcnow() <= time + self.freshness_threshold

    def is_expired(self) -> bool:
        with self._lock:
            tick = self._tick
        return self._expired(tick)

    def _expired(self, tick: Tick) -> bool:
        return tick.time is None or tick.time + self.expiry_threshold < utcnow()
