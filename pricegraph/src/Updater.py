"""Updater: Refreshes origin nodes of price models.

This module brings every stale origin node of a set of graphs up to date
with as few origin requests as possible.

Architecture:
    - Walks the graphs and collects origin nodes that are not fresh
    - Groups nodes by origin and fetch pair, so every pair is requested once
    - Fetches from all origins concurrently, one request per origin,
      bounded by a semaphore shared by all origins
    - A failing origin is logged and treated as returning no ticks
    - Waits for every origin, then stores the ticks in the nodes
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .graph import GraphError, Node, OriginNode, walk

if TYPE_CHECKING:
    from .origins import Origin
    from .Pair import Pair
    from .Tick import Tick

logger = logging.getLogger(__name__)

# Maximum number of origin requests in flight at once.
MAX_CONCURRENT_UPDATES = 10


class Updater:
    """Updates origin nodes using ticks fetched from origins.

    :ivar origins: Dict mapping origin names to origin instances.
    :ivar limiter: Semaphore bounding concurrent origin requests, None to
        create one per update.
    """

    def __init__(
        self,
        origins: dict[str, Origin],
        limiter: asyncio.Semaphore | None = None,
    ) -> None:
        """Initialize the updater.

        :param origins: Dict mapping origin names to origin instances.
        :param limiter: Semaphore shared by all origin requests. By default
            every update uses a new one allowing MAX_CONCURRENT_UPDATES
            requests, so the updater is not tied to one event loop.
        """
        self.origins = origins
        self.limiter = limiter

    async def update(self, graphs: list[Node]) -> None:
        """Update all stale origin nodes reachable from the given graphs.

        Never raises for origin failures, they are logged and the affected
        nodes keep their previous tick.

        :param graphs: Root nodes of the graphs to update.
        """
        nodes = self._identify_nodes(graphs)
        if not nodes:
            return

        pairs: dict[str, list[Pair]] = {}
        for origin, fetch_pair in nodes:
            pairs.setdefault(origin, []).append(fetch_pair)

        limiter = self.limiter or asyncio.Semaphore(MAX_CONCURRENT_UPDATES)
        ticks = await self._fetch_ticks(pairs, limiter)
        self._update_nodes(nodes, ticks)

    def _identify_nodes(self, graphs: list[Node]) -> dict[tuple[str, Pair], list[OriginNode]]:
        """Group origin nodes needing an update by (origin, fetch pair)."""
        nodes: dict[tuple[str, Pair], list[OriginNode]] = {}

        def visit(node: Node) -> None:
            if isinstance(node, OriginNode) and not node.is_fresh():
                nodes.setdefault((node.origin, node.fetch_pair), []).append(node)

        walk(visit, *graphs)
        return nodes

    async def _fetch_ticks(
        self, pairs: dict[str, list[Pair]], limiter: asyncio.Semaphore
    ) -> dict[tuple[str, Pair], Tick]:
        """Fetch ticks from all origins concurrently."""
        names = list(pairs)
        results = await asyncio.gather(
            *(self._fetch_origin(name, pairs[name], limiter) for name in names)
        )

        ticks: dict[tuple[str, Pair], Tick] = {}
        for name, origin_ticks in zip(names, results, strict=True):
            for tick in origin_ticks:
                ticks[(name, tick.pair)] = tick
        return ticks

    async def _fetch_origin(
        self, name: str, pairs: list[Pair], limiter: asyncio.Semaphore
    ) -> list[Tick]:
        """Fetch ticks from a single origin.

        :param name: Origin name.
        :param pairs: Fetch pairs requested from the origin.
        :param limiter: Semaphore shared by all origins of the update.
        :returns: Ticks returned by the origin, empty if it failed.
        """
        origin = self.origins.get(name)
        if origin is None:
            logger.warning(f"[{name}] Origin is not configured")
            return []

        try:
            async with limiter:
                logger.debug(f"[{name}] Fetching {len(pairs)} pairs")
                return await origin.fetch_ticks(pairs)
        except Exception:
            logger.exception(f"[{name}] Panic while fetching ticks")
            return []

    def _update_nodes(
        self,
        nodes: dict[tuple[str, Pair], list[OriginNode]],
        ticks: dict[tuple[str, Pair], Tick],
    ) -> None:
        """Store fetched ticks in the nodes that requested them."""
        for (origin, fetch_pair), origin_nodes in nodes.items():
            tick = ticks.get((origin, fetch_pair))
            if tick is None:
                logger.warning(f"[{origin}] Origin did not return a tick for pair {fetch_pair}")
                continue
            for node in origin_nodes:
                try:
                    node.set_tick(tick)
                except GraphError as e:
                    logger.warning(f"[{origin}] Unable to set tick for pair {fetch_pair}: {e}")
