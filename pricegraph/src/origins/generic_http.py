"""Generic HTTP origin.

Reads prices from any endpoint returning JSON. The URL and the selector
paths may contain the variables ``${lcbase}``, ``${ucbase}``,
``${lcquote}``, ``${ucquote}`` and their comma-joined plural forms
``${lcbases}``, ``${ucbases}``, ``${lcquotes}``, ``${ucquotes}``. Pairs
resolving to the same URL share one request.

.. code-block:: json

    {
        "type": "generic_http",
        "url": "https://api.example.com/v1/prices?symbols=${ucbases}",
        "price_path": "data.${ucbase}.${ucquote}.price",
        "time_path": "data.${ucbase}.${ucquote}.updated_at"
    }
"""

from __future__ import annotations

import logging
from string import Template
from typing import Any

import httpx

from ..Pair import Pair
from ..Tick import Tick, TickError, utcnow
from .base import (
    HTTPOrigin,
    OriginConfigError,
    OriginError,
    register_origin,
    to_decimal,
    to_time,
    with_error,
)

logger = logging.getLogger(__name__)


def interpolate(template: str, pair: Pair, pairs: list[Pair]) -> str:
    """Substitute pair variables in a URL or selector template."""
    bases = ",".join(p.base for p in pairs)
    quotes = ",".join(p.quote for p in pairs)
    return Template(template).safe_substitute(
        lcbase=pair.base.lower(),
        ucbase=pair.base.upper(),
        lcquote=pair.quote.lower(),
        ucquote=pair.quote.upper(),
        lcbases=bases.lower(),
        ucbases=bases.upper(),
        lcquotes=quotes.lower(),
        ucquotes=quotes.upper(),
    )


def select(data: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts and lists.

    Numeric path segments index lists. An empty path returns data.

    :raises KeyError: If the path does not exist.
    """
    current = data
    for part in path.split(".") if path else []:
        if isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError) as e:
                raise KeyError(path) from e
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            raise KeyError(path)
    return current


@register_origin
class GenericHTTPOrigin(HTTPOrigin):
    """Origin for JSON endpoints described entirely by configuration.

    :ivar url: URL template.
    :ivar price_path: Selector of the price.
    :ivar volume_path: Optional selector of the 24h volume.
    :ivar time_path: Optional selector of the price time, "now" if unset.
    """

    name = "generic_http"

    def __init__(
        self,
        url: str = "",
        price_path: str = "price",
        volume_path: str | None = None,
        time_path: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url:
            raise OriginConfigError("url cannot be empty")
        super().__init__(headers=headers, timeout=timeout, client=client)
        self.url = url
        self.price_path = price_path
        self.volume_path = volume_path
        self.time_path = time_path

    def group(self, pairs: list[Pair]) -> dict[str, list[Pair]]:
        """Group pairs by their interpolated URL."""
        groups: dict[str, list[Pair]] = {}
        for pair in pairs:
            groups.setdefault(interpolate(self.url, pair, pairs), []).append(pair)
        return groups

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        ticks: list[Tick] = []
        for url, url_pairs in self.group(pairs).items():
            logger.debug(f"[{self.name}] HTTP request {url} for {len(url_pairs)} pairs")
            try:
                response = await self._get(url)
                data = response.json()
            except OriginError as e:
                logger.debug(f"[{self.name}] Request to {url} failed: {e}")
                ticks.extend(with_error(url_pairs, e))
                continue
            except ValueError as e:
                ticks.extend(with_error(url_pairs, f"invalid JSON response: {e}"))
                continue
            ticks.extend(self.parse(data, url_pairs, pairs))
        return ticks

    def parse(self, data: Any, url_pairs: list[Pair], pairs: list[Pair]) -> list[Tick]:
        """Extract one tick per pair from a decoded response."""
        ticks = []
        for pair in url_pairs:
            tick = Tick(pair=pair, time=utcnow())
            try:
                tick.price = to_decimal(select(data, interpolate(self.price_path, pair, pairs)))
                if self.volume_path:
                    tick.volume24h = to_decimal(
                        select(data, interpolate(self.volume_path, pair, pairs))
                    )
                if self.time_path:
                    tick.time = to_time(select(data, interpolate(self.time_path, pair, pairs)))
            except KeyError as e:
                tick.error = TickError(f"no value at path {e}")
            except ValueError as e:
                tick.error = TickError(str(e))
            ticks.append(tick)
        return ticks
