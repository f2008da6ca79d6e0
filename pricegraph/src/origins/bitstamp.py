"""Bitstamp origin.

Endpoint: https://www.bitstamp.net/api/v2/ticker/{base}{quote}/
Rate Limit: High (no key required)
"""

import logging

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import HTTPOrigin, OriginError, register_origin, to_decimal, to_time

logger = logging.getLogger(__name__)


@register_origin
class BitstampOrigin(HTTPOrigin):
    """Origin for the Bitstamp public ticker."""

    name = "bitstamp"
    BASE_URL = "https://www.bitstamp.net/api/v2"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        return [await self.fetch_tick(pair) for pair in pairs]

    async def fetch_tick(self, pair: Pair) -> Tick:
        symbol = f"{pair.base.lower()}{pair.quote.lower()}"
        url = f"{self.BASE_URL}/ticker/{symbol}/"

        try:
            response = await self._get(url)
            data = response.json()
            if "last" not in data:
                logger.warning(f"[bitstamp] No 'last' price for {symbol}: {data}")
                return Tick(pair=pair, error=TickError(f"no price in response for {symbol}"))
            return Tick(
                pair=pair,
                price=to_decimal(data["last"]),
                volume24h=to_decimal(data["volume"]) if "volume" in data else None,
                time=to_time(data["timestamp"]),
            )
        except OriginError as e:
            logger.warning(f"[bitstamp] Failed to fetch {symbol}: {e}")
            return Tick(pair=pair, error=TickError(str(e)))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[bitstamp] Failed to parse response for {symbol}: {e}")
            return Tick(pair=pair, error=TickError(f"failed to parse response: {e}"))
