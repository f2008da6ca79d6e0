"""Coinbase Exchange origin.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
Rate Limit: High (no key required)
"""

import logging

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import HTTPOrigin, OriginError, register_origin, to_decimal, to_time

logger = logging.getLogger(__name__)


@register_origin
class CoinbaseOrigin(HTTPOrigin):
    """Origin for the Coinbase Exchange public ticker.

    Returns last trade price, 24h volume and trade time.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        return [await self.fetch_tick(pair) for pair in pairs]

    async def fetch_tick(self, pair: Pair) -> Tick:
        """Fetch the ticker for a single product.

        :param pair: Pair to fetch.
        :returns: Tick, with ``error`` set on failure.
        """
        symbol = f"{pair.base}-{pair.quote}"
        url = f"{self.BASE_URL}/products/{symbol}/ticker"

        try:
            response = await self._get(url)
            data = response.json()
            if "price" not in data:
                logger.warning(f"[coinbase] No price in response for {symbol}: {data}")
                return Tick(pair=pair, error=TickError(f"no price in response for {symbol}"))
            return Tick(
                pair=pair,
                price=to_decimal(data["price"]),
                volume24h=to_decimal(data["volume"]) if "volume" in data else None,
                time=to_time(data["time"]),
            )
        except OriginError as e:
            logger.warning(f"[coinbase] Failed to fetch {symbol}: {e}")
            return Tick(pair=pair, error=TickError(str(e)))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[coinbase] Failed to parse response for {symbol}: {e}")
            return Tick(pair=pair, error=TickError(f"failed to parse response: {e}"))
