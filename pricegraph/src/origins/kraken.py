"""Kraken origin.

Endpoint: https://api.kraken.com/0/public/Ticker?pair={BASE}{QUOTE},...
Rate Limit: High (no key required)
"""

import logging

from ..Pair import Pair
from ..Tick import Tick, TickError, utcnow
from .base import HTTPOrigin, OriginError, register_origin, to_decimal, with_error

logger = logging.getLogger(__name__)


@register_origin
class KrakenOrigin(HTTPOrigin):
    """Origin for the Kraken public ticker.

    All pairs are fetched with a single request. Kraken does not report
    the trade time, ticks are stamped with the response time.
    """

    name = "kraken"
    BASE_URL = "https://api.kraken.com/0/public"

    # Kraken uses non-standard ticker symbols
    SYMBOL_MAP = {
        "BTC": "XBT",
    }

    def symbol(self, pair: Pair) -> str:
        """Return the Kraken symbol for a pair."""
        base = self.SYMBOL_MAP.get(pair.base, pair.base)
        quote = self.SYMBOL_MAP.get(pair.quote, pair.quote)
        return f"{base}{quote}"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        if not pairs:
            return []

        symbols = {pair: self.symbol(pair) for pair in pairs}
        try:
            response = await self._get(
                f"{self.BASE_URL}/Ticker", params={"pair": ",".join(symbols.values())}
            )
            data = response.json()
        except (OriginError, ValueError) as e:
            logger.warning(f"[kraken] Batch fetch failed: {e}")
            return with_error(pairs, e)

        if data.get("error"):
            logger.warning(f"[kraken] API error: {data['error']}")
            return with_error(pairs, f"kraken API error: {data['error']}")

        result = data.get("result") or {}
        now = utcnow()
        ticks = []
        for pair, symbol in symbols.items():
            pair_data = result.get(symbol)
            if pair_data is None:
                # Kraken sometimes prefixes assets with X or Z
                for key, value in result.items():
                    if key.replace("X", "").replace("Z", "") == symbol.replace("X", ""):
                        pair_data = value
                        break
            if pair_data is None:
                ticks.append(Tick(pair=pair, time=now, error=TickError(f"no result for {symbol}")))
                continue
            try:
                # 'c' is the last trade closed array: [price, lot volume]
                # 'v' is the volume array: [today, last 24 hours]
                ticks.append(
                    Tick(
                        pair=pair,
                        price=to_decimal(pair_data["c"][0]),
                        volume24h=to_decimal(pair_data["v"][1]),
                        time=now,
                    )
                )
            except (KeyError, ValueError, TypeError, IndexError) as e:
                logger.warning(f"[kraken] Failed to parse response for {symbol}: {e}")
                ticks.append(
                    Tick(pair=pair, time=now, error=TickError(f"failed to parse response: {e}"))
                )
        return ticks
