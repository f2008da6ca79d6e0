"""Feeder: Signs prices of price models and broadcasts them.

Every interval the feeder updates its price models through the provider,
signs a Median price for each valid tick and broadcasts it, together with
the tick trace, on the price topic of the transport.

Architecture:
    - feed_all(): One provider update for all pairs, then one message per pair
    - Invalid ticks are not broadcast, the reason is logged per pair
    - run(): Calls feed_all() every interval until cancelled
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .PriceMessage import Price, PriceMessage, to_val
from .Transport import PRICE_MESSAGE_TOPIC

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from .Pair import Pair
    from .Provider import Provider
    from .Tick import Tick
    from .Transport import Transport

logger = logging.getLogger(__name__)


def asset_pair_name(pair: Pair) -> str:
    """Return the Median asset pair name (``wat``), e.g. "BTCUSD"."""
    return pair.base + pair.quote


def to_price(tick: Tick) -> Price:
    """Create an unsigned Median price from a valid tick.

    The age is truncated to seconds, the precision the Median contract
    stores.
    """
    return Price(
        wat=asset_pair_name(tick.pair),
        val=to_val(tick.price),
        age=tick.time.replace(microsecond=0),
    )


class Feeder:
    """Broadcasts signed prices of price models.

    :ivar provider: Provider of the price models.
    :ivar account: Account signing the prices.
    :ivar transport: Transport the prices are broadcast on.
    :ivar pairs: Names of the price models to broadcast.
    :ivar interval: Seconds between broadcasts.
    """

    def __init__(
        self,
        provider: Provider,
        account: LocalAccount,
        transport: Transport,
        pairs: list[str],
        interval: float = 60.0,
    ) -> None:
        self.provider = provider
        self.account = account
        self.transport = transport
        self.pairs = pairs
        self.interval = interval

    def sign(self, tick: Tick) -> PriceMessage:
        """Create a signed price message from a tick.

        :raises TickError: If the tick is not valid.
        """
        tick.validate()
        price = to_price(tick)
        price.sign(self.account)
        return PriceMessage(price=price, trace=tick.to_json())

    async def broadcast(self, name: str, tick: Tick) -> PriceMessage:
        """Sign and broadcast the tick of a price model.

        :param name: Price model name, used for logging.
        :param tick: Tick of the price model.
        :returns: The broadcast message.
        :raises TickError: If the tick is not valid.
        """
        message = self.sign(tick)
        await self.transport.broadcast(PRICE_MESSAGE_TOPIC, message)
        logger.info(f"[{name}] Price broadcast: {message.price.fields()}")
        return message

    async def feed_all(self) -> None:
        """Update the price models and broadcast every valid price."""
        ticks = await self.provider.ticks(*self.pairs)
        for name, tick in ticks.items():
            try:
                await self.broadcast(name, tick)
            except Exception as e:
                logger.warning(f"[{name}] Unable to broadcast price: {e}")

    async def run(self) -> None:
        """Broadcast prices until cancelled."""
        logger.info(f"Feeder started for pairs: {', '.join(self.pairs)}")
        try:
            while True:
                await self.feed_all()
                await asyncio.sleep(self.interval)
        finally:
            logger.info("Feeder stopped")
