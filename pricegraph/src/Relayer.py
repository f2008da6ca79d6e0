"""Relayer: Pushes a quorum of feeder prices to Median contracts.

On every tick of the relay interval each asset pair is re-evaluated from
scratch: the contract is updated when its price is older than the pair's
expiration or differs from the feeders' median by at least the pair's
spread, and only if exactly ``bar`` usable prices are available.

Architecture:
    - Relay loop: calls relay() for every pair each interval
    - One loop per pair refreshing the authorized feeder addresses
    - A relayer-wide lock serializes relay decisions and address updates
    - Relay errors are logged and retried on the next interval
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .PriceMessage import InvalidSignatureError, Price
from .Tick import utcnow

if TYPE_CHECKING:
    from .MedianContract import Median
    from .PriceMessage import PriceMessage
    from .PriceStore import PriceStore

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base exception for relay attempts that did not send an update."""

    pass


class UnknownAssetPairError(RelayError):
    """Raised when relaying a pair the relayer is not configured for."""

    def __init__(self, asset_pair: str) -> None:
        super().__init__(f"unknown asset pair: {asset_pair}")


class NoPricesError(RelayError):
    """Raised when an update is needed but no usable price is available."""

    def __init__(self, asset_pair: str) -> None:
        super().__init__(f"no prices available for {asset_pair}")


class NotEnoughPricesError(RelayError):
    """Raised when fewer usable prices than the contract quorum are available.

    :ivar count: Number of usable prices.
    :ivar bar: Quorum required by the contract.
    """

    def __init__(self, count: int, bar: int) -> None:
        self.count = count
        self.bar = bar
        super().__init__(f"not enough prices to achieve quorum: {count}/{bar}")


@dataclass
class RelayerPair:
    """Relay configuration of an asset pair.

    :ivar asset_pair: Asset pair name, e.g. "ETHUSD".
    :ivar spread: Minimum difference in percent between the contract price
        and the feeders' median that triggers an update.
    :ivar expiration: Maximum age of the contract price.
    :ivar median: Median contract of the pair.
    :ivar feeder_addresses: Feeders allowed to sign prices, synced from
        the contract.
    :ivar feeder_addresses_update_interval: Seconds between feeder syncs.
    """

    asset_pair: str
    spread: float
    expiration: timedelta
    median: Median
    feeder_addresses: list[str] = field(default_factory=list)
    feeder_addresses_update_interval: float = 60.0


def clear_older_than(prices: list[PriceMessage], time: datetime) -> list[PriceMessage]:
    """Drop prices older than the given time."""
    return [p for p in prices if p.price.age >= time]


def filter_addresses(prices: list[PriceMessage], addresses: list[str]) -> list[PriceMessage]:
    """Keep prices signed by one of the given addresses."""
    allowed = {a.lower() for a in addresses}
    filtered = []
    for p in prices:
        try:
            feeder = p.price.recover()
        except InvalidSignatureError:
            continue
        if feeder.lower() in allowed:
            filtered.append(p)
    return filtered


def truncate(prices: list[PriceMessage], n: int) -> list[PriceMessage]:
    """Return at most n prices, chosen at random when there are more."""
    if len(prices) <= n:
        return prices
    return random.sample(prices, n)


def calc_median(prices: list[PriceMessage]) -> int:
    """Median of the price values, 0 for no prices."""
    values = sorted(p.price.val for p in prices)
    count = len(values)
    if count == 0:
        return 0
    if count % 2 == 0:
        return (values[count // 2 - 1] + values[count // 2]) // 2
    return values[count // 2]


def calc_spread(prices: list[PriceMessage], val: int) -> float:
    """Difference in percent between the median of prices and val.

    Infinite when there are no prices or val is zero.
    """
    if not prices or val == 0:
        return math.inf
    return abs((calc_median(prices) - val) / val * 100)


def to_oracle_prices(prices: list[PriceMessage]) -> list[Price]:
    return [p.price for p in prices]


class Relayer:
    """Relays prices from a price store to Median contracts.

    :ivar store: Store with the latest feeder prices.
    :ivar pairs: Dict mapping asset pair names to their configuration.
    :ivar interval: Seconds between relay attempts.
    """

    def __init__(
        self,
        store: PriceStore,
        pairs: list[RelayerPair],
        interval: float = 60.0,
    ) -> None:
        self.store = store
        self.pairs = {p.asset_pair: p for p in pairs}
        self.interval = interval
        self._lock = threading.Lock()

    def relay(self, asset_pair: str) -> str | None:
        """Update the contract of an asset pair if needed.

        :param asset_pair: Asset pair name.
        :returns: Transaction hash, None if the contract price is still valid.
        :raises UnknownAssetPairError: If the pair is not configured.
        :raises NoPricesError: If an update is needed but no price is usable.
        :raises NotEnoughPricesError: If an update is needed but the quorum
            cannot be reached.
        """
        with self._lock:
            pair = self.pairs.get(asset_pair)
            if pair is None:
                raise UnknownAssetPairError(asset_pair)

            prices = self.store.get_by_asset_pair(asset_pair)
            bar = pair.median.bar()
            age = pair.median.age()
            val = pair.median.val()

            prices = clear_older_than(prices, age)
            prices = filter_addresses(prices, pair.feeder_addresses)
            # The contract rejects updates with a different number of prices than bar
            prices = truncate(prices, bar)

            spread = calc_spread(prices, val)
            now = utcnow()
            is_expired = age + pair.expiration < now
            is_stale = spread >= pair.spread

            logger.debug(
                f"[{asset_pair}] Trying to update Oracle: bar={bar} age={age.isoformat()} "
                f"val={val} expired={is_expired} stale={is_stale} "
                f"expiration={pair.expiration} spread={pair.spread} "
                f"time_since_update={now - age} current_spread={spread}"
            )
            for p in prices:
                logger.debug(f"[{asset_pair}] Feed: {p.price.fields()}")

            if not (is_expired or is_stale):
                return None
            if not prices:
                raise NoPricesError(asset_pair)
            if len(prices) != bar:
                raise NotEnoughPricesError(len(prices), bar)
            return pair.median.poke(to_oracle_prices(prices), simulate_before_run=True)

    def relay_all(self) -> None:
        """Relay every pair once, logging the outcome."""
        for asset_pair in self.pairs:
            try:
                tx = self.relay(asset_pair)
            except Exception as e:
                logger.warning(f"[{asset_pair}] Unable to update Oracle: {e}")
                continue
            if tx is None:
                logger.info(f"[{asset_pair}] Oracle price is still valid")
            else:
                logger.info(f"[{asset_pair}] Oracle updated: tx={tx}")

    def sync_feeder_addresses(self, pair: RelayerPair) -> None:
        """Refresh the authorized feeders of a pair from its contract."""
        with self._lock:
            pair.feeder_addresses = pair.median.feeds()
        logger.debug(f"[{pair.asset_pair}] Feeder addresses: {pair.feeder_addresses}")

    async def _relay_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await asyncio.to_thread(self.relay_all)

    async def _sync_feeder_addresses_loop(self, pair: RelayerPair) -> None:
        while True:
            await asyncio.sleep(pair.feeder_addresses_update_interval)
            try:
                await asyncio.to_thread(self.sync_feeder_addresses, pair)
            except Exception as e:
                logger.warning(f"[{pair.asset_pair}] Unable to update feeder addresses: {e}")

    async def run(self) -> None:
        """Sync feeder addresses, then relay until cancelled.

        :raises Exception: If the initial feeder address sync fails.
        """
        logger.info(f"Relayer started for pairs: {', '.join(self.pairs)}")
        for pair in self.pairs.values():
            await asyncio.to_thread(self.sync_feeder_addresses, pair)
        try:
            await asyncio.gather(
                self._relay_loop(),
                *(self._sync_feeder_addresses_loop(p) for p in self.pairs.values()),
            )
        finally:
            logger.info("Relayer stopped")
