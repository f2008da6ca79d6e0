"""PriceStore: Latest signed price per asset pair and feeder.

Prices arrive from the transport, are verified and kept in a storage.
Only the newest price of each feeder is kept for every asset pair.

Architecture:
    - Storage: Thread-safe map of (asset pair, feeder) to price message
    - PriceStore.run(): Collector loop reading the price topic
    - Invalid messages are logged and dropped, never stored
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .PriceMessage import PriceMessage, StoreError
from .Transport import PRICE_MESSAGE_TOPIC, ReceivedMessage, Transport

logger = logging.getLogger(__name__)


class UnknownPairError(StoreError):
    """Raised when a price is received for a pair that is not configured."""

    def __init__(self, wat: str) -> None:
        super().__init__(f"received pair {wat} is not configured")


class InvalidPriceError(StoreError):
    """Raised when a received price is zero or negative."""

    def __init__(self, val: int) -> None:
        super().__init__(f"received price {val} is invalid")


@dataclass(frozen=True)
class FeederPrice:
    """Key of a stored price.

    :ivar asset_pair: Asset pair name (``wat``).
    :ivar feeder: Address of the feeder that signed the price.
    """

    asset_pair: str
    feeder: str


class Storage(ABC):
    """Storage of price messages, safe to use from multiple threads."""

    @abstractmethod
    def add(self, feeder: str, message: PriceMessage) -> None:
        """Store a price unless an equally new or newer one is stored."""

    @abstractmethod
    def get_all(self) -> dict[FeederPrice, PriceMessage]:
        """Return a copy of all stored prices."""

    @abstractmethod
    def get_by_asset_pair(self, asset_pair: str) -> list[PriceMessage]:
        """Return prices of all feeders for an asset pair."""

    @abstractmethod
    def get_by_feeder(self, asset_pair: str, feeder: str) -> PriceMessage | None:
        """Return the price of a feeder for an asset pair, if any."""


class MemoryStorage(Storage):
    """In-memory storage guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._prices: dict[FeederPrice, PriceMessage] = {}

    def add(self, feeder: str, message: PriceMessage) -> None:
        key = FeederPrice(asset_pair=message.price.wat, feeder=feeder)
        with self._lock:
            previous = self._prices.get(key)
            if previous is not None and previous.price.age >= message.price.age:
                return
            self._prices[key] = message

    def get_all(self) -> dict[FeederPrice, PriceMessage]:
        with self._lock:
            return dict(self._prices)

    def get_by_asset_pair(self, asset_pair: str) -> list[PriceMessage]:
        with self._lock:
            return [m for k, m in self._prices.items() if k.asset_pair == asset_pair]

    def get_by_feeder(self, asset_pair: str, feeder: str) -> PriceMessage | None:
        with self._lock:
            return self._prices.get(FeederPrice(asset_pair=asset_pair, feeder=feeder))


class PriceStore:
    """Collects signed prices from a transport.

    :ivar storage: Storage holding the prices.
    :ivar transport: Transport the prices are received from.
    :ivar pairs: Asset pairs accepted by the store.
    """

    def __init__(self, storage: Storage, transport: Transport, pairs: list[str]) -> None:
        """Initialize the price store.

        :param storage: Storage holding the prices.
        :param transport: Transport the prices are received from.
        :param pairs: Asset pair names (``wat``) accepted by the store.
        """
        self.storage = storage
        self.transport = transport
        self.pairs = pairs

    def add(self, feeder: str, message: PriceMessage) -> None:
        self.storage.add(feeder, message)

    def get_all(self) -> dict[FeederPrice, PriceMessage]:
        return self.storage.get_all()

    def get_by_asset_pair(self, asset_pair: str) -> list[PriceMessage]:
        return self.storage.get_by_asset_pair(asset_pair)

    def get_by_feeder(self, asset_pair: str, feeder: str) -> PriceMessage | None:
        return self.storage.get_by_feeder(asset_pair, feeder)

    def collect_price(self, message: PriceMessage) -> None:
        """Verify a received price and store it.

        :raises InvalidSignatureError: If the signer cannot be recovered.
        :raises UnknownPairError: If the pair is not accepted by the store.
        :raises InvalidPriceError: If the price is not positive.
        """
        feeder = message.price.recover()
        if message.price.wat not in self.pairs:
            raise UnknownPairError(message.price.wat)
        if message.price.val <= 0:
            raise InvalidPriceError(message.price.val)
        self.add(feeder, message)

    def handle_message(self, received: ReceivedMessage) -> None:
        """Process one message from the transport, logging any rejection."""
        if received.error is not None:
            logger.error(f"Unable to read prices from the transport layer: {received.error}")
            return
        if not isinstance(received.message, PriceMessage):
            logger.error("Unexpected value returned from the transport layer")
            return
        message = received.message
        try:
            self.collect_price(message)
        except StoreError as e:
            logger.warning(f"[{message.price.wat}] Received invalid price: {e} {message.price.fields()}")
            return
        logger.info(
            f"[{message.price.wat}] Price received: {message.price.fields()} version={message.version}"
        )

    async def run(self) -> None:
        """Collect prices until cancelled."""
        queue = self.transport.messages(PRICE_MESSAGE_TOPIC)
        logger.info(f"Price store started for pairs: {', '.join(self.pairs)}")
        try:
            while True:
                self.handle_message(await queue.get())
        finally:
            logger.info("Price store stopped")
