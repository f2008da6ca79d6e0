"""MedianContract: Access to on-chain Median oracle contracts.

The relayer only needs a handful of reads (quorum, last update, current
value, authorized feeders) and the ``poke`` write. Median is the interface
the relayer depends on, Web3Median implements it with web3.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from .PriceMessage import Price

logger = logging.getLogger(__name__)

T = TypeVar("T")

GAS_LIMIT = 200000
MAX_READ_RETRIES = 3
READ_RETRY_DELAY = 5.0

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MEDIAN_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "age",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint32"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "bar",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "wat",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "slot",
        "inputs": [{"name": "", "type": "uint8"}],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "poke",
        "inputs": [
            {"name": "val_", "type": "uint256[]"},
            {"name": "age_", "type": "uint256[]"},
            {"name": "v", "type": "uint8[]"},
            {"name": "r", "type": "bytes32[]"},
            {"name": "s", "type": "bytes32[]"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
]


class Median(ABC):
    """On-chain Median contract used by the relayer."""

    address: str

    @abstractmethod
    def bar(self) -> int:
        """Return the number of prices required to update the contract."""

    @abstractmethod
    def age(self) -> datetime:
        """Return the time of the last update."""

    @abstractmethod
    def val(self) -> int:
        """Return the current price, multiplied by PRICE_MULTIPLIER."""

    @abstractmethod
    def feeds(self) -> list[str]:
        """Return addresses of feeders allowed to sign prices."""

    @abstractmethod
    def poke(self, prices: list[Price], simulate_before_run: bool = True) -> str:
        """Send an update with the given prices.

        :returns: Transaction hash.
        """


def create_web3(rpc_url: str, private_key: str | None = None) -> Web3:
    """Create a Web3 instance, signing transactions with the given key.

    :param rpc_url: JSON-RPC endpoint.
    :param private_key: Key of the account sending transactions.
    :returns: Configured Web3 instance.
    """
    w3 = Web3(Web3.HTTPProvider(rpc_url))
    if private_key:
        account: LocalAccount = Account.from_key(private_key)
        w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        w3.eth.default_account = account.address
    return w3


class Web3Median(Median):
    """Median contract accessed through web3.

    :ivar w3: Web3 instance, with a default account for ``poke``.
    :ivar address: Contract address.
    :ivar read_retry_delay: Seconds between read attempts.
    """

    def __init__(self, w3: Web3, address: str, read_retry_delay: float = READ_RETRY_DELAY) -> None:
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.read_retry_delay = read_retry_delay
        self.contract = w3.eth.contract(address=self.address, abi=MEDIAN_ABI)

    def _read(self, fn: Callable[[], T]) -> T:
        for attempt in range(1, MAX_READ_RETRIES + 1):
            try:
                return fn()
            except Exception as e:
                if attempt == MAX_READ_RETRIES:
                    raise
                logger.debug(
                    f"[{self.address}] Read failed (attempt {attempt}/{MAX_READ_RETRIES}): {e}"
                )
                time.sleep(self.read_retry_delay)
        raise AssertionError("unreachable")

    def bar(self) -> int:
        return self._read(lambda: self.contract.functions.bar().call())

    def age(self) -> datetime:
        age = self._read(lambda: self.contract.functions.age().call())
        return datetime.fromtimestamp(age, tz=timezone.utc)

    def wat(self) -> str:
        wat = self._read(lambda: self.contract.functions.wat().call())
        return bytes(wat).rstrip(b"\x00").decode()

    def val(self) -> int:
        # val is the lower 16 bytes of storage slot 1
        data = self._read(lambda: self.w3.eth.get_storage_at(self.address, 1))
        if len(data) < 32:
            raise ValueError("oracle contract storage query failed")
        return int.from_bytes(bytes(data)[16:32], "big")

    def feeds(self) -> list[str]:
        feeds = []
        for i in range(256):
            address = self._read(lambda: self.contract.functions.slot(i).call())
            if address != ZERO_ADDRESS:
                feeds.append(address)
        return feeds

    def poke(self, prices: list[Price], simulate_before_run: bool = True) -> str:
        # The contract requires prices ordered by value
        prices = sorted(prices, key=lambda p: p.val)
        fn = self.contract.functions.poke(
            [p.val for p in prices],
            [p.age_unix for p in prices],
            [p.v for p in prices],
            [p.r for p in prices],
            [p.s for p in prices],
        )
        if simulate_before_run:
            fn.call()
        tx_params = fn.build_transaction({"gas": GAS_LIMIT, "gasPrice": self.w3.eth.gas_price})
        tx_hash = self.w3.eth.send_transaction(tx_params)
        return Web3.to_hex(tx_hash)
