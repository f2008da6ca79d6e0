"""Generic EVM origin.

Reads prices from view methods of smart contracts returning a uint256.

.. code-block:: json

    {
        "type": "generic_evm",
        "rpc_url": "https://eth.llamarpc.com",
        "block_offset": 2,
        "contracts": {
            "STETH/ETH": {
                "address": "0x...",
                "method": "latestAnswer",
                "decimals": 18
            }
        }
    }
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from web3 import Web3

from ..Pair import Pair
from ..Tick import Tick, TickError
from .base import Origin, OriginConfigError, register_origin

logger = logging.getLogger(__name__)


@dataclass
class EVMContract:
    """A contract method returning the price of a pair.

    :ivar address: Contract address.
    :ivar method: Name of the view method.
    :ivar decimals: Decimals of the returned value.
    :ivar args: Method arguments.
    :ivar abi: Contract ABI, defaults to ``method() returns (uint256)``.
    """

    address: str
    method: str
    decimals: int = 18
    args: list[Any] = field(default_factory=list)
    abi: list[dict[str, Any]] | None = None

    def get_abi(self) -> list[dict[str, Any]]:
        if self.abi is not None:
            return self.abi
        return [
            {
                "type": "function",
                "name": self.method,
                "inputs": [],
                "outputs": [{"name": "", "type": "uint256"}],
                "stateMutability": "view",
            }
        ]


@register_origin
class GenericEVMOrigin(Origin):
    """Origin calling contract methods through a web3 provider.

    Calls are made ``block_offset`` blocks behind the latest block so all
    pairs read the same, already propagated state.

    :ivar w3: Web3 instance.
    :ivar contracts: Contract per pair.
    :ivar block_offset: Number of blocks behind the latest one.
    """

    name = "generic_evm"

    def __init__(
        self,
        contracts: dict[str, dict[str, Any]] | None = None,
        rpc_url: str | None = None,
        block_offset: int = 0,
        w3: Web3 | None = None,
    ) -> None:
        if w3 is None:
            if not rpc_url:
                raise OriginConfigError("rpc_url cannot be empty")
            w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.w3 = w3
        self.block_offset = block_offset
        self.contracts: dict[Pair, EVMContract] = {}
        for pair_str, params in (contracts or {}).items():
            try:
                self.contracts[Pair.from_string(pair_str)] = EVMContract(**params)
            except (TypeError, ValueError) as e:
                raise OriginConfigError(f"invalid contract for {pair_str}: {e}") from e

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        return await asyncio.to_thread(self._fetch_ticks, pairs)

    def _fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        block = self.w3.eth.block_number - self.block_offset
        block_data = self.w3.eth.get_block(block)
        time = datetime.fromtimestamp(block_data["timestamp"], tz=timezone.utc)

        ticks = []
        for pair in pairs:
            contract = self.contracts.get(pair)
            if contract is None:
                ticks.append(Tick(pair=pair, time=time, error=TickError(f"pair {pair} not supported")))
                continue
            try:
                instance = self.w3.eth.contract(
                    address=Web3.to_checksum_address(contract.address),
                    abi=contract.get_abi(),
                )
                value = getattr(instance.functions, contract.method)(*contract.args).call(
                    block_identifier=block
                )
            except Exception as e:
                logger.warning(f"[{self.name}] Call for {pair} failed: {e}")
                ticks.append(Tick(pair=pair, time=time, error=TickError(f"call failed: {e}")))
                continue
            ticks.append(
                Tick(
                    pair=pair,
                    price=Decimal(value) / (Decimal(10) ** contract.decimals),
                    time=time,
                )
            )
        return ticks
