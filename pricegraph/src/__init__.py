"""
Price Graph - Asset prices computed from multiple origins

This module provides price models built as computation graphs:
- Pair, Tick: Asset pair and price observation primitives
- graph: Graph nodes (origin, median, indirect, invert, circuit breaker)
- origins: Modular tick origin implementations
- Updater: Concurrent refresh of stale origin nodes
- Provider: Named price models and their ticks
- Config: JSON configuration loader and graph builder
- Feeder: Signed prices of price models broadcast on a transport
- PriceStore, Relayer: Signed feeder prices relayed to Median contracts
"""

from .Config import Config, ConfigError
from .Feeder import Feeder
from .MedianContract import Median, Web3Median
from .Model import Model
from .Pair import Pair
from .PriceMessage import Price, PriceMessage
from .PriceStore import MemoryStorage, PriceStore
from .Provider import ModelNotFoundError, Provider
from .Relayer import Relayer, RelayerPair
from .Tick import Tick, TickError
from .Transport import LocalTransport, Transport
from .Updater import Updater

__all__ = [
    "Config",
    "ConfigError",
    "Feeder",
    "LocalTransport",
    "Median",
    "MemoryStorage",
    "Model",
    "ModelNotFoundError",
    "Pair",
    "Price",
    "PriceMessage",
    "PriceStore",
    "Provider",
    "Relayer",
    "RelayerPair",
    "Tick",
    "TickError",
    "Transport",
    "Updater",
    "Web3Median",
]
