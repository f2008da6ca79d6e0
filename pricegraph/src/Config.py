"""Config: JSON configuration of origins, price models, feeder and relayer.

.. code-block:: json

    {
        "origins": {
            "coinbase": {"type": "coinbase"},
            "kraken": {"type": "kraken"}
        },
        "price_models": {
            "BTC/USD": {
                "type": "median",
                "pair": "BTC/USD",
                "min_sources": 2,
                "sources": [
                    {"type": "origin", "origin": "coinbase", "pair": "BTC/USD"},
                    {"type": "origin", "origin": "kraken", "pair": "BTC/USD"}
                ]
            },
            "USD/BTC": {
                "type": "invert",
                "pair": "USD/BTC",
                "sources": [{"type": "reference", "price_model": "BTC/USD"}]
            }
        },
        "ethereum": {"rpc_url": "http://localhost:8545", "key_env": "PRICEGRAPH_PRIVATE_KEY"},
        "feeder": {"pairs": ["BTC/USD"], "interval": 60},
        "relayer": {
            "interval": 60,
            "pairs": [
                {"asset_pair": "BTCUSD", "median": "0x...", "spread": 1, "expiration": 3600}
            ]
        }
    }

The document is validated with pydantic models, one per node type,
selected by ``type``. Models may reference each other in any order;
references are resolved after all models are built and every model is
checked for cycles.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from web3 import Web3

from .Feeder import Feeder, asset_pair_name
from .graph import (
    DEFAULT_EXPIRY_THRESHOLD,
    DEFAULT_FRESHNESS_THRESHOLD,
    DeviationCircuitBreakerNode,
    GraphError,
    IndirectNode,
    InvertNode,
    MedianNode,
    Node,
    OriginNode,
    ReferenceNode,
    detect_cycle,
)
from .MedianContract import Web3Median, create_web3
from .origins import Origin, OriginError, get_origin
from .Pair import Pair
from .PriceStore import MemoryStorage, PriceStore
from .Provider import Provider
from .Relayer import Relayer, RelayerPair
from .Transport import Transport
from .Updater import Updater

logger = logging.getLogger(__name__)

DEFAULT_KEY_ENV = "PRICEGRAPH_PRIVATE_KEY"


class ConfigError(Exception):
    """Raised when the configuration is invalid."""

    pass


class OriginConfig(BaseModel):
    """Origin of ticks. Every field besides ``type`` is passed to the origin."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class NodeConfig(BaseModel):
    """Fields shared by all node types."""

    model_config = ConfigDict(extra="forbid")

    pair: str

    @field_validator("pair", "fetch_pair", check_fields=False)
    @classmethod
    def pair_format(cls, v: str | None) -> str | None:
        """Pairs must be "BASE/QUOTE", they are stored uppercased."""
        if v is None:
            return v
        return str(Pair.from_string(v))


class OriginNodeConfig(NodeConfig):
    type: Literal["origin"]
    origin: str
    fetch_pair: str | None = None
    freshness_threshold: float = Field(
        default=DEFAULT_FRESHNESS_THRESHOLD.total_seconds(), gt=0
    )
    expiry_threshold: float = Field(default=DEFAULT_EXPIRY_THRESHOLD.total_seconds(), gt=0)

    @model_validator(mode="after")
    def freshness_before_expiry(self) -> OriginNodeConfig:
        """The node must be refreshed before its tick expires."""
        if self.freshness_threshold >= self.expiry_threshold:
            raise ValueError("Freshness threshold must be less than expiry threshold")
        return self


class ReferenceNodeConfig(NodeConfig):
    type: Literal["reference"]
    price_model: str
    pair: str | None = None


class MedianNodeConfig(NodeConfig):
    type: Literal["median"]
    min_sources: int = Field(default=1, ge=1)
    sources: list[AnyNodeConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def enough_sources(self) -> MedianNodeConfig:
        if self.min_sources > len(self.sources):
            raise ValueError(
                f"min_sources ({self.min_sources}) is greater than the number of sources "
                f"({len(self.sources)})"
            )
        return self


class IndirectNodeConfig(NodeConfig):
    type: Literal["indirect"]
    sources: list[AnyNodeConfig] = Field(default_factory=list)


class InvertNodeConfig(NodeConfig):
    type: Literal["invert"]
    sources: list[AnyNodeConfig] = Field(default_factory=list)


class DeviationCircuitBreakerNodeConfig(NodeConfig):
    """Circuit breaker; ``threshold`` is a fraction, 0.05 allows 5%."""

    type: Literal["deviation_circuit_breaker"]
    threshold: float = Field(..., gt=0)
    sources: list[AnyNodeConfig] = Field(default_factory=list)


AnyNodeConfig = Annotated[
    Union[
        OriginNodeConfig,
        ReferenceNodeConfig,
        MedianNodeConfig,
        IndirectNodeConfig,
        InvertNodeConfig,
        DeviationCircuitBreakerNodeConfig,
    ],
    Field(discriminator="type"),
]

for _model in (
    MedianNodeConfig,
    IndirectNodeConfig,
    InvertNodeConfig,
    DeviationCircuitBreakerNodeConfig,
):
    _model.model_rebuild()


class EthereumConfig(BaseModel):
    """Ethereum access shared by the feeder and the relayer.

    The private key is never stored in the file, ``key_env`` names the
    environment variable holding it.
    """

    model_config = ConfigDict(extra="forbid")

    rpc_url: str | None = None
    key_env: str = DEFAULT_KEY_ENV


class FeederConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pairs: list[str] = Field(..., min_length=1)
    interval: float = Field(default=60, gt=0)


class RelayerPairConfig(BaseModel):
    """Relay settings of one asset pair.

    ``spread`` is in percent, ``expiration`` and the update interval in
    seconds.
    """

    model_config = ConfigDict(extra="forbid")

    asset_pair: str = Field(..., min_length=1)
    median: str
    spread: float = Field(..., gt=0)
    expiration: float = Field(..., gt=0)
    feeder_addresses_update_interval: float = Field(default=60, gt=0)

    @field_validator("median")
    @classmethod
    def median_address(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"invalid contract address {v}")
        return Web3.to_checksum_address(v)


class RelayerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=60, gt=0)
    pairs: list[RelayerPairConfig] = Field(..., min_length=1)


class Config(BaseModel):
    """Parsed configuration.

    :ivar origins: Origin name to origin configuration.
    :ivar price_models: Model name to root node configuration.
    :ivar ethereum: Signing key and RPC endpoint, required by the feeder
        and the relayer.
    :ivar feeder: Price models broadcast by the agent, optional.
    :ivar relayer: Median contracts updated by the agent, optional.
    """

    model_config = ConfigDict(extra="forbid")

    origins: dict[str, OriginConfig] = Field(default_factory=dict)
    price_models: dict[str, AnyNodeConfig] = Field(default_factory=dict)
    ethereum: EthereumConfig | None = None
    feeder: FeederConfig | None = None
    relayer: RelayerConfig | None = None

    @model_validator(mode="after")
    def sections_consistent(self) -> Config:
        for name, model in self.price_models.items():
            if model.pair is None:
                raise ValueError(f"price model {name}: pair is required")
        if self.feeder is not None:
            unknown = [name for name in self.feeder.pairs if name not in self.price_models]
            if unknown:
                raise ValueError(f"feeder: unknown price models {', '.join(unknown)}")
        if (self.feeder is not None or self.relayer is not None) and self.ethereum is None:
            raise ValueError("ethereum section is required by the feeder and the relayer")
        if self.relayer is not None and not self.ethereum.rpc_url:
            raise ValueError("ethereum: rpc_url is required by the relayer")
        return self

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        """Validate a decoded configuration document.

        :raises ConfigError: If the document does not match the schema.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(format_validation_error(e)) from e

    @classmethod
    def load(cls, path: str | Path) -> Config:
        """Load a configuration file.

        :param path: Path to the JSON file.
        :raises ConfigError: If the file cannot be read, parsed or validated.
        """
        try:
            with open(path, "r") as file:
                data = json.load(file)
        except OSError as e:
            raise ConfigError(f"unable to read config file {path}: {e}") from e
        except ValueError as e:
            raise ConfigError(f"unable to parse config file {path}: {e}") from e
        return cls.from_dict(data)

    def build_origins(self) -> dict[str, Origin]:
        """Create origin instances.

        :raises ConfigError: If an origin type is unknown or misconfigured.
        """
        origins: dict[str, Origin] = {}
        for name, origin in self.origins.items():
            try:
                origins[name] = get_origin(origin.type, **origin.params)
            except OriginError as e:
                raise ConfigError(f"origin {name}: {e}") from e
        return origins

    def build_graphs(self) -> dict[str, Node]:
        """Create the graph of every price model.

        :returns: Dict mapping model names to graph roots.
        :raises ConfigError: If a model is invalid or contains a cycle.
        """
        references = {
            name: ReferenceNode(Pair.from_string(model.pair))
            for name, model in self.price_models.items()
        }

        graphs: dict[str, Node] = {}
        for name, model in self.price_models.items():
            graphs[name] = self._build_node(model, references, f"price model {name}")

        for name, reference in references.items():
            try:
                reference.add_branch(graphs[name])
            except GraphError as e:
                raise ConfigError(f"price model {name}: {e}") from e

        for name, root in graphs.items():
            cycle = detect_cycle(root)
            if cycle:
                path = " -> ".join(str(node.pair) for node in cycle)
                raise ConfigError(f"price model {name}: cycle detected: {path}")

        return graphs

    def build_provider(self) -> Provider:
        """Create a provider for all configured price models."""
        return Provider(models=self.build_graphs(), updater=Updater(self.build_origins()))

    def private_key(self) -> str:
        """Return the private key named by ``ethereum.key_env``.

        :raises ConfigError: If the section or the variable is missing.
        """
        if self.ethereum is None:
            raise ConfigError("ethereum section is missing")
        key = os.environ.get(self.ethereum.key_env)
        if not key:
            raise ConfigError(f"environment variable {self.ethereum.key_env} is not set")
        return key

    def build_account(self) -> LocalAccount:
        """Create the account signing prices and transactions.

        :raises ConfigError: If the private key is missing or malformed.
        """
        key = self.private_key()
        try:
            return Account.from_key(key)
        except ValueError as e:
            raise ConfigError(f"invalid private key in {self.ethereum.key_env}") from e

    def build_feeder(self, provider: Provider, transport: Transport) -> Feeder:
        """Create the feeder broadcasting prices of the configured models.

        :raises ConfigError: If there is no feeder section or no valid key.
        """
        if self.feeder is None:
            raise ConfigError("feeder section is missing")
        return Feeder(
            provider=provider,
            account=self.build_account(),
            transport=transport,
            pairs=self.feeder.pairs,
            interval=self.feeder.interval,
        )

    def store_pairs(self) -> list[str]:
        """Asset pair names accepted by the price store.

        Relayed pairs and pairs broadcast by the feeder, so the store also
        consumes the feeder's own messages.
        """
        pairs: set[str] = set()
        if self.relayer is not None:
            pairs.update(p.asset_pair for p in self.relayer.pairs)
        if self.feeder is not None:
            pairs.update(
                asset_pair_name(Pair.from_string(self.price_models[name].pair))
                for name in self.feeder.pairs
            )
        return sorted(pairs)

    def build_price_store(self, transport: Transport) -> PriceStore:
        return PriceStore(MemoryStorage(), transport, pairs=self.store_pairs())

    def build_relayer(self, store: PriceStore, w3: Web3 | None = None) -> Relayer:
        """Create the relayer of the configured Median contracts.

        :param store: Store the relayed prices are read from.
        :param w3: Web3 instance, by default one for ``ethereum.rpc_url``
            sending transactions from the configured account.
        :raises ConfigError: If there is no relayer section or no valid key.
        """
        if self.relayer is None:
            raise ConfigError("relayer section is missing")
        if w3 is None:
            # Fails on a malformed key before any contract is created
            self.build_account()
            w3 = create_web3(self.ethereum.rpc_url, self.private_key())
        pairs = [
            RelayerPair(
                asset_pair=p.asset_pair,
                spread=p.spread,
                expiration=timedelta(seconds=p.expiration),
                median=Web3Median(w3, p.median),
                feeder_addresses_update_interval=p.feeder_addresses_update_interval,
            )
            for p in self.relayer.pairs
        ]
        return Relayer(store, pairs, interval=self.relayer.interval)

    def _build_node(
        self, cfg: AnyNodeConfig, references: dict[str, ReferenceNode], where: str
    ) -> Node:
        if isinstance(cfg, ReferenceNodeConfig):
            node = references.get(cfg.price_model)
            if node is None:
                raise ConfigError(f"{where}: unknown price model {cfg.price_model}")
            if cfg.pair is not None and Pair.from_string(cfg.pair) != node.pair:
                raise ConfigError(f"{where}: expected pair {node.pair}, got {cfg.pair}")
            return node

        pair = Pair.from_string(cfg.pair)
        if isinstance(cfg, OriginNodeConfig):
            return self._build_origin_node(cfg, pair, where)
        if isinstance(cfg, MedianNodeConfig):
            node = MedianNode(pair, min_sources=cfg.min_sources)
        elif isinstance(cfg, IndirectNodeConfig):
            node = IndirectNode(pair)
        elif isinstance(cfg, InvertNodeConfig):
            node = InvertNode(pair)
        else:
            node = DeviationCircuitBreakerNode(pair, threshold=cfg.threshold)

        branches = [
            self._build_node(source, references, f"{where} > {cfg.type}[{i}]")
            for i, source in enumerate(cfg.sources)
        ]
        try:
            node.add_branch(*branches)
        except GraphError as e:
            raise ConfigError(f"{where}: {e}") from e
        return node

    def _build_origin_node(self, cfg: OriginNodeConfig, pair: Pair, where: str) -> OriginNode:
        if cfg.origin not in self.origins:
            raise ConfigError(f"{where}: unknown origin {cfg.origin}")
        return OriginNode(
            origin=cfg.origin,
            pair=pair,
            fetch_pair=Pair.from_string(cfg.fetch_pair) if cfg.fetch_pair else pair,
            freshness_threshold=timedelta(seconds=cfg.freshness_threshold),
            expiry_threshold=timedelta(seconds=cfg.expiry_threshold),
        )


def format_validation_error(error: ValidationError) -> str:
    """Join pydantic errors into one line, each prefixed with its location.

    Locations of nodes include their type, e.g.
    ``price_models.BTC/USD.median.min_sources``.
    """
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc']) or 'config'}: {e['msg']}"
        for e in error.errors()
    )
    return f"invalid configuration: {details}"
