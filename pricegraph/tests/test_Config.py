"""Unit tests for Config."""

import json
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pricegraph.src.Config import DEFAULT_KEY_ENV, Config, ConfigError
from pricegraph.src.Feeder import Feeder
from pricegraph.src.graph import InvertNode, MedianNode, OriginNode, ReferenceNode
from pricegraph.src.MedianContract import Web3Median
from pricegraph.src.origins import CoinbaseOrigin, GenericHTTPOrigin
from pricegraph.src.Pair import Pair
from pricegraph.src.PriceStore import PriceStore
from pricegraph.src.Provider import Provider
from pricegraph.src.Relayer import Relayer
from pricegraph.src.Transport import LocalTransport

ORIGINS = {
    "coinbase": {"type": "coinbase"},
    "api": {"type": "generic_http", "url": "https://example.com/${ucbase}", "price_path": "price"},
}

# Well-known development key, never used on a real network.
FEEDER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
FEEDER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
MEDIAN_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def origin(name: str = "coinbase", pair: str = "BTC/USD", **kwargs) -> dict:
    return {"type": "origin", "origin": name, "pair": pair, **kwargs}


def median(min_sources: int = 1, sources: list | None = None, **kwargs) -> dict:
    return {
        "type": "median",
        "pair": "BTC/USD",
        "min_sources": min_sources,
        "sources": [origin()] if sources is None else sources,
        **kwargs,
    }


def config(price_models: dict, origins: dict | None = None, **sections) -> Config:
    return Config.from_dict(
        {"origins": ORIGINS if origins is None else origins, "price_models": price_models, **sections}
    )


def relayer_section(**kwargs) -> dict:
    pair = {"asset_pair": "BTCUSD", "median": MEDIAN_ADDRESS.lower(), "spread": 1, "expiration": 3600}
    return {"interval": 30, "pairs": [{**pair, **kwargs}]}


class TestConfigLoad:
    """Test reading configuration files."""

    def test_load(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"origins": ORIGINS, "price_models": {"BTC/USD": origin()}}))
        cfg = Config.load(path)
        assert set(cfg.origins) == {"coinbase", "api"}
        assert set(cfg.price_models) == {"BTC/USD"}
        assert cfg.feeder is None and cfg.relayer is None

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="unable to read config file"):
            Config.load(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{")
        with pytest.raises(ConfigError, match="unable to parse config file"):
            Config.load(path)

    def test_not_an_object(self) -> None:
        with pytest.raises(ConfigError, match="invalid configuration"):
            Config.from_dict([])

    def test_unknown_section(self) -> None:
        with pytest.raises(ConfigError, match="models: Extra inputs are not permitted"):
            Config.from_dict({"models": {}})

    def test_example_config(self) -> None:
        """The shipped example is valid and builds."""
        cfg = Config.load(Path(__file__).parents[2] / "config.example.json")
        assert cfg.build_provider().model_names() == [
            "BTC/USD",
            "ETH/BTC",
            "ETH/USD",
            "USD/BTC",
            "USDT/USD",
        ]
        assert cfg.store_pairs() == ["BTCUSD", "ETHBTC", "ETHUSD"]


class TestConfigOrigins:
    """Test origin creation."""

    def test_build_origins(self) -> None:
        origins = config({}).build_origins()
        assert isinstance(origins["coinbase"], CoinbaseOrigin)
        assert isinstance(origins["api"], GenericHTTPOrigin)
        assert origins["api"].url == "https://example.com/${ucbase}"

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigError, match="origin x: Unknown origin type 'nope'"):
            config({}, origins={"x": {"type": "nope"}}).build_origins()

    def test_missing_type(self) -> None:
        with pytest.raises(ConfigError, match=r"origins\.x\.type: Field required"):
            config({}, origins={"x": {}})

    def test_invalid_params(self) -> None:
        with pytest.raises(ConfigError, match="url cannot be empty"):
            config({}, origins={"x": {"type": "generic_http"}}).build_origins()

    def test_unknown_param(self) -> None:
        with pytest.raises(ConfigError, match="Invalid parameters for origin type 'coinbase'"):
            config({}, origins={"x": {"type": "coinbase", "colour": "blue"}}).build_origins()


class TestConfigGraphs:
    """Test price model graph creation."""

    def test_origin_node(self) -> None:
        graphs = config(
            {
                "BTC/USD": origin(
                    fetch_pair="xbt/usd", freshness_threshold=10, expiry_threshold=20
                )
            }
        ).build_graphs()
        node = graphs["BTC/USD"]
        assert isinstance(node, OriginNode)
        assert node.fetch_pair == Pair("XBT", "USD")
        assert node.freshness_threshold == timedelta(seconds=10)
        assert node.expiry_threshold == timedelta(seconds=20)

    def test_origin_defaults(self) -> None:
        node = config({"BTC/USD": origin()}).build_graphs()["BTC/USD"]
        assert node.fetch_pair == Pair("BTC", "USD")
        assert node.freshness_threshold == timedelta(seconds=60)
        assert node.expiry_threshold == timedelta(seconds=300)

    def test_median(self) -> None:
        graphs = config(
            {"BTC/USD": median(2, [origin("coinbase"), origin("api")])}
        ).build_graphs()
        node = graphs["BTC/USD"]
        assert isinstance(node, MedianNode)
        assert node.min_sources == 2
        assert [b.origin for b in node.branches] == ["coinbase", "api"]

    def test_references_in_any_order(self) -> None:
        """Models may reference models defined after them."""
        graphs = config(
            {
                "USD/BTC": {
                    "type": "invert",
                    "pair": "USD/BTC",
                    "sources": [{"type": "reference", "price_model": "BTC/USD"}],
                },
                "BTC/USD": origin(),
            }
        ).build_graphs()
        invert = graphs["USD/BTC"]
        assert isinstance(invert, InvertNode)
        (reference,) = invert.branches
        assert isinstance(reference, ReferenceNode)
        assert reference.branches == [graphs["BTC/USD"]]

    def test_all_node_types(self) -> None:
        graphs = config(
            {
                "BTC/USD": origin(),
                "ETH/USD": origin(pair="ETH/USD"),
                "ETH/BTC": {
                    "type": "deviation_circuit_breaker",
                    "pair": "ETH/BTC",
                    "threshold": 0.05,
                    "sources": [
                        origin(pair="ETH/BTC"),
                        {
                            "type": "indirect",
                            "pair": "ETH/BTC",
                            "sources": [
                                {"type": "reference", "price_model": "ETH/USD"},
                                {"type": "reference", "price_model": "BTC/USD"},
                            ],
                        },
                    ],
                },
            }
        ).build_graphs()
        assert graphs["ETH/BTC"].meta == {"type": "deviation_circuit_breaker", "threshold": 0.05}
        assert len(graphs["ETH/BTC"].branches) == 2

    def test_unknown_reference(self) -> None:
        with pytest.raises(ConfigError, match="unknown price model DOGE/USD"):
            config(
                {
                    "USD/BTC": {
                        "type": "invert",
                        "pair": "USD/BTC",
                        "sources": [{"type": "reference", "price_model": "DOGE/USD"}],
                    }
                }
            ).build_graphs()

    def test_reference_pair_mismatch(self) -> None:
        with pytest.raises(ConfigError, match="expected pair BTC/USD, got ETH/USD"):
            config(
                {
                    "BTC/USD": origin(),
                    "X": {
                        "type": "median",
                        "pair": "ETH/USD",
                        "min_sources": 1,
                        "sources": [
                            {"type": "reference", "price_model": "BTC/USD", "pair": "ETH/USD"}
                        ],
                    },
                }
            ).build_graphs()

    def test_reference_model_without_pair(self) -> None:
        with pytest.raises(ConfigError, match="price model X: pair is required"):
            config({"BTC/USD": origin(), "X": {"type": "reference", "price_model": "BTC/USD"}})

    def test_unknown_origin(self) -> None:
        with pytest.raises(ConfigError, match="unknown origin binance"):
            config({"BTC/USD": origin("binance")}).build_graphs()

    def test_wiring_error(self) -> None:
        """Node wiring errors are reported as configuration errors."""
        with pytest.raises(ConfigError, match="expected pair BTC/USD, got ETH/USD"):
            config(
                {
                    "USD/BTC": {
                        "type": "invert",
                        "pair": "USD/BTC",
                        "sources": [origin(pair="ETH/USD")],
                    }
                }
            ).build_graphs()


class TestConfigSchema:
    """Test validation of node fields."""

    def test_unknown_node_type(self) -> None:
        with pytest.raises(ConfigError, match="Input tag 'average'"):
            config({"BTC/USD": {"type": "average", "pair": "BTC/USD"}})

    def test_missing_pair(self) -> None:
        with pytest.raises(ConfigError, match=r"origin\.pair: Field required"):
            config({"BTC/USD": {"type": "origin", "origin": "coinbase"}})

    def test_invalid_pair(self) -> None:
        with pytest.raises(ConfigError, match="Invalid pair format"):
            config({"BTC/USD": origin(pair="BTCUSD")})

    def test_invalid_nested_node(self) -> None:
        """Errors of nested nodes name their location."""
        with pytest.raises(
            ConfigError, match=r"median\.sources\.0\.origin\.fetch_pair: Value error, Invalid pair"
        ):
            config({"BTC/USD": median(1, [origin(fetch_pair="BTC")])})

    def test_misspelled_field(self) -> None:
        with pytest.raises(ConfigError, match="min_source: Extra inputs are not permitted"):
            config({"BTC/USD": median(1, min_source=1)})

    @pytest.mark.parametrize("value", [0, -3])
    def test_min_sources_not_positive(self, value: int) -> None:
        with pytest.raises(
            ConfigError, match="min_sources: Input should be greater than or equal to 1"
        ):
            config({"BTC/USD": median(value)})

    def test_min_sources_not_a_number(self) -> None:
        with pytest.raises(ConfigError, match="min_sources: Input should be a valid integer"):
            config({"BTC/USD": median("two")})

    def test_min_sources_above_sources(self) -> None:
        with pytest.raises(
            ConfigError, match=r"min_sources \(3\) is greater than the number of sources \(2\)"
        ):
            config({"BTC/USD": median(3, [origin("coinbase"), origin("api")])})

    @pytest.mark.parametrize("value", [0, -1])
    def test_threshold_not_positive(self, value: float) -> None:
        with pytest.raises(ConfigError, match="threshold: Input should be greater than 0"):
            config(
                {
                    "BTC/USD": {
                        "type": "deviation_circuit_breaker",
                        "pair": "BTC/USD",
                        "threshold": value,
                        "sources": [origin(), origin("api")],
                    }
                }
            )

    def test_threshold_required(self) -> None:
        with pytest.raises(ConfigError, match=r"deviation_circuit_breaker\.threshold: Field required"):
            config(
                {
                    "BTC/USD": {
                        "type": "deviation_circuit_breaker",
                        "pair": "BTC/USD",
                        "sources": [origin(), origin("api")],
                    }
                }
            )


class TestConfigThresholds:
    """Test freshness and expiry validation."""

    def test_freshness_not_less_than_expiry(self) -> None:
        with pytest.raises(ConfigError, match="Freshness threshold must be less than expiry threshold"):
            config({"BTC/USD": origin(freshness_threshold=300, expiry_threshold=300)})

    def test_freshness_above_default_expiry(self) -> None:
        with pytest.raises(ConfigError, match="Freshness threshold must be less than expiry threshold"):
            config({"BTC/USD": origin(freshness_threshold=600)})

    @pytest.mark.parametrize("value", [0, -1])
    def test_threshold_not_positive(self, value: int) -> None:
        with pytest.raises(
            ConfigError, match="freshness_threshold: Input should be greater than 0"
        ):
            config({"BTC/USD": origin(freshness_threshold=value)})

    def test_threshold_not_a_number(self) -> None:
        with pytest.raises(ConfigError, match="expiry_threshold: Input should be a valid number"):
            config({"BTC/USD": origin(expiry_threshold="soon")})


class TestConfigCycles:
    """Test cycle detection."""

    def test_self_reference(self) -> None:
        with pytest.raises(ConfigError, match="cycle detected: BTC/USD -> BTC/USD"):
            config(
                {"BTC/USD": median(1, [{"type": "reference", "price_model": "BTC/USD"}])}
            ).build_graphs()

    def test_mutual_reference(self) -> None:
        with pytest.raises(ConfigError, match="cycle detected"):
            config(
                {
                    "BTC/USD": {
                        "type": "invert",
                        "pair": "BTC/USD",
                        "sources": [{"type": "reference", "price_model": "USD/BTC"}],
                    },
                    "USD/BTC": {
                        "type": "invert",
                        "pair": "USD/BTC",
                        "sources": [{"type": "reference", "price_model": "BTC/USD"}],
                    },
                }
            ).build_graphs()


class TestConfigProvider:
    """Test provider creation."""

    def test_build_provider(self) -> None:
        provider = config({"BTC/USD": origin(), "ETH/USD": origin("api", "ETH/USD")}).build_provider()
        assert isinstance(provider, Provider)
        assert provider.model_names() == ["BTC/USD", "ETH/USD"]
        assert set(provider.updater.origins) == {"coinbase", "api"}


class TestConfigFeeder:
    """Test the feeder and ethereum sections."""

    def test_build_feeder(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DEFAULT_KEY_ENV, FEEDER_KEY)
        cfg = config(
            {"BTC/USD": origin()},
            ethereum={},
            feeder={"pairs": ["BTC/USD"], "interval": 15},
        )
        provider = cfg.build_provider()
        feeder = cfg.build_feeder(provider, LocalTransport())
        assert isinstance(feeder, Feeder)
        assert feeder.account.address == FEEDER_ADDRESS
        assert feeder.pairs == ["BTC/USD"]
        assert feeder.interval == 15
        assert feeder.provider is provider

    def test_custom_key_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FEEDER_KEY", FEEDER_KEY)
        cfg = config(
            {"BTC/USD": origin()},
            ethereum={"key_env": "FEEDER_KEY"},
            feeder={"pairs": ["BTC/USD"]},
        )
        assert cfg.build_account().address == FEEDER_ADDRESS

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(DEFAULT_KEY_ENV, raising=False)
        cfg = config({"BTC/USD": origin()}, ethereum={}, feeder={"pairs": ["BTC/USD"]})
        with pytest.raises(ConfigError, match=f"environment variable {DEFAULT_KEY_ENV} is not set"):
            cfg.build_feeder(cfg.build_provider(), LocalTransport())

    def test_invalid_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DEFAULT_KEY_ENV, "not-a-key")
        cfg = config({"BTC/USD": origin()}, ethereum={}, feeder={"pairs": ["BTC/USD"]})
        with pytest.raises(ConfigError, match=f"invalid private key in {DEFAULT_KEY_ENV}"):
            cfg.build_account()

    def test_unknown_model(self) -> None:
        with pytest.raises(ConfigError, match="feeder: unknown price models DOGE/USD"):
            config({"BTC/USD": origin()}, ethereum={}, feeder={"pairs": ["BTC/USD", "DOGE/USD"]})

    def test_empty_pairs(self) -> None:
        with pytest.raises(ConfigError, match="feeder.pairs: List should have at least 1 item"):
            config({"BTC/USD": origin()}, ethereum={}, feeder={"pairs": []})

    def test_ethereum_required(self) -> None:
        with pytest.raises(ConfigError, match="ethereum section is required"):
            config({"BTC/USD": origin()}, feeder={"pairs": ["BTC/USD"]})

    def test_store_pairs(self) -> None:
        """The store accepts relayed pairs and pairs of the feeder models."""
        cfg = config(
            {"BTC/USD": origin(), "ether": origin(pair="ETH/USD")},
            ethereum={"rpc_url": "http://localhost:8545"},
            feeder={"pairs": ["ether"]},
            relayer=relayer_section(),
        )
        assert cfg.store_pairs() == ["BTCUSD", "ETHUSD"]
        store = cfg.build_price_store(LocalTransport())
        assert isinstance(store, PriceStore)
        assert store.pairs == ["BTCUSD", "ETHUSD"]


class TestConfigRelayer:
    """Test the relayer section."""

    def test_build_relayer(self) -> None:
        cfg = config(
            {}, ethereum={"rpc_url": "http://localhost:8545"}, relayer=relayer_section()
        )
        store = cfg.build_price_store(LocalTransport())
        relayer = cfg.build_relayer(store, w3=MagicMock())
        assert isinstance(relayer, Relayer)
        assert relayer.store is store
        assert relayer.interval == 30
        pair = relayer.pairs["BTCUSD"]
        assert pair.spread == 1
        assert pair.expiration == timedelta(hours=1)
        assert pair.feeder_addresses_update_interval == 60
        assert isinstance(pair.median, Web3Median)
        assert pair.median.address == MEDIAN_ADDRESS

    def test_default_web3(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Transactions are sent from the configured account."""
        monkeypatch.setenv(DEFAULT_KEY_ENV, FEEDER_KEY)
        cfg = config(
            {}, ethereum={"rpc_url": "http://localhost:8545"}, relayer=relayer_section()
        )
        relayer = cfg.build_relayer(cfg.build_price_store(LocalTransport()))
        median = relayer.pairs["BTCUSD"].median
        assert median.w3.eth.default_account == FEEDER_ADDRESS
        assert median.w3.provider.endpoint_uri == "http://localhost:8545"

    def test_rpc_url_required(self) -> None:
        with pytest.raises(ConfigError, match="rpc_url is required by the relayer"):
            config({}, ethereum={}, relayer=relayer_section())

    def test_invalid_address(self) -> None:
        with pytest.raises(ConfigError, match="invalid contract address 0x1234"):
            config(
                {},
                ethereum={"rpc_url": "http://localhost:8545"},
                relayer=relayer_section(median="0x1234"),
            )

    @pytest.mark.parametrize("field", ["spread", "expiration"])
    def test_not_positive(self, field: str) -> None:
        with pytest.raises(ConfigError, match=f"{field}: Input should be greater than 0"):
            config(
                {},
                ethereum={"rpc_url": "http://localhost:8545"},
                relayer=relayer_section(**{field: 0}),
            )
