"""Unit tests for Updater."""

import asyncio
import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from pricegraph.src.graph import MedianNode, OriginNode
from pricegraph.src.origins import Origin
from pricegraph.src.Pair import Pair
from pricegraph.src.Tick import Tick, TickError, utcnow
from pricegraph.src.Updater import MAX_CONCURRENT_UPDATES, Updater

BTC_USD = Pair("BTC", "USD")
ETH_USD = Pair("ETH", "USD")


class StaticOrigin(Origin):
    """Origin returning fixed prices and recording requests."""

    name = "static"

    def __init__(self, prices: dict[Pair, str]) -> None:
        self.prices = prices
        self.requests: list[list[Pair]] = []

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        self.requests.append(list(pairs))
        return [
            Tick(pair=pair, price=Decimal(self.prices[pair]), time=utcnow())
            for pair in pairs
            if pair in self.prices
        ]


class FailingOrigin(Origin):
    """Origin raising on every request."""

    name = "failing"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        raise RuntimeError("connection reset")


class ErrorTickOrigin(Origin):
    """Origin returning error ticks."""

    name = "error"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        return [Tick(pair=pair, time=utcnow(), error=TickError("rate limited")) for pair in pairs]


def graph(*nodes: OriginNode) -> MedianNode:
    root = MedianNode(BTC_USD, min_sources=1)
    root.add_branch(*nodes)
    return root


class TestUpdater:
    """Test Updater.update()."""

    def test_updates_origin_nodes(self) -> None:
        origin = StaticOrigin({BTC_USD: "100"})
        node = OriginNode("static", BTC_USD)
        asyncio.run(Updater({"static": origin}).update([graph(node)]))
        assert node.tick().price == Decimal("100")
        assert node.tick().meta["origin"] == "static"

    def test_single_request_per_origin(self) -> None:
        """Pairs are deduplicated and fetched with one request per origin."""
        origin = StaticOrigin({BTC_USD: "100", ETH_USD: "10"})
        a = OriginNode("static", BTC_USD)
        b = OriginNode("static", BTC_USD)
        c = OriginNode("static", ETH_USD)
        eth = MedianNode(ETH_USD, min_sources=1)
        eth.add_branch(c)

        asyncio.run(Updater({"static": origin}).update([graph(a, b), eth]))

        assert len(origin.requests) == 1
        assert sorted(map(str, origin.requests[0])) == ["BTC/USD", "ETH/USD"]
        assert a.tick().price == b.tick().price == Decimal("100")
        assert c.tick().price == Decimal("10")

    def test_fetch_pair_used(self) -> None:
        """Nodes are fetched by their fetch pair and keep their own pair."""
        origin = StaticOrigin({Pair("XBT", "USD"): "100"})
        node = OriginNode("static", BTC_USD, fetch_pair=Pair("XBT", "USD"))
        asyncio.run(Updater({"static": origin}).update([graph(node)]))
        assert origin.requests == [[Pair("XBT", "USD")]]
        assert node.tick().pair == BTC_USD
        assert node.tick().valid

    def test_fresh_nodes_skipped(self) -> None:
        origin = StaticOrigin({BTC_USD: "100"})
        node = OriginNode("static", BTC_USD, freshness_threshold=timedelta(seconds=60))
        node.set_tick(Tick(pair=BTC_USD, price=Decimal("99"), time=utcnow()))

        asyncio.run(Updater({"static": origin}).update([graph(node)]))

        assert origin.requests == []
        assert node.tick().price == Decimal("99")

    def test_failing_origin_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        """A raising origin is logged and does not affect other origins."""
        good = OriginNode("static", BTC_USD)
        bad = OriginNode("failing", BTC_USD)
        updater = Updater(
            {"static": StaticOrigin({BTC_USD: "100"}), "failing": FailingOrigin()}
        )

        with caplog.at_level(logging.WARNING):
            asyncio.run(updater.update([graph(good, bad)]))

        assert good.tick().valid
        assert str(bad.tick().error) == "tick is not set"
        assert "[failing] Panic while fetching ticks" in caplog.text
        assert "[failing] Origin did not return a tick for pair BTC/USD" in caplog.text

    def test_error_ticks_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        node = OriginNode("error", BTC_USD)
        with caplog.at_level(logging.WARNING):
            asyncio.run(Updater({"error": ErrorTickOrigin()}).update([graph(node)]))
        assert "[error] Unable to set tick for pair BTC/USD" in caplog.text
        assert "rate limited" in caplog.text
        assert not node.tick().valid

    def test_missing_tick_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        node = OriginNode("static", ETH_USD)
        root = MedianNode(ETH_USD, min_sources=1)
        root.add_branch(node)
        with caplog.at_level(logging.WARNING):
            asyncio.run(Updater({"static": StaticOrigin({})}).update([root]))
        assert "Origin did not return a tick for pair ETH/USD" in caplog.text

    def test_unknown_origin(self, caplog: pytest.LogCaptureFixture) -> None:
        node = OriginNode("missing", BTC_USD)
        with caplog.at_level(logging.WARNING):
            asyncio.run(Updater({}).update([graph(node)]))
        assert "[missing] Origin is not configured" in caplog.text

    def test_concurrency_limited(self) -> None:
        """No more requests than the limiter allows run at once."""
        running = 0
        peak = 0

        class SlowOrigin(Origin):
            name = "slow"

            async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.01)
                running -= 1
                return [Tick(pair=p, price=Decimal(1), time=utcnow()) for p in pairs]

        origins = {f"slow{i}": SlowOrigin() for i in range(5)}
        nodes = [OriginNode(name, BTC_USD) for name in origins]

        async def run() -> None:
            await Updater(origins, limiter=asyncio.Semaphore(2)).update([graph(*nodes)])

        asyncio.run(run())
        assert peak == 2
        assert all(n.tick().valid for n in nodes)


class SleepingOrigin(Origin):
    """Origin answering after a short delay."""

    name = "sleeping"

    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        await asyncio.sleep(0.01)
        return [Tick(pair=p, price=Decimal(1), time=utcnow()) for p in pairs]


class TestUpdaterEventLoops:
    """Test reusing an updater from several event loops."""

    def test_default_limiter_per_update(self) -> None:
        """More origins than the limit must wait, in every event loop."""
        origins = {f"o{i}": SleepingOrigin() for i in range(MAX_CONCURRENT_UPDATES + 2)}
        updater = Updater(origins)

        for _ in range(2):
            nodes = [OriginNode(name, BTC_USD) for name in origins]
            asyncio.run(updater.update([graph(*nodes)]))
            assert all(n.tick().valid for n in nodes)

    def test_limiter_of_another_loop(self, caplog: pytest.LogCaptureFixture) -> None:
        """A limiter that cannot be used only fails the waiting origins."""
        origins = {f"o{i}": SleepingOrigin() for i in range(3)}
        updater = Updater(origins, limiter=asyncio.Semaphore(1))
        asyncio.run(updater.update([graph(*[OriginNode(name, BTC_USD) for name in origins])]))

        nodes = [OriginNode(name, BTC_USD) for name in origins]
        with caplog.at_level(logging.ERROR):
            asyncio.run(updater.update([graph(*nodes)]))
        assert "Panic while fetching ticks" in caplog.text
        assert nodes[0].tick().valid
