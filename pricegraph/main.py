#!/usr/bin/env python3
"""Price graph CLI.

Computes asset prices from configured origins through price model graphs
(medians, cross rates, inversions, circuit breakers) and prints them.

Models and origins are read from a JSON config file. See config.example.json.

The agent command broadcasts signed prices of the feeder models and relays
the collected prices to Median contracts, as configured in the feeder and
relayer sections.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from .src.Config import Config, ConfigError
from .src.origins import HTTPOrigin, get_available_origins
from .src.Provider import Provider
from .src.Transport import LocalTransport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

FORMATS = ["plain", "trace", "json"]


def print_pairs(provider: Provider, names: list[str], output_format: str) -> int:
    """Print the structure of the given models.

    :returns: Exit code.
    """
    models = provider.models(*names)
    if output_format == "json":
        print(json.dumps({name: model.to_json() for name, model in models.items()}, indent=2))
        return 0

    for name, model in models.items():
        if output_format == "trace":
            print(f"Model for {name}:")
            print(model.to_trace())
        else:
            print(model.to_plain())
    return 0


async def print_prices(provider: Provider, names: list[str], output_format: str) -> int:
    """Update and print the prices of the given models.

    :returns: Exit code, 1 if any price is invalid.
    """
    ticks = await provider.ticks(*names)
    exit_code = 0
    for name, tick in ticks.items():
        error = tick.validation_error()
        if error is not None:
            logger.warning(f"[{name}] Invalid price: {error}")
            exit_code = 1

    if output_format == "json":
        print(json.dumps({name: tick.to_json() for name, tick in ticks.items()}, indent=2))
        return exit_code

    for name, tick in ticks.items():
        if output_format == "trace":
            print(f"Price for {name}:")
            print(tick.to_trace())
        else:
            print(tick.to_plain())
    return exit_code


async def run_agent(config: Config, provider: Provider) -> int:
    """Run the feeder, the price store and the relayer until cancelled.

    The services share an in-process transport: prices broadcast by the
    feeder are collected by the store and relayed from there.
    """
    if config.feeder is None and config.relayer is None:
        raise ConfigError("agent requires a feeder or a relayer section")

    transport = LocalTransport()
    store = config.build_price_store(transport)
    services = [store]
    if config.feeder is not None:
        services.append(config.build_feeder(provider, transport))
    if config.relayer is not None:
        services.append(config.build_relayer(store))

    logger.info(f"Agent started with {', '.join(type(s).__name__ for s in services)}")
    await asyncio.gather(*(service.run() for service in services))
    return 0


async def run(args: argparse.Namespace) -> int:
    """Load the config and execute the selected command."""
    try:
        config = Config.load(args.config)
        provider = config.build_provider()
        if args.command == "agent":
            return await run_agent(config, provider)
        if args.command == "pairs":
            return print_pairs(provider, args.pairs, args.format)
        return await print_prices(provider, args.pairs, args.format)
    finally:
        await HTTPOrigin.close_shared_client()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the price graph CLI.

    :param argv: Command line arguments, defaults to ``sys.argv[1:]``.
    :returns: Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="pricegraph",
        description="Price graph: Asset prices computed from multiple origins",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available origin types:
  {', '.join(get_available_origins())}

Examples:
  # List all configured price models
  pricegraph -c config.json pairs

  # Show how the BTC/USD price was computed
  pricegraph -c config.json -f trace prices BTC/USD

  # Broadcast and relay prices, signing with the key from the environment
  PRICEGRAPH_PRIVATE_KEY=0x... pricegraph -c config.json agent

Environment variables (CLI args take precedence):
  PRICEGRAPH_CONFIG, LOG_LEVEL, and the key variable named by ethereum.key_env
""",
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to the JSON config file (default: config.json)",
        default=os.environ.get("PRICEGRAPH_CONFIG") or "config.json",
    )

    parser.add_argument(
        "-f", "--format",
        type=str,
        choices=FORMATS,
        help="Output format (default: plain)",
        default="plain",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    pairs_parser = subparsers.add_parser("pairs", help="Show price models")
    pairs_parser.add_argument("pairs", nargs="*", help="Model names (default: all)")
    prices_parser = subparsers.add_parser("prices", help="Update and show prices")
    prices_parser.add_argument("pairs", nargs="*", help="Model names (default: all)")
    subparsers.add_parser("agent", help="Broadcast and relay prices until interrupted")

    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif os.environ.get("LOG_LEVEL"):
        logging.getLogger().setLevel(os.environ["LOG_LEVEL"].upper())

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
