"""
Tick origins.

Usage:
    from pricegraph.src.origins import get_origin, get_available_origins

    # Get list of available origin types
    available = get_available_origins()
    # ['bitstamp', 'coinbase', 'generic_evm', 'generic_http', 'kraken']

    # Create an origin instance
    origin = get_origin("coinbase")
    ticks = await origin.fetch_ticks([Pair("BTC", "USD")])

    # Generic origins are configured with keyword arguments
    origin = get_origin("generic_http", url="https://example.com/${ucbase}", price_path="price")
"""

# Import base classes and utilities
from .base import (
    ORIGIN_REGISTRY,
    HTTPOrigin,
    Origin,
    OriginConfigError,
    OriginError,
    OriginHTTPError,
    get_available_origins,
    get_origin,
    register_origin,
    with_error,
)

# Import all origin implementations to trigger registration
from .bitstamp import BitstampOrigin
from .coinbase import CoinbaseOrigin
from .generic_evm import GenericEVMOrigin
from .generic_http import GenericHTTPOrigin
from .kraken import KrakenOrigin

__all__ = [
    # Base classes
    "Origin",
    "HTTPOrigin",
    "OriginError",
    "OriginConfigError",
    "OriginHTTPError",
    # Registry functions
    "register_origin",
    "get_origin",
    "get_available_origins",
    "with_error",
    "ORIGIN_REGISTRY",
    # Origin implementations
    "BitstampOrigin",
    "CoinbaseOrigin",
    "GenericEVMOrigin",
    "GenericHTTPOrigin",
    "KrakenOrigin",
]
