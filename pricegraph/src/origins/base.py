"""Origin interface and shared HTTP client management.

An origin is anything that returns ticks for a list of pairs. Origins do
not need to return a tick for every requested pair, nor keep the order of
the pairs: the updater matches returned ticks by pair.

All HTTP origins share one httpx.AsyncClient to avoid connection overhead.

.. code-block:: python

    @register_origin
    class MyOrigin(HTTPOrigin):
        name = "myorigin"

        async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
            response = await self._get("https://api.example.com/ticker")
            ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

from ..Pair import Pair
from ..Tick import Tick, TickError, utcnow

logger = logging.getLogger(__name__)


class OriginError(Exception):
    """Base exception for origin errors."""

    pass


class OriginConfigError(OriginError):
    """Raised when origin configuration is invalid (e.g., missing URL)."""

    pass


class OriginHTTPError(OriginError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class Origin(ABC):
    """Abstract base class for tick sources.

    :cvar name: Origin type identifier used in configuration.
    """

    name: ClassVar[str] = ""

    @abstractmethod
    async def fetch_ticks(self, pairs: list[Pair]) -> list[Tick]:
        """Fetch ticks for the given pairs.

        :param pairs: Pairs to fetch, as the origin names them.
        :returns: Ticks in any order; pairs that failed may be missing or
            returned with ``error`` set.
        """


class HTTPOrigin(Origin):
    """Base class for origins reading JSON over HTTP.

    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar headers: Headers sent with each request.
    :ivar timeout: Request timeout in seconds.
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the origin.

        :param headers: Optional request headers.
        :param timeout: Request timeout in seconds (default: 10).
        :param client: Client to use instead of the shared one.
        """
        self.headers = headers or {}
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if HTTPOrigin._shared_client is None or HTTPOrigin._shared_client.is_closed:
            HTTPOrigin._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return HTTPOrigin._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if HTTPOrigin._shared_client is not None and not HTTPOrigin._shared_client.is_closed:
            await HTTPOrigin._shared_client.aclose()
            HTTPOrigin._shared_client = None

    async def _get(self, url: str, *, params: dict | None = None) -> httpx.Response:
        """Make an HTTP GET request.

        :param url: Request URL.
        :param params: Optional query parameters.
        :returns: httpx.Response object.
        :raises OriginHTTPError: On non-2xx response.
        :raises OriginError: On network/timeout errors.
        """
        client = self._client or self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=self.headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise OriginError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise OriginError(f"Request failed: {e}") from e
        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise OriginHTTPError(response.status_code, response.text[:200])
        return response


def with_error(pairs: list[Pair], error: Exception | str) -> list[Tick]:
    """Return one error tick per pair."""
    if not isinstance(error, TickError):
        error = TickError(str(error))
    now = utcnow()
    return [Tick(pair=pair, time=now, error=error) for pair in pairs]


def to_decimal(value: Any) -> Decimal:
    """Parse a JSON number or numeric string.

    :raises ValueError: If the value is not a number.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid number: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"invalid number: {value!r}") from e


def to_time(value: Any) -> datetime:
    """Parse a unix timestamp or an ISO-8601 string into an aware datetime.

    :raises ValueError: If the value cannot be parsed.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except ValueError:
            pass
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"invalid time: {value!r}")


# Registry of available origin types (populated by subclass imports)
ORIGIN_REGISTRY: dict[str, type[Origin]] = {}


def register_origin(cls: type[Origin]) -> type[Origin]:
    """Decorator to register an origin class in the global registry.

    :param cls: Origin class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If origin has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Origin {cls.__name__} must define a 'name' class variable")
    ORIGIN_REGISTRY[cls.name] = cls
    return cls


def get_origin(origin_type: str, **params: Any) -> Origin:
    """Create an origin instance by type name.

    :param origin_type: Origin type (e.g., "coinbase", "generic_http").
    :param params: Keyword arguments passed to the origin constructor.
    :returns: Origin instance.
    :raises OriginConfigError: If the type is unknown or params are invalid.
    """
    if origin_type not in ORIGIN_REGISTRY:
        available = ", ".join(sorted(ORIGIN_REGISTRY.keys()))
        raise OriginConfigError(f"Unknown origin type '{origin_type}'. Available: {available}")
    try:
        return ORIGIN_REGISTRY[origin_type](**params)
    except TypeError as e:
        raise OriginConfigError(f"Invalid parameters for origin type '{origin_type}': {e}") from e


def get_available_origins() -> list[str]:
    """Get list of available origin type names.

    :returns: Sorted list of registered origin types.
    """
    return sorted(ORIGIN_REGISTRY.keys())
