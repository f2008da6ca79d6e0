"""Pair: Asset pair identity used across the computation graph.

Symbols are normalized to uppercase, no other normalization is applied.
Two pairs are equal when both symbols match exactly.

.. code-block:: python

    >>> pair = Pair("btc", "usd")
    >>> str(pair)
    'BTC/USD'
    >>> pair.invert()
    Pair('USD', 'BTC')
    >>> Pair.from_string("eth/btc").base
    'ETH'
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Pair:
    """An asset pair.

    :ivar base: Base asset symbol (uppercase).
    :ivar quote: Quote asset symbol (uppercase).
    """

    base: str
    quote: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", self.base.upper())
        object.__setattr__(self, "quote", self.quote.upper())

    def __str__(self) -> str:
        """Return the pair in "BASE/QUOTE" form."""
        return f"{self.base}/{self.quote}"

    def __repr__(self) -> str:
        return f"Pair({self.base!r}, {self.quote!r})"

    def empty(self) -> bool:
        """Check whether either side of the pair is missing."""
        return self.base == "" or self.quote == ""

    def invert(self) -> Pair:
        """Return the pair with base and quote swapped."""
        return Pair(self.quote, self.base)

    @classmethod
    def from_string(cls, pair_str: str) -> Pair:
        """Parse a pair string in format "base/quote".

        :param pair_str: Pair string like "btc/usd" or "ETH/BTC".
        :returns: New Pair instance.
        :raises ValueError: If the string is not exactly two non-empty symbols.
        """
        parts = pair_str.split("/")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(
                f"Invalid pair format '{pair_str}'. Expected 'BASE/QUOTE' (e.g., 'BTC/USD')"
            )
        return cls(parts[0].strip(), parts[1].strip())
