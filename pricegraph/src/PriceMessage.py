"""PriceMessage: Signed oracle prices exchanged between feeders and relayers.

A feeder signs ``keccak256(val | age | wat)`` (the hash the Median
contract verifies) with an Ethereum personal-message signature. Relayers
recover the feeder address from the signature.

.. code-block:: python

    price = Price(wat="BTCUSD", val=to_val(Decimal("42000")), age=utcnow())
    price.sign(account)
    assert price.recover() == account.address
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

# Prices are stored on-chain as integers with 18 decimals.
PRICE_MULTIPLIER = 10**18

PRICE_MESSAGE_VERSION = "1.0"


class StoreError(Exception):
    """Base exception for price messages rejected by a price store."""

    pass


class InvalidSignatureError(StoreError):
    """Raised when a signer address cannot be recovered from a price."""

    pass


class PriceMessageError(Exception):
    """Raised when a price message cannot be decoded."""

    pass


def to_val(price: Decimal) -> int:
    """Convert a price to its on-chain integer representation."""
    return int(price * PRICE_MULTIPLIER)


@dataclass
class Price:
    """A price of an asset pair as stored by the Median contract.

    :ivar wat: Asset pair name, e.g. "BTCUSD".
    :ivar val: Price multiplied by PRICE_MULTIPLIER.
    :ivar age: Time the price was observed, second precision.
    :ivar signature: 65 byte signature (r | s | v), None if unsigned.
    """

    wat: str
    val: int
    age: datetime
    signature: bytes | None = None

    @property
    def float_price(self) -> float:
        return self.val / PRICE_MULTIPLIER

    @property
    def age_unix(self) -> int:
        return int(self.age.timestamp())

    def hash(self) -> bytes:
        """Return keccak256(abi.encodePacked(val, age, wat))."""
        data = (
            self.val.to_bytes(32, "big", signed=self.val < 0)
            + self.age_unix.to_bytes(32, "big")
            + self.wat.encode()[:32].ljust(32, b"\x00")
        )
        return bytes(Web3.keccak(data))

    def sign(self, account: LocalAccount) -> None:
        """Sign the price hash with the given account."""
        signed = account.sign_message(encode_defunct(primitive=self.hash()))
        self.signature = bytes(signed.signature)

    def recover(self) -> str:
        """Recover the signer address.

        :returns: Checksummed address of the signer.
        :raises InvalidSignatureError: If the price is unsigned or the
            signature is malformed.
        """
        if not self.signature:
            raise InvalidSignatureError("price is not signed")
        try:
            return Account.recover_message(
                encode_defunct(primitive=self.hash()), signature=self.signature
            )
        except Exception as e:
            raise InvalidSignatureError(f"unable to recover signer: {e}") from e

    @property
    def v(self) -> int:
        return self.signature[64] if self.signature else 0

    @property
    def r(self) -> bytes:
        return self.signature[:32] if self.signature else bytes(32)

    @property
    def s(self) -> bytes:
        return self.signature[32:64] if self.signature else bytes(32)

    def fields(self) -> dict[str, Any]:
        """Return a summary of the price for log messages."""
        try:
            signer = self.recover()
        except InvalidSignatureError:
            signer = "*invalid signature*"
        return {
            "from": signer,
            "wat": self.wat,
            "age": self.age.astimezone(timezone.utc).isoformat(),
            "val": str(self.val),
            "hash": self.hash().hex(),
        }

    def to_json(self) -> dict[str, Any]:
        return {
            "wat": self.wat,
            "val": str(self.val),
            "age": self.age_unix,
            "v": f"{self.v:02x}",
            "r": self.r.hex(),
            "s": self.s.hex(),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Price:
        """Decode a price from its JSON representation.

        :raises PriceMessageError: If fields are missing or malformed.
        """
        try:
            v = data.get("v", "").removeprefix("0x")
            r = data.get("r", "").removeprefix("0x")
            s = data.get("s", "").removeprefix("0x")
            if (v or r or s) and (len(v) != 2 or len(r) != 64 or len(s) != 64):
                raise PriceMessageError("VRS fields contain invalid signature lengths")
            signature = bytes.fromhex(r + s + v) if v else None
            return cls(
                wat=data["wat"],
                val=int(data["val"]),
                age=datetime.fromtimestamp(int(data["age"]), tz=timezone.utc),
                signature=signature,
            )
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise PriceMessageError(f"unable to decode price: {e}") from e


@dataclass
class PriceMessage:
    """Gossip envelope carrying a signed price.

    :ivar price: Signed price.
    :ivar trace: Optional trace of the price model, for debugging.
    :ivar version: Version of the feeder that produced the message.
    """

    price: Price
    trace: dict[str, Any] | None = None
    version: str = PRICE_MESSAGE_VERSION

    def to_bytes(self) -> bytes:
        return json.dumps(
            {"price": self.price.to_json(), "trace": self.trace, "version": self.version}
        ).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> PriceMessage:
        """Decode a message.

        :raises PriceMessageError: If the payload is not a valid message.
        """
        try:
            decoded = json.loads(data)
        except ValueError as e:
            raise PriceMessageError(f"unable to decode message: {e}") from e
        if not isinstance(decoded, dict) or not isinstance(decoded.get("price"), dict):
            raise PriceMessageError("unable to decode message: price is missing")
        return cls(
            price=Price.from_json(decoded["price"]),
            trace=decoded.get("trace"),
            version=decoded.get("version", ""),
        )
