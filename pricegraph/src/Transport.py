"""Transport: Topic based publish/subscribe for price messages.

The price store consumes messages from a transport. LocalTransport keeps
everything in process, which is enough for a feeder and a relayer sharing
one event loop and for tests.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from .PriceMessage import PriceMessage, PriceMessageError

logger = logging.getLogger(__name__)

PRICE_MESSAGE_TOPIC = "price/v1"

# Message classes used to decode payloads per topic.
MESSAGE_TYPES: dict[str, type] = {
    PRICE_MESSAGE_TOPIC: PriceMessage,
}


@dataclass
class ReceivedMessage:
    """A message delivered by a transport.

    :ivar message: Decoded message, None if decoding failed.
    :ivar author: Optional identifier of the sending peer.
    :ivar error: Decoding error, if any.
    """

    message: Any = None
    author: str | None = None
    error: Exception | None = None


class Transport(ABC):
    """Publish/subscribe channel keyed by topic."""

    @abstractmethod
    async def broadcast(self, topic: str, message: Any) -> None:
        """Send a message to all subscribers of a topic."""

    @abstractmethod
    def messages(self, topic: str) -> asyncio.Queue[ReceivedMessage]:
        """Return the queue receiving messages of a topic."""


class LocalTransport(Transport):
    """In-process transport.

    Messages are encoded on broadcast and decoded on delivery, so
    subscribers see the same errors as with a network transport.

    :ivar author: Author attached to every delivered message.
    """

    def __init__(self, author: str | None = None) -> None:
        self.author = author
        self._queues: dict[str, asyncio.Queue[ReceivedMessage]] = {}

    def messages(self, topic: str) -> asyncio.Queue[ReceivedMessage]:
        if topic not in self._queues:
            self._queues[topic] = asyncio.Queue()
        return self._queues[topic]

    async def broadcast(self, topic: str, message: Any) -> None:
        await self.broadcast_raw(topic, message.to_bytes())

    async def broadcast_raw(self, topic: str, payload: bytes) -> None:
        """Deliver an encoded payload to the subscribers of a topic.

        :raises ValueError: If the topic has no registered message type.
        """
        message_type = MESSAGE_TYPES.get(topic)
        if message_type is None:
            raise ValueError(f"unknown topic {topic}")
        try:
            received = ReceivedMessage(message=message_type.from_bytes(payload), author=self.author)
        except PriceMessageError as e:
            received = ReceivedMessage(author=self.author, error=e)
        await self.messages(topic).put(received)
