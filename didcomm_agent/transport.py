"""Transports delivering packed messages to service endpoints."""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Dict, Optional, Sequence, TypeVar

import aiohttp
import websockets
from websockets.exceptions import WebSocketException

from didcomm_agent.packaging import MalformedEnvelopeError, media_type_of

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class TransportError(Exception):
    """Raised when a message could not be delivered."""


class TransportTimeout(TransportError, TimeoutError):
    """Raised when delivery did not finish in time."""


@dataclass
class TransportAck:
    """Acknowledgement of a delivered message."""

    endpoint: str
    status: Optional[int] = None
    response: Optional[str] = None


class Transport(ABC):
    """Deliver packed messages to endpoints of the supported schemes."""

    schemes: Sequence[str] = ()

    def __init__(self, timeout: Optional[float] = None):
        """Initialize the transport with an optional timeout in seconds."""
        self.timeout = timeout

    def supports(self, endpoint: str) -> bool:
        """Return whether this transport can deliver to the endpoint."""
        return endpoint.startswith(tuple(self.schemes))

    @abstractmethod
    async def send(self, packed: str, endpoint: str) -> TransportAck:
        """Send a packed message to an endpoint."""

    async def _within_timeout(self, endpoint: str, operation: Awaitable[T]) -> T:
        if self.timeout is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, self.timeout)
        except asyncio.TimeoutError:
            raise TransportTimeout(
                f"Delivery to {endpoint} timed out after {self.timeout}s"
            ) from None


def _content_type(packed: str) -> str:
    try:
        return media_type_of(packed)
    except MalformedEnvelopeError as err:
        raise TransportError("Refusing to send a malformed message") from err


class HTTPTransport(Transport):
    """POST messages to HTTP(S) endpoints."""

    schemes = ("http://", "https://")

    async def send(self, packed: str, endpoint: str) -> TransportAck:
        """POST a packed message."""
        headers = {"Content-Type": _content_type(packed)}
        return await self._within_timeout(
            endpoint, self._post(packed, endpoint, headers)
        )

    async def _post(self, packed: str, endpoint: str, headers: Dict[str, str]):
        try:
            async with aiohttp.ClientSession() as session:
                LOG.debug("posting message to %s", endpoint)
                async with session.post(endpoint, data=packed, headers=headers) as resp:
                    body = await resp.text()
                    LOG.debug("response code: %s", resp.status)
                    if resp.status >= 400:
                        raise TransportError(
                            "Destination responded with error: code=%s message=%s"
                            % (resp.status, body)
                        )
                    return TransportAck(endpoint, resp.status, body or None)
        except aiohttp.ClientError as err:
            raise TransportError(f"Could not deliver to {endpoint}: {err}") from err


class WebSocketTransport(Transport):
    """Send messages over a WebSocket connection."""

    schemes = ("ws://", "wss://")

    async def send(self, packed: str, endpoint: str) -> TransportAck:
        """Send a packed message as a single text frame."""
        _content_type(packed)
        return await self._within_timeout(endpoint, self._send(packed, endpoint))

    async def _send(self, packed: str, endpoint: str) -> TransportAck:
        try:
            async with websockets.connect(endpoint) as websocket:
                await websocket.send(packed)
                LOG.debug("Sent message over websocket to %s", endpoint)
        except (WebSocketException, OSError) as err:
            raise TransportError(f"Could not deliver to {endpoint}: {err}") from err
        return TransportAck(endpoint)


class QueueTransport(Transport):
    """Deliver messages to in-process queues, one per endpoint."""

    schemes = ("didcomm:transport/queue", "memory:")

    def __init__(self, timeout: Optional[float] = None, maxsize: int = 0):
        """Initialize the transport."""
        super().__init__(timeout)
        self.maxsize = maxsize
        self.queues: Dict[str, asyncio.Queue] = {}

    def queue(self, endpoint: str) -> asyncio.Queue:
        """Return the queue of an endpoint, creating it if needed."""
        if endpoint not in self.queues:
            self.queues[endpoint] = asyncio.Queue(self.maxsize)
        return self.queues[endpoint]

    async def send(self, packed: str, endpoint: str) -> TransportAck:
        """Put a packed message on the endpoint queue."""
        _content_type(packed)
        await self._within_timeout(endpoint, self.queue(endpoint).put(packed))
        return TransportAck(endpoint)

    async def receive(self, endpoint: str) -> str:
        """Wait for the next message delivered to an endpoint."""
        return await self.queue(endpoint).get()
