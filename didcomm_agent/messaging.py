"""DIDComm plugin: pack, unpack and send messages through the agent."""

import logging
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from didcomm_agent.agent import AgentContext
from didcomm_agent.message import DIDCommMessage
from didcomm_agent.packaging import (
    Packing,
    PackagingService,
    UnpackResult,
    media_type_of,
)
from didcomm_agent.plugin import AgentPlugin, Capability
from didcomm_agent.resolver.document import Service
from didcomm_agent.routing import RoutingService
from didcomm_agent.transport import Transport, TransportAck, TransportError

LOG = logging.getLogger(__name__)

MESSAGE_SENT = "DIDCommV2Message-sent"


class DIDComm(AgentPlugin):
    """Main entrypoint for DIDComm messaging within an agent."""

    capabilities = (Capability.DIDCOMM,)

    def __init__(
        self,
        packaging: PackagingService,
        transports: Sequence[Transport],
        routing: Optional[RoutingService] = None,
    ):
        """Initialize the plugin."""
        self.packaging = packaging
        self.transports = list(transports)
        self.routing = routing or RoutingService(packaging, packaging.resolver)

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "pack_didcomm_message": self.pack_didcomm_message,
            "unpack_didcomm_message": self.unpack_didcomm_message,
            "send_didcomm_message": self.send_didcomm_message,
            "get_didcomm_message_media_type": self.get_didcomm_message_media_type,
        }

    async def pack_didcomm_message(
        self,
        context: AgentContext,
        message: Union[DIDCommMessage, Mapping[str, Any]],
        packing: Union[Packing, str] = Packing.NONE,
        key_ref: Optional[str] = None,
    ) -> str:
        """Pack a message.

        Args:
            context: execution context
            message: the message to pack
            packing: one of none, jws, authcrypt or anoncrypt
            key_ref: the sender key to use; defaults to a key of the sender DID

        Returns:
            The packed message
        """
        return await self.packaging.pack(message, packing, key_ref)

    async def unpack_didcomm_message(
        self, context: AgentContext, message: Union[str, bytes, Mapping[str, Any]]
    ) -> UnpackResult:
        """Unpack a message."""
        return await self.packaging.unpack(message)

    async def get_didcomm_message_media_type(
        self, context: AgentContext, message: Union[str, bytes, Mapping[str, Any]]
    ) -> str:
        """Return the media type of a packed message."""
        return media_type_of(message)

    def _select_endpoint(self, services: Sequence[Service]) -> Tuple[str, Transport]:
        for service in services:
            for endpoint in service.endpoints:
                for transport in self.transports:
                    if transport.supports(endpoint.uri):
                        return endpoint.uri, transport
        raise TransportError("No configured transport supports the recipient services")

    async def send_didcomm_message(
        self,
        context: AgentContext,
        packed_message: str,
        recipient_did_url: str,
        message_id: Optional[str] = None,
    ) -> TransportAck:
        """Send a packed message to the service endpoint of a recipient."""
        packed, services = await self.routing.prepare_forward(
            recipient_did_url, packed_message
        )
        endpoint, transport = self._select_endpoint(services)
        LOG.debug(
            "Sending message %s to %s via %s",
            message_id,
            endpoint,
            type(transport).__name__,
        )
        ack = await transport.send(packed, endpoint)
        context.agent.emit(
            MESSAGE_SENT,
            {
                "message_id": message_id,
                "recipient": recipient_did_url,
                "endpoint": endpoint,
            },
        )
        return ack
