"""Trust ping protocol.

https://identity.foundation/didcomm-messaging/spec/#trust-ping-protocol-20
"""

import logging
from typing import Optional

from didcomm_agent.agent import AgentContext, AgentError
from didcomm_agent.exchange import ExchangeStore
from didcomm_agent.message import DIDCommMessage, Message
from didcomm_agent.message_handler import AbstractMessageHandler, HandlerResult
from didcomm_agent.packaging import Packing
from didcomm_agent.plugin import AgentPlugin, Capability

LOG = logging.getLogger(__name__)

PROTOCOL = "trust-ping"
PING = "https://didcomm.org/trust-ping/2.0/ping"
PING_RESPONSE = "https://didcomm.org/trust-ping/2.0/ping-response"


def create_trust_ping(frm: str, to: str) -> DIDCommMessage:
    """Create a ping requesting a response."""
    return DIDCommMessage(type=PING, frm=frm, to=to, body={"responseRequested": True})


def create_trust_ping_response(frm: str, to: str, ping_id: str) -> DIDCommMessage:
    """Create the response to a ping."""
    return DIDCommMessage(type=PING_RESPONSE, frm=frm, to=to, thid=ping_id, body={})


def _first(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value


class TrustPing(AgentPlugin):
    """Plugin creating pings and tracking them until answered."""

    capabilities = (Capability.TRUST_PING,)

    def __init__(self, exchanges: Optional[ExchangeStore] = None):
        """Initialize the plugin."""
        self.exchanges = exchanges if exchanges is not None else ExchangeStore()

    @property
    def methods(self):
        """Return plugin methods."""
        return {"create_trust_ping": self.create_trust_ping}

    async def create_trust_ping(
        self, context: AgentContext, frm: str, to: str
    ) -> DIDCommMessage:
        """Create a ping and open an exchange for its response."""
        ping = create_trust_ping(frm, to)
        self.exchanges.open(ping.id, PROTOCOL, ping.serialize())
        return ping


class TrustPingMessageHandler(AbstractMessageHandler):
    """Answer pings and record ping responses."""

    def __init__(self, exchanges: Optional[ExchangeStore] = None):
        """Initialize the handler."""
        self.exchanges = exchanges

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Handle trust ping messages."""
        if message.type == PING:
            LOG.debug("TrustPing Message Received")
            return HandlerResult.handled(await self._respond(message, context))

        if message.type == PING_RESPONSE:
            LOG.debug("TrustPingResponse Message Received")
            if self.exchanges is not None and message.thid:
                self.exchanges.close(message.thid)
            return HandlerResult.handled(
                message.with_metadata("TrustPingResponseReceived", message.thid)
            )

        return HandlerResult.next(message)

    async def _respond(self, message: Message, context: AgentContext) -> Message:
        body = message.data if isinstance(message.data, dict) else {}
        if not body.get("responseRequested", body.get("response_requested", True)):
            return message

        if not message.frm:
            return message.with_metadata(
                "TrustPingResponseFailed", "Ping has no sender to respond to"
            )

        response = create_trust_ping_response(
            _first(message.to), message.frm, message.id
        )
        try:
            packed = await context.execute(
                "pack_didcomm_message", {"message": response, "packing": Packing.NONE}
            )
            await context.execute(
                "send_didcomm_message",
                {
                    "packed_message": packed,
                    "recipient_did_url": message.frm,
                    "message_id": response.id,
                },
            )
        except AgentError as err:
            LOG.warning("Trust ping response to %s failed: %s", message.frm, err)
            return message.with_metadata("TrustPingResponseFailed", str(err))

        return message.with_metadata("TrustPingResponseSent", response.id)
