"""Handler unwrapping DIDComm envelopes and plaintext."""

import json
import logging

from didcomm_agent.agent import AgentContext
from didcomm_agent.message import Message
from didcomm_agent.message_handler import AbstractMessageHandler, HandlerResult
from didcomm_agent.packaging import MalformedEnvelopeError, UnpackResult, media_type_of

LOG = logging.getLogger(__name__)

DIDCOMM_METADATA = "didCommMsg"


class DIDCommMessageHandler(AbstractMessageHandler):
    """Unpack DIDComm messages and re-offer the plaintext.

    Data that is not a DIDComm message passes through unchanged; unpacking
    failures of DIDComm messages are raised.
    """

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Unpack a DIDComm message."""
        if message.raw is None or message.is_classified:
            return HandlerResult.next(message)
        try:
            media_type_of(json.loads(message.raw))
        except (json.JSONDecodeError, UnicodeDecodeError, MalformedEnvelopeError):
            return HandlerResult.next(message)

        result: UnpackResult = await context.execute(
            "unpack_didcomm_message", {"message": message.raw}
        )
        LOG.debug("Unpacked %s message %s", result.packing.value, result.message.id)
        message = (
            message.classify_didcomm(result.message)
            .reoffer(result.message.to_json())
            .with_metadata(
                DIDCOMM_METADATA,
                {
                    "packing": result.packing.value,
                    "layers": [layer.value for layer in result.layers],
                    "sender_kid": result.sender_kid,
                    "recipient_kid": result.recipient_kid,
                },
            )
        )
        return HandlerResult.next(message)
