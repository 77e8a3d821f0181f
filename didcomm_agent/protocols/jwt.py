"""Handler classifying compact JWTs."""

from didcomm_agent.agent import AgentContext
from didcomm_agent.crypto.jws import is_compact, parse_compact
from didcomm_agent.message import Message
from didcomm_agent.message_handler import AbstractMessageHandler, HandlerResult

JWT_METADATA = "JWT"


def jwt_message_type(payload: dict) -> str:
    """Return the message type of a JWT payload."""
    if "vc" in payload:
        return "w3c.vc"
    if "vp" in payload:
        return "w3c.vp"
    return payload.get("type") or "jwt"


class JwtMessageHandler(AbstractMessageHandler):
    """Decode a JWT and re-offer it with its payload as data.

    Signatures are verified by the handlers that understand the payload.
    """

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Classify a JWT."""
        if message.is_classified or not is_compact(message.raw):
            return HandlerResult.next(message)
        try:
            token = parse_compact(message.raw)
        except ValueError:
            return HandlerResult.next(message)

        payload = token.payload
        message = message.classify(
            type=jwt_message_type(payload),
            id=payload.get("jti") or message.id,
            frm=payload.get("iss"),
            to=payload.get("sub") or payload.get("aud"),
            data=payload,
        ).with_metadata(JWT_METADATA, token.header.get("alg"))
        return HandlerResult.next(message)
