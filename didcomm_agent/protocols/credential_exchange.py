"""Handler verifying and storing received credentials and presentations."""

import logging
from typing import Optional

from didcomm_agent.agent import AgentContext, AgentError
from didcomm_agent.crypto.jws import is_compact
from didcomm_agent.message import Message
from didcomm_agent.message_handler import AbstractMessageHandler, HandlerResult

LOG = logging.getLogger(__name__)

CREDENTIAL = "w3c.vc"
PRESENTATION = "w3c.vp"


def _embedded_jwt(message: Message) -> Optional[str]:
    if is_compact(message.raw):
        return message.raw
    if isinstance(message.data, dict) and is_compact(message.data.get("jwt")):
        return message.data["jwt"]
    return None


class CredentialMessageHandler(AbstractMessageHandler):
    """Verify credentials and presentations carried by a message.

    A credential that fails verification is recorded on the message, which
    is still returned as handled.
    """

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Handle credential and presentation messages."""
        if message.type not in (CREDENTIAL, PRESENTATION):
            return HandlerResult.next(message)

        token = _embedded_jwt(message)
        if not token:
            return HandlerResult.handled(
                message.with_metadata(
                    "CredentialVerificationFailed", "Message carries no JWT"
                )
            )

        if message.type == CREDENTIAL:
            result = await context.execute("verify_credential", {"credential": token})
        else:
            result = await context.execute(
                "verify_presentation", {"presentation": token}
            )

        if not result["verified"]:
            LOG.warning(
                "Received %s failed verification: %s", message.type, result["error"]
            )
            return HandlerResult.handled(
                message.with_metadata("CredentialVerificationFailed", result["error"])
            )

        if message.type == CREDENTIAL:
            credentials = [result["credential"]]
            message = message.classify(credentials=tuple(credentials))
        else:
            credentials = result["presentation"].get("verifiableCredential", [])
            message = message.classify(
                presentations=(result["presentation"],),
                credentials=tuple(credentials),
            )

        if context.has_method("data_store_save_verifiable_credential"):
            for credential in credentials:
                try:
                    await context.execute(
                        "data_store_save_verifiable_credential",
                        {"credential": credential},
                    )
                except AgentError as err:
                    LOG.warning("Could not store verified credential: %s", err)
                    message = message.with_metadata("CredentialSaveFailed", str(err))

        return HandlerResult.handled(message.with_metadata("CredentialVerified", True))
