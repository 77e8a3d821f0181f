"""Selective disclosure request and response.

A request names the claims a verifier wants; the holder answers with one
entry per requested claim. Claims the holder cannot provide are reported
with ``{"present": false}`` rather than left out.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from didcomm_agent.agent import AgentContext, AgentError
from didcomm_agent.exchange import ExchangeStore
from didcomm_agent.message import DIDCommMessage, Message
from didcomm_agent.message_handler import AbstractMessageHandler, HandlerResult
from didcomm_agent.packaging import Packing
from didcomm_agent.plugin import AgentPlugin, Capability

LOG = logging.getLogger(__name__)

PROTOCOL = "selective-disclosure"
REQUEST = "https://didcomm.org/selective-disclosure/1.0/request"
RESPONSE = "https://didcomm.org/selective-disclosure/1.0/response"

ABSENT = {"present": False}


def requested_claim_types(body: Any) -> List[str]:
    """Return the claim types named by a request body."""
    if not isinstance(body, dict) or not isinstance(body.get("claims"), list):
        raise ValueError("Selective disclosure request must list its claims")
    claim_types = []
    for claim in body["claims"]:
        if not isinstance(claim, dict) or not isinstance(claim.get("claimType"), str):
            raise ValueError("Each requested claim must have a claimType")
        claim_types.append(claim["claimType"])
    return claim_types


def _first(value):
    if isinstance(value, list):
        return value[0] if value else None
    return value


class SelectiveDisclosure(AgentPlugin):
    """Create requests and gather the claims answering them."""

    capabilities = (Capability.SELECTIVE_DISCLOSURE,)

    def __init__(self, exchanges: Optional[ExchangeStore] = None):
        """Initialize the plugin."""
        self.exchanges = exchanges if exchanges is not None else ExchangeStore()

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "create_selective_disclosure_request": (
                self.create_selective_disclosure_request
            ),
            "get_verifiable_claims_for_sdr": self.get_verifiable_claims_for_sdr,
        }

    async def create_selective_disclosure_request(
        self,
        context: AgentContext,
        frm: str,
        to: str,
        claims: Sequence[Union[str, Mapping[str, Any]]],
    ) -> DIDCommMessage:
        """Create a request and open an exchange for its response.

        Claims may be given as claim type names or as claim objects with
        ``claimType`` and optional ``reason``, ``essential`` and ``issuers``.
        """
        body = {
            "claims": [
                {"claimType": claim} if isinstance(claim, str) else dict(claim)
                for claim in claims
            ]
        }
        requested_claim_types(body)
        request = DIDCommMessage(type=REQUEST, frm=frm, to=to, body=body)
        self.exchanges.open(request.id, PROTOCOL, request.serialize())
        return request

    async def get_verifiable_claims_for_sdr(
        self,
        context: AgentContext,
        request: Mapping[str, Any],
        subject: Optional[str] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """Look up each requested claim of a subject in the data store."""
        requested_claim_types(request)
        found: Dict[str, Dict[str, Any]] = {}
        for claim in request["claims"]:
            claim_type = claim["claimType"]
            where = {"type": claim_type}
            if subject:
                where["subject"] = subject
            records = []
            if context.has_method("data_store_query_claims"):
                records = await context.execute(
                    "data_store_query_claims", {"where": where}
                )
            issuers = claim.get("issuers")
            if issuers:
                allowed = {
                    issuer["did"] if isinstance(issuer, dict) else issuer
                    for issuer in issuers
                }
                records = [r for r in records if r.get("issuer") in allowed]

            if records:
                record = records[0]
                found[claim_type] = {
                    "present": True,
                    "value": record.get("value"),
                    "issuer": record.get("issuer"),
                    "credential": record.get("credential"),
                }
            else:
                found[claim_type] = dict(ABSENT)
        return found


class SelectiveDisclosureMessageHandler(AbstractMessageHandler):
    """Answer selective disclosure requests and correlate responses."""

    def __init__(
        self,
        exchanges: Optional[ExchangeStore] = None,
        packing: Union[Packing, str] = Packing.AUTHCRYPT,
    ):
        """Initialize the handler."""
        self.exchanges = exchanges if exchanges is not None else ExchangeStore()
        self.packing = Packing.parse(packing)

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Handle selective disclosure messages."""
        if message.type == REQUEST:
            return HandlerResult.handled(await self._respond(message, context))
        if message.type == RESPONSE:
            return HandlerResult.handled(self._correlate(message))
        return HandlerResult.next(message)

    async def _respond(self, message: Message, context: AgentContext) -> Message:
        if not message.frm:
            return message.with_metadata(
                "SdrResponseFailed", "Request has no sender to respond to"
            )

        subject = _first(message.to)
        try:
            claims = await context.execute(
                "get_verifiable_claims_for_sdr",
                {"request": message.data, "subject": subject},
            )
            response = DIDCommMessage(
                type=RESPONSE,
                frm=subject,
                to=message.frm,
                thid=message.id,
                body={"claims": claims},
            )
            packed = await context.execute(
                "pack_didcomm_message", {"message": response, "packing": self.packing}
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
            LOG.warning(
                "Selective disclosure response to %s failed: %s", message.frm, err
            )
            return message.with_metadata("SdrResponseFailed", str(err))

        return message.with_metadata("SdrResponseSent", response.id)

    def _correlate(self, message: Message) -> Message:
        exchange = None
        if message.thid:
            exchange = self.exchanges.get(message.thid, PROTOCOL)
        if not exchange:
            LOG.debug(
                "Selective disclosure response for unknown thread %s", message.thid
            )
            return message.with_metadata("SdrUnknownThread", message.thid)

        requested = requested_claim_types(exchange.request.get("body"))
        body = message.data if isinstance(message.data, dict) else {}
        received = body.get("claims") if isinstance(body.get("claims"), dict) else {}
        claims = {}
        for claim_type in requested:
            claim = received.get(claim_type)
            if isinstance(claim, dict) and claim.get("present") is True:
                claims[claim_type] = dict(claim)
            else:
                claims[claim_type] = dict(ABSENT)

        self.exchanges.close(message.thid)
        return message.classify(data={**body, "claims": claims}).with_metadata(
            "SdrResponseReceived", claims
        )
