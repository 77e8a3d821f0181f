"""Quickstart helpers for beginner users of the agent."""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from didcomm_agent.agent import Agent
from didcomm_agent.crypto.backend.authlib import AuthlibCryptoService
from didcomm_agent.crypto.backend.basic import InMemorySecretsManager
from didcomm_agent.exchange import ExchangeStore
from didcomm_agent.message import DIDCommMessage, Message
from didcomm_agent.message_handler import MessageHandler
from didcomm_agent.messaging import DIDComm
from didcomm_agent.packaging import Packing, PackagingService
from didcomm_agent.plugins.credentials import CredentialIssuer
from didcomm_agent.plugins.data_store import DataStore, DataStorePlugin
from didcomm_agent.plugins.did_manager import DIDManager, ManagedDIDResolver
from didcomm_agent.plugins.key_manager import KeyManager
from didcomm_agent.plugins.resolver import DIDResolverPlugin
from didcomm_agent.protocols.credential_exchange import CredentialMessageHandler
from didcomm_agent.protocols.didcomm import DIDCommMessageHandler
from didcomm_agent.protocols.jwt import JwtMessageHandler
from didcomm_agent.protocols.selective_disclosure import (
    SelectiveDisclosure,
    SelectiveDisclosureMessageHandler,
)
from didcomm_agent.protocols.trust_ping import TrustPing, TrustPingMessageHandler
from didcomm_agent.resolver import DIDResolver, PrefixResolver, StaticResolver
from didcomm_agent.routing import RoutingService
from didcomm_agent.transport import (
    HTTPTransport,
    QueueTransport,
    Transport,
    TransportAck,
    WebSocketTransport,
)

LOG = logging.getLogger(__name__)

QUEUE_ENDPOINT = "didcomm:transport/queue"


def setup_default(
    transports: Optional[Sequence[Transport]] = None,
    resolvers: Optional[Mapping[str, DIDResolver]] = None,
    documents: Optional[Iterable[Mapping[str, Any]]] = None,
    store: Optional[DataStore] = None,
    fallback: Optional[DIDResolver] = None,
    exchange_ttl: float = 3600.0,
) -> Agent:
    """Setup a pre-configured agent."""

    # The Crypto Service is used to encrypt, decrypt, sign and verify messages.
    crypto = AuthlibCryptoService()

    # The secrets manager holds the private keys of the agent and maps the
    # key IDs found in messages to those keys. Only the key manager and the
    # packaging service ever see it.
    secrets = InMemorySecretsManager()

    # The DID manager creates did:key identifiers. Its resolver serves the
    # documents of managed DIDs together with their service endpoints, and
    # falls back to plain did:key resolution, or to the given fallback, for
    # everyone else.
    #
    # The PrefixResolver picks the resolver for a DID by its prefix. Documents
    # known up front are served by a StaticResolver.
    did_manager = DIDManager()
    prefixes: Dict[str, DIDResolver] = {
        "did:key:": ManagedDIDResolver(did_manager, fallback)
    }
    if documents:
        static = StaticResolver(documents)
        for did in static.documents:
            prefixes.setdefault(_method_prefix(did), static)
    prefixes.update(resolvers or {})
    resolver = PrefixResolver(prefixes)

    # The Packaging Service packs messages into envelopes and unpacks them
    # again, resolving the keys of senders and recipients as it goes.
    packer = PackagingService(crypto, secrets, resolver)

    # The RoutingService wraps packed messages in forward messages when the
    # recipient sits behind one or more mediators.
    router = RoutingService(packer, resolver)

    # Protocol plugins and their handlers share exchange state so that a
    # response can be matched with the request that opened the thread.
    pings = ExchangeStore(ttl=exchange_ttl)
    disclosures = ExchangeStore(ttl=exchange_ttl)

    # The order of the handlers matters: envelopes are opened first so that
    # the protocol handlers further down the chain see plaintext.
    handlers = [
        DIDCommMessageHandler(),
        JwtMessageHandler(),
        CredentialMessageHandler(),
        TrustPingMessageHandler(pings),
        SelectiveDisclosureMessageHandler(disclosures),
    ]

    if transports is None:
        transports = [QueueTransport(), HTTPTransport(), WebSocketTransport()]

    # Finally, we put it all together in the Agent. Each plugin contributes
    # the methods of its capabilities, and the agent routes calls to them.
    return Agent(
        [
            KeyManager(crypto, secrets),
            did_manager,
            DIDResolverPlugin(resolver),
            DataStorePlugin(store),
            CredentialIssuer(crypto),
            DIDComm(packer, transports, router),
            TrustPing(pings),
            SelectiveDisclosure(disclosures),
            MessageHandler(handlers),
        ]
    )


def _method_prefix(did: str) -> str:
    method = did.split(":", 2)[1]
    return f"did:{method}:"


async def create_did(
    agent: Agent, alias: Optional[str] = None, endpoint: str = QUEUE_ENDPOINT
) -> str:
    """Create a DID reachable at an endpoint."""
    managed = await agent.execute(
        "did_manager_create", {"alias": alias, "endpoint": endpoint}
    )
    LOG.info("created did: %s", managed["did"])
    return managed["did"]


async def send_message(
    agent: Agent,
    message: Union[DIDCommMessage, Mapping[str, Any]],
    packing: Union[Packing, str] = Packing.AUTHCRYPT,
) -> TransportAck:
    """Pack a message and send it to each of its recipients."""
    if not isinstance(message, DIDCommMessage):
        message = DIDCommMessage.deserialize(message)

    packed = await agent.execute(
        "pack_didcomm_message", {"message": message, "packing": packing}
    )
    ack = None
    for recipient in message.recipients:
        LOG.info("sending message type %s to %s", message.type, recipient)
        ack = await agent.execute(
            "send_didcomm_message",
            {
                "packed_message": packed,
                "recipient_did_url": recipient,
                "message_id": message.id,
            },
        )
    return ack


async def receive_message(
    agent: Agent, transport: QueueTransport, endpoint: str = QUEUE_ENDPOINT
) -> Message:
    """Take the next message from a queue and run it through the handlers."""
    packed = await transport.receive(endpoint)
    return await agent.execute("handle_message", {"raw": packed})
