import pytest

from didcomm_agent.message import DIDCommMessage
from didcomm_agent.message_handler import MessageHandler
from didcomm_agent.plugin import CAPABILITY_METHODS
from didcomm_agent.protocols.selective_disclosure import (
    SelectiveDisclosure,
    SelectiveDisclosureMessageHandler,
)
from didcomm_agent.protocols.trust_ping import PING, TrustPing, TrustPingMessageHandler
from didcomm_agent.quickstart import (
    QUEUE_ENDPOINT,
    create_did,
    receive_message,
    send_message,
    setup_default,
)
from didcomm_agent.transport import QueueTransport


def test_setup_default_methods():
    agent = setup_default()
    methods = set(agent.available_methods())
    for required in CAPABILITY_METHODS.values():
        assert set(required) <= methods


@pytest.mark.asyncio
async def test_create_did_is_resolvable():
    agent = setup_default()
    did = await create_did(agent, alias="me")

    doc = await agent.execute("resolve_did", {"did": did})
    assert doc["id"] == did
    (service,) = doc["service"]
    assert service["serviceEndpoint"]["uri"] == QUEUE_ENDPOINT


@pytest.mark.asyncio
async def test_known_documents(identity_factory):
    alice = identity_factory("alice")
    agent = setup_default(documents=[alice.doc])

    doc = await agent.execute("resolve_did", {"did": alice.did})
    assert doc["id"] == alice.did


@pytest.mark.asyncio
async def test_send_to_self():
    transport = QueueTransport(timeout=5)
    agent = setup_default([transport])
    did = await create_did(agent)

    ping = DIDCommMessage(
        type=PING, frm=did, to=[did], body={"responseRequested": False}
    )
    ack = await send_message(agent, ping)
    assert ack.endpoint == QUEUE_ENDPOINT

    received = await receive_message(agent, transport)
    assert received.type == PING
    assert received.id == ping.id
    assert received.frm == did


def test_protocols_share_exchanges():
    agent = setup_default()
    plugins = {type(plugin): plugin for plugin in agent.plugins}
    handlers = {
        type(handler): handler for handler in plugins[MessageHandler].handlers
    }

    assert (
        plugins[TrustPing].exchanges is handlers[TrustPingMessageHandler].exchanges
    )
    assert (
        plugins[SelectiveDisclosure].exchanges
        is handlers[SelectiveDisclosureMessageHandler].exchanges
    )


@pytest.mark.asyncio
async def test_ping_exchange_closed_by_response():
    transport = QueueTransport(timeout=5)
    agent = setup_default([transport])
    did = await create_did(agent)
    pings = {type(plugin): plugin for plugin in agent.plugins}[TrustPing].exchanges

    ping = await agent.execute("create_trust_ping", {"frm": did, "to": did})
    assert len(pings) == 1
    await send_message(agent, ping)

    handled = await receive_message(agent, transport)
    assert handled.get_metadata("TrustPingResponseSent")
    response = await receive_message(agent, transport)
    assert response.get_metadata("TrustPingResponseReceived")[0].value == ping.id
    assert len(pings) == 0
