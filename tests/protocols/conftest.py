from dataclasses import dataclass

import pytest

from didcomm_agent.agent import Agent
from didcomm_agent.message import Message
from didcomm_agent.quickstart import create_did, receive_message, setup_default
from didcomm_agent.resolver import StaticResolver
from didcomm_agent.transport import QueueTransport


@dataclass
class Party:
    """An agent with one DID, reachable over a shared queue transport."""

    agent: Agent
    did: str
    endpoint: str
    transport: QueueTransport

    async def receive(self) -> Message:
        return await receive_message(self.agent, self.transport, self.endpoint)

    def pending(self) -> int:
        return self.transport.queue(self.endpoint).qsize()

    def plugin(self, plugin_type):
        (plugin,) = [p for p in self.agent.plugins if isinstance(p, plugin_type)]
        return plugin


@pytest.fixture
def directory():
    yield StaticResolver()


@pytest.fixture
def transport():
    yield QueueTransport(timeout=5)


@pytest.fixture
def join(directory: StaticResolver, transport: QueueTransport):
    async def _join(name: str, endpoint: str = None) -> Party:
        agent = setup_default([transport], fallback=directory)
        endpoint = endpoint or f"memory:{name}"
        did = await create_did(agent, alias=name, endpoint=endpoint)
        directory.add(await agent.execute("resolve_did", {"did": did}))
        return Party(agent, did, endpoint, transport)

    yield _join


@pytest.fixture
async def alice(join):
    yield await join("alice")


@pytest.fixture
async def bob(join):
    yield await join("bob")


@pytest.fixture
async def carol(join):
    yield await join("carol")
