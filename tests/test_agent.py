"""Test the agent method table, dispatch and events."""

import asyncio

import pytest

from didcomm_agent.agent import (
    DID_EXECUTE,
    Agent,
    AgentError,
    DuplicateMethodError,
    InvalidPluginError,
    PluginExecutionError,
    UnknownMethodError,
)
from didcomm_agent.plugin import AgentPlugin, Capability, Event


class Greeter(AgentPlugin):
    event_types = ("greeted",)

    def __init__(self):
        self.events = []

    @property
    def methods(self):
        return {"greet": self.greet, "greet_later": self.greet_later}

    def greet(self, context, name: str):
        return f"hello {name}"

    async def greet_later(self, context, name: str):
        await asyncio.sleep(0)
        context.agent.emit("greeted", name)
        return await context.execute("greet", {"name": name})

    async def on_event(self, event, context):
        self.events.append(event)


class Failing(AgentPlugin):
    @property
    def methods(self):
        return {"fail": self.fail, "fail_nested": self.fail_nested}

    async def fail(self, context, reason: str = "boom"):
        raise RuntimeError(reason)

    async def fail_nested(self, context):
        return await context.execute("fail", {"reason": "nested"})


class IncompleteResolver(AgentPlugin):
    capabilities = (Capability.RESOLVER,)

    @property
    def methods(self):
        return {"resolve_did": lambda context, did: {}}


class Unimplemented(AgentPlugin):
    @property
    def methods(self):
        return {"declared": None}


@pytest.fixture
def greeter():
    yield Greeter()


@pytest.fixture
def agent(greeter):
    yield Agent([greeter, Failing()])


@pytest.mark.asyncio
async def test_execute(agent: Agent):
    assert await agent.execute("greet", {"name": "alice"}) == "hello alice"
    assert await agent.execute("greet_later", {"name": "bob"}) == "hello bob"
    assert agent.available_methods() == [
        "fail",
        "fail_nested",
        "greet",
        "greet_later",
    ]
    assert agent.has_method("greet")
    assert not agent.has_method("resolve_did")


@pytest.mark.asyncio
async def test_unknown_method(agent: Agent):
    with pytest.raises(UnknownMethodError) as exc:
        await agent.execute("resolve_did", {"did": "did:example:alice"})
    assert exc.value.method == "resolve_did"


@pytest.mark.asyncio
async def test_plugin_failure_is_wrapped(agent: Agent):
    with pytest.raises(PluginExecutionError) as exc:
        await agent.execute("fail", {"reason": "kaput"})
    assert exc.value.plugin == "Failing"
    assert exc.value.method == "fail"
    assert exc.value.method_args == {"reason": "kaput"}
    assert isinstance(exc.value.cause, RuntimeError)
    assert isinstance(exc.value, AgentError)


@pytest.mark.asyncio
async def test_nested_failure_is_wrapped_once(agent: Agent):
    with pytest.raises(PluginExecutionError) as exc:
        await agent.execute("fail_nested")
    assert exc.value.method == "fail"
    assert str(exc.value.cause) == "nested"


def test_duplicate_methods(greeter):
    agent = Agent([greeter])
    with pytest.raises(DuplicateMethodError):
        agent.register_plugins([Greeter()])
    with pytest.raises(DuplicateMethodError):
        Agent([Failing(), Failing()])


def test_registration_is_all_or_nothing(greeter):
    agent = Agent()
    with pytest.raises(InvalidPluginError):
        agent.register_plugins([greeter, IncompleteResolver()])
    assert agent.available_methods() == []


def test_invalid_plugins():
    with pytest.raises(InvalidPluginError):
        Agent([IncompleteResolver()])
    with pytest.raises(InvalidPluginError):
        Agent([Unimplemented()])


@pytest.mark.asyncio
async def test_no_registration_after_execute(agent: Agent):
    await agent.execute("greet", {"name": "alice"})
    with pytest.raises(AgentError):
        agent.register_plugins([IncompleteResolver()])


@pytest.mark.asyncio
async def test_events(agent: Agent, greeter: Greeter):
    received = []
    failures = []

    async def listener(event: Event):
        received.append(event)

    def broken(event: Event):
        failures.append(event)
        raise ValueError("listener failure")

    agent.add_listener(listener, [DID_EXECUTE])
    agent.add_listener(broken)

    await agent.execute("greet_later", {"name": "carol"})
    await agent.wait_for_events()

    assert [event.data for event in greeter.events] == ["carol"]
    executed = [event.data["method"] for event in received]
    assert executed == ["greet", "greet_later"]
    assert received[-1].data["result"] == "hello carol"
    assert {event.type for event in failures} == {"greeted", DID_EXECUTE}
