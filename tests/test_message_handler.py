"""Test the message handler chain."""

import pytest

from didcomm_agent.agent import Agent, PluginExecutionError
from didcomm_agent.message import Message, MetaData
from didcomm_agent.message_handler import (
    VALIDATED_MESSAGE,
    AbstractMessageHandler,
    HandlerResult,
    MessageHandler,
    UnhandledMessageError,
)
from didcomm_agent.packaging import MalformedEnvelopeError
from didcomm_agent.plugins.data_store import DataStorePlugin


class Passthrough(AbstractMessageHandler):
    """Declines everything."""


class Tagging(AbstractMessageHandler):
    def __init__(self, tag: str):
        self.tag = tag

    async def handle(self, message, context):
        return HandlerResult.next(message.with_metadata(self.tag))


class Classifying(AbstractMessageHandler):
    async def handle(self, message, context):
        if message.raw != "hello":
            return HandlerResult.next(message)
        return HandlerResult.handled(
            message.classify(type="greeting", id="m1", data={"text": message.raw})
        )


class Unreachable(AbstractMessageHandler):
    async def handle(self, message, context):
        raise AssertionError("chain continued after a handler finished")


@pytest.mark.asyncio
async def test_chain_transparency():
    """Pass through handlers do not change what the chain returns."""
    plain = Agent([MessageHandler([Classifying()])])
    padded = Agent(
        [MessageHandler([Passthrough(), Classifying(), Passthrough(), Unreachable()])]
    )

    expected = await plain.execute("handle_message", {"raw": "hello"})
    actual = await padded.execute("handle_message", {"raw": "hello"})
    assert actual == expected
    assert actual.type == "greeting"
    assert actual.data == {"text": "hello"}


@pytest.mark.asyncio
async def test_metadata_is_preserved():
    handlers = [Tagging("first"), Tagging("second"), Classifying()]
    agent = Agent([MessageHandler(handlers)])
    message = await agent.execute(
        "handle_message",
        {"raw": b"hello", "metadata": [{"type": "transport", "value": "queue"}]},
    )
    assert [entry.type for entry in message.metadata] == [
        "transport",
        "first",
        "second",
    ]
    assert message.get_metadata("transport") == [MetaData("transport", "queue")]


@pytest.mark.asyncio
async def test_unhandled():
    agent = Agent([MessageHandler([Passthrough(), Classifying()])])
    with pytest.raises(PluginExecutionError) as exc:
        await agent.execute("handle_message", {"raw": "goodbye"})

    error = exc.value.cause
    assert isinstance(error, UnhandledMessageError)
    assert error.message.raw == "goodbye"
    assert error.message.metadata == ()
    assert not error.message.is_classified


@pytest.mark.asyncio
async def test_undecodable_bytes():
    agent = Agent([MessageHandler([Unreachable()])])
    with pytest.raises(PluginExecutionError) as exc:
        await agent.execute("handle_message", {"raw": b"\xff\xfe hello"})
    assert isinstance(exc.value.cause, MalformedEnvelopeError)


@pytest.mark.asyncio
async def test_validated_event_and_save():
    store = DataStorePlugin()
    agent = Agent([MessageHandler([Classifying()]), store])
    validated = []
    agent.add_listener(validated.append, [VALIDATED_MESSAGE])

    message = await agent.execute("handle_message", {"raw": "hello"})
    await agent.wait_for_events()

    assert [event.data for event in validated] == [message]
    saved = await agent.execute("data_store_get_message", {"id": "m1"})
    assert saved["type"] == "greeting"
    assert saved["raw"] == "hello"


@pytest.mark.asyncio
async def test_save_can_be_skipped():
    agent = Agent([MessageHandler([Classifying()]), DataStorePlugin()])
    await agent.execute("handle_message", {"raw": "hello", "save": False})
    with pytest.raises(PluginExecutionError):
        await agent.execute("data_store_get_message", {"id": "m1"})


def test_classify_requires_type():
    with pytest.raises(ValueError):
        Message(raw="hello").classify(id="m1")
