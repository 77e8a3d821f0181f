"""Message handler chain."""

from dataclasses import dataclass
import logging
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from didcomm_agent.agent import AgentContext
from didcomm_agent.message import Message, MetaData
from didcomm_agent.packaging import MalformedEnvelopeError
from didcomm_agent.plugin import AgentPlugin, Capability

LOG = logging.getLogger(__name__)

VALIDATED_MESSAGE = "validatedMessage"


class UnhandledMessageError(Exception):
    """Raised when no handler in the chain classified a message."""

    def __init__(self, message: Message):
        """Initialize the error."""
        super().__init__("No handler could handle the message")
        self.message = message


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of a single handler: done, or continue with a message."""

    message: Message
    done: bool

    @classmethod
    def handled(cls, message: Message) -> "HandlerResult":
        """End the chain with this message."""
        return cls(message, True)

    @classmethod
    def next(cls, message: Message) -> "HandlerResult":
        """Offer this message to the rest of the chain."""
        return cls(message, False)


class AbstractMessageHandler:
    """A member of the handler chain.

    The default implementation declines every message.
    """

    async def handle(self, message: Message, context: AgentContext) -> HandlerResult:
        """Handle a message or pass it on."""
        return HandlerResult.next(message)


async def run_chain(
    handlers: Iterable[AbstractMessageHandler],
    message: Message,
    context: AgentContext,
) -> Message:
    """Offer a message to each handler in turn until one handles it."""
    for handler in handlers:
        result = await handler.handle(message, context)
        message = result.message
        if result.done:
            LOG.debug("Message %s handled by %s", message.id, type(handler).__name__)
            return message
    raise UnhandledMessageError(message)


def _as_metadata(entry: Union[MetaData, Mapping[str, Any]]) -> MetaData:
    if isinstance(entry, MetaData):
        return entry
    return MetaData(entry["type"], entry.get("value"))


class MessageHandler(AgentPlugin):
    """Plugin running received data through a handler chain."""

    capabilities = (Capability.MESSAGE_HANDLER,)

    def __init__(self, handlers: Sequence[AbstractMessageHandler]):
        """Initialize the plugin with an ordered handler chain."""
        self.handlers = list(handlers)

    @property
    def methods(self):
        """Return plugin methods."""
        return {"handle_message": self.handle_message}

    async def handle_message(
        self,
        context: AgentContext,
        raw: Union[str, bytes],
        metadata: Optional[Iterable[Union[MetaData, Mapping[str, Any]]]] = None,
        save: bool = True,
    ) -> Message:
        """Interpret received data and return the classified message."""
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as err:
                raise MalformedEnvelopeError("Received data is not UTF-8") from err
        message = Message(
            raw=raw,
            save=save,
            metadata=tuple(_as_metadata(entry) for entry in metadata or ()),
        )

        message = await run_chain(self.handlers, message, context)
        context.agent.emit(VALIDATED_MESSAGE, message)

        if save and context.has_method("data_store_save_message"):
            await context.execute("data_store_save_message", {"message": message})
        return message
