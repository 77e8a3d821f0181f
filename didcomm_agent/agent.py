"""Agent: a single dispatch surface over a set of capability plugins."""

import asyncio
from dataclasses import dataclass, field
from functools import partial
import inspect
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from didcomm_agent.plugin import (
    CAPABILITY_METHODS,
    AgentPlugin,
    Capability,
    Event,
    PluginMethod,
)

LOG = logging.getLogger(__name__)

DID_EXECUTE = "didExecute"


class AgentError(Exception):
    """Base class for agent errors."""


class UnknownMethodError(AgentError):
    """Raised when executing a method no plugin provides."""

    def __init__(self, method: str):
        """Initialize the error."""
        super().__init__(f"Method not available: {method}")
        self.method = method


class DuplicateMethodError(AgentError):
    """Raised when two plugins provide the same method."""

    def __init__(self, method: str, existing: str, duplicate: str):
        """Initialize the error."""
        super().__init__(
            f"Method {method} of plugin {duplicate} is already provided by {existing}"
        )
        self.method = method


class InvalidPluginError(AgentError):
    """Raised when a plugin does not provide what it declares."""


class PluginExecutionError(AgentError):
    """Raised when a plugin method fails; the original error is the cause."""

    def __init__(
        self, plugin: str, method: str, method_args: Mapping[str, Any], cause: Exception
    ):
        """Initialize the error."""
        super().__init__(f"{plugin}.{method} failed: {cause!r}")
        self.plugin = plugin
        self.method = method
        self.method_args = dict(method_args)
        self.cause = cause


@dataclass
class AgentContext:
    """Per call context handed to plugin methods."""

    agent: "Agent"
    metadata: Dict[str, Any] = field(default_factory=dict)

    async def execute(self, method: str, args: Optional[Mapping[str, Any]] = None):
        """Execute another agent method, passing on the caller metadata."""
        return await self.agent.execute(method, args, self.metadata)

    def has_method(self, method: str) -> bool:
        """Return whether the agent provides a method."""
        return self.agent.has_method(method)


Listener = Callable[[Event], Any]


class Agent:
    """Aggregate plugins into one method table."""

    def __init__(self, plugins: Sequence[AgentPlugin] = ()):
        """Initialize the agent, registering the given plugins."""
        self.plugins: List[AgentPlugin] = []
        self._methods: Dict[str, Tuple[AgentPlugin, PluginMethod]] = {}
        self._listeners: List[Tuple[Set[str], Listener]] = []
        self._pending: Set[asyncio.Task] = set()
        self._executed = False
        if plugins:
            self.register_plugins(plugins)

    def register_plugins(self, plugins: Sequence[AgentPlugin]) -> None:
        """Add plugins to the method table.

        Nothing is registered unless every plugin is valid.
        """
        if self._executed:
            raise AgentError("Plugins must be registered before the first execute")

        table: Dict[str, Tuple[AgentPlugin, PluginMethod]] = {}
        for plugin in plugins:
            methods = plugin.methods
            for capability in plugin.capabilities:
                try:
                    required = CAPABILITY_METHODS[Capability(capability)]
                except ValueError:
                    raise InvalidPluginError(
                        f"Plugin {plugin.name} declares unknown capability {capability}"
                    ) from None
                missing = [name for name in required if name not in methods]
                if missing:
                    raise InvalidPluginError(
                        f"Plugin {plugin.name} declares {Capability(capability).value} "
                        f"but does not provide {', '.join(missing)}"
                    )

            for name, implementation in methods.items():
                if not callable(implementation):
                    raise InvalidPluginError(
                        f"Plugin {plugin.name} declares {name} "
                        "without an implementation"
                    )
                owner = self._methods.get(name) or table.get(name)
                if owner:
                    raise DuplicateMethodError(name, owner[0].name, plugin.name)
                table[name] = (plugin, implementation)

        self._methods.update(table)
        self.plugins.extend(plugins)
        LOG.debug("Registered methods: %s", ", ".join(sorted(table)))

    def available_methods(self) -> List[str]:
        """Return the names of all dispatchable methods."""
        return sorted(self._methods)

    def has_method(self, method: str) -> bool:
        """Return whether a method is registered."""
        return method in self._methods

    async def execute(
        self,
        method: str,
        args: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Execute a plugin method."""
        try:
            plugin, implementation = self._methods[method]
        except KeyError:
            raise UnknownMethodError(method) from None

        self._executed = True
        args = dict(args or {})
        context = AgentContext(self, dict(metadata or {}))
        LOG.debug("Executing %s on %s", method, plugin.name)

        try:
            result = implementation(context, **args)
            if inspect.isawaitable(result):
                result = await result
        except PluginExecutionError:
            raise
        except Exception as err:
            raise PluginExecutionError(plugin.name, method, args, err) from err

        self.emit(
            DID_EXECUTE,
            {"plugin": plugin.name, "method": method, "args": args, "result": result},
        )
        return result

    def add_listener(self, listener: Listener, event_types: Sequence[str] = ("*",)):
        """Call a listener for events of the given types."""
        self._listeners.append((set(event_types), listener))

    def emit(self, event_type: str, data: Any = None) -> None:
        """Deliver an event to interested plugins and listeners.

        Delivery runs in background tasks; failures are logged.
        """
        event = Event(event_type, data)
        targets: List[Tuple[str, Callable[[], Any]]] = []
        for plugin in self.plugins:
            if event_type in plugin.event_types or "*" in plugin.event_types:
                targets.append(
                    (plugin.name, partial(plugin.on_event, event, AgentContext(self)))
                )
        for types, listener in self._listeners:
            if event_type in types or "*" in types:
                targets.append((repr(listener), partial(listener, event)))

        if not targets:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOG.warning("No running event loop; dropping event %s", event_type)
            return

        for name, deliver in targets:
            task = loop.create_task(self._deliver(name, event, deliver))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, name: str, event: Event, deliver: Callable[[], Any]):
        try:
            result = deliver()
            if inspect.isawaitable(result):
                await result
        except Exception:
            LOG.exception("Event %s delivery to %s failed", event.type, name)

    async def wait_for_events(self) -> None:
        """Wait until all scheduled event deliveries have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
