"""Capability plugin interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from didcomm_agent.agent import AgentContext


class Capability(str, Enum):
    """Named groups of methods a plugin may provide."""

    KEY_MANAGER = "key_manager"
    DID_MANAGER = "did_manager"
    RESOLVER = "resolver"
    MESSAGE_HANDLER = "message_handler"
    DIDCOMM = "didcomm"
    TRUST_PING = "trust_ping"
    DATA_STORE = "data_store"
    CREDENTIAL_ISSUER = "credential_issuer"
    SELECTIVE_DISCLOSURE = "selective_disclosure"


CAPABILITY_METHODS: Mapping[Capability, Tuple[str, ...]] = {
    Capability.KEY_MANAGER: (
        "key_manager_create",
        "key_manager_get",
        "key_manager_list_keys",
        "key_manager_bind_kid",
        "key_manager_sign",
        "key_manager_decrypt_jwe",
        "key_manager_delete",
    ),
    Capability.DID_MANAGER: (
        "did_manager_create",
        "did_manager_get",
        "did_manager_get_by_alias",
        "did_manager_find",
        "did_manager_delete",
    ),
    Capability.RESOLVER: ("resolve_did", "get_did_component_by_id"),
    Capability.MESSAGE_HANDLER: ("handle_message",),
    Capability.DIDCOMM: (
        "pack_didcomm_message",
        "unpack_didcomm_message",
        "send_didcomm_message",
        "get_didcomm_message_media_type",
    ),
    Capability.TRUST_PING: ("create_trust_ping",),
    Capability.DATA_STORE: (
        "data_store_save_message",
        "data_store_get_message",
        "data_store_save_verifiable_credential",
        "data_store_query_credentials",
        "data_store_query_claims",
    ),
    Capability.CREDENTIAL_ISSUER: (
        "create_verifiable_credential",
        "verify_credential",
        "create_verifiable_presentation",
        "verify_presentation",
    ),
    Capability.SELECTIVE_DISCLOSURE: (
        "create_selective_disclosure_request",
        "get_verifiable_claims_for_sdr",
    ),
}


@dataclass(frozen=True)
class Event:
    """An event emitted by the agent."""

    type: str
    data: Any = None


PluginMethod = Callable[..., Any]


class AgentPlugin(ABC):
    """A unit of functionality registered with an Agent.

    Every method is called with the execution context as its first
    positional argument and the caller's arguments as keywords.
    """

    capabilities: Sequence[Capability] = ()
    event_types: Sequence[str] = ()

    @property
    def name(self) -> str:
        """Name used to identify the plugin in errors and logs."""
        return type(self).__name__

    @property
    @abstractmethod
    def methods(self) -> Mapping[str, Optional[PluginMethod]]:
        """Return the methods provided by this plugin, by name."""

    async def on_event(self, event: Event, context: "AgentContext") -> None:
        """Receive an event whose type is listed in event_types."""
