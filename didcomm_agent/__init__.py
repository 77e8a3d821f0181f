"""DIDComm agent."""

from didcomm_agent.agent import (
    Agent,
    AgentContext,
    AgentError,
    DuplicateMethodError,
    InvalidPluginError,
    PluginExecutionError,
    UnknownMethodError,
)
from didcomm_agent.crypto import (
    CryptoService,
    CryptoServiceError,
    KeyNotFoundError,
    P,
    S,
    SecretsManager,
    UnsupportedAlgorithmError,
)
from didcomm_agent.message import DIDCommMessage, Message, MetaData
from didcomm_agent.message_handler import (
    AbstractMessageHandler,
    MessageHandler,
    UnhandledMessageError,
)
from didcomm_agent.messaging import DIDComm
from didcomm_agent.packaging import (
    DecryptionError,
    MalformedEnvelopeError,
    Packing,
    PackagingService,
    PackagingServiceError,
    SignatureVerificationError,
    UnsupportedPackingError,
)
from didcomm_agent.plugin import AgentPlugin, Capability
from didcomm_agent.resolver import (
    DIDMethodNotSupported,
    DIDNotFound,
    DIDResolutionError,
    DIDResolver,
    InvalidDID,
    ResolverUnavailable,
)
from didcomm_agent.routing import RoutingService, RoutingServiceError
from didcomm_agent.transport import TransportError, TransportTimeout


__all__ = [
    "AbstractMessageHandler",
    "Agent",
    "AgentContext",
    "AgentError",
    "AgentPlugin",
    "Capability",
    "CryptoService",
    "CryptoServiceError",
    "DecryptionError",
    "DIDComm",
    "DIDCommMessage",
    "DIDMethodNotSupported",
    "DIDNotFound",
    "DIDResolutionError",
    "DIDResolver",
    "DuplicateMethodError",
    "InvalidDID",
    "InvalidPluginError",
    "KeyNotFoundError",
    "MalformedEnvelopeError",
    "Message",
    "MessageHandler",
    "MetaData",
    "P",
    "PackagingService",
    "PackagingServiceError",
    "Packing",
    "PluginExecutionError",
    "ResolverUnavailable",
    "RoutingService",
    "RoutingServiceError",
    "S",
    "SecretsManager",
    "SignatureVerificationError",
    "TransportError",
    "TransportTimeout",
    "UnhandledMessageError",
    "UnknownMethodError",
    "UnsupportedAlgorithmError",
    "UnsupportedPackingError",
]
