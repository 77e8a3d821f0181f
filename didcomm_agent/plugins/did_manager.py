"""DID manager plugin and the resolver for the DIDs it manages."""

from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Dict, List, Optional

from didcomm_agent.agent import AgentContext
from didcomm_agent.crypto import KeyType
from didcomm_agent.plugin import AgentPlugin, Capability
from didcomm_agent.resolver import DIDNotFound, DIDResolver
from didcomm_agent.resolver.key import DIDKey, x25519_multikey_for_ed25519

LOG = logging.getLogger(__name__)

PROVIDER = "did:key"


@dataclass
class ManagedDID:
    """A DID whose keys this agent holds."""

    did: str
    provider: str
    keys: List[str]
    alias: Optional[str] = None
    services: List[Dict[str, Any]] = field(default_factory=list)

    def serialize(self) -> Dict[str, Any]:
        """Return a plain dict description."""
        return asdict(self)


def didcomm_service(did: str, endpoint: str, routing_keys=None) -> Dict[str, Any]:
    """Build a DIDCommMessaging service entry."""
    return {
        "id": f"{did}#didcomm-1",
        "type": "DIDCommMessaging",
        "serviceEndpoint": {
            "uri": endpoint,
            "accept": ["didcomm/v2"],
            "routingKeys": list(routing_keys or []),
        },
    }


class DIDManager(AgentPlugin):
    """Create and keep track of did:key identifiers.

    The Ed25519 key of a DID signs; the X25519 key derived from it is used
    for key agreement. Both are bound in the key manager to their
    verification method IDs.
    """

    capabilities = (Capability.DID_MANAGER,)

    def __init__(self):
        """Initialize the plugin."""
        self.dids: Dict[str, ManagedDID] = {}

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "did_manager_create": self.did_manager_create,
            "did_manager_get": self.did_manager_get,
            "did_manager_get_by_alias": self.did_manager_get_by_alias,
            "did_manager_find": self.did_manager_find,
            "did_manager_delete": self.did_manager_delete,
        }

    def _get(self, did: str) -> ManagedDID:
        try:
            return self.dids[did]
        except KeyError:
            raise DIDNotFound(f"DID {did} is not managed by this agent") from None

    async def did_manager_create(
        self,
        context: AgentContext,
        alias: Optional[str] = None,
        endpoint: Optional[str] = None,
        routing_keys: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Create a did:key, optionally with a DIDComm service endpoint."""
        if alias and any(managed.alias == alias for managed in self.dids.values()):
            raise ValueError(f"Alias {alias} is already in use")

        key = await context.execute("key_manager_create", {"type": KeyType.ED25519})
        multikey = key["public_key_multibase"]
        did = f"did:key:{multikey}"
        vm_id = f"{did}#{multikey}"
        ka_id = f"{did}#{x25519_multikey_for_ed25519(multikey)}"

        await context.execute(
            "key_manager_bind_kid", {"kid": key["kid"], "new_kid": vm_id}
        )
        await context.execute(
            "key_manager_create",
            {"type": KeyType.X25519, "kid": ka_id, "derive_from": vm_id},
        )

        managed = ManagedDID(
            did=did,
            provider=PROVIDER,
            keys=[key["kid"], vm_id, ka_id],
            alias=alias,
            services=[didcomm_service(did, endpoint, routing_keys)] if endpoint else [],
        )
        self.dids[did] = managed
        LOG.debug("Created %s", did)
        return managed.serialize()

    async def did_manager_get(self, context: AgentContext, did: str) -> Dict[str, Any]:
        """Return a managed DID."""
        return self._get(did).serialize()

    async def did_manager_get_by_alias(
        self, context: AgentContext, alias: str
    ) -> Dict[str, Any]:
        """Return the managed DID with an alias."""
        for managed in self.dids.values():
            if managed.alias == alias:
                return managed.serialize()
        raise DIDNotFound(f"No DID with alias {alias}")

    async def did_manager_find(
        self,
        context: AgentContext,
        alias: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return the managed DIDs matching the given filters."""
        return [
            managed.serialize()
            for managed in self.dids.values()
            if (alias is None or managed.alias == alias)
            and (provider is None or managed.provider == provider)
        ]

    async def did_manager_delete(self, context: AgentContext, did: str) -> bool:
        """Forget a DID and delete its keys."""
        managed = self.dids.pop(did, None)
        if not managed:
            return False
        for kid in managed.keys:
            await context.execute("key_manager_delete", {"kid": kid})
        return True


class ManagedDIDResolver(DIDResolver):
    """Resolve managed DIDs with their services; others via a fallback."""

    def __init__(self, manager: DIDManager, fallback: Optional[DIDResolver] = None):
        """Initialize the resolver."""
        self.manager = manager
        self.fallback = fallback or DIDKey()

    async def is_resolvable(self, did: str) -> bool:
        """Check to see if a DID is resolvable."""
        return did in self.manager.dids or await self.fallback.is_resolvable(did)

    async def resolve(self, did: str) -> dict:
        """Resolve a DID, adding the services of managed DIDs."""
        managed = self.manager.dids.get(did)
        if not managed:
            return await self.fallback.resolve(did)
        doc = await DIDKey().resolve(did)
        if managed.services:
            doc["service"] = [dict(service) for service in managed.services]
        return doc
