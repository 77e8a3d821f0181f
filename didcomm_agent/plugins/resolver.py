"""Resolver plugin exposing a DIDResolver through the agent."""

from typing import Any, Dict

from didcomm_agent.agent import AgentContext
from didcomm_agent.plugin import AgentPlugin, Capability
from didcomm_agent.resolver import DIDResolver


class DIDResolverPlugin(AgentPlugin):
    """Resolve DIDs and DID URLs."""

    capabilities = (Capability.RESOLVER,)

    def __init__(self, resolver: DIDResolver):
        """Initialize the plugin."""
        self.resolver = resolver

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "resolve_did": self.resolve_did,
            "get_did_component_by_id": self.get_did_component_by_id,
        }

    async def resolve_did(self, context: AgentContext, did: str) -> Dict[str, Any]:
        """Resolve a DID to its document."""
        doc = await self.resolver.resolve_and_parse(did)
        return doc.serialize()

    async def get_did_component_by_id(
        self, context: AgentContext, did_url: str
    ) -> Dict[str, Any]:
        """Return the verification method or service a DID URL refers to."""
        component = await self.resolver.resolve_and_dereference(did_url)
        return component.model_dump(by_alias=True, exclude_none=True)
