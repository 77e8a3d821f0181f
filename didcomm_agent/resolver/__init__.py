"""DID Resolver."""

from abc import ABC, abstractmethod
import copy
import re
from typing import Dict, Iterable, Mapping, Optional, Union

from didcomm_agent.resolver.document import (
    DIDDocument,
    Service,
    VerificationMethod,
    did_of,
)

DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[A-Za-z0-9._:%\-]+$")


class DIDResolutionError(Exception):
    """Represents an error from a DID Resolver."""

    reason = "resolverUnavailable"


class DIDNotFound(DIDResolutionError):
    """Represents a DID not found error."""

    reason = "notFound"


class InvalidDID(DIDResolutionError):
    """Raised when a value is not a DID or DID URL we can work with."""

    reason = "invalidIdentifier"


class ResolverUnavailable(DIDResolutionError):
    """Raised when a resolver cannot currently produce a document."""

    reason = "resolverUnavailable"


class DIDMethodNotSupported(ResolverUnavailable):
    """Represents a DID method not supported error."""


class DIDResolver(ABC):
    """DID Resolver interface."""

    @abstractmethod
    async def resolve(self, did: str) -> dict:
        """Resolve a DID."""

    @abstractmethod
    async def is_resolvable(self, did: str) -> bool:
        """Check to see if a DID is resolvable."""

    async def resolve_and_parse(self, did: str) -> DIDDocument:
        """Resolve a DID and parse the DID document."""
        if not DID_PATTERN.match(did):
            raise InvalidDID(f"Not a DID: {did}")
        doc = await self.resolve(did)
        try:
            return DIDDocument.deserialize(doc)
        except ValueError as err:
            raise DIDResolutionError(
                f"Resolver returned an invalid document for {did}"
            ) from err

    async def resolve_and_dereference(
        self, did_url: str
    ) -> Union[VerificationMethod, Service]:
        """Resolve a DID URL and dereference the identifier."""
        if "#" not in did_url:
            raise InvalidDID(f"Invalid DID URL; missing fragment: {did_url}")

        doc = await self.resolve_and_parse(did_of(did_url))
        try:
            return doc.dereference(did_url)
        except LookupError as err:
            raise DIDNotFound(str(err)) from err

    async def resolve_and_dereference_verification_method(
        self, did_url: str
    ) -> VerificationMethod:
        """Resolve a DID URL and dereference it to a verification method."""
        resource = await self.resolve_and_dereference(did_url)
        if not isinstance(resource, VerificationMethod):
            raise InvalidDID(f"{did_url} is not a verification method")

        return resource


class PrefixResolver(DIDResolver):
    """DID Resolver delegates to sub-resolvers by DID prefix."""

    def __init__(self, resolvers: Dict[str, DIDResolver]):
        """Initialize the resolver."""
        self.resolvers = resolvers

    def _resolver_for(self, did: str) -> Optional[DIDResolver]:
        for prefix, resolver in self.resolvers.items():
            if did.startswith(prefix):
                return resolver
        return None

    async def is_resolvable(self, did: str) -> bool:
        """Check to see if a DID is resolvable."""
        resolver = self._resolver_for(did)
        return bool(resolver) and await resolver.is_resolvable(did)

    async def resolve(self, did: str) -> dict:
        """Resolve a DID."""
        resolver = self._resolver_for(did)
        if not resolver:
            raise DIDMethodNotSupported(f"No resolver found for DID {did}")
        return await resolver.resolve(did)


class StaticResolver(DIDResolver):
    """Resolve DIDs from documents held in memory."""

    def __init__(self, documents: Optional[Iterable[Mapping]] = None):
        """Initialize the resolver with an optional set of documents."""
        self.documents: Dict[str, dict] = {}
        for doc in documents or ():
            self.add(doc)

    def add(self, document: Union[Mapping, DIDDocument]) -> None:
        """Add or replace a document."""
        if isinstance(document, DIDDocument):
            document = document.serialize()
        self.documents[document["id"]] = copy.deepcopy(dict(document))

    async def is_resolvable(self, did: str) -> bool:
        """Check to see if a DID is resolvable."""
        return did in self.documents

    async def resolve(self, did: str) -> dict:
        """Return a copy of the stored document."""
        try:
            return copy.deepcopy(self.documents[did])
        except KeyError:
            raise DIDNotFound(f"DID {did} is not known to this resolver") from None
