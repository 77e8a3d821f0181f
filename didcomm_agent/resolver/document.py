"""DID Document model.

Only the parts of DID Core the agent relies on are modelled: verification
methods, the verification relationships referencing them, and DIDComm
service endpoints. Relative ids (``#key-1``) are made absolute against the
document id on load so every lookup can use full DID URLs.
"""

from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


def did_of(did_url: str) -> str:
    """Return the DID part of a DID URL."""
    return did_url.split("#", 1)[0].split("?", 1)[0]


def absolute(ref: str, did: str) -> str:
    """Make a DID URL reference absolute."""
    if ref.startswith("#") or ref.startswith("?"):
        return did + ref
    return ref


class VerificationMethod(BaseModel):
    """A verification method entry."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    controller: str
    public_key_multibase: Optional[str] = Field(None, alias="publicKeyMultibase")
    public_key_base58: Optional[str] = Field(None, alias="publicKeyBase58")
    public_key_jwk: Optional[dict] = Field(None, alias="publicKeyJwk")

    @property
    def did(self) -> str:
        """Return the DID this method belongs to."""
        return did_of(self.id)


class ServiceEndpoint(BaseModel):
    """DIDComm v2 style service endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uri: str
    accept: List[str] = Field(default_factory=lambda: ["didcomm/v2"])
    routing_keys: List[str] = Field(default_factory=list, alias="routingKeys")


class Service(BaseModel):
    """A service entry."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    service_endpoint: Union[ServiceEndpoint, List[ServiceEndpoint], str] = Field(
        alias="serviceEndpoint"
    )

    @property
    def endpoints(self) -> List[ServiceEndpoint]:
        """Return the endpoints of this service as a list."""
        if isinstance(self.service_endpoint, str):
            return [ServiceEndpoint(uri=self.service_endpoint)]
        if isinstance(self.service_endpoint, ServiceEndpoint):
            return [self.service_endpoint]
        return list(self.service_endpoint)


Relationship = List[Union[str, VerificationMethod]]


class DIDDocument(BaseModel):
    """A resolved DID Document."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    context: Optional[Union[str, List[Any]]] = Field(None, alias="@context")
    id: str
    controller: Optional[Union[str, List[str]]] = None
    verification_method: List[VerificationMethod] = Field(
        default_factory=list, alias="verificationMethod"
    )
    authentication: Relationship = Field(default_factory=list)
    assertion_method: Relationship = Field(
        default_factory=list, alias="assertionMethod"
    )
    key_agreement: Relationship = Field(default_factory=list, alias="keyAgreement")
    service: List[Service] = Field(default_factory=list)

    @model_validator(mode="after")
    def _absolute_ids(self) -> "DIDDocument":
        for vm in self._embedded_methods():
            vm.id = absolute(vm.id, self.id)
            vm.controller = absolute(vm.controller, self.id)
        for name in ("authentication", "assertion_method", "key_agreement"):
            setattr(
                self,
                name,
                [
                    absolute(ref, self.id) if isinstance(ref, str) else ref
                    for ref in getattr(self, name)
                ],
            )
        for service in self.service:
            service.id = absolute(service.id, self.id)
        return self

    def _embedded_methods(self):
        yield from self.verification_method
        for name in ("authentication", "assertion_method", "key_agreement"):
            for ref in getattr(self, name):
                if isinstance(ref, VerificationMethod):
                    yield ref

    @classmethod
    def deserialize(cls, value: Mapping[str, Any]) -> "DIDDocument":
        """Parse a DID Document, raising ValueError when invalid."""
        try:
            return cls.model_validate(value)
        except ValidationError as err:
            raise ValueError(f"Invalid DID document: {err}") from err

    def serialize(self) -> dict:
        """Return the document in its JSON form."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def dereference(self, did_url: str) -> Union[VerificationMethod, Service]:
        """Find the verification method or service a DID URL points to."""
        did_url = absolute(did_url, self.id)
        for vm in self._embedded_methods():
            if vm.id == did_url:
                return vm
        for service in self.service:
            if service.id == did_url:
                return service
        raise LookupError(f"{did_url} not found in document {self.id}")

    def methods_for(self, relationship: str) -> List[VerificationMethod]:
        """Return the verification methods of a relationship, dereferenced."""
        methods = []
        for ref in getattr(self, relationship):
            if isinstance(ref, VerificationMethod):
                methods.append(ref)
                continue
            resource = self.dereference(ref)
            if not isinstance(resource, VerificationMethod):
                raise ValueError(f"Expected verification method, found: {ref}")
            methods.append(resource)
        return methods

    def services_of_type(self, service_type: str) -> List[Service]:
        """Return the services of a given type."""
        return [service for service in self.service if service.type == service_type]
