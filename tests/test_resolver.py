"""Test DID resolution and dereferencing."""

from authlib.jose import OKPKey
import pytest

from didcomm_agent.crypto.backend.authlib import AuthlibKey
from didcomm_agent.resolver import (
    DIDMethodNotSupported,
    DIDNotFound,
    DIDResolver,
    InvalidDID,
    PrefixResolver,
    StaticResolver,
)
from didcomm_agent.resolver.document import Service, VerificationMethod
from didcomm_agent.resolver.key import DIDKey, x25519_multikey_for_ed25519


class TestResolver(DIDResolver):
    async def is_resolvable(self, did: str) -> bool:
        return True

    async def resolve(self, did: str) -> dict:
        return {"id": did}


@pytest.fixture(scope="session")
def test_resolver():
    yield TestResolver()


@pytest.fixture
def did_key():
    key = OKPKey.generate_key("Ed25519", is_private=False)
    yield "did:key:" + AuthlibKey.key_to_multikey(key)


@pytest.mark.asyncio
async def test_prefix_resolver(test_resolver: DIDResolver):
    did = "did:test:example_did"

    resolver = PrefixResolver(resolvers={"did:test:": test_resolver})

    doc = await resolver.resolve(did)
    assert doc["id"] == did
    assert await resolver.is_resolvable(did)
    assert not await resolver.is_resolvable("did:other:example")

    with pytest.raises(DIDMethodNotSupported) as exc:
        await resolver.resolve("This won't work")
    assert exc.value.reason == "resolverUnavailable"


@pytest.mark.asyncio
async def test_static_resolver(alice, resolver: StaticResolver):
    doc = await resolver.resolve_and_parse(alice.did)
    assert doc.id == alice.did
    assert [vm.id for vm in doc.methods_for("key_agreement")] == [alice.agreement_kid]

    with pytest.raises(DIDNotFound) as exc:
        await resolver.resolve_and_parse("did:example:nobody")
    assert exc.value.reason == "notFound"


@pytest.mark.asyncio
async def test_dereference(alice, resolver: StaticResolver):
    vm = await resolver.resolve_and_dereference_verification_method(alice.signing_kid)
    assert isinstance(vm, VerificationMethod)
    assert vm.controller == alice.did

    service = await resolver.resolve_and_dereference(f"{alice.did}#didcomm")
    assert isinstance(service, Service)
    assert service.endpoints[0].uri == "memory:alice"

    with pytest.raises(InvalidDID):
        await resolver.resolve_and_dereference_verification_method(
            f"{alice.did}#didcomm"
        )
    with pytest.raises(InvalidDID):
        await resolver.resolve_and_dereference(alice.did)
    with pytest.raises(DIDNotFound):
        await resolver.resolve_and_dereference(f"{alice.did}#key-9")


@pytest.mark.asyncio
async def test_invalid_did(resolver: StaticResolver):
    with pytest.raises(InvalidDID) as exc:
        await resolver.resolve_and_parse("not a did")
    assert exc.value.reason == "invalidIdentifier"


@pytest.mark.asyncio
async def test_did_key(did_key: str):
    doc = await DIDKey().resolve_and_parse(did_key)
    multikey = did_key[len("did:key:") :]

    (signing,) = doc.methods_for("authentication")
    assert signing.id == f"{did_key}#{multikey}"
    assert doc.methods_for("assertion_method") == [signing]

    (agreement,) = doc.methods_for("key_agreement")
    assert agreement.public_key_multibase == x25519_multikey_for_ed25519(multikey)


@pytest.mark.asyncio
async def test_did_key_invalid():
    with pytest.raises(InvalidDID):
        await DIDKey().resolve("did:key:znotbase58!")
    with pytest.raises(InvalidDID):
        await DIDKey().resolve("did:web:example.com")
