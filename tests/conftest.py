from dataclasses import dataclass
from typing import List

from authlib.jose import OKPKey
import pytest

from didcomm_agent.crypto.backend.authlib import (
    AuthlibCryptoService,
    AuthlibKey,
    AuthlibSecretKey,
)
from didcomm_agent.crypto.backend.basic import InMemorySecretsManager
from didcomm_agent.packaging import PackagingService
from didcomm_agent.resolver import StaticResolver


def pytest_addoption(parser):
    parser.addoption(
        "--runexternal",
        action="store_true",
        default=False,
        help="run tests that make external requests",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "external_fetch: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--runexternal"):
        return
    skip_external = pytest.mark.skip(reason="need --runexternal option to run")
    for item in items:
        if "external_fetch" in item.keywords:
            item.add_marker(skip_external)


@dataclass
class Identity:
    """A did:example identity with its document and secrets."""

    did: str
    doc: dict
    secrets: List[AuthlibSecretKey]

    @property
    def signing_kid(self) -> str:
        return f"{self.did}#key-1"

    @property
    def agreement_kid(self) -> str:
        return f"{self.did}#key-2"


def make_identity(name: str, endpoint: str = None) -> Identity:
    did = f"did:example:{name}"
    verkey = OKPKey.generate_key("Ed25519", is_private=True)
    xkey = OKPKey.generate_key("X25519", is_private=True)
    doc = {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": did,
        "verificationMethod": [
            {
                "id": "#key-1",
                "type": "Multikey",
                "controller": did,
                "publicKeyMultibase": AuthlibKey.key_to_multikey(verkey),
            },
            {
                "id": "#key-2",
                "type": "Multikey",
                "controller": did,
                "publicKeyMultibase": AuthlibKey.key_to_multikey(xkey),
            },
        ],
        "authentication": ["#key-1"],
        "assertionMethod": ["#key-1"],
        "keyAgreement": ["#key-2"],
        "service": [
            {
                "id": "#didcomm",
                "type": "DIDCommMessaging",
                "serviceEndpoint": {
                    "uri": endpoint or f"memory:{name}",
                    "accept": ["didcomm/v2"],
                    "routingKeys": [],
                },
            }
        ],
    }
    return Identity(
        did,
        doc,
        [
            AuthlibSecretKey(verkey, f"{did}#key-1"),
            AuthlibSecretKey(xkey, f"{did}#key-2"),
        ],
    )


@pytest.fixture
def alice():
    yield make_identity("alice")


@pytest.fixture
def bob():
    yield make_identity("bob")


@pytest.fixture
def eve():
    yield make_identity("eve")


@pytest.fixture
def crypto():
    yield AuthlibCryptoService()


@pytest.fixture
def resolver(alice: Identity, bob: Identity, eve: Identity):
    yield StaticResolver([alice.doc, bob.doc, eve.doc])


async def packer_for(identity: Identity, crypto, resolver) -> PackagingService:
    secrets = InMemorySecretsManager()
    for secret in identity.secrets:
        await secrets.add_secret(secret)
    return PackagingService(crypto, secrets, resolver)


@pytest.fixture
async def alice_packer(alice, crypto, resolver):
    yield await packer_for(alice, crypto, resolver)


@pytest.fixture
async def bob_packer(bob, crypto, resolver):
    yield await packer_for(bob, crypto, resolver)


@pytest.fixture
async def eve_packer(eve, crypto, resolver):
    yield await packer_for(eve, crypto, resolver)


@pytest.fixture
def identity_factory():
    yield make_identity


@pytest.fixture
def packer_factory(crypto):
    async def _packer(identity: Identity, resolver) -> PackagingService:
        return await packer_for(identity, crypto, resolver)

    yield _packer
