from authlib.jose import OKPKey
import pytest

from didcomm_agent.crypto.backend.authlib import AuthlibSecretKey
from didcomm_agent.crypto.backend.basic import InMemorySecretsManager


@pytest.fixture()
def in_memory_secrets_manager():
    yield InMemorySecretsManager()


@pytest.fixture()
def secret():
    key = OKPKey.generate_key("Ed25519", is_private=True)
    yield AuthlibSecretKey(key, "did:example:alice#key-1")


@pytest.mark.asyncio
async def test_in_memory_secrets(
    in_memory_secrets_manager: InMemorySecretsManager, secret: AuthlibSecretKey
):
    await in_memory_secrets_manager.add_secret(secret)

    assert await in_memory_secrets_manager.get_secret_by_kid(secret.kid) == secret
    assert await in_memory_secrets_manager.available_kids() == {secret.kid}


@pytest.mark.asyncio
async def test_remove_secret(
    in_memory_secrets_manager: InMemorySecretsManager, secret: AuthlibSecretKey
):
    await in_memory_secrets_manager.add_secret(secret)
    assert await in_memory_secrets_manager.remove_secret(secret.kid) == secret
    assert await in_memory_secrets_manager.get_secret_by_kid(secret.kid) is None
    assert await in_memory_secrets_manager.remove_secret(secret.kid) is None


@pytest.mark.asyncio
async def test_rebound_secret(
    in_memory_secrets_manager: InMemorySecretsManager, secret: AuthlibSecretKey
):
    rebound = secret.with_kid("did:example:alice#key-9")
    await in_memory_secrets_manager.add_secret(rebound)

    held = await in_memory_secrets_manager.get_secret_by_kid("did:example:alice#key-9")
    assert held.key is secret.key
    assert held.as_public_key().kid == "did:example:alice#key-9"


@pytest.mark.asyncio
async def test_secrets_given_up_front(secret: AuthlibSecretKey):
    secrets = {}
    manager = InMemorySecretsManager(secrets)
    await manager.add_secret(secret)
    assert secrets == {secret.kid: secret}
