"""Key manager plugin."""

import asyncio
from collections import defaultdict
import logging
from typing import Dict, List, Optional, Union

from didcomm_agent.agent import AgentContext
from didcomm_agent.crypto import (
    CryptoService,
    KeyNotFoundError,
    KeyType,
    PublicKey,
    SecretKey,
    UnsupportedAlgorithmError,
)
from didcomm_agent.crypto.backend.basic import InMemorySecretsManager
from didcomm_agent.crypto.jwe import JweEnvelope
from didcomm_agent.plugin import AgentPlugin, Capability

LOG = logging.getLogger(__name__)


def key_info(secret: SecretKey) -> Dict[str, str]:
    """Describe a key without its private material."""
    public = secret.as_public_key()
    return {
        "kid": secret.kid,
        "type": secret.key_type.value,
        "public_key_multibase": public.multikey,
    }


class KeyManager(AgentPlugin):
    """Create keys and use them without exposing private material.

    Use of a key is serialized per key ID.
    """

    capabilities = (Capability.KEY_MANAGER,)

    def __init__(self, crypto: CryptoService, secrets: InMemorySecretsManager):
        """Initialize the plugin."""
        self.crypto = crypto
        self.secrets = secrets
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "key_manager_create": self.key_manager_create,
            "key_manager_get": self.key_manager_get,
            "key_manager_list_keys": self.key_manager_list_keys,
            "key_manager_bind_kid": self.key_manager_bind_kid,
            "key_manager_sign": self.key_manager_sign,
            "key_manager_decrypt_jwe": self.key_manager_decrypt_jwe,
            "key_manager_delete": self.key_manager_delete,
        }

    async def _secret(self, kid: str) -> SecretKey:
        secret = await self.secrets.get_secret_by_kid(kid)
        if not secret:
            raise KeyNotFoundError(f"Unknown key: {kid}")
        return secret

    async def key_manager_create(
        self,
        context: AgentContext,
        type: Union[KeyType, str] = KeyType.ED25519,
        kid: Optional[str] = None,
        derive_from: Optional[str] = None,
    ) -> Dict[str, str]:
        """Create a key.

        With ``derive_from`` an X25519 key is derived from that Ed25519 key
        instead of being generated.
        """
        try:
            key_type = KeyType(type)
        except ValueError:
            raise UnsupportedAlgorithmError(f"Unsupported key type: {type}") from None

        if kid and await self.secrets.get_secret_by_kid(kid):
            raise ValueError(f"Key {kid} already exists")

        if derive_from:
            if key_type != KeyType.X25519:
                raise UnsupportedAlgorithmError("Only X25519 keys can be derived")
            source = await self._secret(derive_from)
            secret = await self.crypto.derive_agreement_key(
                source, kid or derive_from + "-x25519"
            )
        else:
            secret = await self.crypto.generate_secret_key(key_type, kid)

        await self.secrets.add_secret(secret)
        LOG.debug("Created %s key %s", key_type.value, secret.kid)
        return key_info(secret)

    async def key_manager_get(self, context: AgentContext, kid: str) -> Dict[str, str]:
        """Describe a key."""
        return key_info(await self._secret(kid))

    async def key_manager_list_keys(
        self, context: AgentContext
    ) -> List[Dict[str, str]]:
        """Describe all keys."""
        return [
            key_info(await self._secret(kid))
            for kid in sorted(await self.secrets.available_kids())
        ]

    async def key_manager_bind_kid(
        self, context: AgentContext, kid: str, new_kid: str
    ) -> Dict[str, str]:
        """Make a key also available under another key ID."""
        secret = await self._secret(kid)
        bound = secret.with_kid(new_kid)
        await self.secrets.add_secret(bound)
        return key_info(bound)

    async def key_manager_sign(
        self, context: AgentContext, kid: str, data: bytes
    ) -> bytes:
        """Sign data with a key."""
        async with self._locks[kid]:
            secret = await self._secret(kid)
            return await self.crypto.sign(secret, data)

    async def key_manager_decrypt_jwe(
        self,
        context: AgentContext,
        kid: str,
        data: Union[str, bytes],
        sender_key: Optional[PublicKey] = None,
    ) -> bytes:
        """Decrypt a JWE addressed to a key.

        Authenticated encryption also needs the public key of the sender.
        """
        try:
            envelope = JweEnvelope.from_json(data)
        except ValueError as err:
            raise UnsupportedAlgorithmError(f"Not a JWE: {err}") from err

        async with self._locks[kid]:
            secret = await self._secret(kid)
            if secret.key_type != KeyType.X25519:
                raise UnsupportedAlgorithmError(f"Key {kid} cannot decrypt")
            alg = envelope.alg or ""
            if alg.startswith("ECDH-ES"):
                return await self.crypto.ecdh_es_decrypt(data, secret)
            if alg.startswith("ECDH-1PU"):
                if not sender_key:
                    raise KeyNotFoundError(
                        "Authenticated decryption needs a sender key"
                    )
                return await self.crypto.ecdh_1pu_decrypt(data, secret, sender_key)
        raise UnsupportedAlgorithmError(f"Unsupported JWE algorithm: {alg}")

    async def key_manager_delete(self, context: AgentContext, kid: str) -> bool:
        """Delete a key, returning whether it existed."""
        async with self._locks[kid]:
            removed = await self.secrets.remove_secret(kid)
        self._locks.pop(kid, None)
        return removed is not None
