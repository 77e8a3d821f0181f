"""Basic Crypto Implementations."""

from typing import Dict, Optional, Set

from didcomm_agent.crypto.base import S, SecretsManager


class InMemorySecretsManager(SecretsManager[S]):
    """In Memory Secrets Manager."""

    def __init__(self, secrets: Optional[Dict[str, S]] = None):
        """Initialize the InMemorySecretsManager."""
        self.secrets = secrets if secrets is not None else {}

    async def get_secret_by_kid(self, kid: str) -> Optional[S]:
        """Get a secret by its kid."""
        return self.secrets.get(kid)

    async def add_secret(self, secret: S) -> None:
        """Add a secret to the secrets manager."""
        self.secrets[secret.kid] = secret

    async def remove_secret(self, kid: str) -> Optional[S]:
        """Remove a secret, returning it if it was held."""
        return self.secrets.pop(kid, None)

    async def available_kids(self) -> Set[str]:
        """Return the IDs of every secret held."""
        return set(self.secrets)
