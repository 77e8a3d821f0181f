"""Cryptography and Secrets Management backends."""

from didcomm_agent.crypto.backend.basic import InMemorySecretsManager

__all__ = ["InMemorySecretsManager"]
