"""Agent Cryptography and Secrets Interfaces."""

from .base import (
    CryptoService,
    CryptoServiceError,
    KeyNotFoundError,
    KeyType,
    P,
    PublicKey,
    S,
    SecretKey,
    SecretsManager,
    UnsupportedAlgorithmError,
)

__all__ = [
    "CryptoService",
    "CryptoServiceError",
    "KeyNotFoundError",
    "KeyType",
    "P",
    "PublicKey",
    "S",
    "SecretKey",
    "SecretsManager",
    "UnsupportedAlgorithmError",
]
