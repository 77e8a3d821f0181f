"""Multibase encoding and decoding utilities."""

from abc import ABC, abstractmethod
import base64
import binascii
from typing import ClassVar, Dict, Literal, Union

import base58


class MultibaseEncoder(ABC):
    """A single multibase encoding."""

    name: ClassVar[str]
    character: ClassVar[str]

    @abstractmethod
    def encode(self, value: bytes) -> str:
        """Encode a byte string using this encoding."""

    @abstractmethod
    def decode(self, value: str) -> bytes:
        """Decode a string using this encoding."""


class Base58BtcEncoder(MultibaseEncoder):
    """Base58BTC encoding."""

    name = "base58btc"
    character = "z"

    def encode(self, value: bytes) -> str:
        """Encode a byte string using the base58btc encoding."""
        return base58.b58encode(value).decode()

    def decode(self, value: str) -> bytes:
        """Decode a base58btc encoded string."""
        return base58.b58decode(value)


class Base64UrlEncoder(MultibaseEncoder):
    """Unpadded base64url encoding, as used throughout JOSE."""

    name = "base64url"
    character = "u"

    def encode(self, value: bytes) -> str:
        """Encode a byte string using the base64url encoding."""
        return base64.urlsafe_b64encode(value).decode().rstrip("=")

    def decode(self, value: str) -> bytes:
        """Decode a base64url encoded string, padded or not."""
        try:
            return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
        except (binascii.Error, TypeError) as err:
            raise ValueError("Invalid base64url value") from err


_ENCODERS: Dict[str, MultibaseEncoder] = {
    encoder.name: encoder for encoder in (Base58BtcEncoder(), Base64UrlEncoder())
}
_BY_CHARACTER: Dict[str, MultibaseEncoder] = {
    encoder.character: encoder for encoder in _ENCODERS.values()
}

EncodingStr = Literal["base58btc", "base64url"]


def encode(value: bytes, encoding: Union[MultibaseEncoder, EncodingStr]) -> str:
    """Encode a byte string with the given encoding, prefixed by its character."""
    if isinstance(encoding, str):
        try:
            encoder = _ENCODERS[encoding]
        except KeyError:
            raise ValueError(f"Unsupported encoding: {encoding}") from None
    elif isinstance(encoding, MultibaseEncoder):
        encoder = encoding
    else:
        raise TypeError("encoding must be a MultibaseEncoder or encoding name")

    return encoder.character + encoder.encode(value)


def decode(value: str) -> bytes:
    """Decode a multibase encoded string."""
    if not value:
        raise ValueError("Empty multibase value")
    encoder = _BY_CHARACTER.get(value[0])
    if not encoder:
        raise ValueError(f"Unsupported encoding: {value[0]}")
    return encoder.decode(value[1:])
