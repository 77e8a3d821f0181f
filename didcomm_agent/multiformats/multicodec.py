"""Multicodec prefixes for the key types handled by the agent."""

from enum import Enum
from typing import NamedTuple, Tuple, Union


class Multicodec(NamedTuple):
    """Multicodec name and its varint encoded prefix."""

    name: str
    code: bytes


class SupportedCodecs(Enum):
    """Codecs this package knows how to wrap and unwrap."""

    ed25519_pub = Multicodec("ed25519-pub", b"\xed\x01")
    x25519_pub = Multicodec("x25519-pub", b"\xec\x01")

    @classmethod
    def by_name(cls, name: str) -> Multicodec:
        """Look up a codec by name."""
        for codec in cls:
            if codec.value.name == name:
                return codec.value
        raise ValueError(f"Unsupported multicodec: {name}")

    @classmethod
    def for_data(cls, data: bytes) -> Multicodec:
        """Find the codec whose prefix starts the given data."""
        for codec in cls:
            if data.startswith(codec.value.code):
                return codec.value
        raise ValueError("Unsupported multicodec prefix")


def multicodec(name: str) -> Multicodec:
    """Return the multicodec for a name."""
    return SupportedCodecs.by_name(name)


def wrap(codec: Union[str, Multicodec], data: bytes) -> bytes:
    """Prefix data with a multicodec."""
    if isinstance(codec, str):
        codec = multicodec(codec)
    return codec.code + data


def unwrap(data: bytes) -> Tuple[Multicodec, bytes]:
    """Split multicodec prefixed data into the codec and the remaining bytes."""
    codec = SupportedCodecs.for_data(data)
    return codec, data[len(codec.code) :]
