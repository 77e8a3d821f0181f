"""JSON Web Signature serializations.

Signed DIDComm messages use the General JSON serialization; credentials and
presentations use the compact serialization (JWT). Signing itself is
delegated to a callable so any CryptoService or KeyManager can provide it.
"""

from dataclasses import dataclass, field
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from didcomm_agent.crypto.jwe import b64url, from_b64url

SIGNED_MEDIA_TYPE = "application/didcomm-signed+json"
COMPACT_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")

Signer = Callable[[bytes], Awaitable[bytes]]


def _encode_header(header: Mapping[str, Any]) -> str:
    return b64url(json.dumps(header, separators=(",", ":")))


def _decode_json(value: str, what: str) -> Any:
    try:
        return json.loads(from_b64url(value))
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValueError(f"Invalid JWS: {what} is not JSON") from None


@dataclass
class JwsSignature:
    """One signature of a JWS."""

    protected: Dict[str, Any]
    protected_b64: str
    signature: bytes
    header: Dict[str, Any] = field(default_factory=dict)

    @property
    def kid(self) -> Optional[str]:
        """Key ID of the signer."""
        return self.protected.get("kid") or self.header.get("kid")

    @property
    def alg(self) -> Optional[str]:
        """Signature algorithm."""
        return self.protected.get("alg")


@dataclass
class JwsEnvelope:
    """A JWS in General JSON serialization."""

    payload_b64: str
    signatures: List[JwsSignature]

    @property
    def payload(self) -> bytes:
        """Decoded payload."""
        return from_b64url(self.payload_b64)

    def signing_input(self, signature: JwsSignature) -> bytes:
        """Bytes covered by a signature."""
        return f"{signature.protected_b64}.{self.payload_b64}".encode()

    @classmethod
    async def sign(
        cls, payload: bytes, kid: str, signer: Signer, alg: str = "EdDSA"
    ) -> "JwsEnvelope":
        """Create a single signature JWS over a payload."""
        protected = {"typ": SIGNED_MEDIA_TYPE, "alg": alg, "kid": kid}
        protected_b64 = _encode_header(protected)
        payload_b64 = b64url(payload)
        signature = await signer(f"{protected_b64}.{payload_b64}".encode())
        return cls(
            payload_b64,
            [JwsSignature(protected, protected_b64, signature, {"kid": kid})],
        )

    @classmethod
    def from_json(cls, message: Union[str, bytes]) -> "JwsEnvelope":
        """Parse a JWS from JSON."""
        try:
            parsed = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("Invalid JWS: not JSON") from None
        return cls.deserialize(parsed)

    @classmethod
    def deserialize(cls, message: Mapping[str, Any]) -> "JwsEnvelope":
        """Parse a General or Flattened JSON JWS."""
        if not isinstance(message, dict) or not isinstance(message.get("payload"), str):
            raise ValueError("Invalid JWS: missing payload")

        if "signatures" in message:
            entries = message["signatures"]
            if not isinstance(entries, list) or not entries:
                raise ValueError("Invalid JWS: invalid signatures")
        elif "signature" in message:
            entries = [message]
        else:
            raise ValueError("Invalid JWS: no signatures")

        signatures = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValueError("Invalid JWS: invalid signature entry")
            protected_b64 = entry.get("protected")
            if not isinstance(protected_b64, str) or not isinstance(
                entry.get("signature"), str
            ):
                raise ValueError("Invalid JWS: invalid signature entry")
            protected = _decode_json(protected_b64, "protected header")
            header = entry.get("header") or {}
            if not isinstance(protected, dict) or not isinstance(header, dict):
                raise ValueError("Invalid JWS: invalid header")
            signatures.append(
                JwsSignature(
                    protected, protected_b64, from_b64url(entry["signature"]), header
                )
            )

        return cls(message["payload"], signatures)

    def serialize(self) -> dict:
        """Serialize to General JSON."""
        return {
            "payload": self.payload_b64,
            "signatures": [
                {
                    "protected": sig.protected_b64,
                    "signature": b64url(sig.signature),
                    **({"header": sig.header} if sig.header else {}),
                }
                for sig in self.signatures
            ],
        }

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.serialize())


@dataclass
class CompactJws:
    """A parsed compact JWS (JWT)."""

    header: Dict[str, Any]
    payload: Dict[str, Any]
    signature: bytes
    signing_input: bytes

    @property
    def kid(self) -> Optional[str]:
        """Key ID of the signer."""
        return self.header.get("kid")


def is_compact(value: Any) -> bool:
    """Return whether a value looks like a compact JWS."""
    return isinstance(value, str) and bool(COMPACT_PATTERN.match(value))


async def sign_compact(
    payload: Mapping[str, Any], kid: str, signer: Signer, alg: str = "EdDSA"
) -> str:
    """Create a compact JWS (JWT) over a JSON payload."""
    header_b64 = _encode_header({"alg": alg, "typ": "JWT", "kid": kid})
    payload_b64 = _encode_header(payload)
    signing_input = f"{header_b64}.{payload_b64}"
    signature = await signer(signing_input.encode())
    return f"{signing_input}.{b64url(signature)}"


def parse_compact(token: str) -> CompactJws:
    """Parse a compact JWS carrying a JSON payload."""
    if not is_compact(token):
        raise ValueError("Invalid JWT: not a compact JWS")
    header_b64, payload_b64, signature_b64 = token.split(".")
    header = _decode_json(header_b64, "header")
    payload = _decode_json(payload_b64, "payload")
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise ValueError("Invalid JWT: header and payload must be objects")
    return CompactJws(
        header,
        payload,
        from_b64url(signature_b64),
        f"{header_b64}.{payload_b64}".encode(),
    )
