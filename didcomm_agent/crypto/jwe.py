"""JSON Web Encryption envelope parsing.

Envelopes are produced by the crypto backend; this module only needs to read
them back well enough to route a received message: which algorithm was
used, who it is addressed to, and who claims to have sent it.
"""

from dataclasses import dataclass, field
import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from didcomm_agent.multiformats.multibase import Base64UrlEncoder

_base64url = Base64UrlEncoder()


def b64url(value: Union[bytes, str]) -> str:
    """Encode a string or bytes value as unpadded base64-URL."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return _base64url.encode(value)


def from_b64url(value: str) -> bytes:
    """Decode an unpadded base64-URL value, raising ValueError when invalid."""
    if not isinstance(value, str):
        raise ValueError("Expected a base64url string")
    return _base64url.decode(value)


def _require_str(message: Mapping[str, Any], name: str, optional: bool = False):
    if name not in message:
        if optional:
            return None
        raise ValueError(f"Invalid JWE: missing {name}")
    if not isinstance(message[name], str):
        raise ValueError(f"Invalid JWE: invalid {name}")
    return message[name]


@dataclass
class JweRecipient:
    """A single message recipient."""

    encrypted_key: bytes
    header: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def deserialize(cls, entry: Mapping[str, Any]) -> "JweRecipient":
        """Deserialize a JWE recipient from a mapping."""
        if not isinstance(entry, dict):
            raise ValueError("Invalid JWE: invalid recipient")
        encrypted_key = from_b64url(_require_str(entry, "encrypted_key"))
        header = entry.get("header") or {}
        if not isinstance(header, dict):
            raise ValueError("Invalid JWE recipient: invalid header")
        return cls(encrypted_key, header)


@dataclass
class JweEnvelope:
    """JWE envelope instance (general or flattened JSON serialization)."""

    recipients: List[JweRecipient]
    protected: Dict[str, Any]
    protected_b64: bytes
    ciphertext: bytes
    iv: bytes
    tag: bytes
    aad: Optional[bytes] = None
    unprotected: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, message: Union[bytes, str]) -> "JweEnvelope":
        """Decode a JWE envelope from a JSON string or bytes value."""
        try:
            parsed = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("Invalid JWE: not JSON") from None
        return cls.deserialize(parsed)

    @classmethod
    def deserialize(cls, message: Mapping[str, Any]) -> "JweEnvelope":
        """Deserialize and validate a JWE envelope from a mapping."""
        if not isinstance(message, dict):
            raise ValueError("Invalid JWE: not a mapping")

        protected_b64 = _require_str(message, "protected")
        try:
            protected = json.loads(from_b64url(protected_b64))
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("Invalid JWE: protected header is not JSON") from None
        if not isinstance(protected, dict):
            raise ValueError("Invalid JWE: invalid protected header")

        unprotected = message.get("unprotected") or {}
        if not isinstance(unprotected, dict):
            raise ValueError("Invalid JWE: invalid unprotected header")
        if protected.keys() & unprotected.keys():
            raise ValueError("Invalid JWE: duplicate header")

        if "recipients" in message:
            if "encrypted_key" in message:
                raise ValueError("Invalid JWE: flattened form with 'recipients'")
            if not isinstance(message["recipients"], list):
                raise ValueError("Invalid JWE: invalid recipients")
            recipients = [JweRecipient.deserialize(r) for r in message["recipients"]]
        elif "encrypted_key" in message:
            recipients = [
                JweRecipient.deserialize(
                    {
                        "encrypted_key": message["encrypted_key"],
                        "header": message.get("header"),
                    }
                )
            ]
        else:
            recipients = []
        if not recipients:
            raise ValueError("Invalid JWE: no recipients")

        shared = protected.keys() | unprotected.keys()
        for recip in recipients:
            if recip.header.keys() & shared:
                raise ValueError("Invalid JWE: duplicate header")

        aad = _require_str(message, "aad", optional=True)
        return cls(
            recipients=recipients,
            protected=protected,
            protected_b64=protected_b64.encode(),
            ciphertext=from_b64url(_require_str(message, "ciphertext")),
            iv=from_b64url(_require_str(message, "iv")),
            tag=from_b64url(_require_str(message, "tag")),
            aad=from_b64url(aad) if aad is not None else None,
            unprotected=unprotected,
        )

    def serialize(self) -> dict:
        """Serialize the JWE envelope to a mapping (general serialization)."""
        env: Dict[str, Any] = {"protected": self.protected_b64.decode("utf-8")}
        if self.unprotected:
            env["unprotected"] = dict(self.unprotected)
        env["recipients"] = [
            {"encrypted_key": b64url(r.encrypted_key), "header": r.header}
            if r.header
            else {"encrypted_key": b64url(r.encrypted_key)}
            for r in self.recipients
        ]
        env["iv"] = b64url(self.iv)
        env["ciphertext"] = b64url(self.ciphertext)
        env["tag"] = b64url(self.tag)
        if self.aad:
            env["aad"] = b64url(self.aad)
        return env

    def to_json(self) -> str:
        """Serialize the JWE envelope to a JSON string."""
        return json.dumps(self.serialize())

    @property
    def alg(self) -> Optional[str]:
        """Key management algorithm from the protected header."""
        return self.protected.get("alg")

    @property
    def recipient_key_ids(self) -> Iterator[str]:
        """Accessor for an iterator over the JWE recipient key identifiers."""
        for recip in self.recipients:
            if "kid" in recip.header:
                yield recip.header["kid"]

    def get_recipient(self, kid: str) -> JweRecipient:
        """Find a recipient by key ID, with shared headers merged in."""
        for recip in self.recipients:
            if recip.header.get("kid") == kid:
                header = {**self.protected, **self.unprotected, **recip.header}
                return JweRecipient(recip.encrypted_key, header)
        raise ValueError(f"Unknown recipient: {kid}")

    def _header_bytes(self, name: str) -> bytes:
        if name not in self.protected:
            raise ValueError(f"Missing {name}")
        return from_b64url(self.protected[name])

    @property
    def apu_bytes(self) -> bytes:
        """Accessor for the Agreement PartyUInfo."""
        return self._header_bytes("apu")

    @property
    def apv_bytes(self) -> bytes:
        """Accessor for the Agreement PartyVInfo."""
        return self._header_bytes("apv")
