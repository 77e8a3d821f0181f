"""PackagingService: DIDComm envelopes for each packing mode."""

from dataclasses import dataclass, field, replace
from enum import Enum
import hashlib
import json
import logging
from typing import Any, Generic, List, Mapping, Optional, Tuple, Union

from didcomm_agent.crypto import (
    CryptoService,
    CryptoServiceError,
    KeyNotFoundError,
    P,
    S,
    SecretsManager,
    UnsupportedAlgorithmError,
)
from didcomm_agent.crypto.jwe import JweEnvelope, b64url, from_b64url
from didcomm_agent.crypto.jws import SIGNED_MEDIA_TYPE, JwsEnvelope
from didcomm_agent.message import PLAINTEXT_MEDIA_TYPE, DIDCommMessage
from didcomm_agent.resolver import DIDResolver
from didcomm_agent.resolver.document import VerificationMethod, did_of

LOG = logging.getLogger(__name__)

MAX_LAYERS = 3
ENCRYPTED_MEDIA_TYPE = "application/didcomm-encrypted+json"


class PackagingServiceError(Exception):
    """Represents an error from the PackagingService."""


class UnsupportedPackingError(PackagingServiceError):
    """Raised for a packing mode that is not supported."""


class MalformedEnvelopeError(PackagingServiceError):
    """Raised when a packed message is structurally invalid."""


class DecryptionError(PackagingServiceError):
    """Raised when a message cannot be decrypted with local keys."""


class SignatureVerificationError(PackagingServiceError):
    """Raised when a signature does not verify."""


class Packing(str, Enum):
    """Envelope protection applied to a message."""

    NONE = "none"
    JWS = "jws"
    AUTHCRYPT = "authcrypt"
    ANONCRYPT = "anoncrypt"

    @classmethod
    def parse(cls, value: Union[str, "Packing"]) -> "Packing":
        """Return the packing for a value, raising UnsupportedPackingError."""
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedPackingError(f"Unsupported packing: {value}") from None


@dataclass
class UnpackResult:
    """Result of unpacking a message."""

    message: DIDCommMessage
    packing: Packing
    sender_kid: Optional[str] = None
    recipient_kid: Optional[str] = None
    layers: List[Packing] = field(default_factory=list)

    @property
    def encrypted(self) -> bool:
        """Return whether any layer was encrypted."""
        return Packing.AUTHCRYPT in self.layers or Packing.ANONCRYPT in self.layers

    @property
    def authenticated(self) -> bool:
        """Return whether the sender was authenticated by any layer."""
        return Packing.AUTHCRYPT in self.layers or Packing.JWS in self.layers


def _apv_for(kids: List[str]) -> str:
    return b64url(hashlib.sha256(".".join(sorted(kids)).encode()).digest())


class PackagingService(Generic[P, S]):
    """Pack and unpack DIDComm messages."""

    def __init__(
        self,
        crypto: CryptoService[P, S],
        secrets: SecretsManager[S],
        resolver: DIDResolver,
    ):
        """Initialize the service."""
        self.crypto = crypto
        self.secrets = secrets
        self.resolver = resolver

    async def _methods_for(
        self, kid_or_did: str, relationship: str
    ) -> List[VerificationMethod]:
        if "#" in kid_or_did:
            return [
                await self.resolver.resolve_and_dereference_verification_method(
                    kid_or_did
                )
            ]

        doc = await self.resolver.resolve_and_parse(kid_or_did)
        try:
            methods = doc.methods_for(relationship)
        except (LookupError, ValueError) as err:
            raise KeyNotFoundError(
                f"Invalid {relationship} reference in {kid_or_did}"
            ) from err
        if not methods:
            raise KeyNotFoundError(f"No {relationship} methods found for {kid_or_did}")
        return methods

    async def recipient_keys(self, to: List[str]) -> List[P]:
        """Resolve the key agreement keys of every recipient."""
        if not to:
            raise KeyNotFoundError("Message has no recipients")
        keys = []
        for kid_or_did in to:
            for vm in await self._methods_for(kid_or_did, "key_agreement"):
                try:
                    keys.append(self.crypto.verification_method_to_public_key(vm))
                except ValueError as err:
                    raise KeyNotFoundError(f"Unusable key {vm.id}") from err
        return keys

    async def _sender_secret(
        self, frm: Optional[str], sender_kid: Optional[str], relationship: str
    ) -> S:
        if sender_kid:
            if frm and did_of(sender_kid) != did_of(frm):
                raise PackagingServiceError(
                    f"Sender key {sender_kid} does not belong to {frm}"
                )
            secret = await self.secrets.get_secret_by_kid(sender_kid)
            if not secret:
                raise KeyNotFoundError(f"No secret held for sender key {sender_kid}")
            return secret

        if not frm:
            raise KeyNotFoundError("A sender is required for this packing")

        for vm in await self._methods_for(frm, relationship):
            secret = await self.secrets.get_secret_by_kid(vm.id)
            if secret:
                return secret
        raise KeyNotFoundError(f"No {relationship} secret held for {frm}")

    async def pack(
        self,
        message: Union[DIDCommMessage, Mapping[str, Any]],
        packing: Union[Packing, str],
        sender_kid: Optional[str] = None,
    ) -> str:
        """Pack a message with the given packing mode."""
        packing = Packing.parse(packing)
        if not isinstance(message, DIDCommMessage):
            try:
                message = DIDCommMessage.deserialize(message)
            except ValueError as err:
                raise PackagingServiceError(str(err)) from err

        if packing == Packing.NONE:
            return message.to_json()

        if packing == Packing.JWS:
            secret = await self._sender_secret(
                message.frm, sender_kid, "authentication"
            )

            async def _signer(data: bytes) -> bytes:
                return await self.crypto.sign(secret, data)

            jws = await JwsEnvelope.sign(
                message.to_json().encode(), secret.kid, _signer
            )
            return jws.to_json()

        recip_keys = await self.recipient_keys(message.recipients)

        if packing == Packing.AUTHCRYPT:
            secret = await self._sender_secret(message.frm, sender_kid, "key_agreement")
            packed = await self.crypto.ecdh_1pu_encrypt(
                recip_keys, secret, message.to_json().encode()
            )
        else:
            anonymous = replace(message, frm=None)
            packed = await self.crypto.ecdh_es_encrypt(
                recip_keys, anonymous.to_json().encode()
            )
        return packed.decode("utf-8")

    async def unpack(
        self, packed: Union[str, bytes, Mapping[str, Any]]
    ) -> UnpackResult:
        """Unpack a message, unwrapping every envelope layer."""
        if isinstance(packed, (str, bytes)):
            try:
                parsed = json.loads(packed)
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise MalformedEnvelopeError("Packed message is not JSON") from None
        else:
            parsed = dict(packed)

        layers: List[Packing] = []
        sender_kid = None
        recipient_kid = None
        while True:
            if not isinstance(parsed, dict):
                raise MalformedEnvelopeError("Packed message is not a JSON object")
            if "ciphertext" in parsed:
                payload, packing, recip, sender = await self._decrypt(parsed)
                recipient_kid = recipient_kid or recip
            elif "payload" in parsed and (
                "signatures" in parsed or "signature" in parsed
            ):
                payload, sender = await self._verify(parsed)
                packing = Packing.JWS
            else:
                break

            layers.append(packing)
            sender_kid = sender_kid or sender
            if len(layers) > MAX_LAYERS:
                raise MalformedEnvelopeError("Too many envelope layers")
            try:
                parsed = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise MalformedEnvelopeError("Envelope payload is not JSON") from None

        try:
            message = DIDCommMessage.deserialize(parsed)
        except ValueError as err:
            raise MalformedEnvelopeError(str(err)) from err

        if sender_kid:
            if message.frm and did_of(sender_kid) != did_of(message.frm):
                raise MalformedEnvelopeError(
                    f"Sender key {sender_kid} does not belong to {message.frm}"
                )
        elif message.frm and Packing.ANONCRYPT in layers:
            LOG.debug("Dropping unauthenticated sender from anoncrypted message")
            message = replace(message, frm=None)

        return UnpackResult(
            message,
            layers[0] if layers else Packing.NONE,
            sender_kid,
            recipient_kid,
            layers,
        )

    async def _decrypt(
        self, envelope: Mapping[str, Any]
    ) -> Tuple[bytes, Packing, str, Optional[str]]:
        try:
            wrapper = JweEnvelope.deserialize(envelope)
        except ValueError as err:
            raise MalformedEnvelopeError(str(err)) from err

        alg = wrapper.alg or ""
        if alg.startswith("ECDH-1PU"):
            packing = Packing.AUTHCRYPT
        elif alg.startswith("ECDH-ES"):
            packing = Packing.ANONCRYPT
        else:
            raise MalformedEnvelopeError(f"Unsupported DIDComm encryption: {alg}")

        kids = list(wrapper.recipient_key_ids)
        if not kids:
            raise MalformedEnvelopeError("No recipient key ids")
        apv = wrapper.protected.get("apv")
        if not apv:
            raise MalformedEnvelopeError("Missing apv header")
        if apv != _apv_for(kids):
            raise MalformedEnvelopeError("Invalid apv value")

        recip_key = None
        for kid in kids:
            recip_key = await self.secrets.get_secret_by_kid(kid)
            if recip_key:
                break
        if not recip_key:
            raise DecryptionError("No recognized recipient key")

        raw = json.dumps(envelope)
        if packing == Packing.ANONCRYPT:
            try:
                payload = await self.crypto.ecdh_es_decrypt(raw, recip_key)
            except CryptoServiceError as err:
                raise DecryptionError("Could not decrypt message") from err
            return payload, packing, recip_key.kid, None

        sender_kid = self._sender_kid_of(wrapper)
        sender_vm = await self.resolver.resolve_and_dereference_verification_method(
            sender_kid
        )
        try:
            sender_key = self.crypto.verification_method_to_public_key(sender_vm)
        except ValueError as err:
            raise MalformedEnvelopeError(f"Unusable sender key {sender_kid}") from err

        try:
            payload = await self.crypto.ecdh_1pu_decrypt(raw, recip_key, sender_key)
        except CryptoServiceError as err:
            raise DecryptionError("Could not decrypt message") from err
        return payload, packing, recip_key.kid, sender_kid

    @staticmethod
    def _sender_kid_of(wrapper: JweEnvelope) -> str:
        apu = wrapper.protected.get("apu")
        if not apu:
            raise MalformedEnvelopeError("Missing apu header")
        try:
            sender_kid_apu = from_b64url(apu).decode("utf-8")
        except (UnicodeDecodeError, ValueError):
            raise MalformedEnvelopeError("Invalid apu value") from None

        sender_kid = wrapper.protected.get("skid") or sender_kid_apu
        if sender_kid != sender_kid_apu:
            raise MalformedEnvelopeError("Mismatch between skid and apu")
        if "#" not in sender_kid:
            raise MalformedEnvelopeError("Sender key ID is not a DID URL")
        return sender_kid

    async def _verify(self, envelope: Mapping[str, Any]) -> Tuple[bytes, str]:
        try:
            jws = JwsEnvelope.deserialize(envelope)
            payload = jws.payload
        except ValueError as err:
            raise MalformedEnvelopeError(str(err)) from err

        signature = jws.signatures[0]
        if signature.alg not in ("EdDSA", "Ed25519"):
            raise MalformedEnvelopeError(f"Unsupported signature alg: {signature.alg}")
        if not signature.kid or "#" not in signature.kid:
            raise MalformedEnvelopeError("Signature has no usable kid")

        vm = await self.resolver.resolve_and_dereference_verification_method(
            signature.kid
        )
        try:
            key = self.crypto.verification_method_to_public_key(vm)
        except ValueError as err:
            raise MalformedEnvelopeError(
                f"Unusable signer key {signature.kid}"
            ) from err

        try:
            verified = await self.crypto.verify(
                key, jws.signing_input(signature), signature.signature
            )
        except UnsupportedAlgorithmError as err:
            raise SignatureVerificationError(
                f"Key {signature.kid} cannot verify signatures"
            ) from err
        if not verified:
            raise SignatureVerificationError(
                f"Signature by {signature.kid} does not verify"
            )
        return payload, signature.kid


def media_type_of(packed: Union[str, bytes, Mapping[str, Any]]) -> str:
    """Return the DIDComm media type of a packed message from its framing."""
    if isinstance(packed, (str, bytes)):
        try:
            packed = json.loads(packed)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise MalformedEnvelopeError("Packed message is not JSON") from None
    if not isinstance(packed, dict):
        raise MalformedEnvelopeError("Packed message is not a JSON object")
    if "ciphertext" in packed:
        return ENCRYPTED_MEDIA_TYPE
    if "payload" in packed and ("signatures" in packed or "signature" in packed):
        return SIGNED_MEDIA_TYPE
    if "type" in packed and "id" in packed:
        return PLAINTEXT_MEDIA_TYPE
    raise MalformedEnvelopeError("Not a DIDComm message")
