"""Authlib implementation of DIDComm crypto."""

import hashlib
import json
from typing import Mapping, Optional, Sequence, Tuple, Union

from authlib.jose import JsonWebEncryption, JsonWebKey, OKPKey
from authlib.jose.drafts import register_jwe_draft
from authlib.jose.rfc7517 import AsymmetricKey
from nacl.signing import SigningKey

from didcomm_agent.crypto.base import (
    CryptoService,
    CryptoServiceError,
    KeyType,
    PublicKey,
    SecretKey,
    UnsupportedAlgorithmError,
)
from didcomm_agent.multiformats import multibase, multicodec
from didcomm_agent.multiformats.multibase import Base64UrlEncoder
from didcomm_agent.resolver.document import VerificationMethod, absolute

register_jwe_draft(JsonWebEncryption)

b64url = Base64UrlEncoder()

ENCRYPTED_MEDIA_TYPE = "application/didcomm-encrypted+json"


def _key_type_of(key: AsymmetricKey) -> KeyType:
    crv = key.as_dict(is_private=False).get("crv")
    try:
        return KeyType(crv)
    except ValueError:
        raise UnsupportedAlgorithmError(f"Unsupported key curve: {crv}") from None


class AuthlibKey(PublicKey):
    """Authlib implementation of DIDComm PublicKey."""

    kty_crv_to_codec: Mapping[Tuple[str, Optional[str]], str] = {
        ("OKP", "Ed25519"): "ed25519-pub",
        ("OKP", "X25519"): "x25519-pub",
    }
    key_type_to_kty_crv: Mapping[KeyType, Tuple[str, str]] = {
        KeyType.ED25519: ("OKP", "Ed25519"),
        KeyType.X25519: ("OKP", "X25519"),
    }

    def __init__(self, key: AsymmetricKey, kid: str):
        """Initialize the AuthlibKey."""
        self.key = key
        self._kid = kid
        self._multikey = self.key_to_multikey(key)

    @property
    def kid(self) -> str:
        """Return the key ID."""
        return self._kid

    @property
    def key_type(self) -> KeyType:
        """Return the key type."""
        return _key_type_of(self.key)

    @property
    def multikey(self) -> str:
        """Return the key in multikey format."""
        return self._multikey

    @classmethod
    def key_to_multikey(cls, key: AsymmetricKey) -> str:
        """Convert an Authlib key to a multikey."""
        jwk = key.as_dict(is_private=False)
        codec = cls.kty_crv_to_codec.get((jwk["kty"], jwk.get("crv")))

        if not codec:
            raise ValueError("Unsupported key type")

        key_bytes = b64url.decode(jwk["x"])
        return multibase.encode(
            multicodec.wrap(multicodec.multicodec(codec), key_bytes), "base58btc"
        )

    @classmethod
    def key_from_bytes(cls, key_type: KeyType, key_bytes: bytes) -> AsymmetricKey:
        """Import raw public key bytes as an Authlib key."""
        kty, crv = cls.key_type_to_kty_crv[key_type]
        jwk = {"kty": kty, "crv": crv, "x": b64url.encode(key_bytes)}
        try:
            return JsonWebKey.import_key(jwk)
        except Exception as err:
            raise ValueError("Invalid key") from err

    @classmethod
    def from_verification_method(cls, vm: VerificationMethod) -> "AuthlibKey":
        """Return a PublicKey from a verification method."""
        kid = absolute(vm.id, vm.controller)

        if vm.public_key_jwk:
            if (vm.public_key_jwk.get("kty"), vm.public_key_jwk.get("crv")) not in (
                cls.kty_crv_to_codec
            ):
                raise ValueError("Unsupported JWK key type")
            try:
                return cls(JsonWebKey.import_key(vm.public_key_jwk), kid)
            except Exception as err:
                raise ValueError("Invalid JWK") from err

        key_type, key_bytes = cls.key_bytes_from_verification_method(vm)
        return cls(cls.key_from_bytes(key_type, key_bytes), kid)


class AuthlibSecretKey(SecretKey):
    """Authlib implementation of SecretKey."""

    def __init__(self, key: AsymmetricKey, kid: str):
        """Initialize the AuthlibSecretKey."""
        self.key = key
        self._kid = kid

    @property
    def kid(self) -> str:
        """Return the key ID."""
        return self._kid

    @property
    def key_type(self) -> KeyType:
        """Return the key type."""
        return _key_type_of(self.key)

    def with_kid(self, kid: str) -> "AuthlibSecretKey":
        """Return this key under another key ID."""
        return AuthlibSecretKey(self.key, kid)

    def as_public_key(self) -> AuthlibKey:
        """Return the public half of this key."""
        return AuthlibKey(
            JsonWebKey.import_key(self.key.as_dict(is_private=False)), self.kid
        )


class AuthlibCryptoService(CryptoService[AuthlibKey, AuthlibSecretKey]):
    """Authlib implementation of CryptoService."""

    @classmethod
    def verification_method_to_public_key(cls, vm: VerificationMethod) -> AuthlibKey:
        """Return a PublicKey from a verification method."""
        return AuthlibKey.from_verification_method(vm)

    @staticmethod
    def _apv(to: Sequence[AuthlibKey]) -> str:
        kids = [to_key.kid for to_key in to]
        return b64url.encode(hashlib.sha256((".".join(sorted(kids))).encode()).digest())

    def _build_header_ecdh_1pu(
        self, to: Sequence[AuthlibKey], frm: AuthlibSecretKey, alg: str, enc: str
    ):
        skid = frm.kid
        protected = {
            "typ": ENCRYPTED_MEDIA_TYPE,
            "alg": alg,
            "enc": enc,
            "apu": b64url.encode(skid.encode()),
            "apv": self._apv(to),
            "skid": skid,
        }
        recipients = [{"header": {"kid": to_key.kid}} for to_key in to]
        return {"protected": protected, "recipients": recipients}

    def _build_header_ecdh_es(self, to: Sequence[AuthlibKey], alg: str, enc: str):
        protected = {
            "typ": ENCRYPTED_MEDIA_TYPE,
            "alg": alg,
            "enc": enc,
            "apv": self._apv(to),
        }
        recipients = [{"header": {"kid": to_key.kid}} for to_key in to]
        return {"protected": protected, "recipients": recipients}

    async def ecdh_es_encrypt(
        self, to_keys: Sequence[AuthlibKey], message: bytes
    ) -> bytes:
        """Encrypt a message using ECDH-ES."""
        header = self._build_header_ecdh_es(to_keys, "ECDH-ES+A256KW", "XC20P")
        jwe = JsonWebEncryption()
        res = jwe.serialize_json(header, message, [value.key for value in to_keys])
        return json.dumps(res).encode()

    async def ecdh_es_decrypt(
        self, enc_message: Union[str, bytes], recip_key: AuthlibSecretKey
    ) -> bytes:
        """Decrypt a message using ECDH-ES."""
        try:
            jwe = JsonWebEncryption()
            res = jwe.deserialize_json(enc_message, (recip_key.kid, recip_key.key))
        except Exception as err:
            raise CryptoServiceError("Invalid JWE") from err

        return res["payload"]

    async def ecdh_1pu_encrypt(
        self,
        to_keys: Sequence[AuthlibKey],
        sender_key: AuthlibSecretKey,
        message: bytes,
    ) -> bytes:
        """Encrypt a message using ECDH-1PU."""
        header = self._build_header_ecdh_1pu(
            to_keys, sender_key, "ECDH-1PU+A256KW", "A256CBC-HS512"
        )
        jwe = JsonWebEncryption()
        res = jwe.serialize_json(
            header, message, [value.key for value in to_keys], sender_key=sender_key.key
        )
        return json.dumps(res).encode()

    async def ecdh_1pu_decrypt(
        self,
        enc_message: Union[str, bytes],
        recip_key: AuthlibSecretKey,
        sender_key: AuthlibKey,
    ) -> bytes:
        """Decrypt a message using ECDH-1PU."""
        try:
            jwe = JsonWebEncryption()
            res = jwe.deserialize_json(
                enc_message, (recip_key.kid, recip_key.key), sender_key=sender_key.key
            )
        except Exception as err:
            raise CryptoServiceError("Invalid JWE") from err

        return res["payload"]

    async def sign(self, secret: AuthlibSecretKey, message: bytes) -> bytes:
        """Sign a message with an Ed25519 key."""
        if secret.key_type != KeyType.ED25519:
            raise UnsupportedAlgorithmError(
                f"Key {secret.kid} of type {secret.key_type.value} cannot sign"
            )
        return secret.key.get_private_key().sign(message)

    async def verify(self, key: AuthlibKey, message: bytes, signature: bytes) -> bool:
        """Verify an Ed25519 signature."""
        if key.key_type != KeyType.ED25519:
            raise UnsupportedAlgorithmError(
                f"Key {key.kid} of type {key.key_type.value} cannot verify"
            )
        try:
            key.key.get_public_key().verify(signature, message)
        except Exception:
            return False
        return True

    async def generate_secret_key(
        self, key_type: KeyType, kid: Optional[str] = None
    ) -> AuthlibSecretKey:
        """Generate a new OKP key."""
        key = OKPKey.generate_key(KeyType(key_type).value, is_private=True)
        return AuthlibSecretKey(key, kid or AuthlibKey.key_to_multikey(key))

    async def derive_agreement_key(
        self, secret: AuthlibSecretKey, kid: str
    ) -> AuthlibSecretKey:
        """Convert an Ed25519 signing key to its X25519 counterpart."""
        if secret.key_type != KeyType.ED25519:
            raise UnsupportedAlgorithmError("Only Ed25519 keys can be converted")
        seed = b64url.decode(secret.key.as_dict(is_private=True)["d"])
        private = SigningKey(seed).to_curve25519_private_key()
        jwk = {
            "kty": "OKP",
            "crv": "X25519",
            "d": b64url.encode(bytes(private)),
            "x": b64url.encode(bytes(private.public_key)),
        }
        return AuthlibSecretKey(JsonWebKey.import_key(jwk), kid)
