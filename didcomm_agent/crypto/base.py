"""CryptoService and SecretsManager interfaces for the agent."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Generic, Mapping, Optional, Sequence, Set, Tuple, TypeVar, Union

from didcomm_agent.multiformats import multibase, multicodec
from didcomm_agent.resolver.document import VerificationMethod


class CryptoServiceError(Exception):
    """Represents an error from a CryptoService."""


class KeyNotFoundError(CryptoServiceError):
    """Raised when a key reference cannot be found or resolved."""


class UnsupportedAlgorithmError(CryptoServiceError):
    """Raised when a key cannot perform the requested operation."""


class KeyType(str, Enum):
    """Key types supported by the agent."""

    ED25519 = "Ed25519"
    X25519 = "X25519"


class PublicKey(ABC):
    """Key representation for CryptoService."""

    type_to_codec: Mapping[str, str] = {
        "Ed25519VerificationKey2018": "ed25519-pub",
        "X25519KeyAgreementKey2019": "x25519-pub",
        "Ed25519VerificationKey2020": "ed25519-pub",
        "X25519KeyAgreementKey2020": "x25519-pub",
    }
    codec_to_key_type: Mapping[str, KeyType] = {
        "ed25519-pub": KeyType.ED25519,
        "x25519-pub": KeyType.X25519,
    }

    @classmethod
    @abstractmethod
    def from_verification_method(cls, vm: VerificationMethod) -> "PublicKey":
        """Create a Key instance from a DID Document Verification Method."""

    @classmethod
    def key_bytes_from_verification_method(
        cls, vm: VerificationMethod
    ) -> Tuple[KeyType, bytes]:
        """Get the key type and raw key bytes from a multibase or base58 method."""
        if vm.public_key_multibase and vm.public_key_base58:
            raise ValueError(
                "Only one of public_key_multibase or public_key_base58 must be given"
            )

        expected_codec = cls.type_to_codec.get(vm.type)
        if vm.type != "Multikey" and not expected_codec:
            raise ValueError(f"Unsupported verification method type: {vm.type}")

        if vm.public_key_multibase:
            decoded = multibase.decode(vm.public_key_multibase)
            if len(decoded) == 32 and expected_codec:
                return cls.codec_to_key_type[expected_codec], decoded
            codec, decoded = multicodec.unwrap(decoded)
            if expected_codec and codec.name != expected_codec:
                raise ValueError("Type and codec mismatch")
            return cls.codec_to_key_type[codec.name], decoded

        if vm.public_key_base58 and expected_codec:
            return (
                cls.codec_to_key_type[expected_codec],
                multibase.decode("z" + vm.public_key_base58),
            )

        raise ValueError(f"No usable key material in verification method {vm.id}")

    @property
    @abstractmethod
    def kid(self) -> str:
        """Get the key ID."""

    @property
    @abstractmethod
    def key_type(self) -> KeyType:
        """Get the key type."""

    @property
    @abstractmethod
    def multikey(self) -> str:
        """Get the key in multikey format."""


class SecretKey(ABC):
    """Secret Key Type."""

    @property
    @abstractmethod
    def kid(self) -> str:
        """Get the key ID."""

    @property
    @abstractmethod
    def key_type(self) -> KeyType:
        """Get the key type."""

    @abstractmethod
    def with_kid(self, kid: str) -> "SecretKey":
        """Return the same key material addressed by another key ID."""

    @abstractmethod
    def as_public_key(self) -> PublicKey:
        """Return the public half of this key."""


P = TypeVar("P", bound=PublicKey)
S = TypeVar("S", bound=SecretKey)


class CryptoService(ABC, Generic[P, S]):
    """Key Management Service (CryptoService) interface for the agent."""

    @abstractmethod
    async def ecdh_es_encrypt(self, to_keys: Sequence[P], message: bytes) -> bytes:
        """Encode a message into DIDComm v2 anonymous encryption."""

    @abstractmethod
    async def ecdh_es_decrypt(self, wrapper: Union[str, bytes], recip_key: S) -> bytes:
        """Decode a message from DIDComm v2 anonymous encryption."""

    @abstractmethod
    async def ecdh_1pu_encrypt(
        self,
        to_keys: Sequence[P],
        sender_key: S,
        message: bytes,
    ) -> bytes:
        """Encode a message into DIDComm v2 authenticated encryption."""

    @abstractmethod
    async def ecdh_1pu_decrypt(
        self,
        wrapper: Union[str, bytes],
        recip_key: S,
        sender_key: P,
    ) -> bytes:
        """Decode a message from DIDComm v2 authenticated encryption."""

    @abstractmethod
    async def sign(self, secret: S, message: bytes) -> bytes:
        """Sign a message, raising UnsupportedAlgorithmError for non-signing keys."""

    @abstractmethod
    async def verify(self, key: P, message: bytes, signature: bytes) -> bool:
        """Verify a signature over a message."""

    @abstractmethod
    async def generate_secret_key(
        self, key_type: KeyType, kid: Optional[str] = None
    ) -> S:
        """Generate a new secret key.

        When no kid is given the key is identified by its multikey.
        """

    @abstractmethod
    async def derive_agreement_key(self, secret: S, kid: str) -> S:
        """Derive the X25519 key agreement key of an Ed25519 signing key."""

    @classmethod
    @abstractmethod
    def verification_method_to_public_key(cls, vm: VerificationMethod) -> P:
        """Convert a verification method to a public key."""


class SecretsManager(ABC, Generic[S]):
    """Secrets Resolver interface.

    The secrets manager holds private key material on behalf of the agent and
    is consulted whenever a message must be signed or decrypted.
    """

    @abstractmethod
    async def get_secret_by_kid(self, kid: str) -> Optional[S]:
        """Get a secret key by its ID."""

    @abstractmethod
    async def available_kids(self) -> Set[str]:
        """Return the IDs of every secret held."""
