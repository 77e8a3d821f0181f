"""DID Key Resolver."""

from nacl.bindings import crypto_sign_ed25519_pk_to_curve25519
from nacl.exceptions import CryptoError

from didcomm_agent.multiformats import multibase, multicodec
from didcomm_agent.resolver import DIDResolver, InvalidDID

VERIFICATION_RELATIONSHIPS = (
    "authentication",
    "assertionMethod",
    "capabilityDelegation",
    "capabilityInvocation",
)


def x25519_multikey_for_ed25519(multikey: str) -> str:
    """Derive the X25519 key agreement multikey of an Ed25519 multikey."""
    codec, key = multicodec.unwrap(multibase.decode(multikey))
    if codec.name != "ed25519-pub":
        raise ValueError(f"Expected an ed25519-pub multikey, got {codec.name}")
    try:
        converted = crypto_sign_ed25519_pk_to_curve25519(key)
    except CryptoError as err:
        raise ValueError("Invalid Ed25519 public key") from err
    return multibase.encode(multicodec.wrap("x25519-pub", converted), "base58btc")


class DIDKey(DIDResolver):
    """did:key resolver.

    Ed25519 keys get a derived X25519 key agreement method so that a did:key
    can be used for encrypted messaging; X25519 keys are key agreement only.
    """

    async def is_resolvable(self, did: str) -> bool:
        """Check to see if DID is resolvable by this resolver."""
        return did.startswith("did:key:z")

    async def resolve(self, did: str) -> dict:
        """Resolve a did:key."""
        if not await self.is_resolvable(did):
            raise InvalidDID(f"Not a did:key: {did}")

        multikey = did[len("did:key:") :]
        try:
            codec, _ = multicodec.unwrap(multibase.decode(multikey))
        except ValueError as err:
            raise InvalidDID(f"Invalid did:key: {did}") from err

        doc = {
            "@context": [
                "https://www.w3.org/ns/did/v1",
                "https://w3id.org/security/multikey/v1",
            ],
            "id": did,
            "verificationMethod": [],
        }

        if codec.name == "ed25519-pub":
            vm_id = f"{did}#{multikey}"
            doc["verificationMethod"].append(self._multikey_vm(did, vm_id, multikey))
            doc.update({rel: [vm_id] for rel in VERIFICATION_RELATIONSHIPS})
            multikey = x25519_multikey_for_ed25519(multikey)

        ka_id = f"{did}#{multikey}"
        doc["verificationMethod"].append(self._multikey_vm(did, ka_id, multikey))
        doc["keyAgreement"] = [ka_id]
        return doc

    @staticmethod
    def _multikey_vm(did: str, vm_id: str, multikey: str) -> dict:
        return {
            "id": vm_id,
            "type": "Multikey",
            "controller": did,
            "publicKeyMultibase": multikey,
        }
