"""JWT verifiable credentials and presentations."""

from datetime import datetime, timezone
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from didcomm_agent.agent import AgentContext, AgentError
from didcomm_agent.crypto import CryptoService, CryptoServiceError, KeyNotFoundError
from didcomm_agent.crypto.jws import CompactJws, parse_compact, sign_compact
from didcomm_agent.plugin import AgentPlugin, Capability
from didcomm_agent.resolver.document import DIDDocument, VerificationMethod, did_of

LOG = logging.getLogger(__name__)

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
PROOF_TYPE = "JwtProof2020"
MAX_TIMESTAMP = 253402300799


def _timestamp_to_date(value: int) -> str:
    return (
        datetime.fromtimestamp(value, tz=timezone.utc)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _check_timestamp(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if not 0 <= value <= MAX_TIMESTAMP:
        raise ValueError(f"{name} is out of range")


def _issuer_id(issuer: Any) -> Optional[str]:
    if isinstance(issuer, dict):
        return issuer.get("id")
    return issuer


def _token_of(value: Union[str, Mapping[str, Any]]) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        proof = value.get("proof")
        if isinstance(proof, Mapping) and isinstance(proof.get("jwt"), str):
            return proof["jwt"]
    raise ValueError("Only JWT proofs are supported")


class CredentialIssuer(AgentPlugin):
    """Issue and verify credentials and presentations as JWTs.

    Verification reports failures in its result instead of raising.
    """

    capabilities = (Capability.CREDENTIAL_ISSUER,)

    def __init__(self, crypto: CryptoService, clock: Callable[[], float] = time.time):
        """Initialize the plugin."""
        self.crypto = crypto
        self.clock = clock

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "create_verifiable_credential": self.create_verifiable_credential,
            "verify_credential": self.verify_credential,
            "create_verifiable_presentation": self.create_verifiable_presentation,
            "verify_presentation": self.verify_presentation,
        }

    async def _signing_kid(
        self, context: AgentContext, did: str, key_ref: Optional[str]
    ) -> str:
        if key_ref:
            return key_ref
        doc = DIDDocument.deserialize(
            await context.execute("resolve_did", {"did": did})
        )
        held = {key["kid"] for key in await context.execute("key_manager_list_keys")}
        for vm in doc.methods_for("assertion_method") + doc.methods_for(
            "authentication"
        ):
            if vm.id in held:
                return vm.id
        raise KeyNotFoundError(f"No signing key held for {did}")

    async def _sign(
        self, context: AgentContext, payload: Dict[str, Any], kid: str
    ) -> str:
        async def _signer(data: bytes) -> bytes:
            return await context.execute("key_manager_sign", {"kid": kid, "data": data})

        return await sign_compact(payload, kid, _signer)

    async def create_verifiable_credential(
        self,
        context: AgentContext,
        credential: Mapping[str, Any],
        key_ref: Optional[str] = None,
        expires_at: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Issue a credential signed by its issuer."""
        issuer = _issuer_id(credential.get("issuer"))
        if not issuer:
            raise ValueError("Credential has no issuer")

        now = int(self.clock())
        credential = {
            "@context": [CREDENTIALS_CONTEXT],
            "type": ["VerifiableCredential"],
            "issuanceDate": _timestamp_to_date(now),
            **credential,
        }
        subject = credential.get("credentialSubject") or {}
        payload: Dict[str, Any] = {
            "iss": issuer,
            "nbf": now,
            "vc": {
                key: value
                for key, value in credential.items()
                if key not in ("issuer", "issuanceDate", "proof")
            },
        }
        if subject.get("id"):
            payload["sub"] = subject["id"]
        if credential.get("id"):
            payload["jti"] = credential["id"]
        if expires_at is not None:
            _check_timestamp(expires_at, "expires_at")
            payload["exp"] = expires_at

        kid = await self._signing_kid(context, issuer, key_ref)
        token = await self._sign(context, payload, kid)
        return {**credential, "proof": {"type": PROOF_TYPE, "jwt": token}}

    async def create_verifiable_presentation(
        self,
        context: AgentContext,
        presentation: Mapping[str, Any],
        key_ref: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a presentation signed by its holder."""
        holder = presentation.get("holder")
        if not holder:
            raise ValueError("Presentation has no holder")

        presentation = {
            "@context": [CREDENTIALS_CONTEXT],
            "type": ["VerifiablePresentation"],
            **presentation,
        }
        payload: Dict[str, Any] = {
            "iss": holder,
            "nbf": int(self.clock()),
            "vp": {
                **{
                    key: value
                    for key, value in presentation.items()
                    if key not in ("holder", "proof")
                },
                "verifiableCredential": [
                    _token_of(credential)
                    for credential in presentation.get("verifiableCredential", [])
                ],
            },
        }
        if audience:
            payload["aud"] = audience

        kid = await self._signing_kid(context, holder, key_ref)
        token = await self._sign(context, payload, kid)
        return {**presentation, "proof": {"type": PROOF_TYPE, "jwt": token}}

    async def _verify_jwt(
        self, context: AgentContext, token: str, claim: str
    ) -> CompactJws:
        jwt = parse_compact(token)
        payload = jwt.payload
        if not isinstance(payload.get(claim), dict):
            raise ValueError(f"JWT has no {claim} claim")
        subject = payload[claim].get("credentialSubject")
        if subject is not None and not isinstance(subject, dict):
            raise ValueError("JWT credentialSubject must be an object")
        if jwt.header.get("alg") not in ("EdDSA", "Ed25519"):
            raise ValueError(f"Unsupported JWT alg: {jwt.header.get('alg')}")
        if not jwt.kid or did_of(jwt.kid) != payload.get("iss"):
            raise ValueError("JWT signer does not match its issuer")

        vm = VerificationMethod.model_validate(
            await context.execute("get_did_component_by_id", {"did_url": jwt.kid})
        )
        key = self.crypto.verification_method_to_public_key(vm)
        if not await self.crypto.verify(key, jwt.signing_input, jwt.signature):
            raise ValueError("JWT signature does not verify")

        for name in ("exp", "nbf"):
            if name in payload:
                _check_timestamp(payload[name], f"JWT {name} claim")
        now = self.clock()
        if "exp" in payload and now >= payload["exp"]:
            raise ValueError("JWT has expired")
        if "nbf" in payload and now < payload["nbf"]:
            raise ValueError("JWT is not yet valid")
        return jwt

    @staticmethod
    def _credential_from_payload(payload: Mapping[str, Any], token: str) -> dict:
        credential = dict(payload["vc"])
        credential["issuer"] = payload["iss"]
        if payload.get("sub"):
            credential["credentialSubject"] = {
                **credential.get("credentialSubject", {}),
                "id": payload["sub"],
            }
        if payload.get("jti"):
            credential["id"] = payload["jti"]
        if payload.get("nbf") is not None:
            credential["issuanceDate"] = _timestamp_to_date(payload["nbf"])
        if payload.get("exp") is not None:
            credential["expirationDate"] = _timestamp_to_date(payload["exp"])
        credential["proof"] = {"type": PROOF_TYPE, "jwt": token}
        return credential

    async def verify_credential(
        self, context: AgentContext, credential: Union[str, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Verify a JWT credential."""
        try:
            token = _token_of(credential)
            jwt = await self._verify_jwt(context, token, "vc")
        except (ValueError, AgentError, CryptoServiceError) as err:
            LOG.debug("Credential verification failed: %s", err)
            return {"verified": False, "error": str(err)}
        return {
            "verified": True,
            "credential": self._credential_from_payload(jwt.payload, token),
        }

    async def verify_presentation(
        self, context: AgentContext, presentation: Union[str, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Verify a JWT presentation and every credential it embeds."""
        try:
            token = _token_of(presentation)
            jwt = await self._verify_jwt(context, token, "vp")
        except (ValueError, AgentError, CryptoServiceError) as err:
            LOG.debug("Presentation verification failed: %s", err)
            return {"verified": False, "error": str(err)}

        embedded_credentials = jwt.payload["vp"].get("verifiableCredential", [])
        if not isinstance(embedded_credentials, list):
            LOG.debug("Presentation verification failed: bad verifiableCredential")
            return {
                "verified": False,
                "error": "Presentation verifiableCredential must be a list",
            }

        credentials: List[dict] = []
        for embedded in embedded_credentials:
            result = await self.verify_credential(context, embedded)
            if not result["verified"]:
                return {
                    "verified": False,
                    "error": f"Embedded credential is invalid: {result['error']}",
                }
            credentials.append(result["credential"])

        verified = dict(jwt.payload["vp"])
        verified["holder"] = jwt.payload["iss"]
        verified["verifiableCredential"] = credentials
        verified["proof"] = {"type": PROOF_TYPE, "jwt": token}
        return {"verified": True, "presentation": verified}
