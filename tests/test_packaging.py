"""Test PackagingService."""

import json

import pytest

from didcomm_agent.crypto.jwe import b64url, from_b64url
from didcomm_agent.crypto.jws import SIGNED_MEDIA_TYPE
from didcomm_agent.message import PLAINTEXT_MEDIA_TYPE, DIDCommMessage
from didcomm_agent.packaging import (
    ENCRYPTED_MEDIA_TYPE,
    DecryptionError,
    MalformedEnvelopeError,
    PackagingService,
    PackagingServiceError,
    Packing,
    SignatureVerificationError,
    UnsupportedPackingError,
    media_type_of,
)


@pytest.fixture
def message(alice, bob):
    yield DIDCommMessage(
        type="https://didcomm.org/basicmessage/2.0/message",
        frm=alice.did,
        to=[bob.did],
        body={"content": "hello world"},
    )


@pytest.mark.asyncio
async def test_plaintext(
    alice_packer: PackagingService, bob_packer: PackagingService, message
):
    packed = await alice_packer.pack(message, Packing.NONE)
    assert media_type_of(packed) == PLAINTEXT_MEDIA_TYPE

    result = await bob_packer.unpack(packed)
    assert result.message == message
    assert result.packing == Packing.NONE
    assert result.layers == []
    assert not result.encrypted
    assert not result.authenticated


@pytest.mark.asyncio
async def test_signed(
    alice_packer: PackagingService, bob_packer: PackagingService, alice, message
):
    packed = await alice_packer.pack(message, "jws")
    assert media_type_of(packed) == SIGNED_MEDIA_TYPE

    result = await bob_packer.unpack(packed)
    assert result.message == message
    assert result.packing == Packing.JWS
    assert result.sender_kid == alice.signing_kid
    assert result.authenticated
    assert not result.encrypted


@pytest.mark.asyncio
async def test_authcrypt(
    alice_packer: PackagingService,
    bob_packer: PackagingService,
    alice,
    bob,
    message,
):
    packed = await alice_packer.pack(message, Packing.AUTHCRYPT)
    assert media_type_of(packed) == ENCRYPTED_MEDIA_TYPE
    assert "hello world" not in packed

    result = await bob_packer.unpack(packed)
    assert result.message == message
    assert result.packing == Packing.AUTHCRYPT
    assert result.sender_kid == alice.agreement_kid
    assert result.recipient_kid == bob.agreement_kid
    assert result.encrypted and result.authenticated


@pytest.mark.asyncio
async def test_anoncrypt_hides_sender(
    alice_packer: PackagingService, bob_packer: PackagingService, alice, message
):
    packed = await alice_packer.pack(message, Packing.ANONCRYPT)
    assert alice.did not in packed

    result = await bob_packer.unpack(packed)
    assert result.message.frm is None
    assert result.message.body == message.body
    assert result.packing == Packing.ANONCRYPT
    assert result.sender_kid is None
    assert result.encrypted
    assert not result.authenticated


@pytest.mark.asyncio
@pytest.mark.parametrize("packing", [Packing.AUTHCRYPT, Packing.ANONCRYPT])
async def test_other_recipients_cannot_decrypt(
    alice_packer: PackagingService,
    eve_packer: PackagingService,
    message,
    packing,
):
    packed = await alice_packer.pack(message, packing)
    with pytest.raises(DecryptionError):
        await eve_packer.unpack(packed)


@pytest.mark.asyncio
async def test_tampered_ciphertext(
    alice_packer: PackagingService, bob_packer: PackagingService, message
):
    packed = json.loads(await alice_packer.pack(message, Packing.AUTHCRYPT))
    packed["ciphertext"] = b64url(b"not the ciphertext")
    with pytest.raises(DecryptionError):
        await bob_packer.unpack(json.dumps(packed))


@pytest.mark.asyncio
async def test_tampered_apv(
    alice_packer: PackagingService, bob_packer: PackagingService, message
):
    packed = json.loads(await alice_packer.pack(message, Packing.ANONCRYPT))
    protected = json.loads(from_b64url(packed["protected"]))
    protected["apv"] = b64url(b"somebody else")
    packed["protected"] = b64url(json.dumps(protected))
    with pytest.raises(MalformedEnvelopeError):
        await bob_packer.unpack(json.dumps(packed))


@pytest.mark.asyncio
async def test_tampered_signature_payload(
    alice_packer: PackagingService, bob_packer: PackagingService, message
):
    packed = json.loads(await alice_packer.pack(message, Packing.JWS))
    forged = DIDCommMessage(
        type=message.type, frm=message.frm, to=message.to, body={"content": "pay me"}
    )
    packed["payload"] = b64url(forged.to_json())
    with pytest.raises(SignatureVerificationError):
        await bob_packer.unpack(json.dumps(packed))


@pytest.mark.asyncio
async def test_sender_key_must_belong_to_sender(
    alice_packer: PackagingService, bob, message
):
    with pytest.raises(PackagingServiceError):
        await alice_packer.pack(message, Packing.AUTHCRYPT, bob.agreement_kid)


@pytest.mark.asyncio
async def test_unsupported_packing(alice_packer: PackagingService, message):
    with pytest.raises(UnsupportedPackingError):
        await alice_packer.pack(message, "rot13")


@pytest.mark.asyncio
async def test_malformed(bob_packer: PackagingService):
    with pytest.raises(MalformedEnvelopeError):
        await bob_packer.unpack("definitely not json")
    with pytest.raises(MalformedEnvelopeError):
        await bob_packer.unpack(json.dumps({"body": {}}))
    with pytest.raises(MalformedEnvelopeError):
        media_type_of("[]")
