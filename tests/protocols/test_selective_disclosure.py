"""Test selective disclosure between a verifier and a holder."""

import pytest

from didcomm_agent.agent import PluginExecutionError
from didcomm_agent.message import DIDCommMessage
from didcomm_agent.protocols.selective_disclosure import (
    ABSENT,
    REQUEST,
    RESPONSE,
    SelectiveDisclosure,
)
from didcomm_agent.quickstart import send_message


@pytest.fixture
async def bob_with_name(bob, carol):
    """Bob holds a credential from carol stating his name."""
    credential = await carol.agent.execute(
        "create_verifiable_credential",
        {
            "credential": {
                "issuer": carol.did,
                "credentialSubject": {"id": bob.did, "name": "Bob"},
            }
        },
    )
    handled = await bob.agent.execute(
        "handle_message", {"raw": credential["proof"]["jwt"]}
    )
    assert handled.get_metadata("CredentialVerified")
    yield bob


@pytest.mark.asyncio
async def test_partial_response(alice, bob_with_name, carol):
    bob = bob_with_name
    request = await alice.agent.execute(
        "create_selective_disclosure_request",
        {"frm": alice.did, "to": bob.did, "claims": ["name", "email"]},
    )
    await send_message(alice.agent, request)

    handled = await bob.receive()
    assert handled.type == REQUEST
    assert handled.get_metadata("SdrResponseSent")

    response = await alice.receive()
    assert response.type == RESPONSE
    assert response.thid == request.id

    claims = response.data["claims"]
    assert set(claims) == {"name", "email"}
    assert claims["name"]["present"] is True
    assert claims["name"]["value"] == "Bob"
    assert claims["name"]["issuer"] == carol.did
    assert claims["email"] == ABSENT
    assert response.get_metadata("SdrResponseReceived")[0].value == claims

    exchanges = alice.plugin(SelectiveDisclosure).exchanges
    assert exchanges.get(request.id) is None


@pytest.mark.asyncio
async def test_issuer_filter(bob_with_name, carol):
    bob = bob_with_name
    claims = await bob.agent.execute(
        "get_verifiable_claims_for_sdr",
        {
            "request": {
                "claims": [
                    {"claimType": "name", "issuers": [{"did": "did:example:other"}]}
                ]
            },
            "subject": bob.did,
        },
    )
    assert claims == {"name": ABSENT}

    claims = await bob.agent.execute(
        "get_verifiable_claims_for_sdr",
        {"request": {"claims": [{"claimType": "name", "issuers": [carol.did]}]}},
    )
    assert claims["name"]["present"] is True


@pytest.mark.asyncio
async def test_response_keeps_only_requested_claims(alice, bob):
    request = await alice.agent.execute(
        "create_selective_disclosure_request",
        {"frm": alice.did, "to": bob.did, "claims": [{"claimType": "name"}]},
    )
    response = DIDCommMessage(
        type=RESPONSE,
        frm=bob.did,
        to=alice.did,
        thid=request.id,
        body={
            "claims": {
                "name": {"present": "yes", "value": "Bob"},
                "ssn": {"present": True, "value": "123"},
            }
        },
    )
    await send_message(bob.agent, response)

    handled = await alice.receive()
    assert handled.data["claims"] == {"name": ABSENT}


@pytest.mark.asyncio
async def test_unknown_thread(alice, bob):
    response = DIDCommMessage(
        type=RESPONSE, frm=bob.did, to=alice.did, thid="nope", body={"claims": {}}
    )
    await send_message(bob.agent, response)

    handled = await alice.receive()
    assert handled.get_metadata("SdrUnknownThread")[0].value == "nope"
    assert not handled.get_metadata("SdrResponseReceived")


@pytest.mark.asyncio
async def test_invalid_request(alice, bob):
    with pytest.raises(PluginExecutionError) as exc:
        await alice.agent.execute(
            "create_selective_disclosure_request",
            {"frm": alice.did, "to": bob.did, "claims": [{"reason": "no type"}]},
        )
    assert isinstance(exc.value.cause, ValueError)
