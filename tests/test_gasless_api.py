import pytest
from fastapi.testclient import TestClient

from gasless_api import create_app
from relay_service_core import LocalVaultService

from conftest import ALICE_KEY, BOB_KEY, START_TIME, VAULT_FUNDING, sign_for


@pytest.fixture
def client(vault):
    return TestClient(create_app(LocalVaultService(vault)))


def _issue(client, recipient, amount=1000):
    resp = client.post("/api/withdrawal/request", json={"recipient": recipient, "amount": str(amount)})
    assert resp.status_code == 200
    return resp.json()["data"]


def test_health(client):
    assert client.get("/health").json() == {"status": "OK"}


def test_balance_and_nonce(client, alice):
    data = client.get("/api/balance").json()["data"]
    assert data == {"balance": str(VAULT_FUNDING), "formatted": "1000000"}

    resp = client.get(f"/api/nonce/{alice.address}")
    assert resp.json() == {"code": 0, "data": {"address": alice.address, "nonce": 0}}


def test_request_then_process(client, domain, alice):
    data = _issue(client, alice.address)
    assert set(data) == {"domain", "types", "message"}
    assert data["message"]["deadline"] == START_TIME + 1800

    msg = data["message"]
    sig = sign_for(ALICE_KEY, domain, alice.address, 1000, msg["nonce"], msg["deadline"])
    resp = client.post("/api/withdrawal/process", json={
        "recipient": alice.address, "amount": "1000", "deadline": msg["deadline"], "signature": sig,
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["nonce"] == 0
    assert client.get(f"/api/nonce/{alice.address}").json()["data"]["nonce"] == 1

    replay = client.post("/api/withdrawal/process", json={
        "recipient": alice.address, "amount": "1000", "deadline": msg["deadline"], "signature": sig,
    })
    assert replay.status_code == 409
    assert replay.json()["error"] == "already_redeemed"
    assert replay.json()["remediation"] == "already_used"


def test_process_rejects_explicit_nonce(client, domain, alice):
    sig = sign_for(ALICE_KEY, domain, alice.address, 1000, 5, START_TIME + 60)
    resp = client.post("/api/withdrawal/process", json={
        "recipient": alice.address, "amount": "1000", "deadline": START_TIME + 60,
        "signature": sig, "nonce": 5,
    })
    assert resp.status_code == 422


@pytest.mark.parametrize("signer_key, deadline, clock_shift, status, error", [
    (BOB_KEY, START_TIME + 60, 0, 403, "unauthorized_signer"),
    (ALICE_KEY, START_TIME + 60, 61, 410, "expired_authorization"),
])
def test_error_mapping(client, clock, domain, alice, signer_key, deadline, clock_shift, status, error):
    sig = sign_for(signer_key, domain, alice.address, 1000, 0, deadline)
    clock.advance(clock_shift)
    resp = client.post("/api/withdrawal/process", json={
        "recipient": alice.address, "amount": "1000", "deadline": deadline, "signature": sig,
    })
    assert resp.status_code == status
    assert resp.json()["code"] == 1
    assert resp.json()["error"] == error
    assert resp.json()["retryable"] is False


def test_malformed_signature_and_bad_address(client, alice):
    resp = client.post("/api/withdrawal/process", json={
        "recipient": alice.address, "amount": "1", "deadline": START_TIME + 60, "signature": "0x1234",
    })
    assert resp.status_code == 400
    assert resp.json()["error"] == "malformed_signature"
    assert resp.json()["remediation"] == "resign"

    resp = client.post("/api/withdrawal/request", json={"recipient": "0xbad", "amount": "1"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"
