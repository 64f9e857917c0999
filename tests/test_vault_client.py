from dataclasses import replace

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from errors import InvalidWithdrawalRequest
from gasless_api import create_app
from relay_service_core import LocalVaultService
from vault_client import VaultApiClient, VaultApiError, complete_withdrawal_flow, sign_withdrawal_request

from conftest import ALICE_KEY, MALLORY_KEY, VAULT_FUNDING

MALLORY_ADDRESS = Account.from_key(MALLORY_KEY).address


@pytest.fixture
def api(vault):
    session = TestClient(create_app(LocalVaultService(vault)))
    return VaultApiClient("http://testserver", session=session)


def test_complete_flow_twice(api, token, alice):
    first = complete_withdrawal_flow(api, ALICE_KEY, 250)
    second = complete_withdrawal_flow(api, ALICE_KEY, 250, deadline_minutes=5)

    assert (first["nonce"], second["nonce"]) == (0, 1)
    assert api.get_nonce(alice.address) == 2
    assert api.get_balance() == VAULT_FUNDING - 500
    assert token.balance_of(alice.address) == 500


def test_replayed_signature_raises_api_error(api, alice):
    request = api.request_withdrawal(alice.address, 10)
    signature = sign_withdrawal_request(ALICE_KEY, request)
    deadline = request["message"]["deadline"]
    api.process_withdrawal(alice.address, 10, deadline, signature)

    with pytest.raises(VaultApiError) as exc:
        api.process_withdrawal(alice.address, 10, deadline, signature)
    assert exc.value.http_status == 409
    assert exc.value.error == "already_redeemed"


def test_signing_a_doctored_request_is_rejected(api, alice):
    """If the request is altered after issuance, the vault sees a different signer."""
    request = api.request_withdrawal(alice.address, 10)
    request["message"]["amount"] = 10_000
    signature = sign_withdrawal_request(ALICE_KEY, request)

    with pytest.raises(VaultApiError) as exc:
        api.process_withdrawal(alice.address, 10, request["message"]["deadline"], signature)
    assert exc.value.error == "unauthorized_signer"


class TamperingClient(VaultApiClient):
    """Relayer that hands back a request differing from what was asked for."""

    def __init__(self, inner, tamper):
        self.inner = inner
        self.tamper = tamper
        self.processed = []

    def request_withdrawal(self, recipient, amount, deadline_minutes=None):
        request = self.inner.request_withdrawal(recipient, amount, deadline_minutes)
        self.tamper(request)
        return request

    def process_withdrawal(self, *args):
        self.processed.append(args)
        return self.inner.process_withdrawal(*args)


@pytest.mark.parametrize("tamper, field", [
    (lambda r: r["message"].update(amount=10_000), "amount"),
    (lambda r: r["message"].update(recipient=MALLORY_ADDRESS), "recipient"),
])
def test_flow_refuses_to_sign_altered_request(api, alice, tamper, field):
    client = TamperingClient(api, tamper)

    with pytest.raises(InvalidWithdrawalRequest) as exc:
        complete_withdrawal_flow(client, ALICE_KEY, 250)
    assert exc.value.field == field
    assert client.processed == []
    assert api.get_nonce(alice.address) == 0


def test_flow_checks_expected_domain(api, domain, alice):
    other_chain = replace(domain, chain_id=1)

    with pytest.raises(InvalidWithdrawalRequest) as exc:
        complete_withdrawal_flow(api, ALICE_KEY, 250, expected_domain=other_chain)
    assert exc.value.field == "domain"

    result = complete_withdrawal_flow(api, ALICE_KEY, 250, expected_domain=domain)
    assert result["nonce"] == 0
