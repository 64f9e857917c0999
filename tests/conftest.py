import pytest
from eth_account import Account

from erc20_utils import InMemoryERC20
from sign.withdraw_typed_data import (
    DomainDescriptor,
    WithdrawalMessage,
    build_signing_request,
    sign_withdrawal,
)
from token_vault import TokenVault

ALICE_KEY = "0x" + "11" * 32
BOB_KEY = "0x" + "22" * 32
MALLORY_KEY = "0x" + "33" * 32

VAULT_ADDRESS = "0x5615dEB798BB3E4dFa0139dFa1b3D433Cc23b72f"
CHAIN_ID = 11155111
START_TIME = 1_700_000_000
VAULT_FUNDING = 10**24


class FakeClock:
    def __init__(self, now=START_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def sign_for(private_key, domain, recipient, amount, nonce, deadline):
    message = WithdrawalMessage(recipient=recipient, amount=amount, nonce=nonce, deadline=deadline)
    return sign_withdrawal(private_key, build_signing_request(domain, message))


@pytest.fixture
def alice():
    return Account.from_key(ALICE_KEY)


@pytest.fixture
def bob():
    return Account.from_key(BOB_KEY)


@pytest.fixture
def mallory():
    return Account.from_key(MALLORY_KEY)


@pytest.fixture
def domain():
    return DomainDescriptor(chain_id=CHAIN_ID, verifying_contract=VAULT_ADDRESS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token(domain):
    t = InMemoryERC20(symbol="TKN", decimals=18)
    t.mint(domain.verifying_contract, VAULT_FUNDING)
    return t


@pytest.fixture
def vault(domain, token, clock):
    return TokenVault(domain, token, clock=clock)
