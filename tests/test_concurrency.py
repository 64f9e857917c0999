import threading
import time

from eth_account import Account

from errors import StaleNonce
from nonce_store import InMemoryNonceStore

from conftest import ALICE_KEY, START_TIME, sign_for

DEADLINE = START_TIME + 1800


class SlowToken:
    """Wraps a token and sleeps inside transfer to widen any race window."""

    def __init__(self, inner, delay=0.05):
        self.inner = inner
        self.delay = delay

    def balance_of(self, owner):
        return self.inner.balance_of(owner)

    def transfer(self, sender, to, amount):
        time.sleep(self.delay)
        self.inner.transfer(sender, to, amount)


def _run_all(targets):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def test_same_nonce_race_has_exactly_one_winner(vault, domain, token, alice):
    """Two redemptions built against nonce 0 submitted at once: one succeeds, one is stale."""
    vault.token = SlowToken(token)
    sig_a = sign_for(ALICE_KEY, domain, alice.address, 100, 0, DEADLINE)
    sig_b = sign_for(ALICE_KEY, domain, alice.address, 200, 0, DEADLINE)

    results = {"success": [], "stale": []}
    lock = threading.Lock()

    def redeem(amount, sig):
        def run():
            try:
                vault.withdraw_to(alice.address, amount, DEADLINE, sig)
                with lock:
                    results["success"].append(amount)
            except StaleNonce:
                with lock:
                    results["stale"].append(amount)
        return run

    _run_all([redeem(100, sig_a), redeem(200, sig_b)])

    assert len(results["success"]) == 1
    assert len(results["stale"]) == 1
    assert vault.nonces(alice.address) == 1
    assert token.balance_of(alice.address) == results["success"][0]


def test_identical_replay_race_pays_once(vault, domain, token, alice):
    sig = sign_for(ALICE_KEY, domain, alice.address, 100, 0, DEADLINE)
    outcomes = []
    lock = threading.Lock()

    def redeem():
        try:
            vault.withdraw_to(alice.address, 100, DEADLINE, sig)
            outcome = "ok"
        except StaleNonce as e:
            outcome = e.code
        with lock:
            outcomes.append(outcome)

    _run_all([redeem for _ in range(8)])

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_redeemed") == 7
    assert token.balance_of(alice.address) == 100
    assert vault.nonces(alice.address) == 1


class RendezvousToken(SlowToken):
    """Every transfer waits until `parties` transfers are in flight at the same time."""

    def __init__(self, inner, parties, timeout=5):
        super().__init__(inner, delay=0)
        self.barrier = threading.Barrier(parties, timeout=timeout)

    def transfer(self, sender, to, amount):
        # BrokenBarrierError here means the transfers ran one after another
        self.barrier.wait()
        self.inner.transfer(sender, to, amount)


def test_different_accounts_proceed_in_parallel(vault, domain, token):
    keys = ["0x" + f"{i:02x}" * 32 for i in range(0x41, 0x45)]
    accounts = [Account.from_key(k) for k in keys]
    sigs = [sign_for(k, domain, a.address, 5, 0, DEADLINE) for k, a in zip(keys, accounts)]
    vault.token = RendezvousToken(token, parties=len(accounts))
    errors = []

    def redeem(account, sig):
        try:
            vault.withdraw_to(account.address, 5, DEADLINE, sig)
        except Exception as e:
            errors.append(e)

    _run_all([(lambda a=a, s=s: redeem(a, s)) for a, s in zip(accounts, sigs)])

    assert errors == []
    assert not vault.token.barrier.broken
    for a in accounts:
        assert vault.nonces(a.address) == 1
        assert token.balance_of(a.address) == 5


def test_nonce_store_never_loses_increments():
    store = InMemoryNonceStore()
    account = Account.from_key(ALICE_KEY).address

    def bump_many():
        for _ in range(200):
            with store.reserve(account) as reservation:
                reservation.commit()

    _run_all([bump_many for _ in range(8)])
    assert store.get(account) == 1600


def test_uncommitted_reservation_leaves_nonce_unchanged():
    store = InMemoryNonceStore()
    account = Account.from_key(ALICE_KEY).address
    try:
        with store.reserve(account) as reservation:
            assert reservation.nonce == 0
            raise RuntimeError("abort")
    except RuntimeError:
        pass
    assert store.get(account) == 0
