# nonce_store.py
# 每个账户一个 nonce 计数器，只由验证方修改。
# 同一账户的读/改都在该账户的锁内完成；不同账户互不阻塞。
import threading
from contextlib import contextmanager

from eth_utils import to_checksum_address


class NonceReservation:
    """
    reserve() 期间持有账户锁。commit() 把 nonce +1；
    未 commit 就退出（包括抛异常）则计数器不变。
    """

    def __init__(self, store, account, nonce):
        self._store = store
        self.account = account
        self.nonce = nonce
        self.committed = False

    def commit(self) -> int:
        if self.committed:
            raise RuntimeError(f"nonce {self.nonce} for {self.account} already committed")
        self._store._nonces[self.account] = self.nonce + 1
        self.committed = True
        return self.nonce + 1


class InMemoryNonceStore:
    def __init__(self, initial=None):
        self._nonces = {}
        self._locks = {}
        self._guard = threading.Lock()
        for account, nonce in (initial or {}).items():
            self._nonces[to_checksum_address(account)] = int(nonce)

    def _lock_for(self, account) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account)
            if lock is None:
                lock = threading.Lock()
                self._locks[account] = lock
            return lock

    def get(self, account) -> int:
        account = to_checksum_address(account)
        with self._lock_for(account):
            return self._nonces.get(account, 0)

    @contextmanager
    def reserve(self, account):
        account = to_checksum_address(account)
        with self._lock_for(account):
            yield NonceReservation(self, account, self._nonces.get(account, 0))
