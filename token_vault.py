# token_vault.py
import logging
import time

from erc20_utils import TokenTransferError
from errors import TransferFailed
from nonce_store import InMemoryNonceStore
from sign.withdraw_typed_data import DomainDescriptor, normalize_address
from verify_withdrawal import WithdrawEvent
from withdraw_verifier import DEFAULT_STALE_NONCE_LOOKBACK, authorize_withdrawal

logger = logging.getLogger(__name__)


class TokenVault:
    """
    进程内的 vault 账本：托管 token，按用户签名的 Withdraw 授权放款。

    withdraw_to() 在账户锁内完成 校验 → nonce+1 → 转账，
    同一账户的并发提现严格串行，同一个 nonce 只能成功一次。

    rollback_on_transfer_failure=True（默认）：转账失败时 nonce 不变，相当于整笔回滚。
    False：先记 nonce 再转账，转账失败时授权已消耗，抛 TransferFailed(nonce_consumed=True)
    交给人工对账。
    """

    def __init__(
        self,
        domain: DomainDescriptor,
        token,
        nonce_store=None,
        clock=time.time,
        stale_nonce_lookback: int = DEFAULT_STALE_NONCE_LOOKBACK,
        rollback_on_transfer_failure: bool = True,
    ):
        self.domain = domain
        self.address = domain.verifying_contract
        self.token = token
        self.nonce_store = nonce_store if nonce_store is not None else InMemoryNonceStore()
        self.clock = clock
        self.stale_nonce_lookback = stale_nonce_lookback
        self.rollback_on_transfer_failure = rollback_on_transfer_failure
        self.events = []
        self._consumed = set()

    def nonces(self, account: str) -> int:
        return self.nonce_store.get(normalize_address(account, "account"))

    def get_balance(self) -> int:
        return self.token.balance_of(self.address)

    def withdraw_to(self, recipient: str, amount: int, deadline: int, signature) -> WithdrawEvent:
        recipient = normalize_address(recipient)

        with self.nonce_store.reserve(recipient) as reservation:
            message, message_digest = authorize_withdrawal(
                self.domain,
                recipient,
                amount,
                deadline,
                signature,
                current_nonce=reservation.nonce,
                now=int(self.clock()),
                lookback=self.stale_nonce_lookback,
                consumed_digests=self._consumed,
            )

            if not self.rollback_on_transfer_failure:
                reservation.commit()
                self._consumed.add(message_digest)

            try:
                self.token.transfer(self.address, message.recipient, message.amount)
            except TokenTransferError as e:
                consumed = reservation.committed
                logger.error(
                    "transfer failed for %s amount=%s nonce=%s consumed=%s: %s",
                    message.recipient, message.amount, message.nonce, consumed, e,
                )
                raise TransferFailed(
                    message.recipient, message.amount, message.nonce, str(e),
                    nonce_consumed=consumed,
                ) from e

            if not reservation.committed:
                reservation.commit()
                self._consumed.add(message_digest)

        event = WithdrawEvent(message.recipient, message.amount, message.nonce)
        self.events.append(event)
        logger.info(
            "Withdraw recipient=%s amount=%s nonce=%s",
            event.recipient, event.amount, event.nonce,
        )
        return event
