# withdraw_issuer.py
import logging
import time

from errors import InvalidWithdrawalRequest
from sign.withdraw_typed_data import (
    DomainDescriptor,
    SigningRequest,
    WithdrawalMessage,
    build_signing_request,
    normalize_address,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 30


class WithdrawalIssuer:
    """
    为 (recipient, amount) 生成待签名的 Withdraw 授权。

    nonce_source(account) 必须每次都读验证方的权威 nonce（链上 nonces() 或进程内账本），
    这里不缓存，避免并发请求拿到同一个 nonce。
    """

    def __init__(self, domain: DomainDescriptor, nonce_source,
                 window_minutes: int = DEFAULT_WINDOW_MINUTES, clock=time.time):
        if window_minutes <= 0:
            raise ValueError("window_minutes must be positive")
        self.domain = domain
        self.nonce_source = nonce_source
        self.window_minutes = window_minutes
        self.clock = clock

    def create_withdrawal_request(self, recipient: str, amount: int,
                                  deadline_minutes: int | None = None) -> SigningRequest:
        recipient = normalize_address(recipient)
        minutes = deadline_minutes if deadline_minutes is not None else self.window_minutes
        if minutes <= 0:
            raise InvalidWithdrawalRequest("deadlineMinutes", "must be positive")

        nonce = self.nonce_source(recipient)
        deadline = int(self.clock()) + minutes * 60

        message = WithdrawalMessage(
            recipient=recipient,
            amount=amount,
            nonce=nonce,
            deadline=deadline,
        )
        logger.info(
            "issued withdrawal request recipient=%s amount=%s nonce=%s deadline=%s",
            recipient, message.amount, nonce, deadline,
        )
        return build_signing_request(self.domain, message)
