# withdraw_verifier.py
# 验证方的授权检查：用“当前 nonce”重建消息 → 校验 deadline → 恢复签名者 → 必须等于 recipient。
# 链下预检（relay_service_core）和进程内账本（token_vault）共用这一套逻辑。
import logging

from errors import AlreadyRedeemed, ExpiredAuthorization, StaleNonce, UnauthorizedSigner
from sign.signature_recovery import recover_signer
from sign.withdraw_typed_data import DomainDescriptor, WithdrawalMessage, digest

logger = logging.getLogger(__name__)

# 签名者不匹配时，往回尝试多少个已消耗的 nonce 来识别重放/过期 nonce
DEFAULT_STALE_NONCE_LOOKBACK = 8


def check_deadline(deadline: int, now: int) -> None:
    # deadline == now 仍然有效
    if now > deadline:
        raise ExpiredAuthorization(deadline, now)


def _classify_mismatch(domain_hash, message: WithdrawalMessage, signature, signer,
                       lookback: int, consumed_digests):
    recipient = message.recipient
    oldest = max(0, message.nonce - lookback)
    for past_nonce in range(message.nonce - 1, oldest - 1, -1):
        past = WithdrawalMessage(recipient, message.amount, past_nonce, message.deadline)
        past_digest = digest(domain_hash, past)
        if recover_signer(past_digest, signature) == recipient:
            if consumed_digests is not None and past_digest in consumed_digests:
                raise AlreadyRedeemed(recipient, past_nonce, message.nonce)
            raise StaleNonce(recipient, past_nonce, message.nonce)
    raise UnauthorizedSigner(recipient, signer)


def authorize_withdrawal(
    domain: DomainDescriptor,
    recipient: str,
    amount: int,
    deadline: int,
    signature,
    current_nonce: int,
    now: int,
    lookback: int = DEFAULT_STALE_NONCE_LOOKBACK,
    consumed_digests=None,
) -> tuple:
    """
    校验一份 Withdraw 授权，成功返回 (message, digest)。

    nonce 永远由调用方从权威状态读取，不接受外部传入。
    失败时按原因抛出：
      ExpiredAuthorization → 重新申请授权
      MalformedSignature / InvalidSignature / UnauthorizedSigner → 重新签名
      StaleNonce / AlreadyRedeemed → 授权已被使用或已被新的授权取代
    """
    message = WithdrawalMessage(
        recipient=recipient, amount=amount, nonce=current_nonce, deadline=deadline
    )
    check_deadline(message.deadline, now)

    domain_hash = domain.domain_hash()
    message_digest = digest(domain_hash, message)
    signer = recover_signer(message_digest, signature)

    if signer != message.recipient:
        logger.info(
            "signer mismatch for %s at nonce %s: recovered %s",
            message.recipient, message.nonce, signer,
        )
        _classify_mismatch(domain_hash, message, signature, signer, lookback, consumed_digests)

    return message, message_digest
