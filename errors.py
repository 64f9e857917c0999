# errors.py
# 每个错误都带 code / remediation，调用方据此区分“重新签名”“重新申请授权”“已使用”


class VaultError(Exception):
    code = "vault_error"
    remediation = "retry"
    retryable = False


class InvalidWithdrawalRequest(VaultError, ValueError):
    code = "invalid_request"
    remediation = "fix_request"

    def __init__(self, field, reason):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class MalformedSignature(VaultError):
    code = "malformed_signature"
    remediation = "resign"

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Malformed signature: {reason}")


class InvalidSignature(VaultError):
    code = "invalid_signature"
    remediation = "resign"

    def __init__(self, reason="signature recovers to the zero address"):
        self.reason = reason
        super().__init__(f"Invalid signature: {reason}")


class UnauthorizedSigner(VaultError):
    code = "unauthorized_signer"
    remediation = "resign"

    def __init__(self, recipient, signer):
        self.recipient = recipient
        self.signer = signer
        super().__init__(
            f"Signer {signer} is not the recipient {recipient} "
            "(wrong key, tampered fields or different domain)"
        )


class ExpiredAuthorization(VaultError):
    code = "expired_authorization"
    remediation = "reissue"

    def __init__(self, deadline, now):
        self.deadline = deadline
        self.now = now
        super().__init__(f"Authorization expired at {deadline}, now is {now}")


class StaleNonce(VaultError):
    code = "stale_nonce"
    remediation = "reissue"

    def __init__(self, recipient, signed_nonce, current_nonce):
        self.recipient = recipient
        self.signed_nonce = signed_nonce
        self.current_nonce = current_nonce
        super().__init__(
            f"Authorization for {recipient} was signed at nonce {signed_nonce}, "
            f"current nonce is {current_nonce}"
        )


class AlreadyRedeemed(StaleNonce):
    code = "already_redeemed"
    remediation = "already_used"


class TransferFailed(VaultError):
    code = "transfer_failed"

    def __init__(self, recipient, amount, nonce, reason, nonce_consumed=False):
        self.recipient = recipient
        self.amount = amount
        self.nonce = nonce
        self.reason = reason
        self.nonce_consumed = nonce_consumed
        # 授权已消耗但资金未到账：只能人工对账
        self.remediation = "reconcile" if nonce_consumed else "retry"
        self.retryable = not nonce_consumed
        super().__init__(
            f"Transfer of {amount} to {recipient} failed (nonce {nonce}, "
            f"consumed={nonce_consumed}): {reason}"
        )


class RelayFailed(VaultError):
    code = "relay_failed"

    def __init__(self, tx_hash, reason="transaction reverted", outcome_unknown=False):
        self.tx_hash = tx_hash
        self.reason = reason
        # 没发出去的交易可以原样重试；发出去但拿不到回执的要先对账
        if tx_hash is None:
            self.retryable = True
        elif outcome_unknown:
            self.remediation = "reconcile"
        super().__init__(f"Relay tx {tx_hash} failed: {reason}")
