# relay_service_core.py
# 对外（API）统一的五个操作：get_nonce / get_balance / create_withdrawal_request /
# verify_signature / process_withdrawal。
# VaultRelayService 对接链上 vault；LocalVaultService 对接进程内 TokenVault（开发/测试）。
import logging

from web3 import Web3

import chain_utils
from errors import RelayFailed
from relay_withdraw import relay_withdrawal
from sign.withdraw_abi import TOKEN_VAULT_ABI
from sign.withdraw_typed_data import DomainDescriptor, WithdrawalMessage, normalize_address
from sign.withdraw_typed_data import digest as withdraw_digest
from token_vault import TokenVault
from verify_withdrawal import find_withdraw_event
from withdraw_issuer import DEFAULT_WINDOW_MINUTES, WithdrawalIssuer
from withdraw_verifier import DEFAULT_STALE_NONCE_LOOKBACK, authorize_withdrawal

logger = logging.getLogger(__name__)


def _result(recipient, amount, nonce, digest, tx_hash=None) -> dict:
    return {
        "recipient": recipient,
        "amount": str(amount),
        "nonce": nonce,
        "digest": Web3.to_hex(digest),
        "transactionHash": tx_hash,
    }


class VaultRelayService:
    def __init__(
        self,
        w3: Web3,
        relayer,
        domain: DomainDescriptor,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        gas_settings: dict | None = None,
        stale_nonce_lookback: int = DEFAULT_STALE_NONCE_LOOKBACK,
    ):
        self.w3 = w3
        self.relayer = relayer
        self.domain = domain
        self.vault_address = domain.verifying_contract
        self.contract = w3.eth.contract(address=self.vault_address, abi=TOKEN_VAULT_ABI)
        self.gas_settings = gas_settings or {}
        self.stale_nonce_lookback = stale_nonce_lookback
        # 每次签发都重新读链上 nonce
        self.issuer = WithdrawalIssuer(domain, self.get_nonce, window_minutes, clock=self._chain_time)

    @classmethod
    def from_env(cls):
        w3 = chain_utils.get_web3()
        return cls(
            w3,
            chain_utils.get_relayer_account(w3),
            chain_utils.get_domain(),
            window_minutes=chain_utils.get_signature_window_minutes(),
            gas_settings=chain_utils.get_gas_settings(),
        )

    def _chain_time(self) -> int:
        return int(self.w3.eth.get_block("latest")["timestamp"])

    def get_nonce(self, account: str) -> int:
        account = normalize_address(account, "account")
        return int(self.contract.functions.nonces(account).call())

    def get_balance(self) -> int:
        return int(self.contract.functions.getBalance().call())

    def create_withdrawal_request(self, recipient: str, amount: int,
                                  deadline_minutes: int | None = None) -> dict:
        return self.issuer.create_withdrawal_request(recipient, amount, deadline_minutes).to_dict()

    def verify_signature(self, recipient: str, amount: int, deadline: int, signature) -> str:
        """
        上链前的链下预检：用链上当前 nonce 和最新区块时间跑一遍同样的校验，
        失败时直接抛错，省掉一笔注定 revert 的交易。
        """
        message, _ = self._authorize(recipient, amount, deadline, signature)
        return message.recipient

    def _authorize(self, recipient, amount, deadline, signature):
        recipient = normalize_address(recipient)
        return authorize_withdrawal(
            self.domain,
            recipient,
            amount,
            deadline,
            signature,
            current_nonce=self.get_nonce(recipient),
            now=self._chain_time(),
            lookback=self.stale_nonce_lookback,
        )

    def process_withdrawal(self, recipient: str, amount: int, deadline: int, signature) -> dict:
        logger.info("Processing withdrawal recipient=%s amount=%s deadline=%s",
                    recipient, amount, deadline)

        # 1. 先做链下校验
        message, digest = self._authorize(recipient, amount, deadline, signature)

        # 2. 通过则由 relayer 上链
        tx_hash, receipt = relay_withdrawal(
            self.w3,
            self.relayer,
            self.contract,
            message.recipient,
            message.amount,
            message.deadline,
            signature,
            **self.gas_settings,
        )
        if receipt["status"] != 1:
            raise RelayFailed(tx_hash)

        # 3. 用 Withdraw 事件确认资金确实到账
        event = find_withdraw_event(
            receipt, self.vault_address, message.recipient, message.amount,
            expected_nonce=message.nonce,
        )
        logger.info("Withdrawal successful tx=%s nonce=%s", tx_hash, event.nonce)
        return _result(event.recipient, event.amount, event.nonce, digest, tx_hash)


class LocalVaultService:
    def __init__(self, vault: TokenVault, window_minutes: int = DEFAULT_WINDOW_MINUTES):
        self.vault = vault
        self.domain = vault.domain
        self.issuer = WithdrawalIssuer(vault.domain, vault.nonces, window_minutes, clock=vault.clock)

    def get_nonce(self, account: str) -> int:
        return self.vault.nonces(account)

    def get_balance(self) -> int:
        return self.vault.get_balance()

    def create_withdrawal_request(self, recipient: str, amount: int,
                                  deadline_minutes: int | None = None) -> dict:
        return self.issuer.create_withdrawal_request(recipient, amount, deadline_minutes).to_dict()

    def verify_signature(self, recipient: str, amount: int, deadline: int, signature) -> str:
        recipient = normalize_address(recipient)
        message, _ = authorize_withdrawal(
            self.domain,
            recipient,
            amount,
            deadline,
            signature,
            current_nonce=self.vault.nonces(recipient),
            now=int(self.vault.clock()),
            lookback=self.vault.stale_nonce_lookback,
        )
        return message.recipient

    def process_withdrawal(self, recipient: str, amount: int, deadline: int, signature) -> dict:
        event = self.vault.withdraw_to(recipient, amount, deadline, signature)
        message = WithdrawalMessage(event.recipient, event.amount, event.nonce, deadline)
        digest = withdraw_digest(self.domain.domain_hash(), message)
        return _result(event.recipient, event.amount, event.nonce, digest)
