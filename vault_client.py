# vault_client.py
# 钱包侧的 Python 客户端：申请授权 → 本地签名 → 提交给 relayer。
# 流程和前端钱包一致，方便脚本/测试里跑完整链路。
import logging
import os

import requests
from eth_account import Account

from errors import InvalidWithdrawalRequest
from sign.withdraw_typed_data import normalize_address, sign_withdrawal, signing_request_from_dict

logger = logging.getLogger(__name__)

VAULT_API_URL = os.getenv("VAULT_API_URL", "http://127.0.0.1:3000")


class VaultApiError(Exception):
    def __init__(self, http_status, payload):
        self.http_status = http_status
        self.payload = payload
        self.error = payload.get("error") if isinstance(payload, dict) else None
        self.remediation = payload.get("remediation") if isinstance(payload, dict) else None
        super().__init__(f"Vault API error {http_status}: {payload}")


class VaultApiClient:
    def __init__(self, base_url: str = VAULT_API_URL, session=None, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _unwrap(self, resp):
        try:
            payload = resp.json()
        except ValueError:
            raise VaultApiError(resp.status_code, {"error": "non_json", "raw": resp.text})

        if resp.status_code != 200 or payload.get("code") != 0:
            raise VaultApiError(resp.status_code, payload)
        return payload["data"]

    def _get(self, path):
        return self._unwrap(self.session.get(f"{self.base_url}{path}", timeout=self.timeout))

    def _post(self, path, body):
        return self._unwrap(
            self.session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        )

    def get_nonce(self, address: str) -> int:
        return int(self._get(f"/api/nonce/{address}")["nonce"])

    def get_balance(self) -> int:
        return int(self._get("/api/balance")["balance"])

    def request_withdrawal(self, recipient: str, amount: int,
                           deadline_minutes: int | None = None) -> dict:
        body = {"recipient": recipient, "amount": str(amount)}
        if deadline_minutes is not None:
            body["deadlineMinutes"] = deadline_minutes
        return self._post("/api/withdrawal/request", body)

    def process_withdrawal(self, recipient: str, amount: int, deadline: int, signature: str) -> dict:
        return self._post(
            "/api/withdrawal/process",
            {
                "recipient": recipient,
                "amount": str(amount),
                "deadline": str(deadline),
                "signature": signature,
            },
        )


def sign_withdrawal_request(private_key, signing_request: dict) -> str:
    """
    对 /api/withdrawal/request 返回的 {domain, types, message} 签名。
    签名前在本地重建 EIP-712 结构，字段/类型对不上会直接报错而不是签出无效授权。
    """
    request = signing_request_from_dict(signing_request)
    return sign_withdrawal(private_key, request)


def check_signing_request(signing_request: dict, recipient: str, amount: int, expected_domain=None):
    """
    签名前核对 relayer 返回的授权数据：收款人、金额、（可选）域 必须是自己申请的那一份，
    否则拒签，避免替被篡改的提现授权签名。
    """
    request = signing_request_from_dict(signing_request)
    message = request.message
    if message.recipient != normalize_address(recipient):
        raise InvalidWithdrawalRequest("recipient", f"issued for {message.recipient}, expected {recipient}")
    if message.amount != int(amount):
        raise InvalidWithdrawalRequest("amount", f"issued for {message.amount}, expected {amount}")
    if expected_domain is not None and request.domain != expected_domain:
        raise InvalidWithdrawalRequest("domain", f"issued for {request.domain.to_dict()}")
    return request


def complete_withdrawal_flow(client: VaultApiClient, private_key, amount: int,
                             deadline_minutes: int | None = None, expected_domain=None) -> dict:
    recipient = Account.from_key(private_key).address
    logger.info("=== Starting withdrawal flow for %s, amount %s ===", recipient, amount)

    # 1. 向 relayer 申请授权数据
    signing_request = client.request_withdrawal(recipient, amount, deadline_minutes)

    # 2. 核对后本地签名
    request = check_signing_request(signing_request, recipient, amount, expected_domain)
    signature = sign_withdrawal(private_key, request)

    # 3. 提交给 relayer 代付 gas
    result = client.process_withdrawal(
        recipient, amount, request.message.deadline, signature
    )
    logger.info("Withdrawal processed: %s", result)
    return result
