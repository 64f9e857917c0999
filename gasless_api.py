# gasless_api.py
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from erc20_utils import token_amount_to_human
from errors import (
    ExpiredAuthorization,
    InvalidSignature,
    InvalidWithdrawalRequest,
    MalformedSignature,
    RelayFailed,
    StaleNonce,
    TransferFailed,
    UnauthorizedSigner,
    VaultError,
)

logger = logging.getLogger(__name__)

# 不同错误的处理方式不同，状态码也要区分开
ERROR_STATUS = {
    InvalidWithdrawalRequest: 400,
    MalformedSignature: 400,
    InvalidSignature: 401,
    UnauthorizedSigner: 403,
    StaleNonce: 409,
    ExpiredAuthorization: 410,
    TransferFailed: 502,
    RelayFailed: 502,
}


def _status_for(exc: VaultError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


class WithdrawalRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str
    amount: int                         # 最小单位
    deadline_minutes: Optional[int] = Field(default=None, alias="deadlineMinutes")


class ProcessWithdrawalBody(BaseModel):
    # 只接受这四个字段；nonce 永远由验证方自己读取
    model_config = ConfigDict(extra="forbid")

    recipient: str
    amount: int
    deadline: int
    signature: str


def create_app(service, token_decimals: int = 18) -> FastAPI:
    """
    service: relay_service_core.VaultRelayService 或 LocalVaultService
    """
    app = FastAPI(title="Gasless Vault Withdrawals")

    # 允许跨域
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VaultError)
    async def vault_error_handler(request, exc: VaultError):
        status = _status_for(exc)
        log = logger.error if status >= 500 else logger.warning
        log("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc)
        return JSONResponse(
            status_code=status,
            content={
                "code": 1,
                "error": exc.code,
                "detail": str(exc),
                "remediation": exc.remediation,
                "retryable": exc.retryable,
            },
        )

    @app.get("/health")
    def health():
        return {"status": "OK"}

    @app.get("/api/balance")
    def balance():
        value = service.get_balance()
        return {
            "code": 0,
            "data": {
                "balance": str(value),
                "formatted": token_amount_to_human(value, token_decimals),
            },
        }

    @app.get("/api/nonce/{address}")
    def nonce(address: str):
        return {
            "code": 0,
            "data": {"address": address, "nonce": service.get_nonce(address)},
        }

    @app.post("/api/withdrawal/request")
    def withdrawal_request(req: WithdrawalRequestBody):
        """
        生成待签名的 Withdraw 授权（domain / types / message），交给钱包签名
        """
        data = service.create_withdrawal_request(req.recipient, req.amount, req.deadline_minutes)
        return {"code": 0, "data": data}

    @app.post("/api/withdrawal/process")
    def withdrawal_process(req: ProcessWithdrawalBody):
        """
        提交签名：验证通过后由 relayer 代付 gas 完成提现
        """
        result = service.process_withdrawal(req.recipient, req.amount, req.deadline, req.signature)
        return {"code": 0, "data": result}

    return app
