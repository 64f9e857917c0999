# chain_utils.py
import os

from dotenv import load_dotenv
from web3 import Web3

from sign.withdraw_typed_data import DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION, DomainDescriptor

load_dotenv("properties.env")


def _require(key: str) -> str:
    value = os.getenv(key)
    if not value:
        raise RuntimeError(f"{key} not set in properties.env")
    return value


def get_web3():
    rpc_url = _require("RPC_URL")

    w3 = Web3(Web3.HTTPProvider(rpc_url))
    if not w3.is_connected():
        raise RuntimeError("Web3 not connected, check RPC_URL")
    return w3


def get_relayer_account(w3: Web3):
    private_key = _require("RELAYER_PRIVATE_KEY")
    return w3.eth.account.from_key(private_key)


def get_vault_address() -> str:
    return Web3.to_checksum_address(_require("VAULT_ADDRESS"))


def get_chain_id() -> int:
    return int(_require("CHAIN_ID"))


def get_domain() -> DomainDescriptor:
    """
    vault 部署时固定下来的 EIP-712 域；name/version 必须和合约里的一致
    """
    return DomainDescriptor(
        chain_id=get_chain_id(),
        verifying_contract=get_vault_address(),
        name=os.getenv("VAULT_DOMAIN_NAME", DEFAULT_DOMAIN_NAME),
        version=os.getenv("VAULT_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION),
    )


def get_signature_window_minutes() -> int:
    return int(os.getenv("SIGNATURE_WINDOW_MINUTES", "30"))


def get_token_decimals() -> int:
    return int(os.getenv("TOKEN_DECIMALS", "18"))


def get_gas_settings() -> dict:
    return {
        "gas": int(os.getenv("GAS_LIMIT", "200000")),
        "max_fee_gwei": os.getenv("MAX_FEE_GWEI", "2"),
        "priority_fee_gwei": os.getenv("PRIORITY_FEE_GWEI", "1"),
    }


def get_backend_kind() -> str:
    kind = os.getenv("VAULT_BACKEND", "chain").lower()
    if kind not in ("chain", "memory"):
        raise RuntimeError(f"VAULT_BACKEND must be 'chain' or 'memory', got {kind!r}")
    return kind
