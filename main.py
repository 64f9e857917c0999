# main.py
import logging
import os
import time

import uvicorn
from eth_account import Account

import chain_utils
from erc20_utils import InMemoryERC20, human_to_token_amount
from gasless_api import create_app
from relay_service_core import LocalVaultService, VaultRelayService
from sign.withdraw_typed_data import DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION, DomainDescriptor
from token_vault import TokenVault

logger = logging.getLogger(__name__)


def build_local_service() -> LocalVaultService:
    """
    VAULT_BACKEND=memory：不连链，用进程内 vault，启动时注入一笔余额方便联调
    """
    vault_address = os.getenv("VAULT_ADDRESS") or Account.create().address
    domain = DomainDescriptor(
        chain_id=int(os.getenv("CHAIN_ID", "31337")),
        verifying_contract=vault_address,
        name=os.getenv("VAULT_DOMAIN_NAME", DEFAULT_DOMAIN_NAME),
        version=os.getenv("VAULT_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION),
    )
    decimals = chain_utils.get_token_decimals()
    token = InMemoryERC20(decimals=decimals)
    token.mint(domain.verifying_contract,
               human_to_token_amount(os.getenv("LOCAL_VAULT_FUNDING", "1000"), decimals))
    vault = TokenVault(domain, token, clock=time.time)
    logger.info("Local vault %s on chain %s", domain.verifying_contract, domain.chain_id)
    return LocalVaultService(vault, window_minutes=chain_utils.get_signature_window_minutes())


def build_service():
    if chain_utils.get_backend_kind() == "memory":
        return build_local_service()
    return VaultRelayService.from_env()


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(build_service(), token_decimals=chain_utils.get_token_decimals())

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "3000"))
    logger.info("Vault relayer starting (port %s)...", port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
