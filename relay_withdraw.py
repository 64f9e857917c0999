# relay_withdraw.py
import logging
import threading

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3Exception

from errors import RelayFailed

logger = logging.getLogger(__name__)

# 同一个 relayer 钱包的 “取 nonce → 发送” 必须串行，否则并发请求会拿到同一个 tx nonce
_submit_lock = threading.Lock()


def relay_withdrawal(
    w3: Web3,
    relayer,
    vault_contract,
    recipient: str,
    amount: int,
    deadline: int,
    signature,
    gas: int = 200_000,
    max_fee_gwei: str = "2",
    priority_fee_gwei: str = "1",
):
    """
    用 relayer 钱包调用 vault.withdrawTo（relayer 出 gas，用户只签名）
    返回 (tx_hash(hex), receipt)
    节点拒绝交易或等回执超时都转成 RelayFailed，tx 未发出时 tx_hash 为 None。
    """
    call = vault_contract.functions.withdrawTo(
        Web3.to_checksum_address(recipient),
        int(amount),
        int(deadline),
        bytes(HexBytes(signature)),
    )

    with _submit_lock:
        try:
            tx = call.build_transaction(
                {
                    "from": relayer.address,
                    "nonce": w3.eth.get_transaction_count(relayer.address, "pending"),
                    "chainId": w3.eth.chain_id,
                    "gas": gas,
                    "maxFeePerGas": w3.to_wei(max_fee_gwei, "gwei"),
                    "maxPriorityFeePerGas": w3.to_wei(priority_fee_gwei, "gwei"),
                }
            )
            signed = relayer.sign_transaction(tx)
            tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        except (ValueError, Web3Exception) as e:
            logger.error("Withdraw tx rejected before broadcast: %s", e)
            raise RelayFailed(None, f"submit failed: {e}") from e
    logger.info("Sent withdraw tx: %s", tx_hash)

    try:
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
    except (ValueError, Web3Exception) as e:
        logger.error("No receipt for withdraw tx %s: %s", tx_hash, e)
        raise RelayFailed(tx_hash, f"receipt unavailable: {e}", outcome_unknown=True) from e
    logger.info("Withdraw tx status: %s", receipt["status"])
    return tx_hash, receipt
