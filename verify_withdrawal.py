# verify_withdrawal.py
from dataclasses import dataclass

from eth_abi import decode
from web3 import Web3

from errors import TransferFailed

# 预计算 Withdraw 事件的 topic0
WITHDRAW_EVENT_SIGNATURE = "Withdraw(address,uint256,uint256)"
WITHDRAW_TOPIC0 = bytes(Web3.keccak(text=WITHDRAW_EVENT_SIGNATURE))


@dataclass(frozen=True)
class WithdrawEvent:
    """成功提现的审计记录"""
    recipient: str
    amount: int
    nonce: int

    def to_dict(self) -> dict:
        return {"recipient": self.recipient, "amount": self.amount, "nonce": self.nonce}


def parse_withdraw_events(receipt, vault_address: str) -> list:
    """
    从交易回执里解出 vault 合约发出的所有 Withdraw 事件
    """
    vault = Web3.to_checksum_address(vault_address)
    events = []

    for log in receipt["logs"]:
        # 必须是这个 vault 合约的 log
        if Web3.to_checksum_address(log["address"]) != vault:
            continue

        topics = log["topics"]
        if not topics or bytes(topics[0]) != WITHDRAW_TOPIC0:
            continue

        # topics[1] = indexed recipient，data = (amount, nonce)
        recipient = Web3.to_checksum_address(bytes(topics[1])[-20:])
        amount, nonce = decode(["uint256", "uint256"], bytes(log["data"]))
        events.append(WithdrawEvent(recipient=recipient, amount=amount, nonce=nonce))

    return events


def find_withdraw_event(receipt, vault_address: str, recipient: str, amount: int,
                        expected_nonce: int | None = None) -> WithdrawEvent:
    """
    校验：这笔 tx 是否真的把 amount 转给了 recipient。
    只在 status == 1 的回执上调用：withdrawTo 已执行，链上 nonce 已前进，
    找不到匹配事件时授权已消耗，抛 TransferFailed(nonce_consumed=True) 走人工对账。
    """
    recipient = Web3.to_checksum_address(recipient)
    for event in parse_withdraw_events(receipt, vault_address):
        if event.recipient != recipient or event.amount != amount:
            continue
        if expected_nonce is not None and event.nonce != expected_nonce:
            continue
        return event

    raise TransferFailed(
        recipient, amount, expected_nonce,
        "no matching Withdraw event in receipt",
        nonce_consumed=True,
    )
