# erc20_utils.py
import logging
import threading
from decimal import Context, Decimal

from eth_utils import to_checksum_address

logger = logging.getLogger(__name__)

# uint256 最多 78 位十进制
_WIDE = Context(prec=100)


class TokenTransferError(Exception):
    pass


def human_to_token_amount(amount_human: str | float | Decimal, decimals: int = 18) -> int:
    """
    把“人类读得懂的数量”（如 "0.2"）转成最小单位的整数
    """
    # 用 Decimal 避免浮点误差
    amt = Decimal(str(amount_human))
    scaled = amt.scaleb(decimals, context=_WIDE)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount_human} has more than {decimals} decimals")
    return int(scaled)


def token_amount_to_human(amount_atomic: int, decimals: int = 18) -> str:
    value = Decimal(int(amount_atomic)).scaleb(-decimals, context=_WIDE)
    return format(value.normalize(context=_WIDE), "f")


class InMemoryERC20:
    """
    进程内的 ERC20：只提供 transfer / balanceOf / mint。
    transfer 要么完整成功，要么抛 TokenTransferError 且余额不变。
    """

    def __init__(self, symbol="TKN", decimals=18):
        self.symbol = symbol
        self.decimals = decimals
        self._balances = {}
        self._lock = threading.Lock()

    def balance_of(self, owner: str) -> int:
        with self._lock:
            return self._balances.get(to_checksum_address(owner), 0)

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        to = to_checksum_address(to)
        with self._lock:
            self._balances[to] = self._balances.get(to, 0) + amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        sender = to_checksum_address(sender)
        to = to_checksum_address(to)
        with self._lock:
            balance = self._balances.get(sender, 0)
            if amount > balance:
                raise TokenTransferError(
                    f"insufficient balance: {sender} has {balance}, needs {amount}"
                )
            self._balances[sender] = balance - amount
            self._balances[to] = self._balances.get(to, 0) + amount
        logger.debug("%s transfer %s -> %s: %s", self.symbol, sender, to, amount)
