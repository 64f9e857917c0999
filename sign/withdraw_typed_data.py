# withdraw_typed_data.py
# Withdraw 授权的 EIP-712 结构：域分隔、type hash、struct hash、最终 digest。
# 签名方、relayer、验证方都走这一个模块，保证三方算出的字节完全一致。
from dataclasses import dataclass
from functools import cached_property

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import is_address, keccak, to_checksum_address
from web3 import Web3

from errors import InvalidWithdrawalRequest

DEFAULT_DOMAIN_NAME = "WithdrawAuthorization"
DEFAULT_DOMAIN_VERSION = "1"

UINT256_MAX = 2**256 - 1

EIP712_DOMAIN_FIELDS = (
    ("name", "string"),
    ("version", "string"),
    ("chainId", "uint256"),
    ("verifyingContract", "address"),
)

# 字段顺序和宽度是协议的一部分，改动会让所有已签名授权失效
WITHDRAW_PRIMARY_TYPE = "Withdraw"
WITHDRAW_FIELDS = (
    ("recipient", "address"),
    ("amount", "uint256"),
    ("nonce", "uint256"),
    ("deadline", "uint256"),
)


def encode_type(primary_type: str, fields) -> str:
    """Withdraw(address recipient,uint256 amount,uint256 nonce,uint256 deadline)"""
    return f"{primary_type}(" + ",".join(f"{t} {n}" for n, t in fields) + ")"


def type_hash(primary_type: str, fields) -> bytes:
    return keccak(text=encode_type(primary_type, fields))


def _encode_value(abi_type: str, value):
    # EIP-712 encodeData: 动态类型先 keccak，再按 32 字节字编码
    if abi_type == "string":
        return "bytes32", keccak(text=value)
    if abi_type == "bytes":
        return "bytes32", keccak(value)
    return abi_type, value


def hash_struct(primary_type: str, fields, values: dict) -> bytes:
    abi_types = ["bytes32"]
    abi_values = [type_hash(primary_type, fields)]
    for name, abi_type in fields:
        enc_type, enc_value = _encode_value(abi_type, values[name])
        abi_types.append(enc_type)
        abi_values.append(enc_value)
    return keccak(encode(abi_types, abi_values))


def normalize_address(value, field_name="recipient") -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidWithdrawalRequest(field_name, f"{value!r} is not a valid address")
    return to_checksum_address(value)


def normalize_uint256(value, field_name) -> int:
    if isinstance(value, bool):
        raise InvalidWithdrawalRequest(field_name, "must be an unsigned integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidWithdrawalRequest(field_name, f"{value!r} is not an integer")
    if isinstance(value, float) and number != value:
        raise InvalidWithdrawalRequest(field_name, f"{value!r} is not an integer")
    if number < 0 or number > UINT256_MAX:
        raise InvalidWithdrawalRequest(field_name, f"{number} does not fit in uint256")
    return number


@dataclass(frozen=True)
class DomainDescriptor:
    chain_id: int
    verifying_contract: str
    name: str = DEFAULT_DOMAIN_NAME
    version: str = DEFAULT_DOMAIN_VERSION

    def __post_init__(self):
        # 部署时的配置错误在构造阶段就暴露
        object.__setattr__(self, "chain_id", normalize_uint256(self.chain_id, "chainId"))
        object.__setattr__(
            self,
            "verifying_contract",
            normalize_address(self.verifying_contract, "verifyingContract"),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    @cached_property
    def _hash(self) -> bytes:
        return hash_struct("EIP712Domain", EIP712_DOMAIN_FIELDS, self.to_dict())

    def domain_hash(self) -> bytes:
        return self._hash


@dataclass(frozen=True)
class WithdrawalMessage:
    recipient: str
    amount: int
    nonce: int
    deadline: int

    def __post_init__(self):
        object.__setattr__(self, "recipient", normalize_address(self.recipient))
        object.__setattr__(self, "amount", normalize_uint256(self.amount, "amount"))
        object.__setattr__(self, "nonce", normalize_uint256(self.nonce, "nonce"))
        object.__setattr__(self, "deadline", normalize_uint256(self.deadline, "deadline"))

    def to_dict(self) -> dict:
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


def withdraw_type_hash() -> bytes:
    return type_hash(WITHDRAW_PRIMARY_TYPE, WITHDRAW_FIELDS)


def struct_hash(message: WithdrawalMessage, fields=WITHDRAW_FIELDS,
                primary_type: str = WITHDRAW_PRIMARY_TYPE) -> bytes:
    return hash_struct(primary_type, fields, message.to_dict())


def digest(domain_hash: bytes, message: WithdrawalMessage, fields=WITHDRAW_FIELDS,
           primary_type: str = WITHDRAW_PRIMARY_TYPE) -> bytes:
    """
    最终被签名/验证的 32 字节：keccak(0x19 0x01 || domain_hash || struct_hash)
    """
    if len(domain_hash) != 32:
        raise InvalidWithdrawalRequest("domain_hash", "must be 32 bytes")
    return keccak(
        b"\x19\x01" + bytes(domain_hash) + struct_hash(message, fields, primary_type)
    )


def _types_dict(fields) -> list:
    return [{"name": n, "type": t} for n, t in fields]


@dataclass(frozen=True)
class SigningRequest:
    """交给钱包签名的数据：{domain, types: {Withdraw: [...]}, message}"""
    domain: DomainDescriptor
    message: WithdrawalMessage

    def to_dict(self) -> dict:
        return {
            "domain": self.domain.to_dict(),
            "types": {WITHDRAW_PRIMARY_TYPE: _types_dict(WITHDRAW_FIELDS)},
            "message": self.message.to_dict(),
        }

    def to_typed_data(self) -> dict:
        # eth_account / eth_signTypedData_v4 需要的完整结构
        return {
            "types": {
                "EIP712Domain": _types_dict(EIP712_DOMAIN_FIELDS),
                WITHDRAW_PRIMARY_TYPE: _types_dict(WITHDRAW_FIELDS),
            },
            "primaryType": WITHDRAW_PRIMARY_TYPE,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }

    def digest(self) -> bytes:
        return digest(self.domain.domain_hash(), self.message)


def build_signing_request(domain: DomainDescriptor, message: WithdrawalMessage) -> SigningRequest:
    return SigningRequest(domain=domain, message=message)


def signing_request_from_dict(payload: dict) -> SigningRequest:
    """把 API 返回的 JSON 还原成 SigningRequest（钱包侧使用）"""
    domain = payload["domain"]
    message = payload["message"]
    return SigningRequest(
        domain=DomainDescriptor(
            chain_id=domain["chainId"],
            verifying_contract=domain["verifyingContract"],
            name=domain["name"],
            version=domain["version"],
        ),
        message=WithdrawalMessage(
            recipient=message["recipient"],
            amount=message["amount"],
            nonce=message["nonce"],
            deadline=message["deadline"],
        ),
    )


def sign_withdrawal(private_key, request: SigningRequest) -> str:
    """
    用私钥对 Withdraw 授权签名，返回 0x 开头的 65 字节签名。
    开发阶段用于后端“模拟钱包签名”；真实场景由前端钱包完成同样的签名。
    """
    account = Account.from_key(private_key)
    signable = encode_typed_data(full_message=request.to_typed_data())
    signed = account.sign_message(signable)
    return Web3.to_hex(signed.signature)
