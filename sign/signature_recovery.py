# signature_recovery.py
# 从 digest + 65 字节签名 (r || s || v) 恢复签名者地址
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from errors import InvalidSignature, MalformedSignature

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SIGNATURE_LENGTH = 65
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def split_signature(signature) -> tuple:
    """
    bytes / 0x-hex 签名拆成 (v, r, s)，v 统一成 0/1。
    结构不合法时抛 MalformedSignature。
    """
    try:
        raw = bytes(HexBytes(signature))
    except (TypeError, ValueError) as e:
        raise MalformedSignature(f"not valid hex bytes: {e}")

    if len(raw) != SIGNATURE_LENGTH:
        raise MalformedSignature(f"expected {SIGNATURE_LENGTH} bytes, got {len(raw)}")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]

    if v in (27, 28):
        v -= 27
    if v not in (0, 1):
        raise MalformedSignature(f"invalid recovery parameter v={raw[64]}")
    if not 0 < r < SECP256K1_N:
        raise MalformedSignature("r out of range")
    # 高 s 值是同一签名的可塑形式，拒绝
    if not 0 < s <= SECP256K1_HALF_N:
        raise MalformedSignature("s out of range (non-canonical signature)")
    return v, r, s


def recover_signer(digest: bytes, signature) -> str:
    if len(digest) != 32:
        raise MalformedSignature("digest must be 32 bytes")

    v, r, s = split_signature(signature)
    try:
        public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(bytes(digest))
    except (BadSignature, ValidationError) as e:
        raise MalformedSignature(f"point recovery failed: {e}")

    signer = to_checksum_address(public_key.to_canonical_address())
    if signer == ZERO_ADDRESS:
        raise InvalidSignature()
    return signer
