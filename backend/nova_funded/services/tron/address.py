"""
Адреса TRON: hex (41 + 20 байт) <-> base58check (T...), и хеши транзакций.
"""
import base58

TRON_ADDRESS_PREFIX = "41"
HEX_ADDRESS_LENGTH = 42  # "41" + 40 hex символов
TX_HASH_LENGTH = 64
HEX_DIGITS = "0123456789abcdef"


def is_hex_address(value: str) -> bool:
    v = value[2:] if value.lower().startswith("0x") else value
    if len(v) != HEX_ADDRESS_LENGTH or not v.lower().startswith(TRON_ADDRESS_PREFIX):
        return False
    try:
        bytes.fromhex(v)
    except ValueError:
        return False
    return True


def hex_to_base58(hex_address: str) -> str:
    v = hex_address[2:] if hex_address.lower().startswith("0x") else hex_address
    if not is_hex_address(v):
        raise ValueError(f"Invalid TRON hex address: {hex_address}")
    return base58.b58encode_check(bytes.fromhex(v)).decode("ascii")


def base58_to_hex(address: str) -> str:
    raw = base58.b58decode_check(address)
    if len(raw) != 21 or raw[0] != 0x41:
        raise ValueError(f"Invalid TRON address: {address}")
    return raw.hex()


def normalize_address(address: str) -> str:
    """Приводит адрес к base58check. Base58-адреса возвращаются как есть."""
    address = address.strip()
    if is_hex_address(address):
        return hex_to_base58(address)
    return address


def word_to_address(word: str) -> str:
    """ABI-слово (64 hex символа) с адресом -> base58check."""
    if len(word) != 64:
        raise ValueError(f"ABI word must be 64 hex chars, got {len(word)}")
    return hex_to_base58(TRON_ADDRESS_PREFIX + word[24:])


def normalize_tx_hash(value: str) -> str:
    """Хеш транзакции: 64 hex символа в нижнем регистре, без 0x."""
    v = value.strip().lower()
    if v.startswith("0x"):
        v = v[2:]
    if len(v) != TX_HASH_LENGTH or v.strip(HEX_DIGITS):
        raise ValueError(f"Invalid transaction hash: {value!r}")
    return v
