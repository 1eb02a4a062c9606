"""ABI-кодирование вызовов ERC-165 / ERC-721 / ERC-1155 для eth_call."""

from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector

from nftgate.errors import MalformedResponseError

ERC721_INTERFACE_ID = bytes.fromhex("80ac58cd")
ERC1155_INTERFACE_ID = bytes.fromhex("d9b67a26")

# Балансы больше uint64 считаем мусорным ответом.
MAX_BALANCE = 2**64 - 1


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


BALANCE_OF = selector("balanceOf(address)")  # 0x70a08231
BALANCE_OF_ID = selector("balanceOf(address,uint256)")  # 0x00fdd58e
OWNER_OF = selector("ownerOf(uint256)")  # 0x6352211e
SUPPORTS_INTERFACE = selector("supportsInterface(bytes4)")  # 0x01ffc9a7


def encode_call(fn_selector: bytes, types: Sequence[str], args: Sequence[Any]) -> str:
    """Селектор + аргументы, выровненные по 32 байта, в hex для ``data``."""

    return encode_hex(fn_selector + encode(list(types), list(args)))


def balance_of(wallet: str) -> str:
    return encode_call(BALANCE_OF, ["address"], [wallet])


def balance_of_id(wallet: str, token_id: int) -> str:
    return encode_call(BALANCE_OF_ID, ["address", "uint256"], [wallet, token_id])


def owner_of(token_id: int) -> str:
    return encode_call(OWNER_OF, ["uint256"], [token_id])


def supports_interface(interface_id: bytes) -> str:
    return encode_call(SUPPORTS_INTERFACE, ["bytes4"], [interface_id])


def _decode_word(raw: str, abi_type: str) -> Any:
    if not isinstance(raw, str):
        raise MalformedResponseError(f"ожидали hex-строку, получили {raw!r}")
    try:
        data = decode_hex(raw)
    except ValueError as exc:
        raise MalformedResponseError(f"не hex: {raw!r}") from exc
    if not data:
        raise MalformedResponseError(f"пустой ответ: {raw!r}")
    # Часть нод отдаёт число без выравнивания (``0x03``).
    data = data.rjust(32, b"\x00")
    try:
        (value,) = decode([abi_type], data[:32])
    except DecodingError as exc:
        raise MalformedResponseError(f"не декодируется как {abi_type}: {raw!r}") from exc
    return value


def decode_uint(raw: str) -> int:
    """uint256 big-endian → int, с отсечкой заведомо мусорных значений."""

    value = _decode_word(raw, "uint256")
    if value > MAX_BALANCE:
        raise MalformedResponseError(f"баланс вне диапазона uint64: {raw!r}")
    return value


def decode_bool(raw: str) -> bool:
    # Некоторые контракты отвечают не 0/1, а любым ненулевым словом.
    return _decode_word(raw, "uint256") != 0


def decode_address(raw: str) -> str:
    """Последние 20 байт 32-байтного слова в виде ``0x...`` нижним регистром."""

    value = _decode_word(raw, "uint256")
    return "0x" + value.to_bytes(32, "big")[-20:].hex()


__all__ = [
    "BALANCE_OF",
    "BALANCE_OF_ID",
    "ERC1155_INTERFACE_ID",
    "ERC721_INTERFACE_ID",
    "MAX_BALANCE",
    "OWNER_OF",
    "SUPPORTS_INTERFACE",
    "balance_of",
    "balance_of_id",
    "decode_address",
    "decode_bool",
    "decode_uint",
    "encode_call",
    "owner_of",
    "selector",
    "supports_interface",
]
