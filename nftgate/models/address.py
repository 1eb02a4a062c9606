"""EVM-адреса кошельков и контрактов."""

from __future__ import annotations

from typing import Any

from eth_utils import is_hex_address, to_normalized_address

from nftgate.errors import InvalidAddressError


class Address(str):
    """Нормализованный адрес: ``0x`` + 40 hex-символов в нижнем регистре.

    Создаётся только через :func:`parse_address`, поэтому все ключи кеша и
    сравнения работают с одной и той же формой.
    """

    __slots__ = ()

    @property
    def word(self) -> str:
        """Адрес, выровненный до 32-байтного ABI-слова (64 hex без префикса)."""

        return self[2:].rjust(64, "0")


def parse_address(raw: Any) -> Address:
    """Валидирует сырой ввод и возвращает :class:`Address`.

    Принимает адрес с префиксом ``0x`` и без него, в любом регистре.
    """

    if isinstance(raw, Address):
        return raw
    if not isinstance(raw, str):
        raise InvalidAddressError(raw)
    value = raw.strip()
    if value and not value.lower().startswith("0x"):
        value = f"0x{value}"
    if not is_hex_address(value):
        raise InvalidAddressError(raw)
    return Address(to_normalized_address(value))


WalletAddress = Address
ContractAddress = Address


__all__ = ["Address", "ContractAddress", "WalletAddress", "parse_address"]
