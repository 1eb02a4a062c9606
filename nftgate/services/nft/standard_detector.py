"""Определение стандарта контракта через ERC-165 ``supportsInterface``."""

from __future__ import annotations

from loguru import logger

from config.settings import get_settings
from nftgate.errors import PROBE_ERRORS
from nftgate.models import Address, TokenStandard
from nftgate.services.rpc import abi
from nftgate.services.rpc.retry import GatedRpc
from nftgate.utils.cache import ResultCache, standard_key


class StandardDetector:
    """ERC-721 → ERC-1155 → UNKNOWN, с кешем на контракт.

    Стандарт контракта не меняется, поэтому TTL длинный; UNKNOWN не кешируется,
    чтобы временно лежащая нода не закрепила его на неделю.
    """

    def __init__(self, rpc: GatedRpc, cache: ResultCache, ttl: float | None = None) -> None:
        self._rpc = rpc
        self._cache = cache
        self._ttl = ttl if ttl is not None else get_settings().cache.standard_ttl

    async def detect(self, contract: Address, *, force_refresh: bool = False) -> TokenStandard:
        key = standard_key(contract)
        if not force_refresh:
            cached = await self._cache.get(key, self._ttl)
            if cached is not None:
                return TokenStandard(cached)

        standard = TokenStandard.UNKNOWN
        if await self.supports_interface(contract, abi.ERC721_INTERFACE_ID):
            standard = TokenStandard.ERC721
        elif await self.supports_interface(contract, abi.ERC1155_INTERFACE_ID):
            standard = TokenStandard.ERC1155

        logger.debug("Стандарт {contract}: {standard}", contract=contract, standard=standard.value)
        if standard is not TokenStandard.UNKNOWN:
            await self._cache.set(key, standard.value)
        return standard

    async def supports_interface(self, contract: Address, interface_id: bytes) -> bool:
        """False и при явном «нет», и при любом сбое вызова."""

        try:
            raw = await self._rpc.eth_call(contract, abi.supports_interface(interface_id))
            return abi.decode_bool(raw)
        except PROBE_ERRORS as exc:
            logger.debug(
                "supportsInterface(0x{iface}) на {contract} не ответил: {error}",
                iface=interface_id.hex(),
                contract=contract,
                error=exc,
            )
            return False


__all__ = ["StandardDetector"]
