"""Количество токенов в коллекциях с агрегатным ``balanceOf``."""

from __future__ import annotations

from loguru import logger

from config.settings import get_settings
from nftgate.models import Address, CollectionCount, TokenStandard, from_timestamp
from nftgate.utils.cache import ResultCache, holdings_key
from .balance_prober import BalanceProber
from .standard_detector import StandardDetector


class HoldingsService:
    """Best-effort подсчёт с кешем: сбой RPC не превращается в исключение."""

    def __init__(
        self,
        detector: StandardDetector,
        prober: BalanceProber,
        cache: ResultCache,
        *,
        ttl: float | None = None,
    ) -> None:
        self._detector = detector
        self._prober = prober
        self._cache = cache
        self._ttl = get_settings().cache.holdings_ttl if ttl is None else ttl

    async def check(
        self,
        wallet: Address,
        contract: Address,
        *,
        token_id: int = 0,
        bypass_cache: bool = False,
        force_refresh: bool = False,
    ) -> CollectionCount:
        key = holdings_key(wallet, contract, token_id)
        if not (bypass_cache or force_refresh):
            entry = await self._cache.get_entry(key)
            if entry is not None and entry.is_fresh(self._ttl, self._cache.now()):
                logger.debug(
                    "Используем кеш для {wallet} в коллекции {contract}",
                    wallet=wallet,
                    contract=contract,
                )
                count, standard = entry.value
                return CollectionCount(
                    wallet=wallet,
                    contract=contract,
                    count=count,
                    success=True,
                    standard=TokenStandard(standard),
                    checked_at=from_timestamp(entry.written_at),
                    from_cache=True,
                )

        standard = await self._detector.detect(contract, force_refresh=force_refresh)
        result = await self._prober.probe(wallet, contract, standard, token_id)
        if result.success:
            entry = await self._cache.set(key, (result.count, result.standard_used.value))
            return CollectionCount(
                wallet=wallet,
                contract=contract,
                count=result.count,
                success=True,
                standard=result.standard_used,
                checked_at=from_timestamp(entry.written_at),
            )

        # Неудачный ответ не кешируем как ноль: отдаём прошлое значение, если было.
        stale = await self._cache.get_stale(key)
        count = stale[0] if stale is not None else 0
        logger.warning(
            "Баланс {wallet} в {contract} не получен, отдаём последнее известное {count}",
            wallet=wallet,
            contract=contract,
            count=count,
        )
        return CollectionCount(
            wallet=wallet,
            contract=contract,
            count=count,
            success=False,
            standard=standard,
        )


__all__ = ["HoldingsService"]
