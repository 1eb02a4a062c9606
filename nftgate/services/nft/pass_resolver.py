"""Pass Status Resolver: трёхзначный вердикт по коллекции пасса.

Склеивает детектор стандарта, агрегатную пробу и deep scan в один вердикт:

* любой положительный сигнал → OWNED (кешируется, дальше не идём);
* все вызовы отработали и владения нет → NOT_OWNED (кешируется);
* все вызовы упали → UNKNOWN, в кеш не пишется, а ``PassStatus.previous``
  несёт прошлое известное состояние. Сбой ноды не должен превращаться
  в «не владеет» и снимать роль.
"""

from __future__ import annotations

from loguru import logger

from config.settings import get_settings
from nftgate.errors import ConfigurationError
from nftgate.models import (
    Address,
    OwnershipVerdict,
    PassSource,
    PassStatus,
    TokenStandard,
    from_timestamp,
    parse_address,
)
from nftgate.utils.cache import CacheEntry, ResultCache, deep_scan_key, pass_key
from .balance_prober import BalanceProber
from .deep_scanner import DeepScanner
from .standard_detector import StandardDetector

PriorHint = bool | OwnershipVerdict | None


class PassStatusResolver:
    """Проверяет пасс (collection3) с anti-flapping политикой."""

    def __init__(
        self,
        detector: StandardDetector,
        prober: BalanceProber,
        scanner: DeepScanner,
        cache: ResultCache,
        *,
        contract: str | None = None,
        pass_ttl: float | None = None,
        deep_scan_ttl: float | None = None,
    ) -> None:
        cfg = get_settings()
        raw_contract = contract if contract is not None else cfg.collections.pass_contract
        self._contract = parse_address(raw_contract) if raw_contract else None
        self._detector = detector
        self._prober = prober
        self._scanner = scanner
        self._cache = cache
        self._pass_ttl = cfg.cache.pass_status_ttl if pass_ttl is None else pass_ttl
        self._deep_scan_ttl = cfg.cache.deep_scan_ttl if deep_scan_ttl is None else deep_scan_ttl

    @property
    def contract(self) -> Address | None:
        return self._contract

    async def resolve(
        self,
        wallet: Address,
        prior: PriorHint = None,
        *,
        bypass_cache: bool = False,
        force_refresh: bool = False,
        allow_deep_scan: bool = True,
    ) -> PassStatus:
        if self._contract is None:
            raise ConfigurationError("Контракт пасса не настроен (COLLECTIONS__PASS_CONTRACT)")
        contract = self._contract
        key = pass_key(wallet, contract)

        if not (bypass_cache or force_refresh):
            entry = await self._cache.get_entry(key)
            if entry is not None and entry.is_fresh(self._pass_ttl, self._cache.now()):
                logger.debug("Пасс {wallet}: вердикт из кеша", wallet=wallet)
                return self._from_entry(wallet, entry)

        standard = await self._detector.detect(contract, force_refresh=force_refresh)
        probe = await self._prober.probe(wallet, contract, standard)
        if probe.success and probe.count > 0:
            return await self._store(wallet, OwnershipVerdict.OWNED, "probe")

        source: PassSource = "probe"
        has_signal = probe.success
        if allow_deep_scan:
            scan_verdict = await self._deep_scan(wallet, contract, force_refresh=force_refresh)
            if scan_verdict is OwnershipVerdict.OWNED:
                return await self._store(wallet, OwnershipVerdict.OWNED, "deep_scan")
            if scan_verdict.is_definitive:
                has_signal = True
                source = "deep_scan"

        if not has_signal:
            return await self._fallback(wallet, contract, prior, standard)
        return await self._store(wallet, OwnershipVerdict.NOT_OWNED, source)

    async def _deep_scan(
        self,
        wallet: Address,
        contract: Address,
        *,
        force_refresh: bool,
    ) -> OwnershipVerdict:
        """Запускает deep scan не чаще раза в deep_scan_ttl, иначе отдаёт прошлый итог."""

        key = deep_scan_key(wallet, contract)
        if not force_refresh:
            recent = await self._cache.get(key, self._deep_scan_ttl)
            if recent is not None:
                logger.debug(
                    "Deep scan {wallet} пропущен: недавний результат {verdict}",
                    wallet=wallet,
                    verdict=recent,
                )
                return OwnershipVerdict(recent)
        verdict = await self._scanner.deep_scan(wallet, contract)
        if verdict.is_definitive:
            await self._cache.set(key, verdict.value)
        return verdict

    async def _fallback(
        self,
        wallet: Address,
        contract: Address,
        prior: PriorHint,
        standard: TokenStandard,
    ) -> PassStatus:
        stale = await self._cache.get_stale(pass_key(wallet, contract))
        previous = OwnershipVerdict(stale) if stale is not None else OwnershipVerdict.from_hint(prior)
        logger.warning(
            "Пасс {wallet}: все RPC-вызовы упали (стандарт {standard}), "
            "оставляем прежнее состояние {previous}",
            wallet=wallet,
            standard=standard.value,
            previous=previous.value,
        )
        return PassStatus(
            wallet=wallet,
            verdict=OwnershipVerdict.UNKNOWN,
            source="failed",
            previous=previous,
        )

    async def _store(
        self,
        wallet: Address,
        verdict: OwnershipVerdict,
        source: PassSource,
    ) -> PassStatus:
        assert self._contract is not None
        entry = await self._cache.set(pass_key(wallet, self._contract), verdict.value)
        logger.info(
            "Пасс {wallet}: {verdict} ({source})",
            wallet=wallet,
            verdict=verdict.value,
            source=source,
        )
        return PassStatus(
            wallet=wallet,
            verdict=verdict,
            source=source,
            checked_at=from_timestamp(entry.written_at),
            previous=verdict,
        )

    @staticmethod
    def _from_entry(wallet: Address, entry: CacheEntry) -> PassStatus:
        verdict = OwnershipVerdict(entry.value)
        return PassStatus(
            wallet=wallet,
            verdict=verdict,
            source="cache",
            checked_at=from_timestamp(entry.written_at),
            from_cache=True,
            previous=verdict,
        )


__all__ = ["PassStatusResolver", "PriorHint"]
