"""NftGate: внешний API ядра проверок владения.

Командный слой и фоновые задачи вызывают только этот фасад: он собирает
детектор, пробер, deep scanner и кеш поверх общего ``GatedRpc`` и гарантирует,
что деградация RPC не превращается в исключение у вызывающего кода.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from config.settings import AppSettings, get_settings
from nftgate.errors import InvalidAddressError
from nftgate.models import (
    Address,
    CollectionCount,
    OwnershipVerdict,
    PassStatus,
    WalletHoldings,
    parse_address,
)
from nftgate.services.rpc.rate_gate import Sleep
from nftgate.services.rpc.retry import GatedRpc
from nftgate.utils.cache import ResultCache
from .balance_prober import BalanceProber
from .deep_scanner import DeepScanner
from .holdings import HoldingsService
from .pass_resolver import PassStatusResolver, PriorHint
from .standard_detector import StandardDetector


@dataclass(slots=True)
class BatchReport:
    """Итог массовой проверки кошельков."""

    total: int = 0
    checked: int = 0
    failed: int = 0
    invalid: int = 0
    has_pass: int = 0
    no_pass: int = 0
    unknown_pass: int = 0
    results: list[WalletHoldings] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def record(self, holdings: WalletHoldings) -> None:
        self.checked += 1
        self.results.append(holdings)
        status = holdings.pass_status
        if status is None:
            return
        if status.verdict is OwnershipVerdict.OWNED:
            self.has_pass += 1
        elif status.verdict is OwnershipVerdict.NOT_OWNED:
            self.no_pass += 1
        else:
            self.unknown_pass += 1


class NftGate:
    """Фасад: количество токенов по коллекциям и статус пасса."""

    def __init__(
        self,
        rpc: GatedRpc,
        cache: ResultCache,
        *,
        settings: AppSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        cfg = self._settings
        self._rpc = rpc
        self._cache = cache
        self._sleep = sleep
        self.detector = StandardDetector(rpc, cache, ttl=cfg.cache.standard_ttl)
        self.prober = BalanceProber(rpc, cfg.collections.probe_token_ids)
        self.scanner = DeepScanner(
            rpc,
            max_token_id=cfg.collections.deep_scan_max_token_id,
            fallback_max_id=cfg.collections.erc1155_fallback_max_id,
            abort_after_failures=cfg.collections.deep_scan_abort_after_failures,
        )
        self.holdings = HoldingsService(
            self.detector, self.prober, cache, ttl=cfg.cache.holdings_ttl
        )
        self.resolver = PassStatusResolver(
            self.detector,
            self.prober,
            self.scanner,
            cache,
            contract=cfg.collections.pass_contract or "",
            pass_ttl=cfg.cache.pass_status_ttl,
            deep_scan_ttl=cfg.cache.deep_scan_ttl,
        )
        self._collections = [parse_address(raw) for raw in cfg.collections.holdings]

    @property
    def rpc(self) -> GatedRpc:
        return self._rpc

    @property
    def collections(self) -> list[Address]:
        return list(self._collections)

    async def check_collection(
        self,
        wallet: str,
        contract: str,
        *,
        token_id: int = 0,
        bypass_cache: bool = False,
        force_refresh: bool = False,
    ) -> CollectionCount:
        return await self.holdings.check(
            parse_address(wallet),
            parse_address(contract),
            token_id=token_id,
            bypass_cache=bypass_cache,
            force_refresh=force_refresh,
        )

    async def get_collection_count(
        self,
        wallet: str,
        contract: str,
        *,
        token_id: int = 0,
        bypass_cache: bool = False,
        force_refresh: bool = False,
    ) -> int:
        """Количество токенов; при полном сбое последнее известное или 0."""

        result = await self.check_collection(
            wallet,
            contract,
            token_id=token_id,
            bypass_cache=bypass_cache,
            force_refresh=force_refresh,
        )
        return result.count

    async def get_pass_status(
        self,
        wallet: str,
        *,
        prior: PriorHint = None,
        bypass_cache: bool = False,
        force_refresh: bool = False,
        allow_deep_scan: bool = True,
    ) -> PassStatus:
        return await self.resolver.resolve(
            parse_address(wallet),
            prior,
            bypass_cache=bypass_cache,
            force_refresh=force_refresh,
            allow_deep_scan=allow_deep_scan,
        )

    async def has_pass(self, wallet: str, **options) -> bool | None:
        """True / False, либо None, если проверить не удалось."""

        status = await self.get_pass_status(wallet, **options)
        return status.owned

    async def check_wallet(
        self,
        wallet: str,
        *,
        include_pass: bool = True,
        allow_deep_scan: bool = True,
        prior: PriorHint = None,
        bypass_cache: bool = False,
    ) -> WalletHoldings:
        """Все настроенные коллекции + пасс для одного кошелька."""

        address = parse_address(wallet)
        holdings = WalletHoldings(wallet=address)
        for contract in self._collections:
            holdings.collections[contract] = await self.holdings.check(
                address, contract, bypass_cache=bypass_cache
            )
        if include_pass and self.resolver.contract is not None:
            holdings.pass_status = await self.resolver.resolve(
                address,
                prior,
                bypass_cache=bypass_cache,
                allow_deep_scan=allow_deep_scan,
            )
        return holdings

    async def check_wallets(
        self,
        wallets: Iterable[str],
        *,
        include_pass: bool = True,
        allow_deep_scan: bool = True,
    ) -> BatchReport:
        """Массовая проверка батчами с паузой между ними.

        Внутри батча одновременно проверяется ``batch.parallel`` кошельков;
        пауза ``batch.delay_seconds`` сглаживает нагрузку на аккаунт провайдера
        поверх Rate Gate. Ошибки отдельных кошельков считаются, а не пробрасываются.
        """

        cfg = self._settings.batch
        items = list(wallets)
        report = BatchReport(total=len(items))
        semaphore = asyncio.Semaphore(cfg.parallel)

        async def worker(raw: str) -> None:
            async with semaphore:
                try:
                    holdings = await self.check_wallet(
                        raw,
                        include_pass=include_pass,
                        allow_deep_scan=allow_deep_scan,
                    )
                except InvalidAddressError as exc:
                    report.invalid += 1
                    report.errors[raw] = str(exc)
                    logger.warning("Пропускаем некорректный адрес {wallet}", wallet=raw)
                    return
                except Exception as exc:  # noqa: BLE001
                    report.failed += 1
                    report.errors[raw] = str(exc)
                    logger.exception("Ошибка при проверке {wallet}: {error}", wallet=raw, error=exc)
                    return
                report.record(holdings)
                logger.info(
                    "[PASS-CHECK] wallet={wallet} counts={counts} pass={verdict}",
                    wallet=holdings.wallet,
                    counts=[entry.count for entry in holdings.collections.values()],
                    verdict=holdings.pass_status.verdict.value if holdings.pass_status else "-",
                )

        for start in range(0, len(items), cfg.size):
            batch = items[start : start + cfg.size]
            logger.info(
                "Батч {number}: {size} кошельков",
                number=start // cfg.size + 1,
                size=len(batch),
            )
            await asyncio.gather(*(worker(raw) for raw in batch))
            if start + cfg.size < len(items):
                await self._sleep(cfg.delay_seconds)

        logger.info(
            "Проверка завершена: {checked}/{total}, пасс {has}/{no}/{unknown}, ошибок {failed}, "
            "некорректных {invalid}",
            checked=report.checked,
            total=report.total,
            has=report.has_pass,
            no=report.no_pass,
            unknown=report.unknown_pass,
            failed=report.failed,
            invalid=report.invalid,
        )
        return report


__all__ = ["BatchReport", "NftGate"]
