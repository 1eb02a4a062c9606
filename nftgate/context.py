"""Глобальные сервисы и зависимости nftgate.

Rate Gate и кеш: единственное разделяемое состояние процесса, поэтому все
сервисы собираются здесь поверх одного ``GatedRpc``. Тесты собирают свои
изолированные экземпляры через :func:`build_services`.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from config.settings import AppSettings, get_settings
from .services.core.wallet_verification import WalletVerifier
from .services.nft.gate import NftGate
from .services.rpc.rate_gate import RateGate
from .services.rpc.retry import GatedRpc, RetryPolicy
from .services.rpc.transport import RpcTransport
from .utils.cache import ResultCache


@dataclass(slots=True)
class Services:
    transport: RpcTransport
    rpc: GatedRpc
    cache: ResultCache
    gate: NftGate
    verifier: WalletVerifier

    async def close(self) -> None:
        await self.transport.close()


def build_services(
    settings: AppSettings | None = None,
    *,
    transport: RpcTransport | None = None,
    cache: ResultCache | None = None,
) -> Services:
    cfg = settings or get_settings()
    transport = transport or RpcTransport(str(cfg.rpc.url), timeout=cfg.rpc.request_timeout)
    rate_gate = RateGate(
        concurrency=cfg.rate_limit.concurrency,
        rate_per_second=cfg.rate_limit.rate_per_second,
    )
    rpc = GatedRpc(transport, rate_gate, RetryPolicy.from_settings(cfg.retry))
    cache = cache or ResultCache.from_settings()
    return Services(
        transport=transport,
        rpc=rpc,
        cache=cache,
        gate=NftGate(rpc, cache, settings=cfg),
        verifier=WalletVerifier(
            rpc,
            recipient=cfg.verification.wallet,
            lookback_blocks=cfg.verification.lookback_blocks,
        ),
    )


_services: Services | None = None


async def get_services() -> Services:
    """Возвращает синглтон сервисов (HTTP-сессия поднимается при первом вызове)."""

    global _services
    if _services is None:
        _services = build_services()
        await _services.transport.start()
        settings = get_settings()
        logger.info(
            "nftgate готов: {rps} req/s, {slots} слотов, коллекций {count}, пасс {pass_contract}",
            rps=settings.rate_limit.rate_per_second,
            slots=settings.rate_limit.concurrency,
            count=len(settings.collections.holdings),
            pass_contract=settings.collections.pass_contract or "-",
        )
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None
        logger.info("nftgate корректно остановлен")


__all__ = ["Services", "build_services", "get_services", "shutdown_services"]
