"""Deep scan: перебор ``ownerOf(id)`` для коллекции без агрегатного баланса.

Дорогая операция: каждый из ~800 вызовов проходит Rate Gate, поэтому полный
перебор при 20 req/s занимает десятки секунд. Id перебираются по возрастанию
строго последовательно, первое совпадение завершает скан (наименьший id).
Полнота гарантирована только до настроенного ``max_token_id``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from config.settings import get_settings
from nftgate.errors import PROBE_ERRORS, ExhaustedRetriesError, RpcTransportError
from nftgate.models import Address, OwnershipVerdict, ScanStats
from nftgate.services.rpc import abi
from nftgate.services.rpc.retry import GatedRpc


@dataclass(slots=True)
class DeepScanOutcome:
    verdict: OwnershipVerdict
    stats: ScanStats = field(default_factory=ScanStats)


class DeepScanner:
    """Ищет кошелёк среди владельцев id ``0..max_token_id``."""

    def __init__(
        self,
        rpc: GatedRpc,
        *,
        max_token_id: int | None = None,
        fallback_max_id: int | None = None,
        abort_after_failures: int | None = None,
    ) -> None:
        cfg = get_settings().collections
        self._rpc = rpc
        self._max_token_id = cfg.deep_scan_max_token_id if max_token_id is None else max_token_id
        self._fallback_max_id = (
            cfg.erc1155_fallback_max_id if fallback_max_id is None else fallback_max_id
        )
        self._abort_after = (
            cfg.deep_scan_abort_after_failures
            if abort_after_failures is None
            else abort_after_failures
        )

    async def deep_scan(
        self,
        wallet: Address,
        contract: Address,
        max_token_id: int | None = None,
    ) -> OwnershipVerdict:
        outcome = await self.scan(wallet, contract, max_token_id)
        return outcome.verdict

    async def scan(
        self,
        wallet: Address,
        contract: Address,
        max_token_id: int | None = None,
    ) -> DeepScanOutcome:
        upper = self._max_token_id if max_token_id is None else max_token_id
        stats = ScanStats()
        logger.info(
            "Deep scan {wallet} в {contract}: ownerOf 0..{upper}",
            wallet=wallet,
            contract=contract,
            upper=upper,
        )
        if await self._scan_owner_of(wallet, contract, upper, stats):
            return self._finish(wallet, contract, OwnershipVerdict.OWNED, stats)
        if stats.owner_successes:
            # Недосмотренный хвост диапазона мог содержать токен кошелька.
            verdict = (
                OwnershipVerdict.UNKNOWN if stats.owner_aborted else OwnershipVerdict.NOT_OWNED
            )
            return self._finish(wallet, contract, verdict, stats)

        # ownerOf не ответил ни разу, пробуем ERC-1155.
        logger.debug(
            "ownerOf на {contract} не поддерживается или нода лежит, пробуем ERC-1155 0..{upper}",
            contract=contract,
            upper=self._fallback_max_id,
        )
        if await self._scan_erc1155(wallet, contract, stats):
            return self._finish(wallet, contract, OwnershipVerdict.OWNED, stats)
        if stats.fallback_successes and not stats.fallback_aborted:
            return self._finish(wallet, contract, OwnershipVerdict.NOT_OWNED, stats)
        return self._finish(wallet, contract, OwnershipVerdict.UNKNOWN, stats)

    async def _scan_owner_of(
        self,
        wallet: Address,
        contract: Address,
        upper: int,
        stats: ScanStats,
    ) -> bool:
        consecutive_failures = 0
        for token_id in range(upper + 1):
            stats.owner_calls += 1
            try:
                raw = await self._rpc.eth_call(contract, abi.owner_of(token_id))
                owner = abi.decode_address(raw)
            except PROBE_ERRORS as exc:
                if self._is_outage(exc):
                    consecutive_failures += 1
                    if self._abort_after and consecutive_failures >= self._abort_after:
                        logger.warning(
                            "Deep scan {contract}: {count} сбоев RPC подряд, перебор прерван на id {token}",
                            contract=contract,
                            count=consecutive_failures,
                            token=token_id,
                        )
                        stats.owner_aborted = True
                        return False
                continue
            consecutive_failures = 0
            stats.owner_successes += 1
            if owner == wallet:
                stats.matched_token_id = token_id
                return True
        return False

    async def _scan_erc1155(self, wallet: Address, contract: Address, stats: ScanStats) -> bool:
        consecutive_failures = 0
        for token_id in range(self._fallback_max_id + 1):
            stats.fallback_calls += 1
            try:
                raw = await self._rpc.eth_call(contract, abi.balance_of_id(wallet, token_id))
                count = abi.decode_uint(raw)
            except PROBE_ERRORS as exc:
                if self._is_outage(exc):
                    consecutive_failures += 1
                    if self._abort_after and consecutive_failures >= self._abort_after:
                        logger.warning(
                            "Deep scan {contract}: {count} сбоев RPC подряд, ERC-1155 перебор прерван на id {token}",
                            contract=contract,
                            count=consecutive_failures,
                            token=token_id,
                        )
                        stats.fallback_aborted = True
                        return False
                continue
            consecutive_failures = 0
            stats.fallback_successes += 1
            if count > 0:
                stats.matched_token_id = token_id
                return True
        return False

    @staticmethod
    def _is_outage(exc: Exception) -> bool:
        """Сбой сети/провайдера, а не revert несуществующего id."""

        if isinstance(exc, ExhaustedRetriesError):
            return True
        return isinstance(exc, RpcTransportError) and type(exc) is RpcTransportError

    @staticmethod
    def _finish(
        wallet: Address,
        contract: Address,
        verdict: OwnershipVerdict,
        stats: ScanStats,
    ) -> DeepScanOutcome:
        logger.info(
            "Deep scan {wallet} в {contract}: {verdict} (вызовов {calls}, успешных {ok}, id {token})",
            wallet=wallet,
            contract=contract,
            verdict=verdict.value,
            calls=stats.total_calls,
            ok=stats.owner_successes + stats.fallback_successes,
            token=stats.matched_token_id,
        )
        return DeepScanOutcome(verdict=verdict, stats=stats)


__all__ = ["DeepScanOutcome", "DeepScanner"]
