"""Подтверждение владения кошельком переводом точной суммы.

Пользователь отправляет уникальную микросумму со своего кошелька на служебный
адрес; сервис просматривает последние блоки через ``eth_blockNumber`` и
``eth_getBlockByNumber`` и ищет транзакцию с совпадающими from / to / value.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from loguru import logger

from config.settings import get_settings
from nftgate.errors import PROBE_ERRORS
from nftgate.models import Address, parse_address
from nftgate.services.rpc.retry import GatedRpc

WEI_PER_MICRO = 10**12  # 0.000001 нативной монеты


@dataclass(slots=True, frozen=True)
class TransferMatch:
    tx_hash: str
    block_number: int


@dataclass(slots=True)
class VerificationResult:
    matched: bool
    tx_hash: str | None = None
    block_number: int | None = None
    blocks_scanned: int = 0
    blocks_failed: int = 0


def generate_amount(rng: random.Random | None = None) -> int:
    """Случайная сумма 0.000001..0.000099 в wei."""

    rng = rng or random.SystemRandom()
    return rng.randint(1, 99) * WEI_PER_MICRO


def format_amount(amount_wei: int) -> str:
    return f"{amount_wei / 10**18:.6f}"


class WalletVerifier:
    """Ищет перевод-подтверждение в последних ``lookback_blocks`` блоках."""

    def __init__(
        self,
        rpc: GatedRpc,
        *,
        recipient: str | None = None,
        lookback_blocks: int | None = None,
    ) -> None:
        cfg = get_settings().verification
        self._rpc = rpc
        self._recipient = parse_address(recipient or cfg.wallet)
        self._lookback = lookback_blocks or cfg.lookback_blocks

    @property
    def recipient(self) -> Address:
        return self._recipient

    async def verify(self, sender: str, amount_wei: int) -> VerificationResult:
        address = parse_address(sender)
        logger.info(
            "Проверяем перевод {amount} от {sender} на {recipient}",
            amount=format_amount(amount_wei),
            sender=address,
            recipient=self._recipient,
        )
        try:
            latest = await self._rpc.block_number()
        except PROBE_ERRORS as exc:
            logger.error("Не удалось получить номер последнего блока: {error}", error=exc)
            return VerificationResult(matched=False)

        result = VerificationResult(matched=False)
        oldest = max(0, latest - self._lookback + 1)
        for number in range(latest, oldest - 1, -1):
            try:
                block = await self._rpc.get_block(number, full_transactions=True)
            except PROBE_ERRORS as exc:
                result.blocks_failed += 1
                logger.debug("Блок {number} не загружен: {error}", number=number, error=exc)
                continue
            result.blocks_scanned += 1
            match = self._match_block(block, address, amount_wei, number)
            if match is not None:
                result.matched = True
                result.tx_hash = match.tx_hash
                result.block_number = match.block_number
                logger.info(
                    "Транзакция подтверждения найдена: {tx} в блоке {block}",
                    tx=match.tx_hash,
                    block=match.block_number,
                )
                return result
        logger.info(
            "Перевод от {sender} не найден в блоках {oldest}..{latest} (сбоев {failed})",
            sender=address,
            oldest=oldest,
            latest=latest,
            failed=result.blocks_failed,
        )
        return result

    async def find_transfer(self, sender: str, amount_wei: int) -> TransferMatch | None:
        result = await self.verify(sender, amount_wei)
        if not result.matched:
            return None
        assert result.tx_hash is not None and result.block_number is not None
        return TransferMatch(tx_hash=result.tx_hash, block_number=result.block_number)

    def _match_block(
        self,
        block: dict[str, Any] | None,
        sender: Address,
        amount_wei: int,
        number: int,
    ) -> TransferMatch | None:
        if not block:
            return None
        for tx in block.get("transactions") or []:
            if not isinstance(tx, dict):
                continue
            if str(tx.get("from", "")).lower() != sender:
                continue
            if str(tx.get("to") or "").lower() != self._recipient:
                continue
            try:
                value = int(tx.get("value", "0x0"), 16)
            except (TypeError, ValueError):
                continue
            if value == amount_wei:
                return TransferMatch(tx_hash=str(tx.get("hash")), block_number=number)
        return None


__all__ = [
    "TransferMatch",
    "VerificationResult",
    "WEI_PER_MICRO",
    "WalletVerifier",
    "format_amount",
    "generate_amount",
]
