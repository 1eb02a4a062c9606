"""Подсчёт токенов кошелька в контракте с многоступенчатым fallback.

* ERC-721: ``balanceOf(address)``.
* ERC-1155: агрегатного баланса нет, поэтому пробуем небольшой набор id
  через ``balanceOf(address, id)`` до первого ненулевого.
* Стандарт неизвестен: сначала путь ERC-721, при сбое путь ERC-1155.

Ошибка отдельного вызова (revert, кривой ответ, исчерпанные ретраи) не роняет
проверку: такой вызов просто не дал сигнала.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from loguru import logger

from config.settings import get_settings
from nftgate.errors import PROBE_ERRORS
from nftgate.models import Address, BalanceResult, TokenStandard
from nftgate.services.rpc import abi
from nftgate.services.rpc.retry import GatedRpc


class BalanceProber:
    """Считает токены пары кошелёк/контракт по найденному стандарту."""

    def __init__(self, rpc: GatedRpc, probe_token_ids: Sequence[int] | None = None) -> None:
        self._rpc = rpc
        if probe_token_ids is None:
            probe_token_ids = get_settings().collections.probe_token_ids
        self._probe_token_ids = tuple(probe_token_ids)

    async def probe(
        self,
        wallet: Address,
        contract: Address,
        standard: TokenStandard,
        token_id: int = 0,
    ) -> BalanceResult:
        if standard is TokenStandard.ERC721:
            return await self._probe_erc721(wallet, contract)
        if standard is TokenStandard.ERC1155:
            return await self._probe_erc1155(wallet, contract, token_id)

        result = await self._probe_erc721(wallet, contract)
        if result.success:
            return result
        logger.debug(
            "{contract}: balanceOf(address) не сработал, пробуем ERC-1155 id",
            contract=contract,
        )
        result = await self._probe_erc1155(wallet, contract, token_id)
        if not result.success:
            logger.info(
                "Не удалось получить баланс {wallet} в {contract}: все пробы упали",
                wallet=wallet,
                contract=contract,
            )
        return result

    async def _probe_erc721(self, wallet: Address, contract: Address) -> BalanceResult:
        try:
            raw = await self._rpc.eth_call(contract, abi.balance_of(wallet))
            count = abi.decode_uint(raw)
        except PROBE_ERRORS as exc:
            logger.debug(
                "balanceOf({wallet}) на {contract} упал: {error}",
                wallet=wallet,
                contract=contract,
                error=exc,
            )
            return BalanceResult.failed(TokenStandard.ERC721)
        logger.debug(
            "{wallet} владеет {count} NFT ERC-721 в {contract}",
            wallet=wallet,
            count=count,
            contract=contract,
        )
        return BalanceResult(count=count, standard_used=TokenStandard.ERC721, success=True)

    async def _probe_erc1155(
        self,
        wallet: Address,
        contract: Address,
        token_id: int,
    ) -> BalanceResult:
        answered = False
        for candidate in self.candidate_ids(token_id):
            try:
                raw = await self._rpc.eth_call(contract, abi.balance_of_id(wallet, candidate))
                count = abi.decode_uint(raw)
            except PROBE_ERRORS as exc:
                logger.debug(
                    "balanceOf({wallet}, {token}) на {contract} упал: {error}",
                    wallet=wallet,
                    token=candidate,
                    contract=contract,
                    error=exc,
                )
                continue
            answered = True
            if count > 0:
                logger.debug(
                    "{wallet} владеет {count} NFT ERC-1155 в {contract}, tokenId {token}",
                    wallet=wallet,
                    count=count,
                    contract=contract,
                    token=candidate,
                )
                return BalanceResult(count=count, standard_used=TokenStandard.ERC1155, success=True)
        return BalanceResult(count=0, standard_used=TokenStandard.ERC1155, success=answered)

    def candidate_ids(self, token_id: int) -> list[int]:
        """Запрошенный id первым, затем набор проб без повторов."""

        return _unique([token_id, *self._probe_token_ids])


def _unique(values: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


__all__ = ["BalanceProber"]
