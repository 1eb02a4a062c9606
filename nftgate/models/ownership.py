"""Результаты проверок владения NFT."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from .address import Address


class TokenStandard(str, Enum):
    """Стандарт контракта, определённый через ERC-165."""

    UNKNOWN = "unknown"
    ERC721 = "erc721"
    ERC1155 = "erc1155"


class OwnershipVerdict(str, Enum):
    OWNED = "owned"
    NOT_OWNED = "not_owned"
    UNKNOWN = "unknown"

    @property
    def is_definitive(self) -> bool:
        return self is not OwnershipVerdict.UNKNOWN

    @classmethod
    def from_hint(cls, hint: "bool | OwnershipVerdict | None") -> "OwnershipVerdict":
        """Переводит подсказку вызывающего кода (роль выдана / нет) в вердикт."""

        if isinstance(hint, OwnershipVerdict):
            return hint
        if hint is None:
            return cls.UNKNOWN
        return cls.OWNED if hint else cls.NOT_OWNED


@dataclass(slots=True, frozen=True)
class BalanceResult:
    """Количество токенов кошелька в контракте.

    ``success=False`` означает, что ни один вызов не дал пригодного ответа:
    ``count`` тогда бессмыслен и не кешируется как окончательный ноль.
    """

    count: int
    standard_used: TokenStandard
    success: bool

    @classmethod
    def failed(cls, standard: TokenStandard = TokenStandard.UNKNOWN) -> "BalanceResult":
        return cls(count=0, standard_used=standard, success=False)


@dataclass(slots=True)
class ScanStats:
    """Счётчики одного deep scan (для логов и тестов)."""

    owner_calls: int = 0
    owner_successes: int = 0
    fallback_calls: int = 0
    fallback_successes: int = 0
    matched_token_id: int | None = None
    owner_aborted: bool = False
    fallback_aborted: bool = False

    @property
    def aborted(self) -> bool:
        """Перебор прерван из-за сбоев RPC, диапазон проверен не целиком."""

        return self.owner_aborted or self.fallback_aborted

    @property
    def total_calls(self) -> int:
        return self.owner_calls + self.fallback_calls

    @property
    def any_success(self) -> bool:
        return bool(self.owner_successes or self.fallback_successes)


PassSource = Literal["cache", "probe", "deep_scan", "failed"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_timestamp(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


@dataclass(slots=True)
class PassStatus:
    """Трёхзначный вердикт по пассу плюс метаданные для вызывающего кода."""

    wallet: Address
    verdict: OwnershipVerdict
    source: PassSource
    checked_at: datetime = field(default_factory=utcnow)
    from_cache: bool = False
    previous: OwnershipVerdict = OwnershipVerdict.UNKNOWN

    @property
    def owned(self) -> bool | None:
        if self.verdict is OwnershipVerdict.UNKNOWN:
            return None
        return self.verdict is OwnershipVerdict.OWNED

    @property
    def effective(self) -> OwnershipVerdict:
        """Вердикт, по которому стоит действовать.

        Если проверить не удалось, остаётся прежнее известное состояние,
        а не «не владеет»: сбой ноды не должен снимать роль.
        """

        if self.verdict.is_definitive:
            return self.verdict
        return self.previous

    def as_dict(self) -> dict[str, str | bool | None]:
        return {
            "wallet": str(self.wallet),
            "verdict": self.verdict.value,
            "owned": self.owned,
            "effective": self.effective.value,
            "source": self.source,
            "from_cache": self.from_cache,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass(slots=True)
class CollectionCount:
    """Количество токенов коллекции с признаком достоверности."""

    wallet: Address
    contract: Address
    count: int
    success: bool
    standard: TokenStandard = TokenStandard.UNKNOWN
    checked_at: datetime = field(default_factory=utcnow)
    from_cache: bool = False


@dataclass(slots=True)
class WalletHoldings:
    """Сводка по одному кошельку: все коллекции + пасс."""

    wallet: Address
    collections: dict[Address, CollectionCount] = field(default_factory=dict)
    pass_status: PassStatus | None = None

    def count_for(self, contract: Address) -> int:
        entry = self.collections.get(contract)
        return entry.count if entry else 0

    @property
    def complete(self) -> bool:
        """True, если все коллекции проверены без сбоя."""

        return all(entry.success for entry in self.collections.values())


__all__ = [
    "BalanceResult",
    "CollectionCount",
    "OwnershipVerdict",
    "PassSource",
    "PassStatus",
    "ScanStats",
    "TokenStandard",
    "WalletHoldings",
    "from_timestamp",
    "utcnow",
]
