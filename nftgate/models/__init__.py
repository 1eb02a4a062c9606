"""Доменные типы nftgate."""

from .address import Address, ContractAddress, WalletAddress, parse_address  # noqa: F401
from .ownership import (  # noqa: F401
    BalanceResult,
    CollectionCount,
    OwnershipVerdict,
    PassSource,
    PassStatus,
    ScanStats,
    TokenStandard,
    WalletHoldings,
    from_timestamp,
    utcnow,
)

__all__ = [
    "Address",
    "BalanceResult",
    "CollectionCount",
    "ContractAddress",
    "OwnershipVerdict",
    "PassSource",
    "PassStatus",
    "ScanStats",
    "TokenStandard",
    "WalletAddress",
    "WalletHoldings",
    "from_timestamp",
    "parse_address",
    "utcnow",
]
