"""Проверки владения NFT: стандарт, балансы, deep scan, пасс."""

from .balance_prober import BalanceProber  # noqa: F401
from .deep_scanner import DeepScanner, DeepScanOutcome  # noqa: F401
from .gate import BatchReport, NftGate  # noqa: F401
from .holdings import HoldingsService  # noqa: F401
from .pass_resolver import PassStatusResolver, PriorHint  # noqa: F401
from .standard_detector import StandardDetector  # noqa: F401

__all__ = [
    "BalanceProber",
    "BatchReport",
    "DeepScanOutcome",
    "DeepScanner",
    "HoldingsService",
    "NftGate",
    "PassStatusResolver",
    "PriorHint",
    "StandardDetector",
]
