"""Настройка loguru для продакшена."""

from __future__ import annotations

import sys
from typing import Any

from loguru import logger

TEXT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}"


def setup_logging(level: str = "INFO", json: bool = False, sink: Any = None) -> None:
    """Один sink в stdout: текстовый или JSON-строки (``serialize`` loguru)."""

    logger.remove()
    options: dict[str, Any] = {"serialize": True} if json else {"format": TEXT_FORMAT}
    logger.add(
        sys.stdout if sink is None else sink,
        level=level.upper(),
        colorize=False if json else None,
        backtrace=False,
        enqueue=True,
        **options,
    )


__all__ = ["TEXT_FORMAT", "setup_logging"]
