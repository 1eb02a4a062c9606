"""Единая точка настройки aiocache и кеш результатов проверок.

aiocache хранит записи (memory или redis), а свежесть оценивается по
``written_at`` и TTL класса записи: так политика не зависит от таймеров
бэкенда и тестируется с фейковыми часами.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

from aiocache import SimpleMemoryCache, caches
from aiocache.base import BaseCache

try:
    from aiocache import RedisCache
except (ImportError, AttributeError):  # pragma: no cover - optional dependency
    RedisCache = None  # type: ignore[assignment]

from config.settings import CacheSettings, get_settings

Clock = Callable[[], float]

_configured = False


def configure_cache(settings: CacheSettings | None = None) -> None:
    """Настраивает aiocache в зависимости от backend (memory/redis)."""

    global _configured
    if _configured:
        return
    cfg = settings or get_settings().cache
    # Бэкенд чистит записи не раньше самого длинного класса TTL.
    backend_ttl = max(cfg.holdings_ttl, cfg.pass_status_ttl, cfg.deep_scan_ttl, cfg.standard_ttl)

    if cfg.backend == "redis":
        if RedisCache is None:
            raise RuntimeError(
                "Для использования RedisCache установите пакет 'redis' и aiocache[redis]"
            )
        config = _build_redis_config(cfg.redis_dsn)
        caches.set_config(
            {
                "default": {
                    "cache": "aiocache.RedisCache",
                    "serializer": {"class": "aiocache.serializers.PickleSerializer"},
                    **config,
                    "ttl": backend_ttl,
                }
            }
        )
    else:
        caches.set_config(
            {
                "default": {
                    "cache": "aiocache.SimpleMemoryCache",
                    "ttl": backend_ttl,
                }
            }
        )
    _configured = True


def get_cache(alias: str = "default") -> BaseCache:
    """Возвращает кеш по алиасу (предварительно гарантирует конфиг)."""

    configure_cache()
    return caches.get(alias)


def _build_redis_config(dsn: str | None) -> dict[str, Any]:
    if not dsn:
        raise RuntimeError("CACHE__BACKEND=redis, но redis_dsn не указан")
    parsed = urlparse(dsn)
    if parsed.scheme not in {"redis", "rediss"}:
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    db = 0
    if parsed.path and parsed.path != "/":
        try:
            db = int(parsed.path.lstrip("/"))
        except ValueError:
            db = 0
    return {
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": db,
    }


@dataclass(slots=True, frozen=True)
class CacheEntry:
    value: Any
    written_at: float

    def is_fresh(self, ttl: float, now: float) -> bool:
        return now - self.written_at <= ttl


class ResultCache:
    """Кеш вердиктов с TTL по классам записей.

    ``get`` никогда не отдаёт запись, у которой ``written_at + ttl < now``;
    ``get_stale`` нужен только для anti-flapping (прошлое известное состояние).
    """

    def __init__(self, backend: BaseCache | None = None, *, clock: Clock = time.time) -> None:
        if backend is None:
            # Свой namespace: в aiocache < 0.12 память общая для всех экземпляров.
            backend = SimpleMemoryCache(namespace=f"nftgate-{uuid.uuid4().hex}:")
        self._backend = backend
        self._clock = clock

    @classmethod
    def from_settings(cls) -> "ResultCache":
        return cls(get_cache())

    def now(self) -> float:
        return self._clock()

    async def get_entry(self, key: str) -> CacheEntry | None:
        entry = await self._backend.get(key)
        if isinstance(entry, CacheEntry):
            return entry
        return None

    async def get(self, key: str, ttl: float) -> Any | None:
        entry = await self.get_entry(key)
        if entry is None or not entry.is_fresh(ttl, self.now()):
            return None
        return entry.value

    async def get_stale(self, key: str) -> Any | None:
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(value=value, written_at=self.now())
        await self._backend.set(key, entry)
        return entry

    async def delete(self, key: str) -> None:
        await self._backend.delete(key)

    async def clear(self) -> None:
        await self._backend.clear()


def holdings_key(wallet: str, contract: str, token_id: int = 0) -> str:
    return f"holdings:{wallet}:{contract}:{token_id}"


def standard_key(contract: str) -> str:
    return f"standard:{contract}"


def pass_key(wallet: str, contract: str) -> str:
    return f"pass:{wallet}:{contract}"


def deep_scan_key(wallet: str, contract: str) -> str:
    return f"deepscan:{wallet}:{contract}"


__all__ = [
    "CacheEntry",
    "ResultCache",
    "configure_cache",
    "deep_scan_key",
    "get_cache",
    "holdings_key",
    "pass_key",
    "standard_key",
]
