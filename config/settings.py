"""Глобальные настройки nftgate.

Настройки разделены по доменам (RPC, лимиты, ретраи, кеш, коллекции, батчи),
чтобы подключать новые коллекции и провайдеров без переписывания базового кода.
Вся конфигурация загружается из переменных окружения через Pydantic Settings
(например, ``RATE_LIMIT__RATE_PER_SECOND=10`` или ``COLLECTIONS__PASS_CONTRACT=0x...``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE

DAY_SECONDS = 24 * 60 * 60


class RpcSettings(BaseModel):
    """JSON-RPC нода (eth_call / eth_blockNumber / eth_getBlockByNumber)."""

    url: AnyHttpUrl = Field(
        "https://testnet-rpc.monad.xyz/",
        description="HTTP endpoint EVM-совместимой ноды",
    )
    request_timeout: PositiveFloat = Field(
        15.0, description="Таймаут одного запроса, секунды"
    )


class RateLimitSettings(BaseModel):
    """Общий бюджет запросов к провайдеру."""

    concurrency: PositiveInt = Field(5, description="Одновременных запросов в полёте")
    rate_per_second: PositiveInt = Field(
        20, description="Запросов за окно 1000 мс (ниже документированного лимита)"
    )


class RetrySettings(BaseModel):
    """Экспоненциальный backoff для временных ошибок (429, таймаут, reset)."""

    max_attempts: PositiveInt = 3
    base_delay: NonNegativeFloat = 1.0
    max_jitter: NonNegativeFloat = 1.0


class CacheSettings(BaseModel):
    """Настройки кеша результатов (aiocache поддерживает memory / redis)."""

    backend: Literal["memory", "redis"] = "memory"
    redis_dsn: str | None = None
    holdings_ttl: PositiveInt = Field(DAY_SECONDS, description="TTL дешёвых балансов")
    pass_status_ttl: PositiveInt = Field(DAY_SECONDS, description="TTL вердикта по пассу")
    deep_scan_ttl: PositiveInt = Field(DAY_SECONDS, description="Как часто разрешён deep scan")
    standard_ttl: PositiveInt = Field(7 * DAY_SECONDS, description="TTL стандарта контракта")

    @field_validator("redis_dsn", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CollectionSettings(BaseModel):
    """Отслеживаемые коллекции и параметры пробинга."""

    holdings: list[str] = Field(
        default_factory=list,
        description="Контракты с агрегатным balanceOf (collection1, collection2)",
    )
    pass_contract: str | None = Field(
        None, description="Контракт пасса без агрегатного баланса (collection3)"
    )
    probe_token_ids: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    deep_scan_max_token_id: int = Field(
        777, ge=0, description="Верхняя граница перебора ownerOf (включительно)"
    )
    erc1155_fallback_max_id: int = Field(32, ge=0)
    deep_scan_abort_after_failures: int = Field(
        10, ge=0, description="Прервать перебор после N сбоев RPC подряд (0: никогда)"
    )

    @field_validator("pass_contract", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BatchSettings(BaseModel):
    """Массовые проверки кошельков."""

    size: PositiveInt = 100
    parallel: PositiveInt = 4
    delay_seconds: NonNegativeFloat = 1.0


class VerificationSettings(BaseModel):
    """Привязка кошелька переводом точной суммы на служебный адрес."""

    wallet: str = "0x8d9a1522114025867bfcca01e19708def4f23599"
    lookback_blocks: PositiveInt = 100


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False


class AppSettings(BaseSettings):
    """Главный контейнер настроек nftgate."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    rpc: RpcSettings = RpcSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    retry: RetrySettings = RetrySettings()
    cache: CacheSettings = CacheSettings()
    collections: CollectionSettings = CollectionSettings()
    batch: BatchSettings = BatchSettings()
    verification: VerificationSettings = VerificationSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def is_production(self) -> bool:
        """True, если сервис запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Значения кэшируются, поэтому .env читается ровно один раз за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


__all__ = [
    "AppSettings",
    "BatchSettings",
    "CacheSettings",
    "CollectionSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RetrySettings",
    "RpcSettings",
    "VerificationSettings",
    "get_settings",
]
