"""Прямой JSON-RPC доступ к EVM-ноде без индексеров.

RpcTransport отправляет ровно один JSON-RPC 2.0 запрос и классифицирует сбой:
временные ошибки (429, таймаут, обрыв соединения) отдельно от логических
(revert, кривой ответ, error-payload). Повторы делает retry-слой.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import aiohttp
from loguru import logger

from config.settings import get_settings
from nftgate.errors import (
    ConnectionResetRpcError,
    ContractRevertError,
    MalformedResponseError,
    RateLimitedError,
    RpcError,
    RpcTimeoutError,
    RpcTransportError,
)

# Коды, которыми провайдеры сообщают о превышении лимита в теле ответа.
RATE_LIMIT_CODES = {-32005, -32029, 429}

# HTTP-статусы перегруженного или недоступного upstream за балансировщиком.
GATEWAY_STATUSES = frozenset({502, 503, 504})


class RpcTransport:
    """Лёгкий JSON-RPC клиент поверх aiohttp."""

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        settings = get_settings().rpc
        self._url = url or str(settings.url)
        self._timeout = aiohttp.ClientTimeout(total=timeout or settings.request_timeout)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def start(self) -> None:
        """Инициализирует HTTP session."""

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
            logger.info("RpcTransport готов: RPC {rpc}", rpc=self._url)

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RpcTransport":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Выполняет JSON-RPC вызов и возвращает поле ``result``."""

        if self._session is None or self._session.closed:
            raise RpcTransportError("HTTP-сессия не инициализирована, вызовите start()")
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            async with self._session.post(
                self._url, json=payload, timeout=self._timeout
            ) as resp:
                if resp.status == 429:
                    raise RateLimitedError(f"RPC {method}: HTTP 429")
                if resp.status in GATEWAY_STATUSES:
                    raise ConnectionResetRpcError(f"RPC {method}: HTTP {resp.status} от шлюза")
                if resp.status >= 400:
                    text = await resp.text()
                    raise MalformedResponseError(
                        f"RPC {method} завершился с HTTP {resp.status}: {text[:200]}"
                    )
                try:
                    data = await resp.json(content_type=None)
                except ValueError as exc:
                    raise MalformedResponseError(f"RPC {method}: ответ не JSON") from exc
        except asyncio.TimeoutError as exc:
            raise RpcTimeoutError(f"RPC {method}: таймаут") from exc
        except (
            aiohttp.ClientConnectionError,
            aiohttp.ClientPayloadError,
            ConnectionResetError,
        ) as exc:
            raise ConnectionResetRpcError(f"RPC {method}: соединение оборвано ({exc})") from exc
        return self._unwrap(method, data)

    @staticmethod
    def _unwrap(method: str, data: Any) -> Any:
        if not isinstance(data, dict):
            raise MalformedResponseError(f"RPC {method}: неожиданный ответ {data!r}")
        error = data.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            message = str(error.get("message", "")).lower()
            if error.get("code") in RATE_LIMIT_CODES or "rate limit" in message:
                raise RateLimitedError(f"RPC {method}: {error}")
            if "revert" in message:
                raise ContractRevertError(method, error)
            raise RpcError(method, error)
        if "result" not in data:
            raise MalformedResponseError(f"RPC {method}: нет поля result")
        return data["result"]


__all__ = ["GATEWAY_STATUSES", "RATE_LIMIT_CODES", "RpcTransport"]
