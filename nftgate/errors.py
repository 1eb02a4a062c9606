"""Иерархия исключений nftgate.

Временные ошибки (429, таймаут, обрыв соединения) ретраятся, логические
(revert, кривой ответ, JSON-RPC error) не ретраятся: каждый шаг проверки считает их
просто «нет сигнала».
"""

from __future__ import annotations

from typing import Any


class NftGateError(RuntimeError):
    """Базовое исключение nftgate."""


class InvalidAddressError(NftGateError, ValueError):
    """Адрес кошелька или контракта не прошёл валидацию."""

    def __init__(self, raw: Any) -> None:
        super().__init__(f"Некорректный EVM-адрес: {raw!r}")
        self.raw = raw


class ConfigurationError(NftGateError):
    """Сервис вызван без обязательной настройки (например, контракта пасса)."""


class RpcTransportError(NftGateError):
    """Базовое исключение слоя JSON-RPC."""


class TransientRpcError(RpcTransportError):
    """Ошибки, которые имеет смысл повторить."""


class RateLimitedError(TransientRpcError):
    """Провайдер ответил 429 или JSON-RPC ошибкой лимита."""


class RpcTimeoutError(TransientRpcError):
    """Запрос не уложился в таймаут."""


class ConnectionResetRpcError(TransientRpcError):
    """Соединение сброшено, отклонено или закрыто сервером."""


class MalformedResponseError(RpcTransportError):
    """Ответ не похож на JSON-RPC 2.0 или результат не декодируется."""


class RpcError(RpcTransportError):
    """Корректный JSON-RPC ответ с полем error."""

    def __init__(self, method: str, payload: dict[str, Any]) -> None:
        self.method = method
        self.payload = payload
        self.code = payload.get("code")
        self.message = str(payload.get("message", ""))
        self.data = payload.get("data")
        super().__init__(f"RPC ошибка {method}: {payload}")


class ContractRevertError(RpcError):
    """eth_call завершился revert (метод не реализован или токена нет)."""


class ExhaustedRetriesError(NftGateError):
    """Все попытки исчерпаны на временных ошибках."""

    def __init__(self, attempts: int, last_error: TransientRpcError) -> None:
        super().__init__(f"Исчерпано {attempts} попыток: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


# Всё, что шаг пробинга глотает как «нет сигнала».
PROBE_ERRORS: tuple[type[Exception], ...] = (RpcTransportError, ExhaustedRetriesError)


__all__ = [
    "ConfigurationError",
    "ConnectionResetRpcError",
    "ContractRevertError",
    "ExhaustedRetriesError",
    "InvalidAddressError",
    "MalformedResponseError",
    "NftGateError",
    "PROBE_ERRORS",
    "RateLimitedError",
    "RpcError",
    "RpcTimeoutError",
    "RpcTransportError",
    "TransientRpcError",
]
