"""Повтор временных RPC-ошибок с экспоненциальным backoff и jitter."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from config.settings import RetrySettings, get_settings
from nftgate.errors import ExhaustedRetriesError, MalformedResponseError, TransientRpcError
from .rate_gate import RateGate, Sleep
from .transport import RpcTransport

T = TypeVar("T")


@dataclass(slots=True)
class RetryPolicy:
    """Параметры повтора: задержка ``2**attempt * base_delay + U(0, max_jitter)``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 1.0
    sleep: Sleep = field(default=asyncio.sleep, repr=False)
    jitter: Callable[[float, float], float] = field(default=random.uniform, repr=False)

    @classmethod
    def from_settings(cls, settings: RetrySettings | None = None) -> "RetryPolicy":
        cfg = settings or get_settings().retry
        return cls(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.base_delay,
            max_jitter=cfg.max_jitter,
        )

    def delay_for(self, attempt: int) -> float:
        return (2 ** attempt) * self.base_delay + self.jitter(0.0, self.max_jitter)


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
    *,
    policy: RetryPolicy | None = None,
    label: str = "rpc",
) -> T:
    """Выполняет ``op``; ретраит только :class:`TransientRpcError`.

    Логические ошибки пробрасываются сразу: повтор кривого вызова лишь тратит
    бюджет лимитера. После исчерпания попыток бросает :class:`ExhaustedRetriesError`.
    """

    policy = policy or RetryPolicy()
    attempts = max_attempts if max_attempts is not None else policy.max_attempts
    attempts = max(1, attempts)
    last_error: TransientRpcError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await op()
        except TransientRpcError as exc:
            last_error = exc
            if attempt == attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "{label}: попытка {attempt}/{total} упала ({error}), повтор через {delay:.2f}s",
                label=label,
                attempt=attempt,
                total=attempts,
                error=exc,
                delay=delay,
            )
            await policy.sleep(delay)
    assert last_error is not None
    logger.debug("{label}: исчерпано {total} попыток", label=label, total=attempts)
    raise ExhaustedRetriesError(attempts, last_error) from last_error


class GatedRpc:
    """Транспорт + Rate Gate + retry: единственный путь RPC-вызовов наружу.

    Каждая попытка (включая повторы) отдельно проходит гейт и расходует токен.
    """

    def __init__(
        self,
        transport: RpcTransport,
        gate: RateGate,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._transport = transport
        self._gate = gate
        self._policy = policy or RetryPolicy.from_settings()
        self._calls = 0

    @property
    def gate(self) -> RateGate:
        return self._gate

    @property
    def calls(self) -> int:
        """Количество запросов, реально отправленных в транспорт."""

        return self._calls

    async def _dispatch(self, method: str, params: list[Any]) -> Any:
        async with self._gate.slot():
            self._calls += 1
            return await self._transport.call(method, params)

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        return await with_retry(
            lambda: self._dispatch(method, params or []),
            policy=self._policy,
            label=method,
        )

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        if not isinstance(result, str):
            raise MalformedResponseError(f"eth_call вернул {result!r}")
        return result

    async def block_number(self) -> int:
        result = await self.call("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as exc:
            raise MalformedResponseError(f"eth_blockNumber вернул {result!r}") from exc

    async def get_block(self, number: int, full_transactions: bool = True) -> dict[str, Any] | None:
        result = await self.call("eth_getBlockByNumber", [hex(number), full_transactions])
        if result is not None and not isinstance(result, dict):
            raise MalformedResponseError(f"eth_getBlockByNumber вернул {result!r}")
        return result


__all__ = ["GatedRpc", "RetryPolicy", "with_retry"]
