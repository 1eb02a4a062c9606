"""Rate Gate: общий token bucket + ограниченный пул слотов.

Каждый исходящий RPC-вызов проходит через один экземпляр :class:`RateGate`.
Слот держится на всё время round-trip, токен расходуется один раз при
допуске. Токены восстанавливаются до полной ёмкости раз в окно 1000 мс
(фиксированное окно, не скользящий лог), поэтому сразу после пополнения
допускается всплеск до ``rate_per_second`` вызовов.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from loguru import logger

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class GateTicket:
    """Хендл занятого слота. ``release()`` можно вызывать повторно."""

    __slots__ = ("_gate", "_released")

    def __init__(self, gate: "RateGate") -> None:
        self._gate = gate
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release_slot()


class RateGate:
    """Ограничивает параллелизм и частоту запросов к провайдеру."""

    def __init__(
        self,
        concurrency: int = 5,
        rate_per_second: int = 20,
        *,
        window: float = 1.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if concurrency < 1 or rate_per_second < 1:
            raise ValueError("concurrency и rate_per_second должны быть >= 1")
        self.concurrency = concurrency
        self.rate_per_second = rate_per_second
        self._window = window
        self._clock = clock
        self._sleep = sleep
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._tokens = rate_per_second
        self._window_started: float | None = None
        self._admitted = 0

    @property
    def in_flight(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def admitted(self) -> int:
        """Сколько вызовов пропущено за время жизни гейта."""

        return self._admitted

    async def acquire(self) -> GateTicket:
        """Ждёт свободный слот (FIFO) и токен текущего окна."""

        await self._acquire_slot()
        ticket = GateTicket(self)
        try:
            await self._take_token()
        except BaseException:
            ticket.release()
            raise
        self._admitted += 1
        return ticket

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[GateTicket]:
        ticket = await self.acquire()
        try:
            yield ticket
        finally:
            ticket.release()

    async def _acquire_slot(self) -> None:
        if self._active < self.concurrency and not self.queued:
            self._active += 1
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Слот уже передан нам, но задачу отменили: отдаём дальше.
                self._release_slot()
            raise
        finally:
            try:
                self._waiters.remove(waiter)
            except ValueError:
                pass

    def _release_slot(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Слот переходит следующему в очереди, счётчик не меняется.
                waiter.set_result(None)
                return
        self._active = max(0, self._active - 1)

    def _refill(self) -> float:
        """Пополняет бакет, если окно истекло. Возвращает остаток окна."""

        now = self._clock()
        if self._window_started is None or now - self._window_started >= self._window:
            self._window_started = now
            self._tokens = self.rate_per_second
        return self._window - (now - self._window_started)

    async def _take_token(self) -> None:
        while True:
            remaining = self._refill()
            if self._tokens > 0:
                self._tokens -= 1
                return
            logger.trace("RateGate: бюджет окна исчерпан, ждём {sec:.3f}s", sec=remaining)
            await self._sleep(max(remaining, 0.001))


__all__ = ["Clock", "GateTicket", "RateGate", "Sleep"]
