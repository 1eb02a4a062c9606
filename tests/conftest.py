"""Общие фикстуры: фейковые часы, скриптуемая EVM-нода и сборка сервисов."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

import config.settings as settings_module
from config.settings import AppSettings
from nftgate.errors import ConnectionResetRpcError, ContractRevertError
from nftgate.services.rpc.rate_gate import RateGate
from nftgate.services.rpc.retry import GatedRpc, RetryPolicy
from nftgate.utils.cache import ResultCache

WALLET = "0x" + "11" * 20
OTHER_WALLET = "0x" + "22" * 20
THIRD_WALLET = "0x" + "33" * 20
ERC721_CONTRACT = "0x" + "a7" * 20
ERC1155_CONTRACT = "0x" + "b1" * 20
PASS_CONTRACT = "0x" + "c3" * 20
RECIPIENT = "0x8d9a1522114025867bfcca01e19708def4f23599"

SUPPORTS_INTERFACE = "01ffc9a7"
BALANCE_OF = "70a08231"
BALANCE_OF_ID = "00fdd58e"
OWNER_OF = "6352211e"


def word(value: int) -> str:
    return "0x" + format(value, "064x")


def address_word(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


def revert() -> ContractRevertError:
    return ContractRevertError("eth_call", {"code": 3, "message": "execution reverted"})


class FakeClock:
    """Монотонные часы, которые двигает только ``sleep``."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@dataclass
class FakeContract:
    """Поведение одного контракта. ``None`` у метода означает revert."""

    interfaces: set[str] = field(default_factory=set)
    supports_reverts: bool = False
    balances: dict[str, int] | None = None
    balances_1155: dict[tuple[str, int], int] | None = None
    owners: dict[int, str] | None = None
    owner_outage_from: int | None = None


class FakeChain:
    """Минимальная EVM-нода: eth_call по селекторам + блоки."""

    def __init__(self) -> None:
        self.contracts: dict[str, FakeContract] = {}
        self.outage = False
        self.latest_block = 0
        self.blocks: dict[int, dict[str, Any]] = {}
        self.broken_blocks: set[int] = set()

    def add(self, address: str, contract: FakeContract) -> FakeContract:
        self.contracts[address.lower()] = contract
        return contract

    def __call__(self, method: str, params: list[Any]) -> Any:
        if self.outage:
            raise ConnectionResetRpcError("connection reset by peer")
        if method == "eth_call":
            return self._eth_call(params[0]["to"].lower(), params[0]["data"])
        if method == "eth_blockNumber":
            return hex(self.latest_block)
        if method == "eth_getBlockByNumber":
            number = int(params[0], 16)
            if number in self.broken_blocks:
                raise ConnectionResetRpcError(f"block {number} unavailable")
            return self.blocks.get(number)
        raise AssertionError(f"unexpected method {method}")

    def _eth_call(self, to: str, data: str) -> str:
        contract = self.contracts.get(to)
        if contract is None:
            raise revert()
        selector, args = data[2:10], data[10:]
        if selector == SUPPORTS_INTERFACE:
            if contract.supports_reverts:
                raise revert()
            return word(1 if args[:8] in contract.interfaces else 0)
        if selector == BALANCE_OF:
            if contract.balances is None:
                raise revert()
            return word(contract.balances.get("0x" + args[24:64], 0))
        if selector == BALANCE_OF_ID:
            if contract.balances_1155 is None:
                raise revert()
            token_id = int(args[64:128], 16)
            return word(contract.balances_1155.get(("0x" + args[24:64], token_id), 0))
        if selector == OWNER_OF:
            token_id = int(args[:64], 16)
            if contract.owner_outage_from is not None and token_id >= contract.owner_outage_from:
                raise ConnectionResetRpcError(f"ownerOf({token_id}): upstream timeout")
            if contract.owners is None or token_id not in contract.owners:
                raise revert()
            return address_word(contract.owners[token_id])
        raise revert()


class ScriptedTransport:
    """Подменяет RpcTransport: отвечает через handler и считает вызовы."""

    def __init__(
        self,
        handler: Callable[[str, list[Any]], Any],
        *,
        latency: float = 0.0,
    ) -> None:
        self.handler = handler
        self.latency = latency
        self.calls: list[tuple[str, list[Any]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        self.calls.append((method, params or []))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            return self.handler(method, params or [])
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        return None

    def count(self, selector: str) -> int:
        prefix = "0x" + selector
        return sum(
            1
            for method, params in self.calls
            if method == "eth_call" and params[0]["data"].startswith(prefix)
        )


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Не даём .env разработчика влиять на тесты."""

    settings = AppSettings(_env_file=None)
    monkeypatch.setattr(settings_module, "_settings", settings)
    return settings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def transport(chain) -> ScriptedTransport:
    return ScriptedTransport(chain)


@pytest.fixture
def policy(clock) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=1,
        base_delay=1.0,
        max_jitter=0.0,
        sleep=clock.sleep,
        jitter=lambda low, high: 0.0,
    )


@pytest.fixture
def rpc(transport, clock, policy) -> GatedRpc:
    gate = RateGate(concurrency=5, rate_per_second=10_000, clock=clock, sleep=clock.sleep)
    return GatedRpc(transport, gate, policy)


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(clock=clock)
