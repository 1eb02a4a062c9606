from __future__ import annotations

import pytest

from config.settings import AppSettings, BatchSettings, CollectionSettings
from nftgate.errors import InvalidAddressError
from nftgate.models import OwnershipVerdict, TokenStandard
from nftgate.services.nft.gate import NftGate
from tests.conftest import (
    BALANCE_OF,
    ERC1155_CONTRACT,
    ERC721_CONTRACT,
    OTHER_WALLET,
    PASS_CONTRACT,
    SUPPORTS_INTERFACE,
    THIRD_WALLET,
    WALLET,
    FakeContract,
    word,
)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        collections=CollectionSettings(
            holdings=[ERC721_CONTRACT, ERC1155_CONTRACT],
            pass_contract=PASS_CONTRACT,
            probe_token_ids=[0, 1],
            deep_scan_max_token_id=20,
            erc1155_fallback_max_id=2,
        ),
        batch=BatchSettings(size=2, parallel=2, delay_seconds=1.5),
    )


@pytest.fixture
def gate(rpc, cache, settings, clock) -> NftGate:
    return NftGate(rpc, cache, settings=settings, sleep=clock.sleep)


@pytest.fixture
def populated(chain):
    chain.add(ERC721_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={WALLET: 3}))
    chain.add(
        ERC1155_CONTRACT,
        FakeContract(interfaces={"d9b67a26"}, balances_1155={(OTHER_WALLET, 1): 4}),
    )
    chain.add(PASS_CONTRACT, FakeContract(owners={0: OTHER_WALLET, 2: WALLET}))
    return chain


async def test_collection_count_end_to_end(populated, transport, gate):
    assert await gate.get_collection_count(WALLET, ERC721_CONTRACT) == 3
    assert transport.count(SUPPORTS_INTERFACE) == 1
    assert transport.count(BALANCE_OF) == 1


async def test_hex_balance_without_padding(chain, transport, gate):
    chain.add(ERC721_CONTRACT, FakeContract(interfaces={"80ac58cd"}))

    def handler(method, params):
        if params[0]["data"].startswith("0x" + BALANCE_OF):
            return "0x03"
        return word(1)

    transport.handler = handler

    assert await gate.get_collection_count(WALLET, ERC721_CONTRACT) == 3


async def test_second_call_is_served_from_cache(populated, transport, gate):
    await gate.get_collection_count(WALLET, ERC721_CONTRACT)
    calls = len(transport.calls)

    result = await gate.check_collection(WALLET, ERC721_CONTRACT)

    assert result.count == 3
    assert result.from_cache
    assert len(transport.calls) == calls


async def test_bypass_cache_issues_exactly_one_balance_call(populated, transport, gate):
    await gate.get_collection_count(WALLET, ERC721_CONTRACT)
    calls = len(transport.calls)

    count = await gate.get_collection_count(WALLET, ERC721_CONTRACT, bypass_cache=True)

    assert count == 3
    assert len(transport.calls) == calls + 1
    assert transport.calls[-1][1][0]["data"].startswith("0x" + BALANCE_OF)


async def test_failed_refresh_returns_last_known_count(populated, transport, gate):
    await gate.get_collection_count(WALLET, ERC721_CONTRACT)
    populated.outage = True

    result = await gate.check_collection(WALLET, ERC721_CONTRACT, bypass_cache=True)

    assert not result.success
    assert result.count == 3


async def test_failure_without_history_is_zero(populated, gate):
    populated.outage = True

    result = await gate.check_collection(WALLET, ERC721_CONTRACT)

    assert not result.success
    assert result.count == 0


async def test_erc1155_count_via_probe_ids(populated, gate):
    result = await gate.check_collection(OTHER_WALLET, ERC1155_CONTRACT)

    assert result.count == 4
    assert result.standard is TokenStandard.ERC1155


async def test_invalid_address_is_rejected(gate):
    with pytest.raises(InvalidAddressError):
        await gate.get_collection_count("0xnope", ERC721_CONTRACT)


async def test_has_pass(populated, gate):
    assert await gate.has_pass(WALLET) is True
    assert await gate.has_pass(THIRD_WALLET, allow_deep_scan=True) is False


async def test_has_pass_is_none_when_provider_is_down(populated, gate):
    populated.outage = True

    assert await gate.has_pass(WALLET, prior=True) is None


async def test_check_wallet_collects_every_collection(populated, gate):
    holdings = await gate.check_wallet(WALLET)

    assert holdings.count_for(ERC721_CONTRACT) == 3
    assert holdings.count_for(ERC1155_CONTRACT) == 0
    assert holdings.complete
    assert holdings.pass_status.verdict is OwnershipVerdict.OWNED


async def test_batch_check_counts_outcomes_and_pauses_between_batches(populated, gate, clock):
    wallets = [WALLET, OTHER_WALLET, "not-an-address", THIRD_WALLET, WALLET.upper()[2:]]

    report = await gate.check_wallets(wallets)

    assert report.total == 5
    assert report.checked == 4
    assert report.invalid == 1
    assert "not-an-address" in report.errors
    assert report.has_pass == 3
    assert report.no_pass == 1
    assert report.unknown_pass == 0
    assert clock.sleeps.count(1.5) == 2


async def test_batch_without_pass_check(populated, transport, gate):
    report = await gate.check_wallets([WALLET, OTHER_WALLET], include_pass=False)

    assert report.checked == 2
    assert report.has_pass == report.no_pass == report.unknown_pass == 0
    assert all(result.pass_status is None for result in report.results)
    assert gate.rpc.gate.in_flight == 0
