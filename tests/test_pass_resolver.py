from __future__ import annotations

import pytest

from nftgate.errors import ConfigurationError
from nftgate.models import OwnershipVerdict, parse_address
from nftgate.services.nft.balance_prober import BalanceProber
from nftgate.services.nft.deep_scanner import DeepScanner
from nftgate.services.nft.pass_resolver import PassStatusResolver
from nftgate.services.nft.standard_detector import StandardDetector
from nftgate.utils.cache import deep_scan_key, pass_key
from tests.conftest import (
    BALANCE_OF,
    OTHER_WALLET,
    OWNER_OF,
    PASS_CONTRACT,
    WALLET,
    FakeContract,
)

DAY = 24 * 60 * 60
wallet = parse_address(WALLET)


def make_resolver(rpc, cache, contract: str | None = PASS_CONTRACT) -> PassStatusResolver:
    return PassStatusResolver(
        StandardDetector(rpc, cache, ttl=7 * DAY),
        BalanceProber(rpc, [0, 1]),
        DeepScanner(rpc, max_token_id=40, fallback_max_id=4, abort_after_failures=10),
        cache,
        contract=contract,
        pass_ttl=DAY,
        deep_scan_ttl=DAY,
    )


async def test_positive_probe_is_owned_and_skips_deep_scan(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={WALLET: 1}))
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet)

    assert status.verdict is OwnershipVerdict.OWNED
    assert status.source == "probe"
    assert status.owned is True
    assert transport.count(OWNER_OF) == 0


async def test_cached_verdict_is_served_without_rpc(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={WALLET: 1}))
    resolver = make_resolver(rpc, cache)
    await resolver.resolve(wallet)
    calls = len(transport.calls)

    status = await resolver.resolve(wallet)

    assert status.source == "cache"
    assert status.from_cache
    assert status.verdict is OwnershipVerdict.OWNED
    assert len(transport.calls) == calls


async def test_deep_scan_finds_pass_without_aggregate_balance(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(owners={0: OTHER_WALLET, 7: WALLET}))
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet)

    assert status.verdict is OwnershipVerdict.OWNED
    assert status.source == "deep_scan"
    assert transport.count(OWNER_OF) == 8
    assert await cache.get_stale(pass_key(wallet, PASS_CONTRACT)) == "owned"


async def test_completed_scan_without_match_is_not_owned(chain, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(owners={0: OTHER_WALLET}))
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet, prior=True)

    assert status.verdict is OwnershipVerdict.NOT_OWNED
    assert status.source == "deep_scan"
    assert status.owned is False


async def test_total_failure_keeps_prior_state(chain, rpc, cache):
    chain.outage = True
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet, prior=True)

    assert status.verdict is OwnershipVerdict.UNKNOWN
    assert status.source == "failed"
    assert status.owned is None
    assert status.effective is OwnershipVerdict.OWNED
    assert await cache.get_stale(pass_key(wallet, PASS_CONTRACT)) is None


async def test_total_failure_prefers_last_known_verdict(chain, rpc, cache, clock):
    chain.add(PASS_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={WALLET: 1}))
    resolver = make_resolver(rpc, cache)
    await resolver.resolve(wallet)
    clock.advance(DAY + 1)
    chain.outage = True

    status = await resolver.resolve(wallet, prior=False)

    assert status.verdict is OwnershipVerdict.UNKNOWN
    assert status.effective is OwnershipVerdict.OWNED


async def test_total_failure_without_history_is_unknown(chain, rpc, cache):
    chain.outage = True

    status = await make_resolver(rpc, cache).resolve(wallet)

    assert status.effective is OwnershipVerdict.UNKNOWN


async def test_zero_probe_without_deep_scan_is_not_owned(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={}))
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet, allow_deep_scan=False)

    assert status.verdict is OwnershipVerdict.NOT_OWNED
    assert status.source == "probe"
    assert transport.count(OWNER_OF) == 0


async def test_failed_probe_without_deep_scan_is_unknown(chain, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(owners={0: WALLET}))

    status = await make_resolver(rpc, cache).resolve(wallet, allow_deep_scan=False)

    assert status.verdict is OwnershipVerdict.UNKNOWN


async def test_recent_deep_scan_is_reused(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(owners={0: OTHER_WALLET}))
    resolver = make_resolver(rpc, cache)
    await resolver.resolve(wallet)
    scans = transport.count(OWNER_OF)

    status = await resolver.resolve(wallet, bypass_cache=True)

    assert status.verdict is OwnershipVerdict.NOT_OWNED
    assert transport.count(OWNER_OF) == scans
    assert await cache.get_stale(deep_scan_key(wallet, PASS_CONTRACT)) == "not_owned"


async def test_force_refresh_reruns_deep_scan(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(owners={0: OTHER_WALLET}))
    resolver = make_resolver(rpc, cache)
    await resolver.resolve(wallet)
    scans = transport.count(OWNER_OF)
    chain.contracts[PASS_CONTRACT].owners[3] = WALLET

    status = await resolver.resolve(wallet, force_refresh=True)

    assert status.verdict is OwnershipVerdict.OWNED
    assert transport.count(OWNER_OF) == scans + 4


async def test_bypass_cache_still_probes(chain, transport, rpc, cache):
    chain.add(PASS_CONTRACT, FakeContract(interfaces={"80ac58cd"}, balances={WALLET: 1}))
    resolver = make_resolver(rpc, cache)
    await resolver.resolve(wallet)

    status = await resolver.resolve(wallet, bypass_cache=True)

    assert status.source == "probe"
    assert transport.count(BALANCE_OF) == 2


async def test_missing_pass_contract_is_a_configuration_error(rpc, cache):
    resolver = make_resolver(rpc, cache, contract="")

    assert resolver.contract is None
    with pytest.raises(ConfigurationError):
        await resolver.resolve(wallet)


async def test_aborted_scan_is_not_cached_as_absent(chain, rpc, cache):
    owners = {token_id: OTHER_WALLET for token_id in range(41)}
    owners[30] = WALLET
    pass_contract = chain.add(PASS_CONTRACT, FakeContract(owners=owners, owner_outage_from=20))
    resolver = make_resolver(rpc, cache)

    status = await resolver.resolve(wallet, prior=True)

    assert status.verdict is OwnershipVerdict.UNKNOWN
    assert status.source == "failed"
    assert status.effective is OwnershipVerdict.OWNED
    assert await cache.get_stale(pass_key(wallet, PASS_CONTRACT)) is None
    assert await cache.get_stale(deep_scan_key(wallet, PASS_CONTRACT)) is None

    # Нода ожила: следующая проверка досматривает диапазон и находит пасс.
    pass_contract.owner_outage_from = None
    status = await resolver.resolve(wallet)

    assert status.verdict is OwnershipVerdict.OWNED
    assert status.source == "deep_scan"
