import pytest

from mpt_workload.errors import TransportError
from mpt_workload.resolver import IdentifierResolver
from mpt_workload.retry import RetryPolicy

from conftest import Scripted


@pytest.fixture
def resolver(conn, config, clock):
    return IdentifierResolver(conn, RetryPolicy.from_config(config["identifier"]), sleep=clock)


async def test_from_meta(ledger, resolver, clock):
    ledger.add_tx("AA", Scripted(meta={"mpt_issuance_id": "ABCD1234"}))
    assert await resolver.resolve("AA") == "ABCD1234"
    assert clock.delays == []


async def test_from_top_level(ledger, resolver):
    ledger.add_tx("AA", Scripted(top={"mpt_issuance_id": "00FF"}))
    assert await resolver.resolve("AA") == "00FF"


async def test_meta_wins_over_top_level(ledger, resolver):
    ledger.add_tx("AA", Scripted(meta={"mpt_issuance_id": "META"}, top={"mpt_issuance_id": "TOP"}))
    assert await resolver.resolve("AA") == "META"


async def test_lagging_identifier(ledger, resolver, clock):
    ledger.add_tx("AA", Scripted(meta={"mpt_issuance_id": "ABCD1234"}, id_after=3))
    assert await resolver.resolve("AA") == "ABCD1234"
    assert clock.delays == [2.0, 2.0, 2.0]


async def test_not_found_after_bound(ledger, resolver, clock):
    ledger.add_tx("AA", Scripted())
    assert await resolver.resolve("AA") is None
    assert ledger.txs["AA"].lookups == 5
    assert clock.delays == [2.0] * 4


async def test_unknown_tx_is_not_found(resolver):
    assert await resolver.resolve("NOPE") is None


async def test_transport_failure_propagates(ledger, resolver):
    ledger.fail["tx"] = OSError("network down")
    with pytest.raises(TransportError):
        await resolver.resolve("AA")
