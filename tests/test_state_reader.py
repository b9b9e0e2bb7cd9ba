import pytest

from mpt_workload.errors import ObservabilityError
from mpt_workload.state_reader import Holding, StateReader

from conftest import mptoken


@pytest.fixture
def reader(conn):
    return StateReader(conn)


async def test_holdings(ledger, reader, holder):
    ledger.set_objects(holder.address, [mptoken(amount="1000")])
    [h] = await reader.holdings(holder.address)
    assert h == Holding(holder.address, "ABCD1234", "1000", "MPToken")


async def test_zero_balance_has_no_amount_field(ledger, reader, holder):
    ledger.set_objects(holder.address, [mptoken(amount=None)])
    [h] = await reader.holdings(holder.address)
    assert h.amount == "0"


async def test_follows_markers(ledger, reader, holder):
    ledger.set_objects(
        holder.address,
        [mptoken("A1"), mptoken("A2")],
        [mptoken("B1")],
        [],
    )
    held = await reader.holdings(holder.address)
    assert [h.issuance_id for h in held] == ["A1", "A2", "B1"]
    markers = [r.marker for r in ledger.requests]
    assert markers == [None, "1", "2"]


async def test_nothing_held(reader, holder):
    assert await reader.holdings(holder.address) == []


async def test_query_error_is_observability_error(ledger, reader, holder):
    ledger.fail["account_objects"] = "actNotFound"
    with pytest.raises(ObservabilityError, match="actNotFound"):
        await reader.holdings(holder.address)


async def test_transport_error_is_observability_error(ledger, reader, holder):
    ledger.fail["account_objects"] = ConnectionRefusedError()
    with pytest.raises(ObservabilityError):
        await reader.holdings(holder.address)


async def test_unknown_object_type(reader, holder):
    with pytest.raises(ValueError):
        await reader.holdings(holder.address, "not_a_type")


async def test_is_active(ledger, reader, holder):
    assert not await reader.is_active(holder.address)
    ledger.active.add(holder.address)
    assert await reader.is_active(holder.address)
    assert (await reader.account_info(holder.address))["Account"] == holder.address
