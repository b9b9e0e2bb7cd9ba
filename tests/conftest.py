"""Fixtures: an in-process fake ledger, a fake signer and a fake clock."""

import asyncio
import copy
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
from xrpl.models.requests.request import RequestMethod
from xrpl.models.response import Response, ResponseStatus
from xrpl.wallet import Wallet

from mpt_workload.config import load_config
from mpt_workload.constants import TxType
from mpt_workload.events import EventBus, EventCollector
from mpt_workload.lifecycle import PreparedTransaction
from mpt_workload.network import LedgerConnection
from mpt_workload.orchestrator import MPTWorkflow
from mpt_workload.results import relayed

ISSUANCE_ID = "ABCD1234"


@dataclass
class Scripted:
    """How the fake ledger treats one submission of one txn."""

    engine_result: str = "tesSUCCESS"
    final: str | None = "tesSUCCESS"  # None: never validated
    meta: dict = field(default_factory=dict)
    top: dict = field(default_factory=dict)
    visible_after: int = 0  # tx lookups answered txnNotFound first
    id_after: int = 0  # validated lookups before meta/top extras show up
    submit_error: str | None = None
    submit_raises: Exception | None = None


@dataclass
class _Entry:
    script: Scripted
    lookups: int = 0


def ok(result: dict) -> Response:
    return Response(status=ResponseStatus.SUCCESS, result=result)


def err(error: str, **extra) -> Response:
    return Response(status=ResponseStatus.ERROR, result={"error": error, **extra})


class FakeLedger:
    """Stands in for an xrpl-py async client: ``request(req) -> Response``."""

    def __init__(self):
        self.scripts: dict[TxType, list[Scripted]] = {
            TxType.MPTOKEN_ISSUANCE_CREATE: [Scripted(meta={"mpt_issuance_id": ISSUANCE_ID})],
        }
        self.txs: dict[str, _Entry] = {}
        self.submitted: list[tuple[TxType, str]] = []
        self.objects: dict[str, list[list[dict]]] = {}
        self.active: set[str] = set()
        self.validated_index = 100
        self.fail: dict[str, Exception | str] = {}
        self.requests: list = []

    def script(self, kind: TxType, *scripted: Scripted) -> None:
        self.scripts[kind] = list(scripted)

    def set_objects(self, account: str, *pages: list[dict]) -> None:
        self.objects[account] = list(pages)

    def add_tx(self, tx_hash: str, scripted: Scripted) -> None:
        self.txs[tx_hash] = _Entry(scripted)

    def _next_script(self, kind: TxType) -> Scripted:
        queue = self.scripts.get(kind)
        if not queue:
            return Scripted()
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def request(self, req) -> Response:
        self.requests.append(req)
        method = RequestMethod(req.method).value
        failure = self.fail.get(method)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, str):
            return err(failure)
        return getattr(self, f"_{method}")(req)

    def _submit(self, req) -> Response:
        kind, tx_hash = req.tx_blob.split("|")
        kind = TxType(kind)
        s = self._next_script(kind)
        self.submitted.append((kind, tx_hash))
        if s.submit_raises is not None:
            raise s.submit_raises
        if s.submit_error:
            return err(s.submit_error, error_message=f"{s.submit_error} from fake")
        if relayed(s.engine_result):
            self.add_tx(tx_hash, s)
        return ok({
            "engine_result": s.engine_result,
            "engine_result_message": f"{s.engine_result} from fake",
            "tx_blob": req.tx_blob,
            "tx_json": {"hash": tx_hash},
        })

    def _tx(self, req) -> Response:
        entry = self.txs.get(req.transaction)
        if entry is None:
            return err("txnNotFound")
        entry.lookups += 1
        s = entry.script
        if s.final is None or entry.lookups <= s.visible_after:
            return err("txnNotFound")
        result = {
            "hash": req.transaction,
            "validated": True,
            "ledger_index": self.validated_index,
            "meta": {"TransactionResult": s.final},
        }
        if entry.lookups - s.visible_after > s.id_after:
            result["meta"].update(s.meta)
            result.update(s.top)
        return ok(result)

    def _ledger(self, req) -> Response:
        return ok({"ledger_index": self.validated_index, "validated": True})

    def _account_info(self, req) -> Response:
        if req.account not in self.active:
            return err("actNotFound")
        return ok({"account_data": {"Account": req.account, "Balance": "100000000"}})

    def _account_objects(self, req) -> Response:
        pages = self.objects.get(req.account, [[]])
        idx = int(req.marker) if req.marker is not None else 0
        result = {"account": req.account, "account_objects": pages[idx]}
        if idx + 1 < len(pages):
            result["marker"] = str(idx + 1)
        return ok(result)

    def tx_count(self, kind: TxType) -> int:
        return sum(1 for k, _ in self.submitted if k == kind)


class FakeSigner:
    """Replaces autofill+sign: blob is ``kind|hash``, hashes are sequential."""

    def __init__(self, last_ledger_sequence: int | None = None):
        self.last_ledger_sequence = last_ledger_sequence
        self.descriptors = []
        self._n = itertools.count(1)

    async def __call__(self, descriptor, wallet) -> PreparedTransaction:
        self.descriptors.append(descriptor)
        tx_hash = f"{next(self._n):04d}{descriptor.kind.upper()}"
        return PreparedTransaction(
            tx_blob=f"{descriptor.kind}|{tx_hash}",
            tx_hash=tx_hash,
            last_ledger_sequence=self.last_ledger_sequence,
        )

    def of_kind(self, kind: TxType) -> list:
        return [d for d in self.descriptors if d.kind == kind]


class FakeClock:
    """Async sleep that only records. With ``block=True`` the first sleep never returns."""

    def __init__(self, block: bool = False):
        self.delays: list[float] = []
        self.block = block
        self.blocked = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.block:
            self.blocked.set()
            await asyncio.Event().wait()
        await asyncio.sleep(0)


@pytest.fixture
def config() -> dict:
    return copy.deepcopy(load_config(environ={}))


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def conn(ledger) -> LedgerConnection:
    return LedgerConnection(ledger, timeout=1.0)


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer() -> Wallet:
    return Wallet.create()


@pytest.fixture
def holder() -> Wallet:
    return Wallet.create()


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def workflow(conn, config, signer, clock, collector) -> MPTWorkflow:
    bus = EventBus()
    bus.subscribe(collector)
    return MPTWorkflow(conn, config, bus=bus, prepare=signer, sleep=clock)


@pytest.fixture
def fake_connect(ledger):
    """Drop-in for ``network.open_connection`` that hands out the fake ledger."""

    @asynccontextmanager
    async def connect(url, *, timeout=1.0):
        yield LedgerConnection(ledger, timeout=timeout)

    return connect


def mptoken(issuance_id: str = ISSUANCE_ID, amount: str | None = "1000") -> dict:
    obj = {"LedgerEntryType": "MPToken", "MPTokenIssuanceID": issuance_id, "Flags": 0}
    if amount is not None:
        obj["MPTAmount"] = amount
    return obj
