import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel, Field

import mpt_workload.constants as C
from mpt_workload.config import cfg
from mpt_workload.errors import ObservabilityError, TransportError
from mpt_workload.events import EventBus, EventCollector
from mpt_workload.identities import provision_participants
from mpt_workload.logging_config import setup_logging
from mpt_workload.network import open_connection
from mpt_workload.orchestrator import MPTWorkflow
from mpt_workload.report import LogReporter
from mpt_workload.state_reader import StateReader

setup_logging()
log = logging.getLogger("mpt_workload.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.config = cfg
    app.state.connect = open_connection
    app.state.workflow_options = {}
    app.state.runs = {}
    # workflows share the issuer's sequence numbers, so one at a time
    app.state.run_lock = asyncio.Lock()
    log.info("Serving against %s", cfg["network"]["url"])
    yield
    log.info("Shutting down, %s runs in history", len(app.state.runs))


app = FastAPI(
    title="MPT Workload",
    debug=True,
    lifespan=lifespan,
)

r_workflow = APIRouter(prefix="/workflow", tags=["Workflow"])
r_accounts = APIRouter(prefix="/accounts", tags=["Accounts"])


class RunReq(BaseModel):
    issuer_seed: str | None = None
    holder_seed: str | None = None
    amount: str | None = Field(default=None, pattern=r"^\d+$")


def _remember(run: dict) -> None:
    runs: dict = app.state.runs
    runs[run["run_id"]] = run
    while len(runs) > C.HISTORY_SIZE:
        del runs[next(iter(runs))]


@app.get("/health")
def health():
    return {"status": "ok", "network": app.state.config["network"]["url"]}


@r_workflow.post("/run")
async def workflow_run(req: RunReq):
    conf = app.state.config
    collector = EventCollector()
    bus = EventBus()
    bus.subscribe(LogReporter())
    bus.subscribe(collector)

    async with app.state.run_lock:
        wf = None
        try:
            async with app.state.connect(conf["network"]["url"], timeout=float(conf["network"]["request_timeout"])) as conn:
                issuer, holder = await provision_participants(
                    conn, conf, issuer_seed=req.issuer_seed, holder_seed=req.holder_seed
                )
                wf = MPTWorkflow(conn, conf, bus=bus, **app.state.workflow_options)
                state = await wf.run(issuer, holder, amount=req.amount)
        except TransportError as e:
            if wf is not None and wf.state is not None:
                _remember({**wf.state.to_dict(), "events": [ev.to_dict() for ev in collector.events], "error": str(e)})
            raise HTTPException(status_code=502, detail=f"Ledger unreachable: {e}")

    run = {
        **state.to_dict(),
        "issuer": issuer.address,
        "holder": holder.address,
        "events": [ev.to_dict() for ev in collector.events],
    }
    _remember(run)
    return run


@r_workflow.get("/runs")
def workflow_runs():
    return [
        {k: run.get(k) for k in ("run_id", "stage", "succeeded", "identifier", "last_tx_hash")}
        for run in app.state.runs.values()
    ]


@r_workflow.get("/runs/{run_id}")
def workflow_run_detail(run_id: str):
    try:
        return app.state.runs[run_id]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No run {run_id}")


@r_accounts.get("/{address}/holdings")
async def account_holdings(address: str, object_type: str | None = None):
    conf = app.state.config
    try:
        async with app.state.connect(conf["network"]["url"], timeout=float(conf["network"]["request_timeout"])) as conn:
            reader = StateReader(conn, object_type=conf["report"]["object_type"])
            held = await reader.holdings(address, object_type)
    except ValueError as e:
        # not an account_objects type xrpl-py knows
        raise HTTPException(status_code=400, detail=str(e))
    except (ObservabilityError, TransportError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "account": address,
        "holdings": [
            {"issuance_id": h.issuance_id, "amount": h.amount, "ledger_entry_type": h.ledger_entry_type}
            for h in held
        ],
    }


app.include_router(r_workflow)
app.include_router(r_accounts)
