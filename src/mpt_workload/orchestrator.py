"""Issue -> authorize -> transfer -> report, one dependent step at a time.

The issuance step produces an MPT issuance id that only exists once the
ledger has validated the issuance; the authorize and transfer steps are built
from that id. Which failures stop the run is data (``STAGE_POLICY``), not
control flow.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from xrpl.wallet import Wallet

from mpt_workload.constants import LEDGER_GRACE, Fatality, Step, WorkflowStage
from mpt_workload.errors import (
    IllegalTransitionError,
    NotFoundError,
    ObservabilityError,
    TransportError,
    WorkflowCancelledError,
    WorkflowError,
)
from mpt_workload.events import EventBus, EventStatus, StageEvent
from mpt_workload.lifecycle import (
    ConfirmationOutcome,
    ConfirmationWaiter,
    ExecutionResult,
    Prepare,
    SubmissionGateway,
    SubmissionResult,
    TransactionLifecycle,
)
from mpt_workload.network import LedgerConnection
from mpt_workload.resolver import IdentifierResolver
from mpt_workload.retry import RetryPolicy, Sleep
from mpt_workload.state_reader import Holding, StateReader
from mpt_workload.txn_factory import (
    TransactionDescriptor,
    build_authorize,
    build_issuance_create,
    build_payment,
)

log = logging.getLogger("mpt_workload.orchestrator")

STAGE_POLICY: dict[Step, Fatality] = {
    Step.ISSUANCE: Fatality.FATAL,  # produces the issuance id
    Step.AUTHORIZATION: Fatality.NON_FATAL,
    Step.TRANSFER: Fatality.NON_FATAL,
    Step.REPORT: Fatality.NON_FATAL,
}

ALLOWED_TRANSITIONS: dict[WorkflowStage, set[WorkflowStage]] = {
    WorkflowStage.CREATED: {WorkflowStage.AUTHORIZATION_REQUESTED},
    WorkflowStage.AUTHORIZATION_REQUESTED: {WorkflowStage.AUTHORIZATION_RESOLVED},
    WorkflowStage.AUTHORIZATION_RESOLVED: {WorkflowStage.TRANSFER_SUBMITTED},
    WorkflowStage.TRANSFER_SUBMITTED: {WorkflowStage.TRANSFER_RESOLVED},
    WorkflowStage.TRANSFER_RESOLVED: {WorkflowStage.REPORTED},
    WorkflowStage.REPORTED: set(),
}


@dataclass(slots=True)
class StageRecord:
    step: Step
    descriptor: TransactionDescriptor | None = None
    submission: SubmissionResult | None = None
    outcome: ConfirmationOutcome | None = None
    identifier: str | None = None
    error: WorkflowError | None = None
    result_code: str | None = None
    submissions: int = 0
    holdings: dict[str, list[Holding]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def tx_hash(self) -> str | None:
        if self.outcome is not None:
            return self.outcome.reference
        if self.submission is not None:
            return self.submission.reference or self.submission.tx_hash
        return None

    def absorb(self, result: ExecutionResult) -> None:
        self.submission = result.submission
        self.outcome = result.outcome
        self.result_code = result.result_code
        self.submissions = result.submissions

    def to_dict(self) -> dict:
        return {
            "step": str(self.step),
            "ok": self.ok,
            "tx_type": str(self.descriptor.kind) if self.descriptor else None,
            "sender": self.descriptor.sender if self.descriptor else None,
            "tx_hash": self.tx_hash,
            "result_code": self.result_code,
            "validated": self.outcome.validated if self.outcome else None,
            "ledger_index": self.outcome.ledger_index if self.outcome else None,
            "submissions": self.submissions,
            "identifier": self.identifier,
            "error": {"kind": type(self.error).__name__, "message": str(self.error)} if self.error else None,
            "holdings": {
                acct: [{"issuance_id": h.issuance_id, "amount": h.amount} for h in hs]
                for acct, hs in self.holdings.items()
            },
        }


@dataclass(slots=True)
class WorkflowState:
    """Append-only history of one run, plus where the state machine stands."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    stage: WorkflowStage = WorkflowStage.CREATED
    records: list[StageRecord] = field(default_factory=list)
    halted: WorkflowError | None = None
    cancelled: bool = False

    def __len__(self) -> int:
        return len(self.records)

    def append(self, record: StageRecord) -> StageRecord:
        self.records.append(record)
        return record

    def advance(self, to: WorkflowStage) -> None:
        if to not in ALLOWED_TRANSITIONS.get(self.stage, set()):
            raise IllegalTransitionError(f"Illegal transition: {self.stage} -> {to}")
        log.debug("[%s] %s -> %s", self.run_id, self.stage, to)
        self.stage = to

    def record_for(self, step: Step) -> StageRecord | None:
        return next((r for r in self.records if r.step == step), None)

    @property
    def identifier(self) -> str | None:
        rec = self.record_for(Step.ISSUANCE)
        return rec.identifier if rec else None

    @property
    def last_tx_hash(self) -> str | None:
        for rec in reversed(self.records):
            if rec.tx_hash:
                return rec.tx_hash
        return None

    @property
    def succeeded(self) -> bool:
        """Reached Reported with every transaction step ok. Report errors don't count."""
        return (
            self.stage == WorkflowStage.REPORTED
            and self.halted is None
            and all(r.ok for r in self.records if r.step != Step.REPORT)
        )

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "stage": str(self.stage),
            "succeeded": self.succeeded,
            "cancelled": self.cancelled,
            "identifier": self.identifier,
            "last_tx_hash": self.last_tx_hash,
            "halted": {"kind": type(self.halted).__name__, "message": str(self.halted)} if self.halted else None,
            "records": [r.to_dict() for r in self.records],
        }


class MPTWorkflow:
    def __init__(
        self,
        conn: LedgerConnection,
        config: dict,
        *,
        bus: EventBus | None = None,
        policy: dict[Step, Fatality] | None = None,
        prepare: Prepare | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.bus = bus or EventBus()
        self.policy = {**STAGE_POLICY, **(policy or {})}

        conf = config["confirmation"]
        self.lifecycle = TransactionLifecycle(
            SubmissionGateway(conn, prepare=prepare),
            ConfirmationWaiter(conn, RetryPolicy.from_config(conf), ledger_grace=int(conf.get("ledger_grace", LEDGER_GRACE)), sleep=sleep),
            RetryPolicy(max_attempts=1 + int(conf.get("max_resubmits", 0)), delay=float(conf.get("resubmit_delay", 1.0))),
            sleep=sleep,
        )
        self.resolver = IdentifierResolver(conn, RetryPolicy.from_config(config["identifier"]), sleep=sleep)
        self.reader = StateReader(conn, object_type=config.get("report", {}).get("object_type", "mptoken"))
        self.state: WorkflowState | None = None

    def _emit(self, state: WorkflowState, step: Step, status: EventStatus, **kw) -> None:
        self.bus.emit(StageEvent(run_id=state.run_id, step=step, stage=state.stage, status=status, **kw))

    def _fail(self, state: WorkflowState, record: StageRecord, err: WorkflowError, *, fatal: bool | None = None) -> None:
        record.error = err
        if fatal is None:
            fatal = self.policy[record.step] is Fatality.FATAL or isinstance(err, TransportError)
        if fatal:
            state.halted = err
        self._emit(
            state, record.step, EventStatus.HALTED if fatal else EventStatus.FAILED,
            tx_hash=err.tx_hash or record.tx_hash, result_code=record.result_code, detail=str(err), fatal=fatal,
        )

    async def _transact(self, state: WorkflowState, step: Step, descriptor: TransactionDescriptor, wallet: Wallet) -> StageRecord:
        record = state.append(StageRecord(step, descriptor=descriptor))
        self._emit(state, step, EventStatus.STARTED, detail=str(descriptor))
        try:
            result = await self.lifecycle.execute(descriptor, wallet)
            record.absorb(result)
            result.raise_for_result(step)
        except TransportError as e:
            e.step = e.step or step
            e.tx_hash = e.tx_hash or state.last_tx_hash
            self._fail(state, record, e)
            raise
        except WorkflowError as e:
            self._fail(state, record, e)
        else:
            self._emit(state, step, EventStatus.SUCCEEDED, tx_hash=record.tx_hash, result_code=record.result_code)
        return record

    async def _issue(self, state: WorkflowState, issuer: Wallet) -> str | None:
        descriptor = build_issuance_create(issuer.address, self.config["issuance"])
        record = await self._transact(state, Step.ISSUANCE, descriptor, issuer)
        if not record.ok:
            # no issuance, no id: nothing downstream can run whatever the policy says
            state.halted = state.halted or record.error
            return None

        try:
            identifier = await self.resolver.resolve(record.tx_hash)
        except TransportError as e:
            e.step, e.tx_hash = Step.ISSUANCE, record.tx_hash
            self._fail(state, record, e)
            raise
        if identifier is None:
            err = NotFoundError("MPT issuance id not found, check the txn on an explorer", step=Step.ISSUANCE, tx_hash=record.tx_hash)
            self._fail(state, record, err, fatal=True)
            return None

        record.identifier = identifier
        self._emit(state, Step.ISSUANCE, EventStatus.RESOLVED, tx_hash=record.tx_hash, identifier=identifier)
        return identifier

    async def _report(self, state: WorkflowState, accounts: list[str]) -> StageRecord:
        record = state.append(StageRecord(Step.REPORT))
        self._emit(state, Step.REPORT, EventStatus.STARTED)
        for account in accounts:
            try:
                record.holdings[account] = await self.reader.holdings(account)
            except ObservabilityError as e:
                log.warning("Could not read holdings for %s: %s", account, e)
                self._fail(state, record, e)
        if record.ok:
            self._emit(state, Step.REPORT, EventStatus.SUCCEEDED, detail=f"{sum(map(len, record.holdings.values()))} holdings")
        return record

    def _halted(self, state: WorkflowState) -> bool:
        if state.halted is not None:
            log.error("[%s] workflow halted at %s: %s", state.run_id, state.stage, state.halted)
            return True
        return False

    async def run(self, issuer: Wallet, holder: Wallet, *, amount: str | None = None) -> WorkflowState:
        """Run the whole workflow once.

        Fatal stage failures come back on ``state.halted``; a TransportError is
        re-raised after being recorded (``self.state`` still has the history).
        """
        value = str(amount if amount is not None else self.config["transfer"]["amount"])
        state = self.state = WorkflowState()
        log.info("[%s] issuer=%s holder=%s amount=%s", state.run_id, issuer.address, holder.address, value)
        try:
            identifier = await self._issue(state, issuer)
            if self._halted(state) or identifier is None:
                return state

            state.advance(WorkflowStage.AUTHORIZATION_REQUESTED)
            await self._transact(state, Step.AUTHORIZATION, build_authorize(holder.address, identifier), holder)
            if self._halted(state):
                return state
            state.advance(WorkflowStage.AUTHORIZATION_RESOLVED)

            state.advance(WorkflowStage.TRANSFER_SUBMITTED)
            payment = build_payment(issuer.address, holder.address, identifier, value)
            await self._transact(state, Step.TRANSFER, payment, issuer)
            if self._halted(state):
                return state
            state.advance(WorkflowStage.TRANSFER_RESOLVED)

            await self._report(state, [issuer.address, holder.address])
            state.advance(WorkflowStage.REPORTED)
        except asyncio.CancelledError:
            state.cancelled = True
            step = state.records[-1].step if state.records else Step.ISSUANCE
            err = WorkflowCancelledError(f"cancelled during {step}", step=step, tx_hash=state.last_tx_hash)
            if state.records and state.records[-1].error is None:
                state.records[-1].error = err
            state.halted = err
            self._emit(state, step, EventStatus.CANCELLED, tx_hash=err.tx_hash, detail=str(err), fatal=True)
            raise
        return state
