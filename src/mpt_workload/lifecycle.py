"""Submit a transaction and wait for the ledger's verdict.

SubmissionGateway
    Signs and sends one descriptor, returns the node's immediate answer.
ConfirmationWaiter
    Polls ``tx`` until the txn is in a validated ledger, has provably expired,
    or the poll budget runs out.
TransactionLifecycle
    Both of the above, plus fresh resubmission for temporary-class results.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from xrpl.asyncio.clients import XRPLRequestFailureException
from xrpl.asyncio.transaction import autofill_and_sign
from xrpl.core.binarycodec import encode
from xrpl.wallet import Wallet

from mpt_workload.constants import LEDGER_GRACE, Step
from mpt_workload.errors import ConfirmationTimeoutError, RejectionError, TransportError
from mpt_workload.network import TRANSPORT_ERRORS, LedgerConnection, RequestKind
from mpt_workload.results import ResultClass, classify, relayed
from mpt_workload.retry import RetryPolicy, Sleep
from mpt_workload.txn_factory import TransactionDescriptor

log = logging.getLogger("mpt_workload.lifecycle")


@dataclass(frozen=True, slots=True)
class PreparedTransaction:
    tx_blob: str
    tx_hash: str
    last_ledger_sequence: int | None = None


Prepare = Callable[[TransactionDescriptor, Wallet], Awaitable[PreparedTransaction]]


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """What the node said when we handed it the txn.

    ``reference`` is only set when the txn was accepted for relaying;
    ``tx_hash`` is the signed hash whenever we got as far as signing.
    """

    accepted: bool
    reference: str | None = None
    tx_hash: str | None = None
    raw_error: str | None = None
    engine_result: str | None = None
    last_ledger_sequence: int | None = None


@dataclass(frozen=True, slots=True)
class ConfirmationOutcome:
    reference: str
    result_code: str | None
    validated: bool
    ledger_index: int | None = None
    expired: bool = False
    polls: int = 0

    @property
    def result_class(self) -> ResultClass:
        if not self.validated:
            return ResultClass.UNCONFIRMED
        return classify(self.result_code)


@dataclass(slots=True)
class ExecutionResult:
    """Everything one descriptor went through, across resubmissions."""

    submission: SubmissionResult
    outcome: ConfirmationOutcome | None
    result_class: ResultClass
    submissions: int = 1
    history: list[SubmissionResult] = field(default_factory=list)

    @property
    def reference(self) -> str | None:
        if self.outcome is not None:
            return self.outcome.reference
        return self.submission.reference or self.submission.tx_hash

    @property
    def result_code(self) -> str | None:
        if self.outcome is not None and self.outcome.validated:
            return self.outcome.result_code
        return self.submission.engine_result

    @property
    def ok(self) -> bool:
        return self.result_class is ResultClass.SUCCESS

    def raise_for_result(self, step: Step) -> "ExecutionResult":
        """Raise the matching WorkflowError unless the txn succeeded."""
        if self.ok:
            return self
        if self.result_class is ResultClass.UNCONFIRMED:
            why = "expired" if self.outcome is not None and self.outcome.expired else "not validated"
            raise ConfirmationTimeoutError(
                f"{step} txn {why} after {self.submissions} submission(s)", step=step, tx_hash=self.reference
            )
        detail = self.result_code or self.submission.raw_error or "rejected"
        raise RejectionError(
            f"{step} txn failed: {detail}", step=step, tx_hash=self.reference, result_code=self.result_code
        )


class SubmissionGateway:
    def __init__(self, conn: LedgerConnection, *, prepare: Prepare | None = None):
        self.conn = conn
        self._prepare = prepare or self._autofill_and_sign

    async def _autofill_and_sign(self, descriptor: TransactionDescriptor, wallet: Wallet) -> PreparedTransaction:
        txn = descriptor.to_transaction()
        signed = await asyncio.wait_for(autofill_and_sign(txn, self.conn.client, wallet), timeout=self.conn.timeout)
        return PreparedTransaction(
            tx_blob=encode(signed.to_xrpl()),
            tx_hash=signed.get_hash(),
            last_ledger_sequence=signed.last_ledger_sequence,
        )

    async def submit(self, descriptor: TransactionDescriptor, wallet: Wallet) -> SubmissionResult:
        if wallet.address != descriptor.sender:
            raise ValueError(f"Wallet {wallet.address} cannot sign for {descriptor.sender}")

        try:
            prepared = await self._prepare(descriptor, wallet)
        except XRPLRequestFailureException as e:
            # e.g. actNotFound: the sender isn't a funded account
            log.warning("Could not autofill %s: %s", descriptor, e)
            return SubmissionResult(accepted=False, raw_error=str(e))
        except asyncio.TimeoutError as e:
            raise TransportError(f"autofill for {descriptor.kind} timed out") from e
        except TRANSPORT_ERRORS as e:
            raise TransportError(f"autofill for {descriptor.kind} failed: {e}") from e

        log.debug("submit %s hash=%s lls=%s", descriptor, prepared.tx_hash, prepared.last_ledger_sequence)
        resp = await self.conn.submit(prepared.tx_blob)
        res = resp.result
        if not resp.is_successful():
            return SubmissionResult(
                accepted=False,
                tx_hash=prepared.tx_hash,
                raw_error=res.get("error_message") or res.get("error"),
                last_ledger_sequence=prepared.last_ledger_sequence,
            )

        er = res.get("engine_result")
        if relayed(er):
            srv_txid = res.get("tx_json", {}).get("hash") or prepared.tx_hash
            return SubmissionResult(
                accepted=True,
                reference=srv_txid,
                tx_hash=srv_txid,
                engine_result=er,
                last_ledger_sequence=prepared.last_ledger_sequence,
            )
        log.warning("%s not relayed: %s %s", descriptor.kind, er, res.get("engine_result_message", ""))
        return SubmissionResult(
            accepted=False,
            tx_hash=prepared.tx_hash,
            raw_error=res.get("engine_result_message"),
            engine_result=er,
            last_ledger_sequence=prepared.last_ledger_sequence,
        )


class ConfirmationWaiter:
    def __init__(self, conn: LedgerConnection, policy: RetryPolicy, *, ledger_grace: int = LEDGER_GRACE, sleep: Sleep = asyncio.sleep):
        self.conn = conn
        self.policy = policy
        self.ledger_grace = ledger_grace
        self.sleep = sleep

    async def _expired(self, last_ledger_sequence: int) -> bool:
        return await self.conn.latest_validated_ledger() > last_ledger_sequence + self.ledger_grace

    async def lookup(self, tx_hash: str) -> ConfirmationOutcome | None:
        """One ``tx`` query: the validated outcome, or None if it isn't in a validated ledger."""
        r = await self.conn.query(RequestKind.TRANSACTION, transaction=tx_hash)
        result = r.result
        if not (r.is_successful() and result.get("validated")):
            return None
        meta = result.get("meta")
        if not isinstance(meta, dict) or "TransactionResult" not in meta:
            raise TransportError("Validated tx response has no meta.TransactionResult", tx_hash=tx_hash)
        log.debug("Validated tx=%s li=%s result=%s", tx_hash, result.get("ledger_index"), meta["TransactionResult"])
        return ConfirmationOutcome(
            reference=tx_hash,
            result_code=meta["TransactionResult"],
            validated=True,
            ledger_index=result.get("ledger_index"),
        )

    async def wait(self, submission: SubmissionResult) -> ConfirmationOutcome:
        """Block until the txn is validated, expired, or we've polled enough.

        Invariants on validated outcomes:
          - result_code is the meta TransactionResult
          - ledger_index is the validated ledger the txn landed in
        """
        if not submission.accepted or submission.reference is None:
            raise ValueError("Can only wait on a submission the network accepted")
        tx_hash = submission.reference

        for attempt in range(1, self.policy.max_attempts + 1):
            outcome = await self.lookup(tx_hash)
            if outcome is not None:
                return replace(outcome, polls=attempt)

            # Past LastLedgerSequence it never will be
            if submission.last_ledger_sequence is not None:
                if await self._expired(submission.last_ledger_sequence):
                    log.warning("tx=%s expired past LastLedgerSequence %s", tx_hash, submission.last_ledger_sequence)
                    return ConfirmationOutcome(tx_hash, None, False, expired=True, polls=attempt)

            if attempt < self.policy.max_attempts:
                await self.policy.wait(attempt, self.sleep)

        log.warning("Validation timeout tx=%s after %s polls", tx_hash, self.policy.max_attempts)
        return ConfirmationOutcome(tx_hash, None, False, polls=self.policy.max_attempts)


class TransactionLifecycle:
    """Submit, confirm, and resubmit on temporary-class results.

    ``resubmit`` bounds the total number of submissions of one descriptor.
    Each resubmission is freshly autofilled and signed. A copy the node held
    with a tel/ter code can still apply later, so before every resubmission,
    and when a later copy is refused, the held copies are looked up and a
    validated one is adopted as the outcome.
    """

    def __init__(self, gateway: SubmissionGateway, waiter: ConfirmationWaiter, resubmit: RetryPolicy, *, sleep: Sleep = asyncio.sleep):
        self.gateway = gateway
        self.waiter = waiter
        self.resubmit = resubmit
        self.sleep = sleep

    async def _held_copy(self, history: list[SubmissionResult]) -> tuple[SubmissionResult, ConfirmationOutcome] | None:
        for sub in history:
            if sub.accepted or sub.tx_hash is None or classify(sub.engine_result) is not ResultClass.TEMPORARY:
                continue
            outcome = await self.waiter.lookup(sub.tx_hash)
            if outcome is not None:
                log.info("Held copy tx=%s applied after all: %s", sub.tx_hash, outcome.result_code)
                return sub, outcome
        return None

    def _adopt(self, held, attempt: int, history: list[SubmissionResult]) -> ExecutionResult:
        sub, outcome = held
        return ExecutionResult(sub, outcome, outcome.result_class, submissions=attempt, history=history)

    async def execute(self, descriptor: TransactionDescriptor, wallet: Wallet) -> ExecutionResult:
        history: list[SubmissionResult] = []
        for attempt in range(1, self.resubmit.max_attempts + 1):
            submission = await self.gateway.submit(descriptor, wallet)
            history.append(submission)
            outcome = None
            if submission.accepted:
                outcome = await self.waiter.wait(submission)
                klass = outcome.result_class
            elif submission.engine_result is not None:
                klass = classify(submission.engine_result)
            else:
                # Refused before we got an engine result (bad blob, unfunded sender)
                klass = ResultClass.PERMANENT

            if klass is not ResultClass.TEMPORARY:
                # e.g. tefPAST_SEQ because an earlier held copy took the sequence
                if not submission.accepted and (held := await self._held_copy(history[:-1])):
                    return self._adopt(held, attempt, history)
                return ExecutionResult(submission, outcome, klass, submissions=attempt, history=history)

            log.warning(
                "%s got temporary result %s (submission %s/%s)",
                descriptor.kind, submission.engine_result, attempt, self.resubmit.max_attempts,
            )
            if attempt < self.resubmit.max_attempts:
                await self.resubmit.wait(attempt, self.sleep)
            if held := await self._held_copy(history):
                return self._adopt(held, attempt, history)

        # Only temporary results all the way down: nobody ever confirmed it
        return ExecutionResult(
            history[-1], None, ResultClass.UNCONFIRMED, submissions=self.resubmit.max_attempts, history=history
        )
