"""Human-readable rendering of workflow events and results."""

import logging

from mpt_workload.constants import Step
from mpt_workload.events import EventStatus, StageEvent
from mpt_workload.orchestrator import WorkflowState
from mpt_workload.txn_factory import scaled_amount

log = logging.getLogger("mpt_workload.report")

_TITLES = {
    Step.ISSUANCE: "Creating MPT issuance",
    Step.AUTHORIZATION: "Holder authorizing MPT",
    Step.TRANSFER: "Transferring MPT to holder",
    Step.REPORT: "Reading final balances",
}


class LogReporter:
    """EventBus listener that narrates a run through logging."""

    def __init__(self, logger: logging.Logger = log):
        self.log = logger

    def __call__(self, e: StageEvent) -> None:
        if e.status == EventStatus.STARTED:
            self.log.info("🔄 %s %s", _TITLES[e.step], f"({e.detail})" if e.detail else "")
        elif e.status == EventStatus.SUCCEEDED:
            self.log.info("✅ %s %s %s", e.step, e.result_code or "", e.tx_hash or e.detail or "")
        elif e.status == EventStatus.RESOLVED:
            self.log.info("🆔 MPT Issuance ID: %s", e.identifier)
        elif e.status == EventStatus.FAILED:
            self.log.warning("❌ %s failed (continuing): %s", e.step, e.detail)
        elif e.status == EventStatus.HALTED:
            self.log.error("💥 %s failed, workflow halted: %s", e.step, e.detail)
        elif e.status == EventStatus.CANCELLED:
            self.log.warning("%s cancelled: %s", e.step, e.detail)


def render_summary(state: WorkflowState, config: dict, *, issuer: str, holder: str) -> list[str]:
    """Final status lines for a finished (or halted) run."""
    issuance = config.get("issuance", {})
    scale = int(issuance.get("asset_scale", 0))
    ticker = issuance.get("metadata", {}).get("ticker", "MPT")
    explorer = config.get("network", {}).get("explorer_url")

    lines = [f"Run {state.run_id}: {'succeeded' if state.succeeded else 'did not complete'} (stage {state.stage})"]
    for rec in state.records:
        status = "ok" if rec.ok else f"{type(rec.error).__name__}: {rec.error}"
        lines.append(f"  {rec.step:<14} {rec.result_code or '-':<16} {rec.tx_hash or '-'}  {status}")

    if state.identifier:
        lines.append(f"MPT Issuance ID: {state.identifier}")

    report = state.record_for(Step.REPORT)
    if report is not None:
        for label, account in (("Issuer", issuer), ("Holder", holder)):
            held = report.holdings.get(account)
            if held is None:
                lines.append(f"{label} holdings: unavailable")
                continue
            lines.append(f"{label} MPT holdings: {len(held)}")
            for h in held:
                lines.append(f"  {scaled_amount(h.amount, scale)} {ticker} ({h.issuance_id})")

    if state.halted is not None:
        lines.append(f"Halted: {state.halted}")
    if explorer:
        lines.append(f"Issuer: {explorer}/accounts/{issuer}")
        lines.append(f"Holder: {explorer}/accounts/{holder}")
        if state.last_tx_hash:
            lines.append(f"Last txn: {explorer}/transactions/{state.last_tx_hash}")
    return lines
