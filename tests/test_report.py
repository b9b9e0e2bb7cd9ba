import logging

from mpt_workload.constants import Step, TxType
from mpt_workload.report import LogReporter, render_summary

from conftest import ISSUANCE_ID, Scripted, mptoken


async def test_summary_of_successful_run(workflow, ledger, config, issuer, holder):
    ledger.set_objects(holder.address, [mptoken(amount="1000")])
    state = await workflow.run(issuer, holder)

    lines = render_summary(state, config, issuer=issuer.address, holder=holder.address)
    text = "\n".join(lines)

    assert lines[0].startswith(f"Run {state.run_id}: succeeded")
    assert f"MPT Issuance ID: {ISSUANCE_ID}" in text
    assert "Issuer MPT holdings: 0" in text
    assert "Holder MPT holdings: 1" in text
    assert f"10.00 DDT ({ISSUANCE_ID})" in text
    assert f"https://devnet.xrpl.org/accounts/{holder.address}" in text
    assert "https://devnet.xrpl.org/transactions/0003PAYMENT" in text
    assert "Halted" not in text


async def test_summary_of_halted_run(workflow, ledger, config, issuer, holder):
    ledger.script(TxType.MPTOKEN_ISSUANCE_CREATE, Scripted(engine_result="tecNO_PERMISSION", final="tecNO_PERMISSION"))
    config["network"]["explorer_url"] = ""
    state = await workflow.run(issuer, holder)

    text = "\n".join(render_summary(state, config, issuer=issuer.address, holder=holder.address))
    assert "did not complete" in text
    assert "RejectionError" in text
    assert "Halted:" in text
    assert "MPT Issuance ID" not in text
    assert "devnet.xrpl.org" not in text


async def test_log_reporter_narrates(workflow, issuer, holder, caplog):
    logger = logging.getLogger("test.reporter")
    workflow.bus.subscribe(LogReporter(logger))
    with caplog.at_level(logging.INFO, logger="test.reporter"):
        await workflow.run(issuer, holder)
    messages = [r.getMessage() for r in caplog.records if r.name == "test.reporter"]
    assert any(ISSUANCE_ID in m for m in messages)
    assert any(m.startswith("✅ transfer") for m in messages)
    assert sum(m.startswith("🔄") for m in messages) == 4


async def test_log_reporter_flags_halt(workflow, ledger, issuer, holder, caplog):
    ledger.script(TxType.MPTOKEN_ISSUANCE_CREATE, Scripted())
    logger = logging.getLogger("test.reporter")
    workflow.bus.subscribe(LogReporter(logger))
    with caplog.at_level(logging.INFO, logger="test.reporter"):
        await workflow.run(issuer, holder)
    errors = [r for r in caplog.records if r.name == "test.reporter" and r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert Step.ISSUANCE in errors[0].getMessage()
