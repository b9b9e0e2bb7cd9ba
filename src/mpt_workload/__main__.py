import argparse
import asyncio
import copy
import logging
import sys

import uvicorn

from mpt_workload.config import cfg, load_config
from mpt_workload.errors import TransportError
from mpt_workload.events import EventBus
from mpt_workload.identities import provision_participants
from mpt_workload.logging_config import setup_logging
from mpt_workload.network import open_connection, probe_rpc
from mpt_workload.orchestrator import MPTWorkflow
from mpt_workload.report import LogReporter, render_summary
from mpt_workload.retry import RetryPolicy

log = logging.getLogger("mpt_workload.cli")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="mpt-workload", description="Issue, authorize and transfer an MPT.")
    sub = parser.add_subparsers(dest="command")
    parser.set_defaults(command="run", url=None, issuer_seed=None, holder_seed=None, amount=None, config=None)

    run = sub.add_parser("run", help="Run the workflow once against a ledger network.")
    run.add_argument("-u", "--url",
                     help="Ledger endpoint, ws(s):// or http(s)://.",
                     )
    run.add_argument("--issuer-seed",
                     help="Seed of a funded issuer account. Faucet-funded if omitted.",
                     )
    run.add_argument("--holder-seed",
                     help="Seed of a funded holder account. Faucet-funded if omitted.",
                     )
    run.add_argument("-a", "--amount",
                     help="MPT amount to transfer, in the smallest unit.",
                     )
    run.add_argument("-c", "--config",
                     help="Alternate config.toml.",
                     )

    serve = sub.add_parser("serve", help="Run the HTTP service.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def overrides(a, conf: dict) -> dict:
    o = copy.deepcopy(conf)
    if a.url is not None:
        o["network"]["url"] = a.url
    if a.amount is not None:
        o["transfer"]["amount"] = a.amount
    return o


async def run_workflow(conf: dict, *, issuer_seed: str | None = None, holder_seed: str | None = None) -> int:
    net = conf["network"]
    url = net["url"]
    if url.startswith(("http://", "https://")):
        await probe_rpc(url, RetryPolicy.from_config(conf["funding"]))

    bus = EventBus()
    bus.subscribe(LogReporter())
    async with open_connection(url, timeout=float(net["request_timeout"])) as conn:
        issuer, holder = await provision_participants(conn, conf, issuer_seed=issuer_seed, holder_seed=holder_seed)
        log.info("🏦 Issuer: %s", issuer.address)
        log.info("👤 Holder: %s", holder.address)

        wf = MPTWorkflow(conn, conf, bus=bus)
        try:
            state = await wf.run(issuer, holder)
        finally:
            if wf.state is not None:
                print("\n".join(render_summary(wf.state, conf, issuer=issuer.address, holder=holder.address)))
    return 0 if state.succeeded else 1


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    if args.command == "serve":
        uvicorn.run("mpt_workload.app:app", host=args.host, port=args.port, lifespan="on")
        return 0

    conf = overrides(args, load_config(args.config) if args.config else cfg)
    try:
        return asyncio.run(run_workflow(conf, issuer_seed=args.issuer_seed, holder_seed=args.holder_seed))
    except TransportError as e:
        log.error("Transport failure, aborting: %s", e)
        return 2
    except KeyboardInterrupt:
        log.warning("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
