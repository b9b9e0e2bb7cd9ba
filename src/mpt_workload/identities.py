"""Signing identities for a run: wallets from seeds, or fresh faucet-funded ones."""

import asyncio
import logging

import httpx
from xrpl.wallet import Wallet

import mpt_workload.constants as C
from mpt_workload.errors import TransportError
from mpt_workload.network import LedgerConnection
from mpt_workload.retry import RetryPolicy, Sleep
from mpt_workload.state_reader import StateReader

log = logging.getLogger("mpt_workload.identities")


async def fund_from_faucet(address: str, faucet_url: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=C.RPC_TIMEOUT) as http:
            r = await http.post(faucet_url, json={"destination": address})
            r.raise_for_status()
            return r.json()
    except httpx.HTTPError as e:
        raise TransportError(f"Faucet {faucet_url} could not fund {address}: {e}") from e


async def wait_until_active(reader: StateReader, address: str, policy: RetryPolicy, *, sleep: Sleep = asyncio.sleep) -> None:
    for attempt in range(1, policy.max_attempts + 1):
        if await reader.is_active(address):
            log.debug("%s active after %s checks", address, attempt)
            return
        if attempt < policy.max_attempts:
            await policy.wait(attempt, sleep)
    raise TransportError(f"{address} still not visible in a validated ledger after funding")


async def provision_wallet(
    conn: LedgerConnection, config: dict, seed: str | None = None, *, sleep: Sleep = asyncio.sleep
) -> Wallet:
    """Wallet from ``seed`` if given, otherwise a new one funded by the faucet."""
    if seed:
        return Wallet.from_seed(seed)

    wallet = Wallet.create()
    faucet_url = config["network"]["faucet_url"]
    funded = await fund_from_faucet(wallet.address, faucet_url)
    log.info("Funded %s via faucet (%s XRP)", wallet.address, funded.get("amount", "?"))
    await wait_until_active(StateReader(conn), wallet.address, RetryPolicy.from_config(config["funding"]), sleep=sleep)
    return wallet


async def provision_participants(
    conn: LedgerConnection, config: dict, *, issuer_seed: str | None = None, holder_seed: str | None = None
) -> tuple[Wallet, Wallet]:
    ids = config.get("identities", {})
    # one request in flight on the connection at a time
    issuer = await provision_wallet(conn, config, issuer_seed or ids.get("issuer_seed"))
    holder = await provision_wallet(conn, config, holder_seed or ids.get("holder_seed"))
    return issuer, holder
