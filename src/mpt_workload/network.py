"""The one connection a workflow talks to the ledger over.

Wraps an xrpl-py async client so everything above it sees
``query``/``submit`` returning ``Response`` objects, and every
connection-level failure surfaces as ``TransportError``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import StrEnum
from typing import Any, AsyncIterator

import httpx
from websockets.exceptions import WebSocketException
from xrpl.asyncio.clients import AsyncJsonRpcClient, AsyncWebsocketClient
from xrpl.constants import XRPLException
from xrpl.models.requests import AccountInfo, AccountObjects, Ledger, Request, SubmitOnly, Tx
from xrpl.models.response import Response

import mpt_workload.constants as C
from mpt_workload.errors import TransportError
from mpt_workload.retry import RetryPolicy, Sleep

log = logging.getLogger("mpt_workload.network")

TRANSPORT_ERRORS = (XRPLException, httpx.HTTPError, WebSocketException, OSError)


class RequestKind(StrEnum):
    TRANSACTION = "tx"
    ACCOUNT_INFO = "account_info"
    ACCOUNT_OBJECTS = "account_objects"


_REQUESTS: dict[RequestKind, type[Request]] = {
    RequestKind.TRANSACTION: Tx,
    RequestKind.ACCOUNT_INFO: AccountInfo,
    RequestKind.ACCOUNT_OBJECTS: AccountObjects,
}


class LedgerConnection:
    def __init__(self, client, *, timeout: float = C.RPC_TIMEOUT):
        self.client = client
        self.timeout = timeout

    async def _rpc(self, req: Request, *, t: float | None = None) -> Response:
        t = t or self.timeout
        try:
            return await asyncio.wait_for(self.client.request(req), timeout=t)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{req.method.value} timed out after {t}s") from e
        except TRANSPORT_ERRORS as e:
            raise TransportError(f"{req.method.value} failed: {e.__class__.__name__}: {e}") from e

    async def query(self, kind: RequestKind, **params: Any) -> Response:
        return await self._rpc(_REQUESTS[kind](**params))

    async def submit(self, tx_blob: str) -> Response:
        return await self._rpc(SubmitOnly(tx_blob=tx_blob))

    async def latest_validated_ledger(self) -> int:
        r = await self._rpc(Ledger(ledger_index="validated"))
        if not r.is_successful():
            raise TransportError(f"ledger request failed: {r.result}")
        return int(r.result["ledger_index"])


@asynccontextmanager
async def open_connection(url: str, *, timeout: float = C.RPC_TIMEOUT) -> AsyncIterator[LedgerConnection]:
    """Connect once, hand out the connection, always disconnect.

    ``ws://``/``wss://`` URLs get a websocket client, anything else JSON-RPC
    (which has nothing to hold open).
    """
    if not url.startswith(("ws://", "wss://")):
        yield LedgerConnection(AsyncJsonRpcClient(url), timeout=timeout)
        return

    client = AsyncWebsocketClient(url)
    try:
        await asyncio.wait_for(client.open(), timeout=timeout)
    except (asyncio.TimeoutError, *TRANSPORT_ERRORS) as e:
        raise TransportError(f"Could not connect to {url}: {e}") from e
    log.info("Connected to %s", url)
    try:
        yield LedgerConnection(client, timeout=timeout)
    finally:
        await client.close()
        log.info("Disconnected from %s", url)


async def probe_rpc(url: str, policy: RetryPolicy, *, sleep: Sleep = asyncio.sleep) -> None:
    """Probe a JSON-RPC endpoint with retries until it answers server_info."""
    payload = {"method": "server_info", "params": [{}]}

    for attempt in range(1, policy.max_attempts + 1):
        try:
            async with httpx.AsyncClient(timeout=C.RPC_TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info(f"RPC endpoint responding (attempt {attempt}/{policy.max_attempts})")
                return
        except httpx.HTTPError as e:
            if attempt < policy.max_attempts:
                log.info(f"RPC not ready yet (attempt {attempt}/{policy.max_attempts}): {e.__class__.__name__} - retrying")
                await policy.wait(attempt, sleep)
            else:
                raise TransportError(f"RPC {url} not responding after {policy.max_attempts} attempts") from e
