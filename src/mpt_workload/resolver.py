import asyncio
import logging

from mpt_workload.network import LedgerConnection, RequestKind
from mpt_workload.retry import RetryPolicy, Sleep

log = logging.getLogger("mpt_workload.resolver")

MPT_ISSUANCE_ID = "mpt_issuance_id"


class IdentifierResolver:
    """Look up the identifier the ledger derived from a confirmed txn.

    The field can lag validation, so it is polled a bounded number of times.
    Returns None when it never shows up; never makes one up.
    """

    def __init__(self, conn: LedgerConnection, policy: RetryPolicy, *, field: str = MPT_ISSUANCE_ID, sleep: Sleep = asyncio.sleep):
        self.conn = conn
        self.policy = policy
        self.field = field
        self.sleep = sleep

    def _extract(self, result: dict) -> str | None:
        # API v2 puts it in meta, v1 at the top level
        meta = result.get("meta")
        if isinstance(meta, dict) and meta.get(self.field):
            return meta[self.field]
        return result.get(self.field) or None

    async def resolve(self, tx_hash: str) -> str | None:
        for attempt in range(1, self.policy.max_attempts + 1):
            r = await self.conn.query(RequestKind.TRANSACTION, transaction=tx_hash)
            if r.is_successful():
                if ident := self._extract(r.result):
                    log.debug("Resolved %s=%s from %s (attempt %s)", self.field, ident, tx_hash, attempt)
                    return ident
            else:
                log.debug("tx lookup for %s failed: %s", tx_hash, r.result.get("error"))

            if attempt < self.policy.max_attempts:
                await self.policy.wait(attempt, self.sleep)

        log.warning("No %s on %s after %s lookups", self.field, tx_hash, self.policy.max_attempts)
        return None
