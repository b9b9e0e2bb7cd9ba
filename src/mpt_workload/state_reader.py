import logging
from dataclasses import dataclass

from xrpl.models.requests import AccountObjectType

from mpt_workload.errors import ObservabilityError, TransportError
from mpt_workload.network import LedgerConnection, RequestKind

log = logging.getLogger("mpt_workload.state")


@dataclass(frozen=True, slots=True)
class Holding:
    account: str
    issuance_id: str | None
    amount: str
    ledger_entry_type: str

    @classmethod
    def from_ledger_object(cls, account: str, obj: dict) -> "Holding":
        return cls(
            account=account,
            issuance_id=obj.get("MPTokenIssuanceID"),
            # MPTAmount is omitted from the ledger entry while it's zero
            amount=str(obj.get("MPTAmount", "0")),
            ledger_entry_type=obj.get("LedgerEntryType", ""),
        )


class StateReader:
    """Read-only view of what the validated ledger says an account holds."""

    def __init__(self, conn: LedgerConnection, *, object_type: str = "mptoken"):
        self.conn = conn
        self.object_type = object_type

    async def holdings(self, account: str, object_type: str | None = None) -> list[Holding]:
        """All ``object_type`` ledger objects owned by ``account``, following markers.

        Raises ObservabilityError on any failure; callers decide whether to care.
        """
        kind = object_type or self.object_type
        out: list[Holding] = []
        marker = None
        while True:
            params = {"account": account, "ledger_index": "validated", "type": AccountObjectType(kind)}
            if marker is not None:
                params["marker"] = marker
            try:
                r = await self.conn.query(RequestKind.ACCOUNT_OBJECTS, **params)
            except TransportError as e:
                raise ObservabilityError(f"account_objects for {account} failed: {e}") from e
            if not r.is_successful():
                raise ObservabilityError(
                    f"account_objects for {account} failed: {r.result.get('error_message') or r.result.get('error')}"
                )
            out.extend(Holding.from_ledger_object(account, obj) for obj in r.result.get("account_objects", []))
            marker = r.result.get("marker")
            if marker is None:
                break
        log.debug("%s holds %s %s objects", account, len(out), kind)
        return out

    async def account_info(self, account: str) -> dict:
        try:
            r = await self.conn.query(RequestKind.ACCOUNT_INFO, account=account, ledger_index="validated")
        except TransportError as e:
            raise ObservabilityError(f"account_info for {account} failed: {e}") from e
        if not r.is_successful():
            raise ObservabilityError(f"account_info for {account} failed: {r.result.get('error')}")
        return r.result["account_data"]

    async def is_active(self, account: str) -> bool:
        try:
            await self.account_info(account)
        except ObservabilityError:
            return False
        return True
