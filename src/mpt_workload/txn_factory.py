"""Transaction descriptors for the MPT workflow.

A descriptor is the immutable request for one ledger operation: the type, who
sends it and its fields in XRPL JSON form. Builders below compose the dicts;
``to_transaction`` turns one into an xrpl-py model at signing time.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from xrpl.models.transactions import (
    MPTokenAuthorize,
    MPTokenIssuanceCreate,
    MPTokenIssuanceCreateFlag,
    Payment,
    Transaction,
)

from mpt_workload.constants import TxType

_MODELS: dict[TxType, type[Transaction]] = {
    TxType.MPTOKEN_ISSUANCE_CREATE: MPTokenIssuanceCreate,
    TxType.MPTOKEN_AUTHORIZE: MPTokenAuthorize,
    TxType.PAYMENT: Payment,
}


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True, slots=True)
class TransactionDescriptor:
    kind: TxType
    sender: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", _freeze(self.fields))

    def to_xrpl(self) -> dict:
        return {"TransactionType": str(self.kind), "Account": self.sender, **_thaw(self.fields)}

    def to_transaction(self) -> Transaction:
        return _MODELS[self.kind].from_xrpl(self.to_xrpl())

    def __str__(self):
        return f"{self.kind} -- {self.sender}"


def encode_metadata(metadata: Mapping[str, Any]) -> str:
    """Compact JSON, utf-8, upper-case hex: the MPTokenMetadata wire form."""
    return json.dumps(dict(metadata), separators=(",", ":")).encode("utf-8").hex().upper()


def issuance_flags(names: list[str]) -> int:
    flags = 0
    for name in names:
        try:
            flags |= MPTokenIssuanceCreateFlag[name]
        except KeyError:
            raise ValueError(f"Unknown MPTokenIssuanceCreate flag: {name}") from None
    return int(flags)


def build_issuance_create(issuer: str, params: dict) -> TransactionDescriptor:
    """MPTokenIssuanceCreate from the ``[issuance]`` config section."""
    fields: dict[str, Any] = {
        "AssetScale": int(params.get("asset_scale", 0)),
        "MaximumAmount": str(params["maximum_amount"]),
    }
    if transfer_fee := int(params.get("transfer_fee", 0)):
        fields["TransferFee"] = transfer_fee
    if flags := issuance_flags(params.get("flags", [])):
        fields["Flags"] = flags
    if metadata := params.get("metadata"):
        fields["MPTokenMetadata"] = encode_metadata(metadata)
    return TransactionDescriptor(TxType.MPTOKEN_ISSUANCE_CREATE, issuer, fields)


def build_authorize(holder: str, issuance_id: str) -> TransactionDescriptor:
    # No Holder field: the sender opts itself in to hold the token
    return TransactionDescriptor(TxType.MPTOKEN_AUTHORIZE, holder, {"MPTokenIssuanceID": issuance_id})


def build_payment(sender: str, destination: str, issuance_id: str, value: str) -> TransactionDescriptor:
    return TransactionDescriptor(
        TxType.PAYMENT,
        sender,
        {
            "Destination": destination,
            "Amount": {"mpt_issuance_id": issuance_id, "value": str(value)},
        },
    )


def scaled_amount(value: str | int, asset_scale: int) -> str:
    """Render an integer MPT amount in token units, e.g. ("1000", 2) -> "10.00"."""
    v = int(value)
    if asset_scale <= 0:
        return str(v)
    sign = "-" if v < 0 else ""
    whole, frac = divmod(abs(v), 10**asset_scale)
    return f"{sign}{whole}.{frac:0{asset_scale}d}"
