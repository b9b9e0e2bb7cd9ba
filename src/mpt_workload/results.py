"""Engine result vocabulary.

rippled reports the outcome of a txn as a code whose three-letter prefix is
the class (tes/tec/tef/tel/tem/ter). Each prefix is mapped here on purpose; a
prefix nobody mapped raises instead of quietly falling into some bucket.
"""

from enum import StrEnum

from mpt_workload.constants import TER_QUEUED, TES_SUCCESS


class ResultClass(StrEnum):
    SUCCESS = "SUCCESS"
    PERMANENT = "PERMANENT"
    TEMPORARY = "TEMPORARY"
    UNCONFIRMED = "UNCONFIRMED"


_PREFIX_CLASS: dict[str, ResultClass] = {
    "tes": ResultClass.SUCCESS,
    "tec": ResultClass.PERMANENT,  # claimed fee, included in a ledger, not applied
    "tef": ResultClass.PERMANENT,
    "tem": ResultClass.PERMANENT,  # malformed
    "tel": ResultClass.TEMPORARY,  # local to the node we talked to
    "ter": ResultClass.TEMPORARY,
}

# Codes that don't follow their prefix
_OVERRIDES: dict[str, ResultClass] = {
    "tefMAX_LEDGER": ResultClass.TEMPORARY,  # LastLedgerSequence passed before relay, a fresh autofill fixes it
}


class UnmappedResultCode(ValueError):
    pass


def classify(code: str | None) -> ResultClass:
    """Map an engine result code onto a ResultClass.

    None means no verdict reached us (never validated), which is UNCONFIRMED.
    """
    if code is None:
        return ResultClass.UNCONFIRMED
    if code in _OVERRIDES:
        return _OVERRIDES[code]
    if code == TES_SUCCESS:
        return ResultClass.SUCCESS
    prefix = code[:3]
    if prefix == "tes":
        # tesSUCCESS is the only unconditional success
        raise UnmappedResultCode(f"Unknown tes code: {code}")
    try:
        return _PREFIX_CLASS[prefix]
    except KeyError:
        raise UnmappedResultCode(f"No classification for engine result {code!r}") from None


def relayed(code: str | None) -> bool:
    """Did the node accept the txn for relaying (as opposed to dropping it)?

    tec codes are relayed too: they claim the fee and end up in a ledger.
    """
    if code is None:
        return False
    return code == TES_SUCCESS or code == TER_QUEUED or code.startswith("tec")
