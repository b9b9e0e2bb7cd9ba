from typing import Final
from enum import StrEnum


class TxType(StrEnum):
    MPTOKEN_ISSUANCE_CREATE    = "MPTokenIssuanceCreate"
    MPTOKEN_AUTHORIZE          = "MPTokenAuthorize"
    PAYMENT                    = "Payment"


class Step(StrEnum):
    ISSUANCE       = "issuance"
    AUTHORIZATION  = "authorization"
    TRANSFER       = "transfer"
    REPORT         = "report"


class WorkflowStage(StrEnum):
    CREATED                  = "Created"
    AUTHORIZATION_REQUESTED  = "AuthorizationRequested"
    AUTHORIZATION_RESOLVED   = "AuthorizationResolved"
    TRANSFER_SUBMITTED       = "TransferSubmitted"
    TRANSFER_RESOLVED        = "TransferResolved"
    REPORTED                 = "Reported"


class Fatality(StrEnum):
    FATAL      = "FATAL"
    NON_FATAL  = "NON_FATAL"


# Engine result the ledger returns when a submitted txn is held in the queue
TER_QUEUED: Final = "terQUEUED"
TES_SUCCESS: Final = "tesSUCCESS"

# Request timeout for a single round-trip, seconds
RPC_TIMEOUT = 10.0
LEDGER_GRACE = 2  # ledgers past LastLedgerSequence before we call it expired
HISTORY_SIZE = 100

__all__ = [
    "HISTORY_SIZE",
    "LEDGER_GRACE",
    "RPC_TIMEOUT",
    "TER_QUEUED",
    "TES_SUCCESS",

    ######
    "Fatality",
    "Step",
    "TxType",
    "WorkflowStage",
]
