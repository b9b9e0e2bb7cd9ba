"""Error taxonomy for the MPT workflow.

Every error carries the step it came from and the last transaction hash we
know about, so a halted workflow can always point somebody at the explorer.
"""

from mpt_workload.constants import Step


class WorkflowError(Exception):
    def __init__(self, message: str, *, step: Step | None = None, tx_hash: str | None = None):
        super().__init__(message)
        self.step = step
        self.tx_hash = tx_hash

    def __str__(self):
        msg = super().__str__()
        if self.tx_hash:
            msg = f"{msg} (last tx {self.tx_hash})"
        return msg


class TransportError(WorkflowError):
    """Connection-level failure. We don't know whether the request landed."""


class RejectionError(WorkflowError):
    """The ledger gave a permanent-failure engine result."""

    def __init__(self, message: str, *, result_code: str | None = None, **kw):
        super().__init__(message, **kw)
        self.result_code = result_code


class ConfirmationTimeoutError(WorkflowError):
    """Txn never showed up in a validated ledger within the wait bound."""


class NotFoundError(WorkflowError):
    """Derived identifier still absent after the resolver gave up."""


class ObservabilityError(WorkflowError):
    """State query failed. Never fatal."""


class WorkflowCancelledError(WorkflowError):
    pass


class IllegalTransitionError(ValueError):
    pass
