import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from mpt_workload.constants import Step, WorkflowStage

log = logging.getLogger("mpt_workload.events")


class EventStatus(StrEnum):
    STARTED = "STARTED"
    SUCCEEDED = "SUCCEEDED"
    RESOLVED = "RESOLVED"  # derived identifier found
    FAILED = "FAILED"
    HALTED = "HALTED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class StageEvent:
    """One thing that happened to one step of a workflow run.

    The orchestrator only emits these; rendering them is somebody else's job.
    """

    run_id: str
    step: Step
    stage: WorkflowStage
    status: EventStatus
    tx_hash: str | None = None
    result_code: str | None = None
    identifier: str | None = None
    detail: str | None = None
    fatal: bool = False
    at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "step": str(self.step),
            "stage": str(self.stage),
            "status": str(self.status),
            "tx_hash": self.tx_hash,
            "result_code": self.result_code,
            "identifier": self.identifier,
            "detail": self.detail,
            "fatal": self.fatal,
            "at": self.at,
        }


Listener = Callable[[StageEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def emit(self, event: StageEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                # listener failures never reach the workflow
                log.error("Listener %r failed on %s/%s", listener, event.step, event.status, exc_info=True)


class EventCollector:
    """Listener that just keeps everything. Handy for the API and tests."""

    def __init__(self) -> None:
        self.events: list[StageEvent] = []

    def __call__(self, event: StageEvent) -> None:
        self.events.append(event)

    def by_step(self, step: Step) -> list[StageEvent]:
        return [e for e in self.events if e.step == step]
