from enum import Enum

from pydantic import BaseModel


class StepState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SATISFIED = "satisfied"
    WARNED = "warned"
    FAILED = "failed"


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepResult(BaseModel):
    state: StepState = StepState.SATISFIED
    message: str | None = None
    skipped: bool = False

    @classmethod
    def satisfied(cls, message: str | None = None) -> "StepResult":
        return cls(state=StepState.SATISFIED, message=message)

    @classmethod
    def warned(cls, message: str) -> "StepResult":
        return cls(state=StepState.WARNED, message=message)

    @classmethod
    def skip(cls, message: str) -> "StepResult":
        return cls(state=StepState.SATISFIED, message=message, skipped=True)
